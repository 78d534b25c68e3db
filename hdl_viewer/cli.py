import argparse
import sys

from .calibration import CalibrationError
from .cloud import PointFormat
from .grabber import HDL_DATA_PORT, HDLGrabber, ZmqGrabber

USAGE = ("usage: {prog} [-hdlCalibration <path-to-calibration-file>] [-pcapFile <path-to-pcap-file>]"
         " [-h | --help] [-format XYZ|XYZRGB]\n"
         "{prog} -h | --help : shows this help")


def build_parser(prog="hdl-viewer"):
    ap = argparse.ArgumentParser(
        prog=prog,
        description="Live viewer for Velodyne HDL sweeps",
        allow_abbrev=False,
        add_help=False,
    )
    ap.add_argument("-h", "--help", action="store_true", help="show this help")
    ap.add_argument("-calibrationFile", "-hdlCalibration", dest="calibration_file", default="",
                    help="Velodyne db.xml calibration (default: HDL-32E table)")
    ap.add_argument("-pcapFile", dest="pcap_file", default="", help="replay a pcap capture instead of the live sensor")
    ap.add_argument("-format", dest="format", default="XYZ", help="XYZ or XYZRGB")
    ap.add_argument("-zmqEndpoint", dest="zmq_endpoint", default="", help="read sweeps from a zmq PUB socket instead")
    ap.add_argument("-host", default="0.0.0.0", help="UDP bind address for the live sensor")
    ap.add_argument("-port", type=int, default=HDL_DATA_PORT, help="HDL data port")
    ap.add_argument("-minDistance", dest="min_distance", type=float, default=0.0, help="metres")
    ap.add_argument("-maxDistance", dest="max_distance", type=float, default=10000.0, help="metres")
    ap.add_argument("-showFps", dest="show_fps", action="store_true", help="print callback/draw rates")
    ap.add_argument("-echoInput", dest="echo_input", action="store_true", help="print key and mouse events")
    ap.add_argument("-noRealtime", dest="realtime", action="store_false", help="replay pcap as fast as possible")
    ap.add_argument("-statusPort", dest="status_port", type=int, default=0, help="serve /api/status on this port")
    return ap


def usage(prog="hdl-viewer"):
    print(USAGE.format(prog=prog))


def make_grabber(args, point_format):
    if args.zmq_endpoint:
        return ZmqGrabber(args.zmq_endpoint, point_format=point_format)
    return HDLGrabber(
        calibration_file=args.calibration_file or None,
        pcap_file=args.pcap_file or None,
        point_format=point_format,
        host=args.host,
        port=args.port,
        min_distance=args.min_distance,
        max_distance=args.max_distance,
        realtime=args.realtime,
    )


def main(argv=None):
    argv = sys.argv[1:] if argv is None else list(argv)
    ap = build_parser()
    args, _ = ap.parse_known_args(argv)

    if args.help:
        usage(ap.prog)
        return 0

    try:
        point_format = PointFormat.parse(args.format)
    except ValueError as e:
        print(f"❌ {e}")
        usage(ap.prog)
        return 1

    try:
        grabber = make_grabber(args, point_format)
    except CalibrationError as e:
        print(f"❌ {e}")
        return 1

    # imported late so -h and bad arguments work without a display
    from .viewer import SimpleHDLViewer

    stats = None
    if args.status_port:
        from .status import ViewerStats, serve
        stats = ViewerStats(point_format.value)
        serve(stats, port=args.status_port)

    viewer = SimpleHDLViewer(grabber, point_format, show_fps=args.show_fps,
                             echo_input=args.echo_input, stats=stats)
    try:
        viewer.run()
    except KeyboardInterrupt:
        print("\n👋 Stopped")
    return 0
