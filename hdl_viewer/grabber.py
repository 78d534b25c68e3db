"""Sweep producers: Velodyne HDL (live UDP or pcap) and zmq point-cloud streams.

Every grabber runs its receive loop on a daemon thread and hands each finished
sweep to the registered callbacks on that thread.
"""
import socket
import struct
import time
from threading import Event, Lock, Thread

import numpy as np
import zmq

from .calibration import Calibration
from .cloud import Cloud, PointFormat, colorize
from .packets import PACKET_SIZE, PacketDecoder, PacketError, SweepAssembler
from .pcap import iter_udp_payloads

HDL_DATA_PORT = 2368
ZMQ_ENDPOINT = "tcp://192.168.1.249:5555"

MAX_REPLAY_SLEEP = 1.0  # seconds


class Connection:
    def __init__(self, grabber, callback):
        self._grabber = grabber
        self._callback = callback

    def disconnect(self):
        if self._grabber is not None:
            self._grabber._remove_callback(self._callback)
            self._grabber = None


class Grabber:
    name = "grabber"

    def __init__(self, point_format=PointFormat.XYZ):
        self.point_format = point_format
        self._callbacks = []
        self._callbacks_lock = Lock()
        self._stop = Event()
        self._thread = None
        self._running = False

    # --- callbacks

    def register_callback(self, callback):
        with self._callbacks_lock:
            self._callbacks.append(callback)
        return Connection(self, callback)

    def _remove_callback(self, callback):
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _publish(self, cloud):
        if self.point_format is PointFormat.XYZRGB and cloud.colors is None:
            cloud = colorize(cloud, self.n_lasers)
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for cb in callbacks:
            try:
                cb(cloud)
            except Exception as e:
                print(f"❌ {self.name} callback error: {e}")

    @property
    def n_lasers(self):
        return 32

    # --- lifecycle

    def start(self):
        if self.is_running():
            return
        self._stop.clear()
        self._running = True
        self._thread = Thread(target=self._worker, name=self.name, daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        self._running = False

    def is_running(self):
        return self._running

    def _worker(self):
        try:
            self.run()
        except Exception as e:
            print(f"❌ {self.name} stopped: {e}")
        finally:
            self._running = False

    def run(self):
        """Receive loop; returns when the source is exhausted or stop() is called."""
        raise NotImplementedError


# ============================================================================
# VELODYNE HDL
# ============================================================================

class HDLGrabber(Grabber):
    name = "hdl"

    def __init__(self, calibration_file=None, pcap_file=None, point_format=PointFormat.XYZ,
                 host="0.0.0.0", port=HDL_DATA_PORT, min_distance=0.0, max_distance=10000.0,
                 realtime=True):
        super().__init__(point_format)
        self.calibration = Calibration.load(calibration_file)
        self.pcap_file = pcap_file
        self.host = host
        self.port = port
        self.realtime = realtime
        self.decoder = PacketDecoder(self.calibration, min_distance, max_distance)
        self.assembler = SweepAssembler()

    @property
    def n_lasers(self):
        return self.calibration.n_lasers

    def handle_packet(self, payload, stamp):
        """Decode one data packet and publish any sweeps it completes."""
        try:
            firings = self.decoder.decode(payload)
        except PacketError as e:
            print(f"⚠️  Skipped packet ({len(payload)} bytes): {e}")
            return
        for cloud in self.assembler.feed(firings, stamp):
            self._publish(cloud)

    def run(self):
        if self.pcap_file:
            self._read_pcap()
        else:
            self._read_socket()

    def _read_pcap(self):
        print(f"✅ Replaying {self.pcap_file} (port {self.port})")
        last_capture = last_wall = None
        for ts, _, payload in iter_udp_payloads(self.pcap_file, port=self.port):
            if self._stop.is_set():
                return
            if len(payload) != PACKET_SIZE:
                continue
            if self.realtime and last_capture is not None:
                delay = (ts - last_capture) - (time.time() - last_wall)
                if delay > 0:
                    self._stop.wait(min(delay, MAX_REPLAY_SLEEP))
            last_capture, last_wall = ts, time.time()
            self.handle_packet(payload, ts)

        cloud = self.assembler.flush()
        if cloud is not None:
            self._publish(cloud)
        print(f"✅ End of {self.pcap_file}")

    def _read_socket(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.settimeout(1.0)
        print(f"✅ Listening for HDL packets on {self.host}:{self.port}")
        try:
            while not self._stop.is_set():
                try:
                    payload, _ = sock.recvfrom(2048)
                except socket.timeout:
                    continue
                if len(payload) != PACKET_SIZE:
                    continue
                self.handle_packet(payload, time.time())
        finally:
            sock.close()


# ============================================================================
# ZMQ POINT-CLOUD STREAM
# ============================================================================

FRAME_HEADER_FMT = "<IIIII"  # seq, sec, nsec, ring count, point count
FRAME_HEADER_LEN = 20
POINT_FMT = "<fffffH"  # x, y, z, intensity, time, ring
POINT_LEN = 22

POINT_DTYPE = np.dtype([
    ("x", "<f4"), ("y", "<f4"), ("z", "<f4"),
    ("intensity", "<f4"), ("time", "<f4"), ("ring", "<u2"),
])
assert POINT_DTYPE.itemsize == struct.calcsize(POINT_FMT) == POINT_LEN


class FrameError(ValueError):
    pass


def parse_frame(data):
    """Decode one zmq point-cloud message into a Cloud."""
    if len(data) < FRAME_HEADER_LEN:
        raise FrameError(f"frame too short ({len(data)} bytes)")
    seq, sec, nsec, _, cloud_size = struct.unpack(FRAME_HEADER_FMT, data[:FRAME_HEADER_LEN])

    point_data = data[FRAME_HEADER_LEN:]
    count = min(cloud_size, len(point_data) // POINT_LEN)
    if count:
        pts = np.frombuffer(point_data, dtype=POINT_DTYPE, count=count)
    else:
        pts = np.zeros(0, dtype=POINT_DTYPE)

    # use device time if nonzero, else wall time
    t = sec + nsec * 1e-9
    if t == 0:
        t = time.time()

    return Cloud(
        points=np.stack([pts["x"], pts["y"], pts["z"]], axis=1).astype(np.float32),
        intensity=pts["intensity"].astype(np.float32),
        laser=pts["ring"].astype(np.uint8),
        stamp=t,
        seq=seq,
    )


class ZmqGrabber(Grabber):
    name = "zmq"

    def __init__(self, endpoint=ZMQ_ENDPOINT, point_format=PointFormat.XYZ, context=None):
        super().__init__(point_format)
        self.endpoint = endpoint
        self.context = context or zmq.Context.instance()
        self._max_ring = 0

    @property
    def n_lasers(self):
        return max(self._max_ring + 1, 16)

    def run(self):
        sub = self.context.socket(zmq.SUB)
        sub.connect(self.endpoint)
        sub.setsockopt(zmq.SUBSCRIBE, b"")
        sub.RCVTIMEO = 100  # ms
        print(f"✅ Subscribed to {self.endpoint}")
        try:
            while not self._stop.is_set():
                try:
                    data = sub.recv()
                except zmq.Again:
                    continue
                try:
                    cloud = parse_frame(data)
                except FrameError as e:
                    print(f"⚠️  Skipped payload ({len(data)} bytes): {e}")
                    continue
                if len(cloud) == 0:
                    continue
                self._max_ring = max(self._max_ring, int(cloud.laser.max()))
                self._publish(cloud)
        finally:
            sub.close(linger=0)
