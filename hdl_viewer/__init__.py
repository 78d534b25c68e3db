"""Live viewer for Velodyne HDL point-cloud sweeps."""

from .cloud import Cloud, PointFormat, colorize
from .calibration import Calibration, CalibrationError
from .grabber import Grabber, HDLGrabber, ZmqGrabber
from .mailbox import LatestCloud

__version__ = "0.1.0"

__all__ = [
    "Calibration",
    "CalibrationError",
    "Cloud",
    "Grabber",
    "HDLGrabber",
    "LatestCloud",
    "PointFormat",
    "ZmqGrabber",
    "colorize",
]
