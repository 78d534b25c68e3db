"""HDL data packet decoding and sweep assembly."""
import struct
from dataclasses import dataclass

import numpy as np

from .calibration import Calibration
from .cloud import Cloud

PACKET_SIZE = 1206
FIRINGS_PER_PACKET = 12
LASERS_PER_FIRING = 32
DISTANCE_UNIT = 0.002  # metres per raw count

BLOCK_0_TO_31 = 0xEEFF
BLOCK_32_TO_63 = 0xDDFF

TRAILER_FMT = "<IBB"  # gps timestamp (us past the hour), 2 status bytes

FIRING_DTYPE = np.dtype([
    ("block", "<u2"),
    ("rotation", "<u2"),
    ("returns", [("distance", "<u2"), ("intensity", "u1")], (LASERS_PER_FIRING,)),
])
assert FIRING_DTYPE.itemsize * FIRINGS_PER_PACKET + struct.calcsize(TRAILER_FMT) == PACKET_SIZE


class PacketError(ValueError):
    pass


@dataclass
class Firings:
    """One packet's worth of firings; every array is indexed [firing, laser]."""
    rotation: np.ndarray    # (12,) hundredths of a degree
    xyz: np.ndarray         # (12, 32, 3) float32
    intensity: np.ndarray   # (12, 32) float32
    laser: np.ndarray       # (12, 32) uint8
    valid: np.ndarray       # (12, 32) bool
    gps_timestamp: int = 0


class PacketDecoder:
    """Turns raw 1206-byte payloads into calibrated xyz returns."""

    def __init__(self, calibration: Calibration = None, min_distance=0.0, max_distance=10000.0):
        self.calibration = calibration or Calibration.hdl32()
        self.min_distance = float(min_distance)
        self.max_distance = float(max_distance)

        lasers = self.calibration.lasers
        self._az_corr = np.radians([c.azimuth for c in lasers])
        self._cos_vert = np.array([c.cos_vertical for c in lasers])
        self._sin_vert = np.array([c.sin_vertical for c in lasers])
        self._dist_corr = np.array([c.distance for c in lasers])
        self._v_off = np.array([c.vertical_offset for c in lasers])
        self._h_off = np.array([c.horizontal_offset for c in lasers])
        self._min_int = np.array(self.calibration.min_intensity, dtype=np.float64)
        span = np.array(self.calibration.max_intensity, dtype=np.float64) - self._min_int
        self._int_span = np.where(span > 0, span, 255.0)

    def decode(self, payload: bytes) -> Firings:
        if len(payload) != PACKET_SIZE:
            raise PacketError(f"expected {PACKET_SIZE} byte packet, got {len(payload)}")

        firings = np.frombuffer(payload, dtype=FIRING_DTYPE, count=FIRINGS_PER_PACKET)
        gps, _, _ = struct.unpack_from(TRAILER_FMT, payload, FIRING_DTYPE.itemsize * FIRINGS_PER_PACKET)

        blocks = firings["block"]
        upper = blocks == BLOCK_0_TO_31
        lower = blocks == BLOCK_32_TO_63
        if not np.all(upper | lower):
            bad = int(blocks[~(upper | lower)][0])
            raise PacketError(f"unknown block id 0x{bad:04X}")

        offset = np.where(lower, LASERS_PER_FIRING, 0)
        laser = (offset[:, None] + np.arange(LASERS_PER_FIRING)[None, :]).astype(np.uint8)

        raw = firings["returns"]["distance"].astype(np.float64) * DISTANCE_UNIT
        valid = (raw > 0.0) & (raw >= self.min_distance) & (raw <= self.max_distance)

        rotation = firings["rotation"].astype(np.float64)
        azimuth = np.radians(rotation / 100.0)[:, None] - self._az_corr[laser]
        cos_az, sin_az = np.cos(azimuth), np.sin(azimuth)

        d = raw + self._dist_corr[laser]
        xy = d * self._cos_vert[laser]
        h_off = self._h_off[laser]

        xyz = np.empty(raw.shape + (3,), dtype=np.float32)
        xyz[..., 0] = xy * sin_az - h_off * cos_az
        xyz[..., 1] = xy * cos_az + h_off * sin_az
        xyz[..., 2] = d * self._sin_vert[laser] + self._v_off[laser]

        return Firings(
            rotation=firings["rotation"].copy(),
            xyz=xyz,
            intensity=self._scale_intensity(firings["returns"]["intensity"], laser),
            laser=laser,
            valid=valid,
            gps_timestamp=gps,
        )

    def _scale_intensity(self, raw, laser):
        """Stretch each laser's calibrated min..max intensity onto 0..255."""
        lo = self._min_int[laser]
        scaled = (raw.astype(np.float64) - lo) / self._int_span[laser] * 255.0
        return np.clip(scaled, 0.0, 255.0).astype(np.float32)


def decode_packet(payload, calibration=None, min_distance=0.0, max_distance=10000.0):
    return PacketDecoder(calibration, min_distance, max_distance).decode(payload)


class SweepAssembler:
    """Collects firings until the head wraps around, then emits a Cloud."""

    def __init__(self):
        self._seq = 0
        self._last_rotation = None
        self._stamp = None
        self._reset()

    def _reset(self):
        self._xyz, self._intensity, self._laser = [], [], []

    def _emit(self):
        if not self._xyz:
            self._reset()
            return None
        cloud = Cloud(
            points=np.concatenate(self._xyz),
            intensity=np.concatenate(self._intensity),
            laser=np.concatenate(self._laser),
            stamp=self._stamp,
            seq=self._seq,
        )
        self._seq += 1
        self._reset()
        return cloud

    def feed(self, firings: Firings, stamp: float):
        """Add one packet; returns the list of sweeps completed by it."""
        done = []
        for i in range(len(firings.rotation)):
            rotation = int(firings.rotation[i])
            if self._last_rotation is not None and rotation < self._last_rotation:
                cloud = self._emit()
                if cloud is not None:
                    done.append(cloud)
                self._stamp = None
            self._last_rotation = rotation

            if self._stamp is None:
                self._stamp = stamp
            mask = firings.valid[i]
            if mask.any():
                self._xyz.append(firings.xyz[i][mask])
                self._intensity.append(firings.intensity[i][mask])
                self._laser.append(firings.laser[i][mask])
        return done

    def flush(self):
        cloud = self._emit()
        self._last_rotation = None
        self._stamp = None
        return cloud
