from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import numpy as np
from matplotlib import colormaps

# colormap used to tell lasers apart in XYZRGB mode
LASER_CMAP = "turbo"


class PointFormat(Enum):
    XYZ = "XYZ"
    XYZRGB = "XYZRGB"

    @classmethod
    def parse(cls, text):
        """Case-insensitive lookup, e.g. 'xyzrgb' -> XYZRGB."""
        for fmt in cls:
            if fmt.value == str(text).strip().upper():
                return fmt
        raise ValueError(f"unknown point format {text!r} (expected XYZ or XYZRGB)")


@dataclass(frozen=True)
class Cloud:
    points: np.ndarray          # (N, 3) float32, metres
    intensity: np.ndarray       # (N,) float32
    laser: np.ndarray           # (N,) uint8
    stamp: float
    seq: int = 0
    colors: Optional[np.ndarray] = None  # (N, 3) float64 in [0, 1]

    def __len__(self):
        return int(self.points.shape[0])


def colorize(cloud: Cloud, n_lasers: int = 32) -> Cloud:
    """Return a copy of `cloud` coloured by laser index."""
    cmap = colormaps[LASER_CMAP]
    n = max(int(n_lasers), 1)
    if len(cloud) and int(cloud.laser.max()) >= n:
        n = int(cloud.laser.max()) + 1
    t = cloud.laser.astype(np.float64) / max(n - 1, 1)
    rgb = cmap(t)[:, :3].astype(np.float64)
    return replace(cloud, colors=rgb)
