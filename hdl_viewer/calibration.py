"""Per-laser geometry corrections for HDL sensors.

Two sources are supported: the factory HDL-32E vertical angle table, and the
`db.xml` calibration file Velodyne ships with each HDL-64E. In the XML file
angles are degrees and distances/offsets are centimetres.
"""
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List

MAX_LASERS = 64

# HDL-32E, laser order as fired (interleaved low/high)
HDL32_VERTICAL_CORRECTIONS = [
    -30.67, -9.3299999, -29.33, -8.0, -28.0, -6.6700001, -26.67, -5.3299999,
    -25.33, -4.0, -24.0, -2.6700001, -22.67, -1.33, -21.33, 0.0,
    -20.0, 1.33, -18.67, 2.6700001, -17.33, 4.0, -16.0, 5.3299999,
    -14.67, 6.6700001, -13.33, 8.0, -12.0, 9.3299999, -10.67, 10.67,
]


class CalibrationError(ValueError):
    pass


@dataclass
class LaserCorrection:
    azimuth: float = 0.0            # degrees
    vertical: float = 0.0           # degrees
    distance: float = 0.0           # metres
    vertical_offset: float = 0.0    # metres
    horizontal_offset: float = 0.0  # metres

    @property
    def cos_vertical(self):
        return math.cos(math.radians(self.vertical))

    @property
    def sin_vertical(self):
        return math.sin(math.radians(self.vertical))


@dataclass
class Calibration:
    lasers: List[LaserCorrection] = field(
        default_factory=lambda: [LaserCorrection() for _ in range(MAX_LASERS)]
    )
    min_intensity: List[int] = field(default_factory=lambda: [0] * MAX_LASERS)
    max_intensity: List[int] = field(default_factory=lambda: [255] * MAX_LASERS)
    n_lasers: int = 32

    @classmethod
    def hdl32(cls):
        cal = cls(n_lasers=32)
        for i, angle in enumerate(HDL32_VERTICAL_CORRECTIONS):
            cal.lasers[i].vertical = angle
        return cal

    @classmethod
    def from_xml(cls, path):
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as e:
            raise CalibrationError(f"cannot read calibration file {path}: {e}") from e

        db = root.find("DB")
        if db is None:
            raise CalibrationError(f"{path}: no <DB> element")

        cal = cls(n_lasers=0)
        items = db.findall("./points_/item/px")
        if not items:
            raise CalibrationError(f"{path}: no laser entries under points_")

        for px in items:
            try:
                idx = int(px.findtext("id_"))
                corr = LaserCorrection(
                    azimuth=float(px.findtext("rotCorrection_", "0")),
                    vertical=float(px.findtext("vertCorrection_", "0")),
                    distance=float(px.findtext("distCorrection_", "0")) / 100.0,
                    vertical_offset=float(px.findtext("vertOffsetCorrection_", "0")) / 100.0,
                    horizontal_offset=float(px.findtext("horizOffsetCorrection_", "0")) / 100.0,
                )
            except (TypeError, ValueError) as e:
                raise CalibrationError(f"{path}: bad laser entry: {e}") from e
            if not 0 <= idx < MAX_LASERS:
                raise CalibrationError(f"{path}: laser id {idx} out of range")
            cal.lasers[idx] = corr
            cal.n_lasers = max(cal.n_lasers, idx + 1)

        for tag, target in (("minIntensity_", cal.min_intensity), ("maxIntensity_", cal.max_intensity)):
            for i, item in enumerate(db.findall(f"./{tag}/item")[:MAX_LASERS]):
                try:
                    target[i] = int(item.text)
                except (TypeError, ValueError) as e:
                    raise CalibrationError(f"{path}: bad {tag} entry: {e}") from e

        return cal

    @classmethod
    def load(cls, path=None):
        if path:
            return cls.from_xml(path)
        return cls.hdl32()
