import math

import numpy as np
import pytest

from hdl_viewer.calibration import Calibration, HDL32_VERTICAL_CORRECTIONS
from hdl_viewer.packets import PacketDecoder, PacketError, SweepAssembler, decode_packet


def test_level_laser_points_along_azimuth(make_packet):
    # laser 15 of the HDL-32E is the level one; 90 deg azimuth is +x
    firings = decode_packet(make_packet([9000] * 12, distance=5000))
    x, y, z = firings.xyz[0, 15]
    assert x == pytest.approx(10.0, abs=1e-4)
    assert y == pytest.approx(0.0, abs=1e-4)
    assert z == pytest.approx(0.0, abs=1e-4)


def test_vertical_correction_applied(make_packet):
    firings = decode_packet(make_packet([0] * 12, distance=5000))
    angle = math.radians(HDL32_VERTICAL_CORRECTIONS[0])
    x, y, z = firings.xyz[0, 0]
    assert x == pytest.approx(0.0, abs=1e-4)
    assert y == pytest.approx(10.0 * math.cos(angle), abs=1e-4)
    assert z == pytest.approx(10.0 * math.sin(angle), abs=1e-4)


def test_no_return_and_range_gate_dropped(make_packet):
    dist = np.full((12, 32), 5000)
    dist[0, 0] = 0      # no return
    dist[0, 1] = 100    # 0.2 m
    dist[0, 2] = 60000  # 120 m
    firings = decode_packet(make_packet([0] * 12, distance=dist), min_distance=0.5, max_distance=100.0)
    assert not firings.valid[0, 0]
    assert not firings.valid[0, 1]
    assert not firings.valid[0, 2]
    assert firings.valid[0, 3:].all()
    assert firings.valid[1:].all()


def test_lower_block_maps_to_upper_lasers(make_packet):
    blocks = [0xEEFF, 0xDDFF] * 6
    firings = decode_packet(make_packet([0] * 12, block=blocks))
    assert firings.laser[0, 0] == 0
    assert firings.laser[1, 0] == 32
    assert firings.laser[1, 31] == 63


def test_intensity_and_gps(make_packet):
    firings = decode_packet(make_packet([0] * 12, intensity=77, gps=123456))
    assert firings.gps_timestamp == 123456
    np.testing.assert_allclose(firings.intensity, 77.0)


def test_corrections_shift_points(make_packet):
    cal = Calibration.hdl32()
    cal.lasers[15].distance = 1.0
    cal.lasers[15].vertical_offset = 0.25
    cal.lasers[15].horizontal_offset = 0.5
    firings = PacketDecoder(cal).decode(make_packet([9000] * 12, distance=5000))
    x, y, z = firings.xyz[0, 15]
    # az = 90 deg: x = d, y = h_off
    assert x == pytest.approx(11.0, abs=1e-4)
    assert y == pytest.approx(0.5, abs=1e-4)
    assert z == pytest.approx(0.25, abs=1e-4)


def test_bad_size_rejected():
    with pytest.raises(PacketError):
        decode_packet(b"\x00" * 512)


def test_unknown_block_rejected(make_packet):
    with pytest.raises(PacketError, match="0x1234"):
        decode_packet(make_packet([0] * 12, block=0x1234))


def test_sweep_emitted_on_wrap(make_packet):
    decoder = PacketDecoder()
    asm = SweepAssembler()
    done = asm.feed(decoder.decode(make_packet([k * 100 for k in range(12)])), stamp=1.0)
    assert done == []
    done = asm.feed(decoder.decode(make_packet([30000 + k * 100 for k in range(12)])), stamp=2.0)
    assert done == []

    # wrap in the middle of the packet
    rot = [35000, 35500, 35900, 10, 110, 210, 310, 410, 510, 610, 710, 810]
    done = asm.feed(decoder.decode(make_packet(rot)), stamp=3.0)
    assert len(done) == 1
    sweep = done[0]
    assert len(sweep) == (12 + 12 + 3) * 32
    assert sweep.stamp == 1.0
    assert sweep.seq == 0

    rest = asm.flush()
    assert len(rest) == 9 * 32
    assert rest.stamp == 3.0
    assert rest.seq == 1
    assert asm.flush() is None


def test_empty_sweeps_not_emitted(make_packet):
    decoder = PacketDecoder()
    asm = SweepAssembler()
    asm.feed(decoder.decode(make_packet([k * 100 for k in range(12)], distance=0)), stamp=1.0)
    done = asm.feed(decoder.decode(make_packet([0] * 12, distance=0)), stamp=2.0)
    assert done == []
    assert asm.flush() is None


def test_intensity_stretched_to_calibrated_range(make_packet):
    cal = Calibration.hdl32()
    cal.min_intensity[0] = 10
    cal.max_intensity[0] = 110
    inten = np.full((12, 32), 60)
    inten[1, 0] = 200
    firings = PacketDecoder(cal).decode(make_packet([0] * 12, intensity=inten))
    assert firings.intensity[0, 0] == pytest.approx(127.5)
    assert firings.intensity[1, 0] == pytest.approx(255.0)
    # lasers without a calibrated range keep their raw value
    assert firings.intensity[0, 1] == pytest.approx(60.0)
