import struct

import numpy as np
import pytest

from hdl_viewer.cloud import Cloud


def _packet(rotations, distance=5000, intensity=100, block=0xEEFF, gps=0):
    """Build a 1206-byte HDL data packet.

    `distance` may be a scalar or a (12, 32) array of raw counts.
    """
    distance = np.broadcast_to(np.asarray(distance), (12, 32))
    intensity = np.broadcast_to(np.asarray(intensity), (12, 32))
    blocks = block if isinstance(block, (list, tuple)) else [block] * 12
    out = b""
    for i, rot in enumerate(rotations):
        out += struct.pack("<HH", blocks[i], rot)
        for j in range(32):
            out += struct.pack("<HB", int(distance[i, j]), int(intensity[i, j]))
    return out + struct.pack("<IBB", gps, 0, 0)


def _udp_frame(payload, dst_port=2368, vlan=False, proto=17):
    udp = struct.pack(">HHHH", 2368, dst_port, 8 + len(payload), 0) + payload
    ip = struct.pack(">BBHHHBBH4s4s", 0x45, 0, 20 + len(udp), 0, 0, 64, proto, 0,
                     bytes([192, 168, 1, 201]), bytes([255, 255, 255, 255])) + udp
    eth = b"\xff" * 6 + b"\x60\x76\x88\x00\x00\x00"
    if vlan:
        eth += struct.pack(">HH", 0x8100, 5)
    return eth + struct.pack(">H", 0x0800) + ip


def _write_pcap(path, records, endian="<", nsec=False, linktype=1):
    """records: iterable of (timestamp, frame bytes)."""
    magic = 0xA1B23C4D if nsec else 0xA1B2C3D4
    scale = 1e9 if nsec else 1e6
    with open(path, "wb") as f:
        f.write(struct.pack(endian + "IHHiIII", magic, 2, 4, 0, 0, 65535, linktype))
        for ts, frame in records:
            sec = int(ts)
            frac = int(round((ts - sec) * scale))
            f.write(struct.pack(endian + "IIII", sec, frac, len(frame), len(frame)))
            f.write(frame)
    return path


@pytest.fixture
def make_packet():
    return _packet


@pytest.fixture
def udp_frame():
    return _udp_frame


@pytest.fixture
def write_pcap():
    return _write_pcap


@pytest.fixture
def make_cloud():
    def _make(n=10, seq=0, stamp=1.0, lasers=32):
        rng = np.random.default_rng(seq)
        return Cloud(
            points=rng.normal(size=(n, 3)).astype(np.float32),
            intensity=np.full(n, 50, dtype=np.float32),
            laser=(np.arange(n) % lasers).astype(np.uint8),
            stamp=stamp,
            seq=seq,
        )
    return _make


@pytest.fixture
def sweep_pcap(tmp_path, make_packet, write_pcap):
    """Two and a half sweeps: wraps after packet 3 and packet 6."""
    steps = [0, 12000, 24000, 0, 12000, 24000, 0, 12000]
    records = []
    for i, start in enumerate(steps):
        rot = [start + k * 20 for k in range(12)]
        records.append((100.0 + i * 0.001, _udp_frame(make_packet(rot))))
    return write_pcap(tmp_path / "sweeps.pcap", records)
