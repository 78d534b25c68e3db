"""Minimal libpcap reader: pulls UDP payloads out of a capture file."""
import struct

GLOBAL_HEADER_LEN = 24
RECORD_HEADER_LEN = 16

MAGIC_USEC = 0xA1B2C3D4
MAGIC_NSEC = 0xA1B23C4D

LINKTYPE_ETHERNET = 1
LINKTYPE_RAW = 101
LINKTYPE_LINUX_SLL = 113
LINKTYPE_IPV4 = 228

ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_VLAN = 0x8100
IPPROTO_UDP = 17


class PcapError(ValueError):
    pass


def _read_global_header(f):
    header = f.read(GLOBAL_HEADER_LEN)
    if len(header) < GLOBAL_HEADER_LEN:
        raise PcapError("file too short for a pcap header")

    for endian in ("<", ">"):
        (magic,) = struct.unpack(endian + "I", header[:4])
        if magic in (MAGIC_USEC, MAGIC_NSEC):
            break
    else:
        raise PcapError(f"bad pcap magic 0x{struct.unpack('<I', header[:4])[0]:08x}")

    _, _, _, _, _, linktype = struct.unpack(endian + "HHiIII", header[4:])
    scale = 1e-9 if magic == MAGIC_NSEC else 1e-6
    return endian, scale, linktype & 0x0FFFFFFF


def _ipv4_from_frame(frame, linktype):
    """Return the IPv4 packet inside a link-layer frame, or None."""
    if linktype == LINKTYPE_ETHERNET:
        if len(frame) < 14:
            return None
        off = 12
        (ethertype,) = struct.unpack_from(">H", frame, off)
        while ethertype == ETHERTYPE_VLAN and len(frame) >= off + 6:
            off += 4
            (ethertype,) = struct.unpack_from(">H", frame, off)
        if ethertype != ETHERTYPE_IPV4:
            return None
        return frame[off + 2:]
    if linktype == LINKTYPE_LINUX_SLL:
        if len(frame) < 16:
            return None
        (proto,) = struct.unpack_from(">H", frame, 14)
        return frame[16:] if proto == ETHERTYPE_IPV4 else None
    if linktype in (LINKTYPE_RAW, LINKTYPE_IPV4):
        return frame if frame and frame[0] >> 4 == 4 else None
    raise PcapError(f"unsupported pcap link type {linktype}")


def _udp_from_ipv4(packet):
    """Return (dst_port, payload) for a UDP datagram, or None."""
    if len(packet) < 20 or packet[0] >> 4 != 4:
        return None
    ihl = (packet[0] & 0x0F) * 4
    total_len, = struct.unpack_from(">H", packet, 2)
    if packet[9] != IPPROTO_UDP or ihl < 20:
        return None
    if total_len:
        packet = packet[:total_len]
    if len(packet) < ihl + 8:
        return None
    _, dst_port, udp_len, _ = struct.unpack_from(">HHHH", packet, ihl)
    if udp_len < 8:
        return None
    return dst_port, packet[ihl + 8:ihl + udp_len]


def iter_udp_payloads(path, port=None):
    """Yield (timestamp, dst_port, payload) for each UDP datagram in `path`."""
    with open(path, "rb") as f:
        endian, scale, linktype = _read_global_header(f)
        if linktype not in (LINKTYPE_ETHERNET, LINKTYPE_RAW, LINKTYPE_LINUX_SLL, LINKTYPE_IPV4):
            raise PcapError(f"unsupported pcap link type {linktype}")
        rec_fmt = endian + "IIII"

        while True:
            rec = f.read(RECORD_HEADER_LEN)
            if len(rec) < RECORD_HEADER_LEN:
                return
            sec, frac, incl_len, _ = struct.unpack(rec_fmt, rec)
            frame = f.read(incl_len)
            if len(frame) < incl_len:
                return  # truncated capture

            ip = _ipv4_from_frame(frame, linktype)
            if ip is None:
                continue
            udp = _udp_from_ipv4(ip)
            if udp is None:
                continue
            dst_port, payload = udp
            if port is not None and dst_port != port:
                continue
            yield sec + frac * scale, dst_port, payload
