"""JPEG segment iteration and EXIF (APP1) extraction/reinsertion.

A JPEG stream is SOI followed by segments ``FF <marker> <len:2 BE> <payload>``
where ``len`` counts itself but not the marker. Entropy-coded data follows
SOS, so iteration stops there.

EXIF lives in an APP1 segment whose payload starts with ``Exif\\0\\0``
followed by a TIFF structure. Functions here exchange the bare TIFF bytes.
"""

import struct
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from batchmedia.domain.errors import MetadataError

SOI = b"\xff\xd8"
APP1 = 0xE1
SOS = 0xDA
EOI = 0xD9
TEM = 0x01
EXIF_HEADER = b"Exif\x00\x00"
ORIENTATION_TAG = 0x0112
TIFF_SHORT = 3
MAX_SEGMENT_LENGTH = 0xFFFF


@dataclass(frozen=True)
class Segment:
    marker: int
    offset: int  # position of the 0xFF byte
    payload: bytes
    has_length: bool = True

    @property
    def end(self) -> int:
        if not self.has_length:
            return self.offset + 2
        return self.offset + 4 + len(self.payload)

    def is_exif(self) -> bool:
        return self.marker == APP1 and self.payload.startswith(EXIF_HEADER)


def _is_standalone(marker: int) -> bool:
    return marker == TEM or 0xD0 <= marker <= 0xD7


def iter_segments(data: bytes) -> Iterator[Segment]:
    """Yields header segments up to and including SOS (or EOI).

    Raises MetadataError on a missing SOI, a stray byte where a marker is
    expected, or a length running past the end of the data.
    """
    if not data.startswith(SOI):
        raise MetadataError("not a JPEG stream (missing SOI marker)")

    pos = 2
    size = len(data)
    while pos < size:
        if data[pos] != 0xFF:
            raise MetadataError(f"expected segment marker at offset {pos}")
        offset = pos
        # Any number of 0xFF fill bytes may precede the marker code
        while pos + 1 < size and data[pos + 1] == 0xFF:
            pos += 1
        if pos + 1 >= size:
            raise MetadataError("truncated marker at end of data")
        marker = data[pos + 1]
        pos += 2

        if marker == EOI or _is_standalone(marker):
            yield Segment(marker=marker, offset=offset, payload=b"", has_length=False)
            if marker == EOI:
                return
            continue

        if pos + 2 > size:
            raise MetadataError(f"truncated length for marker 0x{marker:02X} at offset {offset}")
        length = int.from_bytes(data[pos:pos + 2], "big")
        if length < 2 or pos + length > size:
            raise MetadataError(f"invalid length {length} for marker 0x{marker:02X} at offset {offset}")
        payload = data[pos + 2:pos + length]
        # Offset of the 0xFF directly before the marker code, past any fill bytes
        yield Segment(marker=marker, offset=pos - 2, payload=payload)
        pos += length

        if marker == SOS:
            return


def extract_exif(data: bytes) -> bytes:
    """Returns the TIFF bytes of the first EXIF APP1 segment."""
    for segment in iter_segments(data):
        if segment.is_exif():
            return segment.payload[len(EXIF_HEADER):]
    raise MetadataError("EXIF data not found")


def normalize_exif(blob: bytes) -> bytes:
    """Strips an ``Exif\\0\\0`` prefix so any extractor's output is bare TIFF."""
    if blob.startswith(EXIF_HEADER):
        return blob[len(EXIF_HEADER):]
    return blob


def build_exif_segment(tiff: bytes) -> bytes:
    payload = EXIF_HEADER + tiff
    length = len(payload) + 2
    if length > MAX_SEGMENT_LENGTH:
        raise MetadataError(f"EXIF data too large for one APP1 segment ({len(payload)} bytes)")
    return b"\xff" + bytes([APP1]) + length.to_bytes(2, "big") + payload


def strip_exif(data: bytes) -> bytes:
    """Removes every EXIF APP1 segment from a JPEG stream."""
    spans: List[Tuple[int, int]] = [(s.offset, s.end) for s in iter_segments(data) if s.is_exif()]
    if not spans:
        return data
    parts = []
    cursor = 0
    for start, end in spans:
        parts.append(data[cursor:start])
        cursor = end
    parts.append(data[cursor:])
    return b"".join(parts)


def insert_exif(jpeg: bytes, tiff: bytes) -> bytes:
    """Inserts EXIF as the first segment right after SOI, replacing any existing one."""
    if not jpeg.startswith(SOI):
        raise MetadataError("not a JPEG stream (missing SOI marker)")
    segment = build_exif_segment(tiff)
    body = strip_exif(jpeg)
    return SOI + segment + body[len(SOI):]


# TIFF / IFD0 ---------------------------------------------------------------

def _tiff_layout(tiff: bytes) -> Tuple[str, int, int]:
    """Returns (struct byte order, IFD0 offset, IFD0 entry count)."""
    if len(tiff) < 8:
        raise MetadataError("TIFF header truncated")
    order = tiff[:2]
    if order == b"II":
        endian = "<"
    elif order == b"MM":
        endian = ">"
    else:
        raise MetadataError(f"invalid TIFF byte order {order!r}")
    magic, ifd_offset = struct.unpack(endian + "HI", tiff[2:8])
    if magic != 42:
        raise MetadataError(f"invalid TIFF magic {magic}")
    if ifd_offset + 2 > len(tiff):
        raise MetadataError("IFD0 offset out of range")
    (count,) = struct.unpack(endian + "H", tiff[ifd_offset:ifd_offset + 2])
    if ifd_offset + 2 + count * 12 > len(tiff):
        raise MetadataError("IFD0 entries truncated")
    return endian, ifd_offset, count


def _find_orientation_entry(tiff: bytes) -> Optional[Tuple[str, int]]:
    endian, ifd_offset, count = _tiff_layout(tiff)
    for index in range(count):
        entry = ifd_offset + 2 + index * 12
        tag, field_type = struct.unpack(endian + "HH", tiff[entry:entry + 4])
        if tag == ORIENTATION_TAG and field_type == TIFF_SHORT:
            return endian, entry
    return None


def read_orientation(tiff: bytes) -> Optional[int]:
    """Returns the IFD0 orientation value, or None when the tag is absent."""
    found = _find_orientation_entry(tiff)
    if found is None:
        return None
    endian, entry = found
    (value,) = struct.unpack(endian + "H", tiff[entry + 8:entry + 10])
    return value


def set_orientation(tiff: bytes, value: int = 1) -> bytes:
    """Returns a copy with the orientation tag rewritten; unchanged if absent."""
    found = _find_orientation_entry(tiff)
    if found is None:
        return tiff
    endian, entry = found
    patched = bytearray(tiff)
    struct.pack_into(endian + "H", patched, entry + 8, value)
    return bytes(patched)
