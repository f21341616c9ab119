"""
Embedded site icon.

A 1x1 32-bit ICO, built once at import time:

    ICONDIR          reserved=0, type=1 (icon), count=1         6 bytes
    ICONDIRENTRY     1x1, 32 bpp, image size, image offset     16 bytes
    BITMAPINFOHEADER height is doubled (XOR + AND masks)        40 bytes
    XOR mask         one BGRA pixel                              4 bytes
    AND mask         one row, padded to 32 bits                  4 bytes
"""

import struct


ICON_CONTENT_TYPE = "image/x-icon"

_PIXEL_BGRA = bytes((0xCC, 0x66, 0x33, 0xFF))
_AND_MASK = bytes(4)

_BITMAP = struct.pack(
    "<IiiHHIIiiII",
    40,     # header size
    1,      # width
    2,      # height (XOR + AND)
    1,      # planes
    32,     # bits per pixel
    0,      # BI_RGB
    len(_PIXEL_BGRA) + len(_AND_MASK),
    0, 0,   # pixels per meter
    0, 0,   # palette
) + _PIXEL_BGRA + _AND_MASK

_ICONDIR = struct.pack("<HHH", 0, 1, 1)
_ICONDIRENTRY = struct.pack(
    "<BBBBHHII",
    1, 1,   # width, height
    0, 0,   # palette size, reserved
    1, 32,  # planes, bits per pixel
    len(_BITMAP),
    len(_ICONDIR) + 16,
)

FAVICON = _ICONDIR + _ICONDIRENTRY + _BITMAP
