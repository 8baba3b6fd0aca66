"""Decimal string conversion bounded by a destination buffer size."""

from __future__ import annotations

_ULL_MAX = (1 << 64) - 1
_LL_MIN = -(1 << 63)
_LL_MAX = (1 << 63) - 1


def ull_to_str(val: int, dst_max_len: int) -> str:
    """Render an unsigned 64-bit value as decimal text.

    ``dst_max_len`` is the size of the destination buffer, terminator
    included.  Raises ``ValueError`` if the text does not fit or the value
    is out of range.
    """
    if not 0 <= val <= _ULL_MAX:
        raise ValueError(f"value out of unsigned 64-bit range: {val}")
    text = str(val)
    if len(text) >= dst_max_len - 1:
        raise ValueError(
            f"buffer of {dst_max_len} bytes too small for {len(text)} digits"
        )
    return text


def ll_to_str(val: int, dst_max_len: int) -> str:
    """Render a signed 64-bit value as decimal text.

    A leading minus sign takes one byte of the buffer.  Raises
    ``ValueError`` if the text does not fit or the value is out of range.
    """
    if not _LL_MIN <= val <= _LL_MAX:
        raise ValueError(f"value out of signed 64-bit range: {val}")
    if val < 0:
        if dst_max_len < 1:
            raise ValueError(f"buffer of {dst_max_len} bytes too small for a sign")
        return "-" + ull_to_str(-val, dst_max_len - 1)
    return ull_to_str(val, dst_max_len)