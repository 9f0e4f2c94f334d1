"""A contiguous, inclusive range of UIDs with its parcel encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_PARCEL = struct.Struct("<ii")


@dataclass(frozen=True, order=True)
class UidRange:
    """UIDs ``start`` through ``stop``, both included."""

    start: int = -1
    stop: int = -1

    def __post_init__(self) -> None:
        for name, value in (("start", self.start), ("stop", self.stop)):
            if not _INT32_MIN <= value <= _INT32_MAX:
                raise ValueError(f"{name} UID {value} does not fit in 32 bits")
        if self.start > self.stop:
            raise ValueError("start UID must be less than or equal to stop UID")

    def to_bytes(self) -> bytes:
        """Encode as two little-endian int32 values, start then stop."""
        return _PARCEL.pack(self.start, self.stop)

    @classmethod
    def from_bytes(cls, data: bytes) -> UidRange:
        """Decode the form written by :meth:`to_bytes`."""
        if len(data) < _PARCEL.size:
            raise ValueError(
                f"need {_PARCEL.size} bytes for a UID range, got {len(data)}"
            )
        start, stop = _PARCEL.unpack_from(data)
        return cls(start, stop)