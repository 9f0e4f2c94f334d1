"""Sorted collections of inclusive UID ranges."""

from __future__ import annotations

import re
from bisect import bisect_left
from collections import Counter
from collections.abc import Iterable, Iterator

from netdctl.uid_range import UidRange

INVALID_UID = 0xFFFFFFFF

_UID_MASK = 0xFFFFFFFF
_ULONG_MAX = 2**64 - 1
_NUMBER = re.compile(r"[ \t\n\v\f\r]*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")

Range = tuple[int, int]


def _parse_uid(text: str, pos: int) -> tuple[int, int]:
    """Read an unsigned number at ``pos`` (C base-0 rules); return it and the end.

    When no digits are found the value is 0 and the end is ``pos`` itself.
    """
    match = _NUMBER.match(text, pos)
    if match is None:
        return 0, pos
    sign, digits = match.groups()
    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif len(digits) > 1 and digits.startswith("0"):
        value = int(digits[1:], 8)
    else:
        value = int(digits, 10)
    if value > _ULONG_MAX:
        value = _ULONG_MAX
    elif sign == "-":
        value = (-value) % (_ULONG_MAX + 1)
    return value & _UID_MASK, match.end()


def _parse_range(text: str) -> Range:
    if not text:
        raise ValueError("empty UID string")
    start, pos = _parse_uid(text, 0)
    if pos == len(text):
        end = start
    elif text[pos] == "-":
        pos += 1
        if pos == len(text):
            raise ValueError(f"unexpected end of UID range {text!r}")
        end, pos = _parse_uid(text, pos)
        if pos != len(text):
            raise ValueError(f"illegal trailing characters in UID range {text!r}")
        if end < start:
            raise ValueError(f"UID range {text!r} is in the wrong order")
    else:
        raise ValueError(f"{text!r} is neither a UID nor a UID range")
    if INVALID_UID in (start, end):
        raise ValueError(f"UID range {text!r} contains the invalid UID")
    return start, end


class UidRanges:
    """A sorted list of ``(first, last)`` UID pairs, both ends included."""

    def __init__(self, ranges: Iterable[Range] = ()) -> None:
        self._ranges: list[Range] = sorted((int(a), int(b)) for a, b in ranges)

    @classmethod
    def parse(cls, args: Iterable[str]) -> UidRanges:
        """Build from strings such as ``"1000"`` or ``"8005-8012"``.

        Raises ValueError on the first string that is not a valid UID or range.
        """
        return cls(_parse_range(text) for text in args)

    @classmethod
    def from_uid_ranges(cls, ranges: Iterable[UidRange]) -> UidRanges:
        """Build from :class:`UidRange` values."""
        return cls((r.start & _UID_MASK, r.stop & _UID_MASK) for r in ranges)

    @property
    def ranges(self) -> tuple[Range, ...]:
        """The ranges, sorted."""
        return tuple(self._ranges)

    def has_uid(self, uid: int) -> bool:
        """Whether ``uid`` falls inside any range."""
        index = bisect_left(self._ranges, (uid, uid))
        if index < len(self._ranges) and self._ranges[index][0] == uid:
            return True
        return index > 0 and self._ranges[index - 1][1] >= uid

    def add(self, other: UidRanges) -> None:
        """Add every range of ``other``; duplicates are kept."""
        self._ranges = sorted(self._ranges + other._ranges)

    def remove(self, other: UidRanges) -> None:
        """Remove ranges equal to those in ``other``, one for one."""
        pending = Counter(other._ranges)
        kept = []
        for item in self._ranges:
            if pending[item] > 0:
                pending[item] -= 1
            else:
                kept.append(item)
        self._ranges = kept

    def __iter__(self) -> Iterator[Range]:
        return iter(self._ranges)

    def __len__(self) -> int:
        return len(self._ranges)

    def __contains__(self, uid: object) -> bool:
        return isinstance(uid, int) and self.has_uid(uid)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UidRanges):
            return NotImplemented
        return self._ranges == other._ranges

    def __str__(self) -> str:
        parts = [f"{a}-{b}" if a != b else f"{a}" for a, b in self._ranges]
        return "UidRanges{ " + "".join(p + " " for p in parts) + "}"

    def __repr__(self) -> str:
        return f"UidRanges({self._ranges!r})"