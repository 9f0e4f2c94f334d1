"""Per-server resolver statistics and their flat int32 encoding."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ResolverStatsOffset(IntEnum):
    """Offsets into one server's block of encoded integers."""

    SUCCESSES = 0
    ERRORS = 1
    TIMEOUTS = 2
    INTERNAL_ERRORS = 3
    RTT_AVG = 4
    LAST_SAMPLE_TIME = 5
    USABLE = 6


STATS_COUNT = len(ResolverStatsOffset)


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


@dataclass
class ResolverStats:
    """Counters and usability of one DNS server."""

    successes: int = -1
    errors: int = -1
    timeouts: int = -1
    internal_errors: int = -1
    rtt_avg: int = -1
    last_sample_time: int = 0
    usable: bool = False

    def encode(self) -> list[int]:
        """Return the STATS_COUNT int32 values describing this server."""
        return [
            _int32(self.successes),
            _int32(self.errors),
            _int32(self.timeouts),
            _int32(self.internal_errors),
            _int32(self.rtt_avg),
            _int32(self.last_sample_time),
            int(bool(self.usable)),
        ]

    @classmethod
    def decode(cls, data: list[int], offset: int = 0) -> tuple[ResolverStats, int]:
        """Read one server's stats at ``offset``; return them and the next offset."""
        if offset < 0 or offset + STATS_COUNT > len(data):
            raise ValueError(
                f"no complete resolver stats at offset {offset} of {len(data)} values"
            )
        block = data[offset : offset + STATS_COUNT]
        stats = cls(
            successes=block[ResolverStatsOffset.SUCCESSES],
            errors=block[ResolverStatsOffset.ERRORS],
            timeouts=block[ResolverStatsOffset.TIMEOUTS],
            internal_errors=block[ResolverStatsOffset.INTERNAL_ERRORS],
            rtt_avg=block[ResolverStatsOffset.RTT_AVG],
            last_sample_time=block[ResolverStatsOffset.LAST_SAMPLE_TIME],
            usable=bool(block[ResolverStatsOffset.USABLE]),
        )
        return stats, offset + STATS_COUNT


def encode_all(stats) -> list[int]:
    """Concatenate the encodings of several servers' stats."""
    return [value for entry in stats for value in entry.encode()]


def decode_all(data: list[int]) -> list[ResolverStats]:
    """Decode a sequence produced by :func:`encode_all`."""
    if len(data) % STATS_COUNT:
        raise ValueError(
            f"{len(data)} values is not a multiple of {STATS_COUNT}"
        )
    result = []
    offset = 0
    while offset < len(data):
        stats, offset = ResolverStats.decode(data, offset)
        result.append(stats)
    return result