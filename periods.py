from dataclasses import dataclass
from typing import Optional

from errors import InvalidTimestamp
from filters import TransactionFilter, Range, now_epoch, parse_timestamp


@dataclass(frozen=True)
class Window:
    start: int
    end: int

    def as_filter(self) -> TransactionFilter:
        return TransactionFilter((Range("timestamp", self.start, self.end),))


def resolve_window(
    start_time: Optional[str],
    end_time: Optional[str],
    *,
    now: Optional[int] = None,
) -> Window:
    """Budget window in epoch seconds; open start means epoch 0, open end means now."""
    start = parse_timestamp(start_time, default=0)
    end = parse_timestamp(end_time, default=now if now is not None else now_epoch())
    if start > end:
        raise InvalidTimestamp("start_time must not be after end_time")
    return Window(start, end)
