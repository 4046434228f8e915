"""Register traces: chip register dumps stored as JSON lines.

One tick per line::

    {"time": 0.0167, "primary": [[period, length, amplitude], ...],
     "expansion": [[period, enabled, volume], ...] or null,
     "clock_rate": 1789773}

``expansion`` and ``clock_rate`` are optional. Blank lines are skipped.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Union

from .logger import get_logger
from .note_types import ChannelRegisters, RegisterTick

logger = get_logger(__name__)

PathLike = Union[str, Path]


class TraceFormatError(ValueError):
    """A trace line could not be parsed."""

    def __init__(self, path: PathLike, line_number: int, reason: str):
        super().__init__(f"{path}:{line_number}: {reason}")
        self.path = path
        self.line_number = line_number


def _parse_channels(raw: Any) -> List[ChannelRegisters]:
    if not isinstance(raw, list):
        raise ValueError("channel list must be an array")
    channels = []
    for entry in raw:
        if not isinstance(entry, list) or len(entry) != 3:
            raise ValueError(f"channel entry must be [period, length, amplitude], got {entry!r}")
        period, length, amplitude = (int(value) for value in entry)
        channels.append(ChannelRegisters(period, length, amplitude))
    return channels


def parse_tick(record: Dict[str, Any]) -> RegisterTick:
    """Build a RegisterTick from one decoded JSON object."""
    expansion = record.get("expansion")
    clock_rate = record.get("clock_rate")
    return RegisterTick(
        time=float(record["time"]),
        primary=_parse_channels(record["primary"]),
        expansion=_parse_channels(expansion) if expansion is not None else None,
        clock_rate=float(clock_rate) if clock_rate is not None else None,
    )


def tick_to_record(tick: RegisterTick) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "time": tick.time,
        "primary": [[r.period, r.length, r.amplitude] for r in tick.primary],
        "expansion": (
            [[r.period, r.length, r.amplitude] for r in tick.expansion]
            if tick.expansion is not None
            else None
        ),
    }
    if tick.clock_rate is not None:
        record["clock_rate"] = tick.clock_rate
    return record


def load_trace(path: PathLike) -> Iterator[RegisterTick]:
    """Yield the ticks stored in a trace file.

    Raises:
        TraceFormatError: On the first malformed line
    """
    with open(path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield parse_tick(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                raise TraceFormatError(path, line_number, str(e)) from e


def write_trace(path: PathLike, ticks: Iterable[RegisterTick]) -> int:
    """Write ticks to a trace file, returning how many were written."""
    count = 0
    with open(path, "w") as f:
        for tick in ticks:
            f.write(json.dumps(tick_to_record(tick)))
            f.write("\n")
            count += 1
    logger.info(f"Wrote {count} ticks to {path}")
    return count


def count_ticks(path: PathLike) -> int:
    """Number of non-blank lines in a trace, used for progress reporting."""
    with open(path, "r") as f:
        return sum(1 for line in f if line.strip())
