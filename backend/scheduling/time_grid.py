from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Literal, Sequence

from core.errors import InvalidInputError, InvalidTemplateError


DayTemplate = Literal["continuous", "kenya_fixed"]

MIN_PERIODS_PER_DAY = 1
MAX_PERIODS_PER_DAY = 12
MIN_PERIOD_MINUTES = 20
MAX_PERIOD_MINUTES = 120
_MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class TimeSlotRange:
    start: time
    end: time

    def label(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class TeachingBlock:
    start: time
    end: time
    label: str


# Breaks (10:30-11:00) and lunch (13:00-14:00) sit between the blocks.
KENYA_FIXED_BLOCKS: tuple[TeachingBlock, ...] = (
    TeachingBlock(time(7, 30), time(10, 30), "Morning classes"),
    TeachingBlock(time(11, 0), time(13, 0), "Midday classes"),
    TeachingBlock(time(14, 0), time(16, 0), "Afternoon classes"),
)


@dataclass(frozen=True)
class GridConfig:
    day_template: DayTemplate = "continuous"
    period_minutes: int = 40
    start_time: time | None = None
    periods_per_day: int | None = None


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _from_minutes(value: int) -> time:
    return time(value // 60, value % 60)


def _check_period_minutes(period_minutes: int) -> None:
    if not (MIN_PERIOD_MINUTES <= int(period_minutes) <= MAX_PERIOD_MINUTES):
        raise InvalidInputError(
            f"Period length must be between {MIN_PERIOD_MINUTES} and {MAX_PERIOD_MINUTES} minutes."
        )


def build_continuous_grid(start_time: time, periods_per_day: int, period_minutes: int) -> tuple[TimeSlotRange, ...]:
    """Back-to-back periods from ``start_time``; the whole day must end before midnight."""

    if not (MIN_PERIODS_PER_DAY <= int(periods_per_day) <= MAX_PERIODS_PER_DAY):
        raise InvalidInputError(
            f"Periods per day must be between {MIN_PERIODS_PER_DAY} and {MAX_PERIODS_PER_DAY}."
        )
    _check_period_minutes(period_minutes)

    start = _to_minutes(start_time)
    if start + periods_per_day * period_minutes >= _MINUTES_PER_DAY:
        raise InvalidInputError("Period times exceed end of day.")

    return tuple(
        TimeSlotRange(
            start=_from_minutes(start + idx * period_minutes),
            end=_from_minutes(start + (idx + 1) * period_minutes),
        )
        for idx in range(periods_per_day)
    )


def build_kenya_fixed_grid(
    period_minutes: int,
    blocks: Sequence[TeachingBlock] = KENYA_FIXED_BLOCKS,
) -> tuple[TimeSlotRange, ...]:
    """Whole periods inside each fixed block; the tail of a block that cannot hold a period is dropped."""

    _check_period_minutes(period_minutes)

    ranges: list[TimeSlotRange] = []
    for block in blocks:
        block_start = _to_minutes(block.start)
        block_end = _to_minutes(block.end)
        if block_end <= block_start:
            raise InvalidTemplateError(f"Invalid fixed block: {block.label}.")

        for idx in range((block_end - block_start) // period_minutes):
            ranges.append(
                TimeSlotRange(
                    start=_from_minutes(block_start + idx * period_minutes),
                    end=_from_minutes(block_start + (idx + 1) * period_minutes),
                )
            )

    if not ranges:
        raise InvalidInputError("No teaching periods fit the fixed school-day template. Reduce period length.")
    if len(ranges) > MAX_PERIODS_PER_DAY:
        raise InvalidInputError(
            f"Fixed school-day template supports up to {MAX_PERIODS_PER_DAY} periods. Increase period length."
        )
    return tuple(ranges)


def build_time_grid(config: GridConfig) -> tuple[TimeSlotRange, ...]:
    if config.day_template == "kenya_fixed":
        return build_kenya_fixed_grid(config.period_minutes)
    if config.day_template != "continuous":
        raise InvalidInputError(f"Unknown day template: {config.day_template!r}.")

    if config.start_time is None:
        raise InvalidInputError("Start time is required for the continuous day template.")
    if config.periods_per_day is None:
        raise InvalidInputError("Periods per day is required for the continuous day template.")
    return build_continuous_grid(config.start_time, config.periods_per_day, config.period_minutes)
