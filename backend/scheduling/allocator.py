"""Round-robin slot allocation for the senior-school starter timetable.

The walk is class x day x period, strictly in order. Each candidate period gets
the next subject of the class in rotation; a candidate is skipped (never an
error) when no teacher is known, the teacher is at the weekly cap, or the
teacher/class already holds that (day, start_time) earlier in the same run.

This is a deterministic heuristic, not a solver: it does not minimise teacher
gaps or balance load beyond the hard cap, and it never looks at slots persisted
by earlier runs.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import time
from typing import Callable, Mapping, Sequence

from scheduling.time_grid import TimeSlotRange


TEACHING_DAYS = 5

TeacherLookup = Callable[[uuid.UUID, uuid.UUID], uuid.UUID | None]
SlotKey = tuple[int, time]


@dataclass(frozen=True)
class PlannedSlot:
    teacher_id: uuid.UUID
    class_id: uuid.UUID
    subject_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time


@dataclass
class AllocationResult:
    slots: list[PlannedSlot] = field(default_factory=list)
    skipped_missing_teacher: int = 0
    skipped_conflict: int = 0
    skipped_workload_cap: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_missing_teacher + self.skipped_conflict + self.skipped_workload_cap

    def teacher_loads(self) -> dict[uuid.UUID, int]:
        loads: dict[uuid.UUID, int] = defaultdict(int)
        for s in self.slots:
            loads[s.teacher_id] += 1
        return dict(loads)


def allocate(
    *,
    class_ids: Sequence[uuid.UUID],
    subjects_by_class: Mapping[uuid.UUID, Sequence[uuid.UUID]],
    grid: Sequence[TimeSlotRange],
    resolve_teacher: TeacherLookup,
    max_periods_per_teacher_week: int,
    days: int = TEACHING_DAYS,
) -> AllocationResult:
    result = AllocationResult()
    period_count = len(grid)

    # Occupancy is per call; nothing here outlives one generation run.
    teacher_schedule: dict[uuid.UUID, set[SlotKey]] = defaultdict(set)
    class_schedule: dict[uuid.UUID, set[SlotKey]] = defaultdict(set)
    teacher_load: dict[uuid.UUID, int] = defaultdict(int)

    for class_id in class_ids:
        subjects = list(subjects_by_class.get(class_id) or [])
        if not subjects:
            continue

        for day_index in range(days):
            day = day_index + 1
            for period_index, period in enumerate(grid):
                subject_id = subjects[(day_index * period_count + period_index) % len(subjects)]

                teacher_id = resolve_teacher(class_id, subject_id)
                if teacher_id is None:
                    result.skipped_missing_teacher += 1
                    continue

                if teacher_load[teacher_id] >= max_periods_per_teacher_week:
                    result.skipped_workload_cap += 1
                    continue

                key: SlotKey = (day, period.start)
                if key in teacher_schedule[teacher_id] or key in class_schedule[class_id]:
                    result.skipped_conflict += 1
                    continue

                teacher_schedule[teacher_id].add(key)
                class_schedule[class_id].add(key)
                teacher_load[teacher_id] += 1
                result.slots.append(
                    PlannedSlot(
                        teacher_id=teacher_id,
                        class_id=class_id,
                        subject_id=subject_id,
                        day_of_week=day,
                        start_time=period.start,
                        end_time=period.end,
                    )
                )

    return result
