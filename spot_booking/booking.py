from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Hashable, Iterable


class ConflictKind(str, Enum):
    START_DATE = "start_date"
    END_DATE = "end_date"
    OVERLAP = "overlap"


@dataclass(frozen=True)
class Reservation:
    id: Hashable
    spot_id: Hashable
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        if self.start_date >= self.end_date:
            raise ValueError("Reservation start date must be earlier than end date.")


@dataclass(frozen=True)
class CandidateInterval:
    spot_id: Hashable
    start_date: date
    end_date: date
    exclude_id: Hashable | None = None

    def __post_init__(self) -> None:
        if self.start_date >= self.end_date:
            raise ValueError("Candidate start date must be earlier than end date.")


@dataclass(frozen=True)
class ConflictReport:
    kind: ConflictKind | None = None
    reservation_id: Hashable | None = None

    @property
    def has_conflict(self) -> bool:
        return self.kind is not None


NO_CONFLICT = ConflictReport()


def date_conflicts(day: date, reservation: Reservation) -> bool:
    """Return True when a single day collides with an existing reservation.

    Both endpoints of the reservation count as occupied, so a check-in on
    another booking's check-out day is a conflict.
    """
    if day == reservation.start_date or day == reservation.end_date:
        return True
    return reservation.start_date < day < reservation.end_date


def interval_overlaps(start: date, end: date, reservation: Reservation) -> bool:
    """Return True when [start, end] contains or touches the reservation."""
    if start < reservation.start_date and end > reservation.end_date:
        return True
    return start <= reservation.start_date <= end or start <= reservation.end_date <= end


def resolve(candidate: CandidateInterval, existing: Iterable[Reservation]) -> ConflictReport:
    """Classify how the candidate interval collides with existing reservations.

    Start-date conflicts take precedence over end-date conflicts, which take
    precedence over a generic overlap. Reservations on other spots and the
    reservation named by ``exclude_id`` are never compared.
    """
    first_hit: dict[ConflictKind, Hashable] = {}

    for reservation in existing:
        if reservation.spot_id != candidate.spot_id:
            continue
        if candidate.exclude_id is not None and reservation.id == candidate.exclude_id:
            continue

        if date_conflicts(candidate.start_date, reservation):
            first_hit.setdefault(ConflictKind.START_DATE, reservation.id)
            # nothing can outrank a start-date conflict
            break
        if date_conflicts(candidate.end_date, reservation):
            first_hit.setdefault(ConflictKind.END_DATE, reservation.id)
        elif interval_overlaps(candidate.start_date, candidate.end_date, reservation):
            first_hit.setdefault(ConflictKind.OVERLAP, reservation.id)

    for kind in (ConflictKind.START_DATE, ConflictKind.END_DATE, ConflictKind.OVERLAP):
        if kind in first_hit:
            return ConflictReport(kind=kind, reservation_id=first_hit[kind])
    return NO_CONFLICT
