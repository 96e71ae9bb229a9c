"""Checks the booking dates must pass before conflict resolution runs."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .booking import ConflictKind, ConflictReport
from .errors import BookingForbiddenError, BookingValidationError

ALREADY_BOOKED_MESSAGE = "Sorry, this spot is already booked for the specified dates"
PAST_BOOKING_MESSAGE = "Past bookings can't be modified"
PAST_CREATE_MESSAGE = "Bookings can't be made in the past"
STARTED_BOOKING_MESSAGE = "Bookings that have been started can't be deleted"

_FIELD_ERRORS = {
    ConflictKind.START_DATE: ("startDate", "Start date conflicts with an existing booking"),
    ConflictKind.END_DATE: ("endDate", "End date conflicts with an existing booking"),
}


def parse_booking_dates(payload: Any) -> tuple[date, date]:
    """Read ``startDate`` and ``endDate`` from a request body.

    All field problems are collected before raising so the caller can
    report them together.
    """
    if not isinstance(payload, dict):
        payload = {}
    errors: dict[str, str] = {}

    start = _parse_date_field(payload, "startDate", errors)
    end = _parse_date_field(payload, "endDate", errors)

    if start is not None and end is not None and end <= start:
        errors["endDate"] = "endDate cannot be on or before startDate"

    if errors:
        raise BookingValidationError(errors)
    return start, end


def _parse_date_field(payload: dict[str, Any], field: str, errors: dict[str, str]) -> date | None:
    raw = payload.get(field)
    if raw is None or not str(raw).strip():
        errors[field] = f"{field} is required"
        return None

    text = str(raw).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        # full timestamps keep only the calendar day
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        errors[field] = f"{field} must be a valid date (YYYY-MM-DD)"
        return None


def require_future_start(start_date: date, today: date, message: str = PAST_BOOKING_MESSAGE) -> None:
    if start_date <= today:
        raise BookingForbiddenError(message)


def require_not_started(start_date: date, today: date) -> None:
    if start_date <= today:
        raise BookingForbiddenError(STARTED_BOOKING_MESSAGE)


def conflict_payload(report: ConflictReport) -> dict[str, Any] | None:
    """Translate a conflict report into the response body shown to users."""
    if not report.has_conflict:
        return None

    payload: dict[str, Any] = {"message": ALREADY_BOOKED_MESSAGE}
    field_error = _FIELD_ERRORS.get(report.kind)
    if field_error is not None:
        field, message = field_error
        payload["errors"] = {field: message}
    return payload
