from .booking import (
	NO_CONFLICT,
	CandidateInterval,
	ConflictKind,
	ConflictReport,
	Reservation,
	date_conflicts,
	interval_overlaps,
	resolve,
)
from .errors import (
	BookingError,
	BookingForbiddenError,
	BookingNotFoundError,
	BookingStorageError,
	BookingValidationError,
)
from .validation import conflict_payload, parse_booking_dates, require_future_start, require_not_started
from .yaml_store import BookingAttemptResult, BookingRecord, SpotBookingYamlRepository, SpotRecord

__all__ = [
	"NO_CONFLICT",
	"CandidateInterval",
	"ConflictKind",
	"ConflictReport",
	"Reservation",
	"date_conflicts",
	"interval_overlaps",
	"resolve",
	"BookingError",
	"BookingForbiddenError",
	"BookingNotFoundError",
	"BookingStorageError",
	"BookingValidationError",
	"conflict_payload",
	"parse_booking_dates",
	"require_future_start",
	"require_not_started",
	"BookingAttemptResult",
	"BookingRecord",
	"SpotBookingYamlRepository",
	"SpotRecord",
]
