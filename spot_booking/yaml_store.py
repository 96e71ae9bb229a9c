from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, TypeVar
import logging
import shutil
import threading

import yaml

from .booking import NO_CONFLICT, CandidateInterval, ConflictReport, Reservation, resolve
from .errors import BookingForbiddenError, BookingNotFoundError, BookingStorageError

logger = logging.getLogger("spot_booking")

RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class SpotRecord:
    spot_id: int
    owner_id: int
    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    lat: float = 0.0
    lng: float = 0.0
    price: float = 0.0
    preview_image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "spot_id": self.spot_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "lat": self.lat,
            "lng": self.lng,
            "price": self.price,
            "preview_image": self.preview_image,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "SpotRecord":
        return SpotRecord(
            spot_id=int(data["spot_id"]),
            owner_id=int(data["owner_id"]),
            name=str(data.get("name", "")),
            address=str(data.get("address", "")),
            city=str(data.get("city", "")),
            state=str(data.get("state", "")),
            country=str(data.get("country", "")),
            lat=float(data.get("lat", 0.0)),
            lng=float(data.get("lng", 0.0)),
            price=float(data.get("price", 0.0)),
            preview_image=(str(data["preview_image"]) if data.get("preview_image") is not None else None),
        )


@dataclass(frozen=True)
class BookingRecord:
    booking_id: int
    spot_id: int
    user_id: int
    start_date: date
    end_date: date
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "spot_id": self.spot_id,
            "user_id": self.user_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRecord":
        record = BookingRecord(
            booking_id=int(data["booking_id"]),
            spot_id=int(data["spot_id"]),
            user_id=int(data["user_id"]),
            start_date=date.fromisoformat(str(data["start_date"])),
            end_date=date.fromisoformat(str(data["end_date"])),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )
        if record.start_date >= record.end_date:
            raise ValueError("booking start_date must be earlier than end_date")
        return record

    def to_reservation(self) -> Reservation:
        return Reservation(self.booking_id, self.spot_id, self.start_date, self.end_date)


@dataclass(frozen=True)
class BookingAttemptResult:
    report: ConflictReport
    booking: BookingRecord | None = None

    @property
    def ok(self) -> bool:
        return not self.report.has_conflict


class SpotBookingYamlRepository:
    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.spots_file = self.base_dir / "spots.yaml"
        self.bookings_file = self.base_dir / "bookings.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        # resolve-then-write must not interleave between two requests
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.spots_file, self.bookings_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._skip_row(path, index, "row is not a mapping")
        return sanitized

    def _skip_row(self, path: Path, index: int, reason: str) -> None:
        # the event log cannot report on itself without re-reading the bad row
        if path == self.log_file:
            logger.warning("Ignoring row %s of %s: %s", index, path.name, reason)
            return
        self._log_event(
            "YAML_ROW_SKIPPED",
            {
                "file": str(path.name),
                "index": index,
                "reason": reason,
            },
        )

    def _load_records(self, path: Path, factory: Callable[[dict[str, Any]], RecordT]) -> list[RecordT]:
        records: list[RecordT] = []
        for index, row in enumerate(self._read_yaml_list(path)):
            try:
                records.append(factory(row))
            except (KeyError, TypeError, ValueError) as error:
                self._skip_row(path, index, f"invalid record: {error!r}")
        return records

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise BookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        logger.warning("Resetting corrupted YAML file %s: %s", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml_list(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    # spots

    def get_spots(self) -> list[SpotRecord]:
        return self._load_records(self.spots_file, SpotRecord.from_dict)

    def get_spot(self, spot_id: int) -> SpotRecord | None:
        for spot in self.get_spots():
            if spot.spot_id == spot_id:
                return spot
        return None

    def require_spot(self, spot_id: int) -> SpotRecord:
        spot = self.get_spot(spot_id)
        if spot is None:
            raise BookingNotFoundError("Spot couldn't be found")
        return spot

    def add_spot(self, owner_id: int, name: str, **details: Any) -> SpotRecord:
        with self._lock:
            rows = self._read_yaml_list(self.spots_file)
            spot = SpotRecord(spot_id=_next_id(rows, "spot_id"), owner_id=owner_id, name=name, **details)
            rows.append(spot.to_dict())
            self._write_yaml_list(self.spots_file, rows)
        return spot

    # bookings

    def get_bookings(self) -> list[BookingRecord]:
        return self._load_records(self.bookings_file, BookingRecord.from_dict)

    def get_booking(self, booking_id: int) -> BookingRecord | None:
        for booking in self.get_bookings():
            if booking.booking_id == booking_id:
                return booking
        return None

    def require_booking(self, booking_id: int) -> BookingRecord:
        booking = self.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError("Booking couldn't be found")
        return booking

    def get_user_bookings(self, user_id: int) -> list[BookingRecord]:
        owned = [booking for booking in self.get_bookings() if booking.user_id == user_id]
        return sorted(owned, key=lambda booking: (booking.start_date, booking.booking_id))

    def get_spot_reservations(self, spot_id: int, exclude_id: int | None = None) -> list[Reservation]:
        return [
            booking.to_reservation()
            for booking in self.get_bookings()
            if booking.spot_id == spot_id and booking.booking_id != exclude_id
        ]

    def check_conflict(
        self,
        spot_id: int,
        start_date: date,
        end_date: date,
        exclude_id: int | None = None,
    ) -> ConflictReport:
        candidate = CandidateInterval(spot_id, start_date, end_date, exclude_id=exclude_id)
        return resolve(candidate, self.get_spot_reservations(spot_id))

    def add_booking(
        self,
        spot_id: int,
        user_id: int,
        start_date: date,
        end_date: date,
        now: datetime | None = None,
    ) -> BookingAttemptResult:
        effective_now = now or datetime.now()

        with self._lock:
            spot = self.require_spot(spot_id)
            if spot.owner_id == user_id:
                raise BookingForbiddenError("Forbidden")
            report = self.check_conflict(spot_id, start_date, end_date)
            if report.has_conflict:
                self._log_conflict(spot_id, None, start_date, end_date, report, effective_now)
                return BookingAttemptResult(report=report)

            rows = self._read_yaml_list(self.bookings_file)
            record = BookingRecord(
                booking_id=_next_id(rows, "booking_id"),
                spot_id=spot_id,
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                created_at=effective_now,
                updated_at=effective_now,
            )
            rows.append(record.to_dict())
            self._write_yaml_list(self.bookings_file, rows)

            self._log_event(
                "BOOKING_CREATED",
                {
                    "booking_id": record.booking_id,
                    "spot_id": spot_id,
                    "user_id": user_id,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
                effective_now,
            )
        logger.info("Created booking %s on spot %s", record.booking_id, spot_id)
        return BookingAttemptResult(report=NO_CONFLICT, booking=record)

    def update_booking(
        self,
        booking_id: int,
        start_date: date,
        end_date: date,
        now: datetime | None = None,
    ) -> BookingAttemptResult:
        effective_now = now or datetime.now()

        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            found_index = _find_index(rows, booking_id)
            if found_index < 0:
                raise BookingNotFoundError("Booking couldn't be found")

            current = BookingRecord.from_dict(rows[found_index])
            report = self.check_conflict(current.spot_id, start_date, end_date, exclude_id=booking_id)
            if report.has_conflict:
                self._log_conflict(current.spot_id, booking_id, start_date, end_date, report, effective_now)
                return BookingAttemptResult(report=report)

            updated = BookingRecord(
                booking_id=current.booking_id,
                spot_id=current.spot_id,
                user_id=current.user_id,
                start_date=start_date,
                end_date=end_date,
                created_at=current.created_at,
                updated_at=effective_now,
            )
            rows[found_index] = updated.to_dict()
            self._write_yaml_list(self.bookings_file, rows)

            self._log_event(
                "BOOKING_UPDATED",
                {
                    "booking_id": booking_id,
                    "spot_id": current.spot_id,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
                effective_now,
            )
        return BookingAttemptResult(report=NO_CONFLICT, booking=updated)

    def delete_booking(self, booking_id: int, now: datetime | None = None) -> BookingRecord:
        effective_now = now or datetime.now()

        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            found_index = _find_index(rows, booking_id)
            if found_index < 0:
                raise BookingNotFoundError("Booking couldn't be found")

            deleted = BookingRecord.from_dict(rows.pop(found_index))
            self._write_yaml_list(self.bookings_file, rows)

            self._log_event(
                "BOOKING_DELETED",
                {"booking_id": booking_id, "spot_id": deleted.spot_id},
                effective_now,
            )
        return deleted

    def _log_conflict(
        self,
        spot_id: int,
        booking_id: int | None,
        start_date: date,
        end_date: date,
        report: ConflictReport,
        event_time: datetime,
    ) -> None:
        logger.info("Rejected dates %s..%s on spot %s: %s", start_date, end_date, spot_id, report.kind.value)
        self._log_event(
            "BOOKING_CONFLICT",
            {
                "spot_id": spot_id,
                "booking_id": booking_id,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "kind": report.kind.value,
                "conflicting_booking_id": report.reservation_id,
            },
            event_time,
        )


def _find_index(rows: list[dict[str, Any]], booking_id: int) -> int:
    for index, row in enumerate(rows):
        if str(row.get("booking_id")) == str(booking_id):
            return index
    return -1


def _next_id(rows: list[dict[str, Any]], key: str) -> int:
    existing = [int(row[key]) for row in rows if str(row.get(key, "")).isdigit()]
    return max(existing, default=0) + 1
