import tempfile
import threading
import unittest
from datetime import date, datetime
from pathlib import Path

from spot_booking import (
    BookingForbiddenError,
    BookingNotFoundError,
    ConflictKind,
    SpotBookingYamlRepository,
)

NOW = datetime(2024, 5, 1, 9, 0)


class TestSpotBookingYamlRepository(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._temp_dir.name) / "data"
        self.repo = SpotBookingYamlRepository(self.data_dir)
        self.spot = self.repo.add_spot(owner_id=1, name="Lake House", city="Tahoe", price=250.0)

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_creates_empty_files(self) -> None:
        for name in ("spots.yaml", "bookings.yaml", "booking_events.yaml"):
            self.assertTrue((self.data_dir / name).exists())
        self.assertEqual(self.repo.get_bookings(), [])

    def test_spot_ids_are_sequential(self) -> None:
        second = self.repo.add_spot(owner_id=2, name="Cabin")

        self.assertEqual(self.spot.spot_id, 1)
        self.assertEqual(second.spot_id, 2)
        self.assertEqual(self.repo.get_spot(1).name, "Lake House")
        self.assertIsNone(self.repo.get_spot(99))

    def test_add_booking_persists_record(self) -> None:
        result = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 6, 1), date(2024, 6, 5), now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual(result.booking.booking_id, 1)

        reloaded = SpotBookingYamlRepository(self.data_dir).get_booking(1)
        self.assertEqual(reloaded, result.booking)
        self.assertEqual(reloaded.start_date, date(2024, 6, 1))
        self.assertEqual(reloaded.created_at, NOW)

    def test_add_booking_rejects_back_to_back_dates(self) -> None:
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 6, 1), date(2024, 6, 5), now=NOW)

        result = self.repo.add_booking(self.spot.spot_id, 8, date(2024, 6, 5), date(2024, 6, 10), now=NOW)

        self.assertFalse(result.ok)
        self.assertIsNone(result.booking)
        self.assertEqual(result.report.kind, ConflictKind.START_DATE)
        self.assertEqual(len(self.repo.get_bookings()), 1)

    def test_add_booking_on_other_spot_is_independent(self) -> None:
        other = self.repo.add_spot(owner_id=1, name="Cabin")
        self.repo.add_booking(other.spot_id, 7, date(2024, 8, 1), date(2024, 8, 5), now=NOW)

        result = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 8, 2), date(2024, 8, 4), now=NOW)

        self.assertTrue(result.ok)

    def test_add_booking_unknown_spot_raises(self) -> None:
        with self.assertRaises(BookingNotFoundError) as context:
            self.repo.add_booking(42, 7, date(2024, 6, 1), date(2024, 6, 5), now=NOW)

        self.assertEqual(context.exception.message, "Spot couldn't be found")

    def test_update_booking_with_same_dates_succeeds(self) -> None:
        created = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW).booking

        later = datetime(2024, 5, 2, 10, 0)
        result = self.repo.update_booking(created.booking_id, date(2024, 7, 1), date(2024, 7, 5), now=later)

        self.assertTrue(result.ok)
        self.assertEqual(result.booking.created_at, NOW)
        self.assertEqual(result.booking.updated_at, later)

    def test_update_booking_conflicting_with_other_booking(self) -> None:
        first = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW).booking
        self.repo.add_booking(self.spot.spot_id, 8, date(2024, 7, 10), date(2024, 7, 12), now=NOW)

        result = self.repo.update_booking(first.booking_id, date(2024, 7, 8), date(2024, 7, 14), now=NOW)

        self.assertEqual(result.report.kind, ConflictKind.OVERLAP)
        self.assertEqual(result.report.reservation_id, 2)
        self.assertEqual(self.repo.get_booking(first.booking_id).start_date, date(2024, 7, 1))

    def test_update_missing_booking_raises(self) -> None:
        with self.assertRaises(BookingNotFoundError):
            self.repo.update_booking(5, date(2024, 7, 1), date(2024, 7, 5), now=NOW)

    def test_spot_reservations_honor_exclusion(self) -> None:
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW)
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 10), date(2024, 7, 15), now=NOW)

        reservations = self.repo.get_spot_reservations(self.spot.spot_id, exclude_id=1)

        self.assertEqual([reservation.id for reservation in reservations], [2])

    def test_user_bookings_are_sorted_by_start(self) -> None:
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 9, 1), date(2024, 9, 5), now=NOW)
        self.repo.add_booking(self.spot.spot_id, 8, date(2024, 8, 1), date(2024, 8, 5), now=NOW)
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW)

        bookings = self.repo.get_user_bookings(7)

        self.assertEqual([booking.booking_id for booking in bookings], [3, 1])

    def test_delete_booking(self) -> None:
        created = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW).booking

        deleted = self.repo.delete_booking(created.booking_id, now=NOW)

        self.assertEqual(deleted, created)
        self.assertIsNone(self.repo.get_booking(created.booking_id))
        with self.assertRaises(BookingNotFoundError):
            self.repo.delete_booking(created.booking_id, now=NOW)

    def test_logs_create_conflict_update_delete_events(self) -> None:
        created = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 7, 1), date(2024, 7, 5), now=NOW).booking
        self.repo.add_booking(self.spot.spot_id, 8, date(2024, 7, 3), date(2024, 7, 9), now=NOW)
        self.repo.update_booking(created.booking_id, date(2024, 7, 2), date(2024, 7, 6), now=NOW)
        self.repo.delete_booking(created.booking_id, now=NOW)

        event_types = [event["event_type"] for event in self.repo.get_events()]
        self.assertEqual(event_types, ["BOOKING_CREATED", "BOOKING_CONFLICT", "BOOKING_UPDATED", "BOOKING_DELETED"])

        conflict = self.repo.get_events()[1]["payload"]
        self.assertEqual(conflict["kind"], "start_date")
        self.assertEqual(conflict["conflicting_booking_id"], created.booking_id)

    def test_recovers_corrupted_yaml(self) -> None:
        (self.data_dir / "bookings.yaml").write_text("{not: [valid", encoding="utf-8")

        self.assertEqual(self.repo.get_bookings(), [])

        backups = list(self.data_dir.glob("bookings.corrupt.*.yaml"))
        self.assertEqual(len(backups), 1)
        self.assertIn("YAML_RECOVERED", [event["event_type"] for event in self.repo.get_events()])

    def test_non_list_yaml_is_reset(self) -> None:
        (self.data_dir / "bookings.yaml").write_text("booking_id: 1\n", encoding="utf-8")

        self.assertEqual(self.repo.get_bookings(), [])
        self.assertEqual((self.data_dir / "bookings.yaml").read_text(encoding="utf-8"), "[]\n")

    def test_non_mapping_row_in_event_log_is_ignored(self) -> None:
        log_path = self.data_dir / "booking_events.yaml"
        log_path.write_text("- 1\n", encoding="utf-8")

        with self.assertLogs("spot_booking", level="WARNING"):
            self.assertEqual(self.repo.get_events(), [])

        result = self.repo.add_booking(self.spot.spot_id, 7, date(2024, 6, 1), date(2024, 6, 5), now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual([event["event_type"] for event in self.repo.get_events()], ["BOOKING_CREATED"])

    def test_invalid_booking_row_is_skipped(self) -> None:
        self.repo.add_booking(self.spot.spot_id, 7, date(2024, 6, 1), date(2024, 6, 5), now=NOW)
        bookings_path = self.data_dir / "bookings.yaml"
        contents = bookings_path.read_text(encoding="utf-8")
        bookings_path.write_text(contents + "- booking_id: 9\n  spot_id: 1\n", encoding="utf-8")

        bookings = self.repo.get_bookings()

        self.assertEqual([booking.booking_id for booking in bookings], [1])
        skipped = [event for event in self.repo.get_events() if event["event_type"] == "YAML_ROW_SKIPPED"]
        self.assertEqual(skipped[0]["payload"]["file"], "bookings.yaml")
        self.assertEqual(skipped[0]["payload"]["index"], 1)

    def test_owner_cannot_book_own_spot(self) -> None:
        with self.assertRaises(BookingForbiddenError):
            self.repo.add_booking(self.spot.spot_id, self.spot.owner_id, date(2024, 6, 1), date(2024, 6, 5), now=NOW)

        self.assertEqual(self.repo.get_bookings(), [])

    def test_concurrent_requests_for_same_dates_book_once(self) -> None:
        results = []

        def attempt(user_id: int) -> None:
            results.append(self.repo.add_booking(self.spot.spot_id, user_id, date(2024, 6, 1), date(2024, 6, 5), now=NOW))

        threads = [threading.Thread(target=attempt, args=(user_id,)) for user_id in range(10, 16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len([result for result in results if result.ok]), 1)
        self.assertEqual(len(self.repo.get_bookings()), 1)


if __name__ == "__main__":
    unittest.main()
