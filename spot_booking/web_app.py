from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable
import logging
import os

from flask import Flask, jsonify, request

from .errors import BookingError, BookingForbiddenError
from .validation import PAST_CREATE_MESSAGE, conflict_payload, parse_booking_dates, require_future_start, require_not_started
from .yaml_store import BookingRecord, SpotBookingYamlRepository, SpotRecord

logger = logging.getLogger("spot_booking")

DATA_DIR_ENV = "SPOT_BOOKING_DATA_DIR"
USER_HEADER = "X-User-Id"


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    user_provider: Callable[[], int | None] | None = None,
) -> Flask:
    app = Flask(__name__)
    app.config["DATA_DIR"] = str(data_dir or os.environ.get(DATA_DIR_ENV, "data"))
    repository = SpotBookingYamlRepository(app.config["DATA_DIR"])
    clock: Callable[[], datetime] = now_provider or datetime.now
    current_user: Callable[[], int | None] = user_provider or _user_from_header

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        return jsonify(error.to_dict()), error.status_code

    @app.get("/api/bookings/current")
    def get_current_bookings() -> Any:
        user_id = current_user()
        if user_id is None:
            return _unauthorized()

        spots = {spot.spot_id: spot for spot in repository.get_spots()}
        return jsonify(
            {
                "Bookings": [
                    {**_serialize_booking(booking), "Spot": _serialize_spot(spots.get(booking.spot_id))}
                    for booking in repository.get_user_bookings(user_id)
                ]
            }
        )

    @app.post("/api/spots/<int:spot_id>/bookings")
    def create_booking(spot_id: int) -> Any:
        user_id = current_user()
        if user_id is None:
            return _unauthorized()

        start_date, end_date = parse_booking_dates(request.get_json(silent=True))
        now = clock()
        require_future_start(start_date, now.date(), PAST_CREATE_MESSAGE)

        # unknown spots and owners booking their own spot are rejected by the repository
        result = repository.add_booking(spot_id, user_id, start_date, end_date, now=now)
        if not result.ok:
            return jsonify(conflict_payload(result.report)), 403
        return jsonify(_serialize_booking(result.booking)), 201

    @app.put("/api/bookings/<int:booking_id>")
    def update_booking(booking_id: int) -> Any:
        user_id = current_user()
        if user_id is None:
            return _unauthorized()

        start_date, end_date = parse_booking_dates(request.get_json(silent=True))
        booking = repository.require_booking(booking_id)
        if booking.user_id != user_id:
            raise BookingForbiddenError("Forbidden")

        now = clock()
        require_future_start(start_date, now.date())

        result = repository.update_booking(booking_id, start_date, end_date, now=now)
        if not result.ok:
            return jsonify(conflict_payload(result.report)), 403
        return jsonify(_serialize_booking(result.booking))

    @app.delete("/api/bookings/<int:booking_id>")
    def delete_booking(booking_id: int) -> Any:
        user_id = current_user()
        if user_id is None:
            return _unauthorized()

        booking = repository.require_booking(booking_id)
        if booking.user_id != user_id:
            raise BookingForbiddenError("Forbidden")

        now = clock()
        require_not_started(booking.start_date, now.date())
        repository.delete_booking(booking_id, now=now)
        logger.info("User %s deleted booking %s", user_id, booking_id)
        return jsonify({"message": "Successfully deleted"})

    return app


def _user_from_header() -> int | None:
    raw = request.headers.get(USER_HEADER, "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def _unauthorized() -> Any:
    return jsonify({"message": "Authentication required"}), 401


def _serialize_booking(booking: BookingRecord) -> dict[str, Any]:
    return {
        "id": booking.booking_id,
        "spotId": booking.spot_id,
        "userId": booking.user_id,
        "startDate": booking.start_date.isoformat(),
        "endDate": booking.end_date.isoformat(),
        "createdAt": booking.created_at.isoformat(timespec="seconds"),
        "updatedAt": booking.updated_at.isoformat(timespec="seconds"),
    }


def _serialize_spot(spot: SpotRecord | None) -> dict[str, Any] | None:
    if spot is None:
        return None
    return {
        "id": spot.spot_id,
        "ownerId": spot.owner_id,
        "address": spot.address,
        "city": spot.city,
        "state": spot.state,
        "country": spot.country,
        "lat": spot.lat,
        "lng": spot.lng,
        "name": spot.name,
        "price": spot.price,
        "previewImage": spot.preview_image,
    }


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)


if __name__ == "__main__":
    main()
