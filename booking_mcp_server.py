from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from spot_booking import (
    BookingError,
    SpotBookingYamlRepository,
    conflict_payload,
    parse_booking_dates,
    require_future_start,
)
from spot_booking.validation import PAST_CREATE_MESSAGE

mcp = FastMCP(
    "Spot Booking MCP Server",
    instructions="Inspect spot bookings and check date ranges against existing reservations.",
    json_response=True,
)

DATA_DIR = Path(os.environ.get("SPOT_BOOKING_DATA_DIR", Path(__file__).parent / "data"))
REPOSITORY = SpotBookingYamlRepository(DATA_DIR)
CLOCK: Callable[[], datetime] = datetime.now


@mcp.resource("booking://spots")
async def list_spots() -> list[dict[str, Any]]:
    """List bookable spots."""
    return [spot.to_dict() for spot in REPOSITORY.get_spots()]


@mcp.tool()
def list_spot_bookings(spot_id: int) -> list[dict[str, Any]]:
    """Return the bookings held on one spot, earliest first."""
    bookings = [booking for booking in REPOSITORY.get_bookings() if booking.spot_id == spot_id]
    bookings.sort(key=lambda booking: booking.start_date)
    return [booking.to_dict() for booking in bookings]


@mcp.tool()
def check_booking_conflict(spot_id: int, start_date: str, end_date: str, exclude_id: int | None = None) -> dict[str, Any]:
    """Classify how a date range collides with a spot's existing bookings."""
    try:
        start, end = parse_booking_dates({"startDate": start_date, "endDate": end_date})
    except BookingError as error:
        return {"ok": False, **error.to_dict()}

    report = REPOSITORY.check_conflict(spot_id, start, end, exclude_id=exclude_id)
    return {
        "ok": True,
        "conflict": report.kind.value if report.kind else None,
        "conflicting_booking_id": report.reservation_id,
        "response": conflict_payload(report),
    }


@mcp.tool()
def request_booking(spot_id: int, user_id: int, start_date: str, end_date: str) -> dict[str, Any]:
    """Book a spot for a user when the dates are free."""
    now = CLOCK()
    try:
        start, end = parse_booking_dates({"startDate": start_date, "endDate": end_date})
        require_future_start(start, now.date(), PAST_CREATE_MESSAGE)
        result = REPOSITORY.add_booking(spot_id, user_id, start, end, now=now)
    except BookingError as error:
        return {"ok": False, **error.to_dict()}

    if not result.ok:
        return {"ok": False, **conflict_payload(result.report)}
    return {"ok": True, "booking": result.booking.to_dict()}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
