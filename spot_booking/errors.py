from __future__ import annotations


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"message": self.message}


class BookingValidationError(BookingError, ValueError):
    status_code = 400

    def __init__(self, errors: dict[str, str], message: str = "Bad Request") -> None:
        super().__init__(message)
        self.errors = dict(errors)

    def to_dict(self) -> dict[str, object]:
        return {"message": self.message, "errors": self.errors}


class BookingForbiddenError(BookingError, PermissionError):
    status_code = 403


class BookingNotFoundError(BookingError, LookupError):
    status_code = 404


class BookingStorageError(BookingError, RuntimeError):
    pass
