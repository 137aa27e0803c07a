class ReservationError(Exception):
    """Base class for reservation engine outcomes that end a request."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", **details: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class ValidationError(ReservationError):
    code = "missing_fields"
    status_code = 400


class InvalidTimeError(ValidationError):
    pass


class SlotTakenError(ReservationError):
    code = "slot_taken"
    status_code = 409


class CapacityExceededError(ReservationError):
    code = "capacity_exceeded"
    status_code = 409


class DuplicateRequestError(ReservationError):
    code = "duplicate_request"
    status_code = 409


class ConstraintViolationError(ReservationError):
    code = "constraint_violation"
    status_code = 409


class DatabaseError(ReservationError):
    code = "database_error"
    status_code = 500


class ReservationNotFoundError(ReservationError):
    code = "not_found"
    status_code = 404


class CancelNotAllowedError(ReservationError):
    code = "cancel_not_allowed"
    status_code = 400
