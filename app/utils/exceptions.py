from fastapi import HTTPException, status


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES: machine-readable constants for frontend switch/case
# ═══════════════════════════════════════════════════════════════════════════════
class ErrorCode:
    VALIDATION_ERROR          = "VALIDATION_ERROR"
    UNAUTHORIZED              = "UNAUTHORIZED"
    TOKEN_EXPIRED             = "TOKEN_EXPIRED"
    FORBIDDEN                 = "FORBIDDEN"
    NOT_FOUND                 = "NOT_FOUND"
    DUPLICATE_ENTRY           = "DUPLICATE_ENTRY"
    RESERVATION_CONFLICT      = "RESERVATION_CONFLICT"
    RESERVATION_NOT_PENDING   = "RESERVATION_NOT_PENDING"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    INVALID_DATE_RANGE        = "INVALID_DATE_RANGE"
    RECURRENCE_TOO_LONG       = "RECURRENCE_TOO_LONG"
    ROOM_IN_USE               = "ROOM_IN_USE"
    RESERVATION_CLOSED        = "RESERVATION_CLOSED"
    ACCOUNT_INACTIVE          = "ACCOUNT_INACTIVE"
    INTERNAL_SERVER_ERROR     = "INTERNAL_SERVER_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════════════════════════
class AppException(HTTPException):
    """
    Base exception for all application-level errors.
    Carries a machine-readable error_code for frontend handling.
    """
    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str,
        details: list | None = None,
        field: str | None = None,
    ):
        self.message    = message
        self.error_code = error_code
        self.details    = details
        self.field      = field
        super().__init__(status_code=status_code, detail={
            "message": message,
            "error": {
                "code": error_code,
                "details": details,
                "field": field,
            }
        })


# ═══════════════════════════════════════════════════════════════════════════════
# CONCRETE EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, ErrorCode.UNAUTHORIZED)


class TokenExpiredException(AppException):
    def __init__(self):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Access token has expired", ErrorCode.TOKEN_EXPIRED)


class ForbiddenException(AppException):
    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(status.HTTP_403_FORBIDDEN, message, ErrorCode.FORBIDDEN)


class AccountInactiveException(AppException):
    def __init__(self):
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            "Your account has been deactivated. Contact admin.",
            ErrorCode.ACCOUNT_INACTIVE,
        )


class NotFoundException(AppException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(status.HTTP_404_NOT_FOUND, f"{resource} not found", ErrorCode.NOT_FOUND)


class ValidationException(AppException):
    def __init__(self, message: str, field: str | None = None, details: list | None = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, ErrorCode.VALIDATION_ERROR,
                         details=details, field=field)


class InvalidDateRangeException(AppException):
    def __init__(self, message: str = "End time must be after start time", field: str = "endTime"):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, ErrorCode.INVALID_DATE_RANGE, field=field)


class RecurrenceTooLongException(AppException):
    def __init__(self, limit: int):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Recurrence expands to more than {limit} occurrences",
            ErrorCode.RECURRENCE_TOO_LONG,
            field="recurrence.endDate",
        )


class ReservationConflictException(AppException):
    """
    Raised when one or more requested occurrences overlap blocking
    reservations. `conflicts` holds every offending occurrence so the
    requester can adjust the whole request in one go.
    """
    def __init__(self, conflicts: list[dict]):
        self.conflicts = conflicts
        if len(conflicts) == 1:
            c = conflicts[0]["conflictingReservation"]
            message = (f"Room is already reserved from {c['startTime']} to {c['endTime']}"
                       f" by {c['user']['name']}")
        else:
            message = f"{len(conflicts)} requested occurrences conflict with existing reservations"
        super().__init__(status.HTTP_409_CONFLICT, message, ErrorCode.RESERVATION_CONFLICT,
                         details=conflicts)


class ReservationNotPendingException(AppException):
    def __init__(self, current_status: str):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Only PENDING reservations can be approved or rejected (current: {current_status})",
            ErrorCode.RESERVATION_NOT_PENDING,
        )


class InvalidTransitionException(AppException):
    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Cannot move reservation from {current_status} to {target_status}",
            ErrorCode.INVALID_STATUS_TRANSITION,
        )


class RoomInUseException(AppException):
    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Room still has pending or active reservations",
            ErrorCode.ROOM_IN_USE,
        )


class DuplicateEntryException(AppException):
    def __init__(self, message: str = "Record already exists", field: str | None = None):
        super().__init__(status.HTTP_409_CONFLICT, message, ErrorCode.DUPLICATE_ENTRY, field=field)


class ReservationClosedException(AppException):
    def __init__(self, current_status: str):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Reservation is {current_status} and can no longer be modified",
            ErrorCode.RESERVATION_CLOSED,
        )
