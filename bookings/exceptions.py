"""Domain errors raised by the booking engine, cancellation workflow and showtime ledger.

Every error carries the HTTP status it maps to, a stable ``code`` and a
human-readable message. ``GlobalExceptionMiddleware`` turns them into the
``{"success": false, ...}`` JSON shape, so views simply let them propagate.
"""


class BookingError(Exception):
    status_code = 400
    code = 'booking_error'
    default_message = 'The request could not be completed.'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        payload = {
            'success': False,
            'code': self.code,
            'message': self.message,
        }
        payload.update(self.details)
        return payload


class InvalidRequest(BookingError):
    code = 'invalid_request'
    default_message = 'Invalid request.'


class SeatUnavailable(InvalidRequest):
    code = 'seat_unavailable'
    default_message = 'Some seats do not exist in this room or are not available.'

    def __init__(self, seat_ids, message=None):
        self.seat_ids = list(seat_ids)
        super().__init__(message, unavailable_seats=self.seat_ids)


class NotFound(BookingError):
    status_code = 404
    code = 'not_found'
    default_message = 'Resource not found.'


class ConflictError(BookingError):
    status_code = 409
    code = 'conflict'
    default_message = 'The request conflicts with the current state.'


class SlotConflict(ConflictError):
    code = 'slot_conflict'
    default_message = 'The room is already booked for that date and time.'


class SeatAlreadyBooked(ConflictError):
    code = 'seat_already_booked'
    default_message = 'Some seats are already booked.'

    def __init__(self, seat_ids, message=None):
        self.seat_ids = list(seat_ids)
        super().__init__(message, booked_seats=self.seat_ids)


class DuplicateTransaction(ConflictError):
    code = 'duplicate_transaction'
    default_message = 'Transaction id collision, please retry.'


class PolicyViolation(BookingError):
    code = 'policy_violation'
    default_message = 'The request violates a booking policy.'


class PastShowtime(PolicyViolation):
    code = 'past_showtime'
    default_message = 'Bookings cannot be made for past showtimes.'


class CancellationWindowClosed(PolicyViolation):
    code = 'cancellation_window_closed'
    default_message = 'Bookings can only be cancelled at least 2 hours before the showtime.'


class HasActiveBookings(PolicyViolation):
    code = 'has_active_bookings'
    default_message = 'The showtime has active bookings.'


class Immutable(PolicyViolation):
    code = 'immutable'
    default_message = 'Completed bookings cannot be modified.'


class AlreadyCancelled(PolicyViolation):
    code = 'already_cancelled'
    default_message = 'The booking is already cancelled.'


class ResourceInUse(PolicyViolation):
    code = 'resource_in_use'
    default_message = 'The resource is still referenced and cannot be removed.'


class InsufficientAvailability(BookingError):
    code = 'insufficient_availability'
    default_message = 'Not enough seats available for this showtime.'


class BookingSystemError(BookingError):
    status_code = 500
    code = 'system_error'
    default_message = 'Internal server error.'
