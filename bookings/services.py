from datetime import timedelta
from functools import partial

from django.conf import settings
from django.db import transaction, IntegrityError
from django.db.models import F, Prefetch
from django.utils import timezone
import logging

from movies.theater_models import Showtime, Seat
from .models import Booking, BookingSeat, generate_transaction_id
from .utils import SeatManager, PriceCalculator, CacheInvalidator
from .exceptions import (
    InvalidRequest, NotFound, SeatUnavailable, SeatAlreadyBooked, DuplicateTransaction,
    PastShowtime, InsufficientAvailability, AlreadyCancelled, Immutable,
    CancellationWindowClosed, BookingSystemError,
)

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = 'credit_card'


def role_for(user):
    return 'admin' if user.is_staff or user.is_superuser else 'user'


def parse_id(value, label):
    if isinstance(value, bool):
        raise InvalidRequest(f"{label} must be an integer id")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{label} must be an integer id")


class BookingService:

    @staticmethod
    def normalize_seat_ids(seat_ids):

        if not isinstance(seat_ids, (list, tuple)) or not seat_ids:
            raise InvalidRequest('Showtime and seats are required')

        normalized = [parse_id(seat_id, 'seat_ids') for seat_id in seat_ids]
        if len(set(normalized)) != len(normalized):
            raise InvalidRequest('Duplicate seats in request')
        return normalized

    @staticmethod
    def create_booking(showtime_id, seat_ids, user, payment_method=None, customer_email=None):
        """Book ``seat_ids`` for a showtime as one all-or-nothing transaction.

        The showtime row is locked before the conflict check, so concurrent
        callers for the same showtime run the check-then-insert one at a time.
        BookingSeat unique constraints back this up at the store level.
        QR, receipt and email are queued after commit and never affect the
        booking's outcome.
        """
        seat_ids = BookingService.normalize_seat_ids(seat_ids)
        if showtime_id in (None, ''):
            raise InvalidRequest('Showtime and seats are required')
        showtime_id = parse_id(showtime_id, 'showtime_id')

        customer_email = customer_email or user.email
        if not customer_email:
            raise InvalidRequest('A customer email is required')
        payment_method = payment_method or DEFAULT_PAYMENT_METHOD

        transaction_id = generate_transaction_id()

        try:
            with transaction.atomic():
                booking = BookingService._reserve_seats(
                    showtime_id, seat_ids, user, payment_method, customer_email, transaction_id
                )
        except IntegrityError as e:
            raise BookingService._translate_integrity_error(e, showtime_id, seat_ids, transaction_id)

        logger.info(
            f"Booking created: {booking.transaction_id} | user {user.id} | "
            f"showtime {showtime_id} | seats {seat_ids} | total {booking.total_price}"
        )
        return BookingService.get_booking(booking.id, user, 'admin')

    @staticmethod
    def _reserve_seats(showtime_id, seat_ids, user, payment_method, customer_email, transaction_id):

        showtime = Showtime.objects.select_for_update().filter(pk=showtime_id).first()
        if showtime is None:
            raise NotFound('Showtime not found')

        if showtime.has_started():
            raise PastShowtime()

        seats = Seat.objects.filter(
            id__in=seat_ids,
            room_id=showtime.room_id,
            status='available',
        )
        seats_by_id = {seat.id: seat for seat in seats}
        missing = [seat_id for seat_id in seat_ids if seat_id not in seats_by_id]
        if missing:
            raise SeatUnavailable(missing)

        conflicts = SeatManager.find_conflicting_seat_bookings(showtime.id, seat_ids)
        if conflicts:
            logger.info(f"Seat conflict on showtime {showtime.id}: {conflicts} already booked")
            raise SeatAlreadyBooked(conflicts)

        ordered_seats = [seats_by_id[seat_id] for seat_id in seat_ids]
        price_details = PriceCalculator.calculate_booking_amount(showtime, ordered_seats)

        if showtime.available_seats - len(seat_ids) < 0:
            logger.critical(
                f"COUNTER DRIFT: showtime {showtime.id} has {showtime.available_seats} available seats "
                f"but {len(seat_ids)} unbooked seats were requested. Check the locking discipline."
            )
            raise InsufficientAvailability()

        Showtime.objects.filter(pk=showtime.pk).update(
            available_seats=F('available_seats') - len(seat_ids)
        )

        booking = Booking.objects.create(
            transaction_id=transaction_id,
            user=user,
            showtime=showtime,
            total_price=price_details['total_amount'],
            status='confirmed',
            payment_method=payment_method,
            customer_email=customer_email,
            purchase_date=timezone.now(),
        )

        BookingSeat.objects.bulk_create([
            BookingSeat(booking=booking, seat=seat, showtime=showtime, price=price)
            for seat, price in price_details['seat_prices']
        ])

        transaction.on_commit(
            partial(BookingService._after_booking_commit, booking.id, showtime.id),
            robust=True,
        )
        return booking

    @staticmethod
    def _translate_integrity_error(error, showtime_id, seat_ids, transaction_id):

        if Booking.objects.filter(transaction_id=transaction_id).exists():
            logger.error(f"Transaction id collision: {transaction_id}")
            return DuplicateTransaction()

        conflicts = SeatManager.find_conflicting_seat_bookings(showtime_id, seat_ids)
        if conflicts:
            logger.warning(
                f"Unique constraint rejected a concurrent booking on showtime {showtime_id}: {conflicts}"
            )
            return SeatAlreadyBooked(conflicts)

        logger.error(f"Integrity error creating booking on showtime {showtime_id}: {error}", exc_info=True)
        return BookingSystemError()

    @staticmethod
    def _after_booking_commit(booking_id, showtime_id):

        CacheInvalidator.invalidate_showtime_cache(showtime_id)

        from .tasks import generate_booking_artifacts
        try:
            generate_booking_artifacts.delay(booking_id)
        except Exception as e:
            logger.error(f"Could not queue artifacts for booking {booking_id}: {type(e).__name__}: {e}")

    @staticmethod
    def cancel_booking(booking_id, user, role):

        booking_id = parse_id(booking_id, 'booking_id')
        reference = Booking.objects.visible_to(user, role).filter(pk=booking_id).values('showtime_id').first()
        if reference is None:
            raise NotFound('Booking not found')

        with transaction.atomic():
            # Same lock order as create_booking: showtime row first, then the booking
            showtime = Showtime.objects.select_for_update().filter(pk=reference['showtime_id']).first()
            booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
            if showtime is None or booking is None:
                raise NotFound('Booking not found')

            if booking.status == 'cancelled':
                raise AlreadyCancelled()
            if booking.status == 'completed':
                raise Immutable()

            window = timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)
            if role != 'admin' and showtime.starts_at - timezone.now() < window:
                raise CancellationWindowClosed(
                    f"Bookings can only be cancelled at least {settings.CANCELLATION_WINDOW_HOURS} "
                    f"hours before the showtime"
                )

            seat_count = booking.booking_seats.count()
            if showtime.available_seats + seat_count > showtime.total_seats:
                logger.critical(
                    f"COUNTER DRIFT: cancelling {booking.transaction_id} would raise showtime "
                    f"{showtime.id} above {showtime.total_seats} seats"
                )
                raise BookingSystemError()

            Showtime.objects.filter(pk=showtime.pk).update(
                available_seats=F('available_seats') + seat_count
            )
            booking.booking_seats.update(is_active=False)

            booking.status = 'cancelled'
            booking.cancelled_at = timezone.now()
            booking.refund_amount = PriceCalculator.refund_amount(booking.total_price)
            booking.save(update_fields=['status', 'cancelled_at', 'refund_amount', 'updated_at'])

            transaction.on_commit(
                partial(CacheInvalidator.invalidate_showtime_cache, showtime.id),
                robust=True,
            )

        logger.info(
            f"Booking {booking.transaction_id} cancelled by user {user.id} ({role}). "
            f"{seat_count} seats released, refund {booking.refund_amount}"
        )
        return {
            'booking_id': booking.id,
            'refund_amount': booking.refund_amount,
        }

    @staticmethod
    def booking_queryset():
        return Booking.objects.select_related(
            'showtime', 'showtime__movie', 'showtime__room', 'user'
        ).prefetch_related(
            Prefetch('booking_seats', queryset=BookingSeat.objects.select_related('seat'))
        )

    @staticmethod
    def get_booking(booking_id, user, role):

        booking_id = parse_id(booking_id, 'booking_id')
        booking = BookingService.booking_queryset().visible_to(user, role).filter(pk=booking_id).first()
        if booking is None:
            raise NotFound('Booking not found')
        return booking

    @staticmethod
    def list_bookings(user, status=None):

        bookings = BookingService.booking_queryset().filter(user=user)
        if status:
            if status not in dict(Booking.BOOKING_STATUS):
                raise InvalidRequest(f"Unknown booking status: {status}")
            bookings = bookings.filter(status=status)
        return bookings.order_by('-purchase_date')

    @staticmethod
    def reconcile_showtime(showtime_id, fix=False):
        """Recompute a showtime's counter from BookingSeat rows and report drift.

        Runs under the same showtime lock as booking and cancellation, so the
        comparison never sees a half-applied booking.
        """
        with transaction.atomic():
            showtime = Showtime.objects.select_for_update().filter(pk=showtime_id).first()
            if showtime is None:
                raise NotFound('Showtime not found')

            booked = SeatManager.count_active_booked_seats(showtime.id)
            expected = showtime.total_seats - booked
            drift = showtime.available_seats - expected
            fixed = False

            if drift:
                logger.error(
                    f"Seat counter drift on showtime {showtime.id}: available_seats={showtime.available_seats}, "
                    f"expected {expected} ({booked} seats held of {showtime.total_seats})"
                )
                if fix and 0 <= expected <= showtime.total_seats:
                    Showtime.objects.filter(pk=showtime.pk).update(available_seats=expected)
                    fixed = True
                    logger.warning(f"Showtime {showtime.id} counter reset to {expected}")

        if fixed:
            CacheInvalidator.invalidate_showtime_cache(showtime.id)

        return {
            'showtime_id': showtime.id,
            'available_seats': showtime.available_seats,
            'expected_available_seats': expected,
            'drift': drift,
            'fixed': fixed,
        }

    @staticmethod
    def reconcile_all(fix=False):

        reports = []
        for showtime_id in Showtime.objects.values_list('id', flat=True):
            report = BookingService.reconcile_showtime(showtime_id, fix=fix)
            if report['drift']:
                reports.append(report)
        return reports
