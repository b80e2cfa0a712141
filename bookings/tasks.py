from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def generate_booking_artifacts(booking_id):
    """Post-commit side effects of a booking: QR code, PDF receipt, confirmation email.

    The booking is already durable when this runs. Each step is attempted
    independently and failures are logged, never raised. Booking updates go
    through ``queryset.update()`` so a concurrent cancellation's status change
    is never overwritten.
    """
    from .models import Booking
    from .services import BookingService
    from .artifacts import generate_booking_qr, generate_receipt_pdf
    from .email_utils import send_booking_confirmation_email

    booking = BookingService.booking_queryset().filter(id=booking_id).first()
    if booking is None:
        logger.warning(f"Artifact generation skipped: booking {booking_id} not found")
        return f"Booking {booking_id} not found"

    qr = None
    try:
        qr = generate_booking_qr(booking)
        Booking.objects.filter(id=booking_id).update(qr_code_data=qr['data_url'])
    except Exception as e:
        logger.error(f"❌ QR generation failed for booking {booking.transaction_id}: {type(e).__name__}: {e}")

    receipt = None
    try:
        receipt = generate_receipt_pdf(booking, qr)
        Booking.objects.filter(id=booking_id).update(receipt_url=receipt['url'])
    except Exception as e:
        logger.error(f"❌ Receipt generation failed for booking {booking.transaction_id}: {type(e).__name__}: {e}")

    email_result = send_booking_confirmation_email(
        booking_id,
        qr_png=qr['png'] if qr else None,
        receipt_path=receipt['path'] if receipt else None,
    )

    result = (
        f"Artifacts for {booking.transaction_id}: qr={'ok' if qr else 'failed'}, "
        f"receipt={'ok' if receipt else 'failed'}, email={email_result}"
    )
    logger.info(result)
    return result


@shared_task
def reconcile_seat_counters(fix=False):

    from .services import BookingService

    drifted = BookingService.reconcile_all(fix=fix)

    if drifted:
        logger.error(f"Seat counter audit found {len(drifted)} drifted showtimes: {drifted}")
    else:
        logger.info("Seat counter audit complete: no drift")
    return f"{len(drifted)} drifted showtimes"
