import logging
from django.core.files.storage import default_storage
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.conf import settings

logger = logging.getLogger(__name__)


def send_booking_confirmation_email(booking_id, qr_png=None, receipt_path=None):
    from .models import Booking
    from .services import BookingService

    try:
        logger.info(f"🔄 [CONFIRMATION_EMAIL] Processing confirmation email for booking_id={booking_id}")

        booking = BookingService.booking_queryset().filter(id=booking_id).first()
        if booking is None:
            logger.warning(f"⏭️  SKIPPED: Confirmation email for booking_id={booking_id} - booking not found")
            return "Email not sent - booking not found"

        if booking.status != 'confirmed':
            logger.warning(
                f"⏭️  SKIPPED: Confirmation email for {booking.transaction_id} - "
                f"Status is {booking.status}, not confirmed"
            )
            return f"Email not sent - booking status is {booking.status}"

        # Claim the send atomically so a retried task cannot mail twice
        claimed = Booking.objects.filter(
            id=booking_id, confirmation_email_sent=False
        ).update(confirmation_email_sent=True)
        if not claimed:
            logger.info(
                f"⏭️  SKIPPED: Confirmation email for {booking.transaction_id} - "
                f"Already sent (idempotency check)"
            )
            return "Email already sent - skipping"

        context = {
            'booking': booking,
            'movie': booking.showtime.movie,
            'showtime': booking.showtime,
            'room': booking.showtime.room,
            'seats': [line.seat.label for line in booking.booking_seats.all()],
            'total_price': booking.total_price,
            'site_url': settings.SITE_URL,
        }

        text_content = render_to_string('emails/booking_confirmation.txt', context)
        html_content = render_to_string('emails/booking_confirmation.html', context)

        subject = f'🎬 Booking Confirmed - {booking.showtime.movie.title} ({booking.transaction_id})'
        email = EmailMultiAlternatives(subject, text_content, settings.DEFAULT_FROM_EMAIL, [booking.customer_email])
        email.attach_alternative(html_content, "text/html")

        if qr_png:
            email.attach(f"ticket-{booking.transaction_id}.png", qr_png, "image/png")

        if receipt_path and default_storage.exists(receipt_path):
            with default_storage.open(receipt_path, 'rb') as receipt:
                email.attach(f"receipt-{booking.transaction_id}.pdf", receipt.read(), "application/pdf")

        try:
            email.send()
        except Exception:
            Booking.objects.filter(id=booking_id).update(confirmation_email_sent=False)
            raise

        logger.info(f"✅ 📧 CONFIRMATION EMAIL SENT | Booking: {booking.transaction_id} | To: {booking.customer_email}")
        return f"Email sent successfully to {booking.customer_email}"
    except Exception as e:
        logger.error(f"❌ 📧 ERROR sending confirmation email for booking {booking_id}: {type(e).__name__}: {str(e)}")
        return f"Error sending email: {str(e)}"
