"""QR code and PDF receipt generation for confirmed bookings.

Both generators run after the booking transaction has committed. They return
storage references; callers treat any exception as non-fatal.
"""
import base64
import json
from io import BytesIO

import qrcode
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
import logging

from .utils import round_money

logger = logging.getLogger(__name__)


def build_qr_payload(booking):

    showtime = booking.showtime
    return {
        'transactionId': booking.transaction_id,
        'bookingId': booking.id,
        'showtimeId': showtime.id,
        'movie': showtime.movie.title,
        'date': showtime.date.isoformat(),
        'showtime': showtime.time.strftime('%H:%M'),
        'room': showtime.room.name,
        'seats': [line.seat.label for line in booking.booking_seats.all()],
        'customer': booking.customer_email,
        'purchaseDate': booking.purchase_date.isoformat(),
    }


def generate_booking_qr(booking):

    payload = json.dumps(build_qr_payload(booking), sort_keys=True)

    qr = qrcode.QRCode(version=None, box_size=10, border=2)
    qr.add_data(payload)
    qr.make(fit=True)
    qr_img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    qr_img.save(buffer)
    png_bytes = buffer.getvalue()

    filename = f"booking-{booking.transaction_id}.png"
    path = default_storage.save(f"qr-codes/{filename}", ContentFile(png_bytes))
    data_url = "data:image/png;base64," + base64.b64encode(png_bytes).decode('ascii')

    logger.info(f"QR generated for booking {booking.transaction_id}: {path}")
    return {
        'data_url': data_url,
        'path': path,
        'filename': filename,
        'png': png_bytes,
    }


def generate_receipt_pdf(booking, qr=None):

    showtime = booking.showtime
    lines = list(booking.booking_seats.all())
    subtotal = sum((line.price for line in lines), round_money(0))

    buffer = BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    p.setFillColor(colors.HexColor("#15202b"))
    p.rect(0, height - 1.2 * inch, width, 1.2 * inch, fill=1, stroke=0)
    p.setFillColor(colors.white)
    p.setFont("Helvetica-Bold", 22)
    p.drawString(0.75 * inch, height - 0.8 * inch, "Booking Receipt")

    y = height - 1.8 * inch
    p.setFillColor(colors.black)
    details = [
        ("Transaction", booking.transaction_id),
        ("Movie", showtime.movie.title),
        ("Room", showtime.room.name),
        ("Date", showtime.get_formatted_date()),
        ("Time", showtime.get_formatted_time()),
        ("Customer", booking.customer_email),
        ("Payment", booking.payment_method),
    ]
    for label, value in details:
        p.setFont("Helvetica", 10)
        p.drawString(0.75 * inch, y, label.upper())
        p.setFont("Helvetica-Bold", 12)
        p.drawString(2.25 * inch, y, str(value))
        y -= 0.3 * inch

    y -= 0.2 * inch
    p.setFont("Helvetica-Bold", 12)
    p.drawString(0.75 * inch, y, "Seats")
    y -= 0.3 * inch
    p.setFont("Helvetica", 11)
    for line in lines:
        p.drawString(1.0 * inch, y, f"{line.seat.label} ({line.seat.get_seat_type_display()})")
        p.drawRightString(width - 0.75 * inch, y, f"{line.price:.2f}")
        y -= 0.25 * inch

    y -= 0.2 * inch
    p.drawString(1.0 * inch, y, "Subtotal")
    p.drawRightString(width - 0.75 * inch, y, f"{subtotal:.2f}")
    y -= 0.25 * inch
    p.drawString(1.0 * inch, y, "Service fee")
    p.drawRightString(width - 0.75 * inch, y, f"{booking.total_price - subtotal:.2f}")
    y -= 0.3 * inch
    p.setFont("Helvetica-Bold", 13)
    p.drawString(1.0 * inch, y, "Total")
    p.drawRightString(width - 0.75 * inch, y, f"{booking.total_price:.2f}")

    if qr:
        p.drawImage(ImageReader(BytesIO(qr['png'])), width - 2.75 * inch, height - 4.2 * inch,
                    width=2.0 * inch, height=2.0 * inch)

    p.showPage()
    p.save()

    filename = f"receipt-{booking.transaction_id}.pdf"
    path = default_storage.save(f"receipts/{filename}", ContentFile(buffer.getvalue()))

    logger.info(f"Receipt generated for booking {booking.transaction_id}: {path}")
    return {
        'path': path,
        'url': default_storage.url(path),
        'filename': filename,
    }
