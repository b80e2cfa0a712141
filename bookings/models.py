from django.db import models
from django.contrib.auth.models import User
from movies.theater_models import Showtime, Seat
from django.utils import timezone
from django.utils.crypto import get_random_string
import string


ACTIVE_BOOKING_STATUSES = ('confirmed', 'pending')


def generate_transaction_id():

    millis = int(timezone.now().timestamp() * 1000)
    suffix = get_random_string(9, allowed_chars=string.ascii_lowercase + string.digits)
    return f"TXN-{millis}-{suffix}"


class BookingQuerySet(models.QuerySet):

    def active(self):
        return self.filter(status__in=ACTIVE_BOOKING_STATUSES)

    def visible_to(self, user, role):
        if role == 'admin':
            return self
        return self.filter(user=user)


class Booking(models.Model):
    BOOKING_STATUS = (
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('cancelled', 'Cancelled'),
        ('completed', 'Completed'),
    )

    transaction_id = models.CharField(max_length=40, unique=True, editable=False)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='bookings')
    showtime = models.ForeignKey(Showtime, on_delete=models.CASCADE, related_name='bookings')

    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=BOOKING_STATUS, default='confirmed', db_index=True)
    payment_method = models.CharField(max_length=50)
    customer_email = models.EmailField()
    purchase_date = models.DateTimeField(default=timezone.now)

    # Filled in after commit by the artifact task
    qr_code_data = models.TextField(blank=True)
    receipt_url = models.CharField(max_length=500, blank=True)
    confirmation_email_sent = models.BooleanField(default=False, help_text="Track if confirmation email was sent")

    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        ordering = ['-purchase_date']

    def __str__(self):
        return f"{self.transaction_id} - {self.user.username}"

    def save(self, *args, **kwargs):
        if not self.transaction_id:
            self.transaction_id = generate_transaction_id()
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.status in ACTIVE_BOOKING_STATUSES

    def get_seats_display(self):

        return ", ".join(line.seat.label for line in self.booking_seats.select_related('seat'))

    def get_formatted_total(self):
        return f"${self.total_price:.2f}"


class BookingSeat(models.Model):

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='booking_seats')
    seat = models.ForeignKey(Seat, on_delete=models.PROTECT, related_name='booking_seats')
    # Copied from the booking so the store can enforce one live holder per (showtime, seat)
    showtime = models.ForeignKey(Showtime, on_delete=models.CASCADE, related_name='booking_seats')
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['seat__row', 'seat__number']
        constraints = [
            models.UniqueConstraint(fields=['booking', 'seat'], name='unique_seat_per_booking'),
            models.UniqueConstraint(
                fields=['showtime', 'seat'],
                condition=models.Q(is_active=True),
                name='unique_active_seat_per_showtime',
            ),
        ]

    def __str__(self):
        return f"{self.booking.transaction_id} - {self.seat.label}"
