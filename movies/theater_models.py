from datetime import datetime

from django.db import models
from django.utils import timezone
from django.core.validators import MaxValueValidator, MinValueValidator


class Room(models.Model):
    ROOM_TYPES = (
        ('standard', 'Standard'),
        ('premium', 'Premium'),
        ('vip', 'VIP'),
        ('imax', 'IMAX'),
        ('4dx', '4DX'),
    )

    STATUS_CHOICES = (
        ('active', 'Active'),
        ('maintenance', 'Maintenance'),
        ('inactive', 'Inactive'),
    )

    name = models.CharField(max_length=100, unique=True)
    capacity = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(500)]
    )
    room_type = models.CharField(max_length=20, choices=ROOM_TYPES, default='standard')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    location = models.CharField(max_length=100)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} [{self.get_room_type_display()}]"

    @property
    def is_active(self):
        return self.status == 'active'

    class Meta:
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(capacity__gte=1) & models.Q(capacity__lte=500),
                name='room_capacity_range',
            ),
        ]


class Seat(models.Model):
    SEAT_TYPES = (
        ('standard', 'Standard'),
        ('premium', 'Premium'),
        ('vip', 'VIP'),
    )

    # Advisory only. Whether a seat is taken for a showtime is decided by BookingSeat rows.
    STATUS_CHOICES = (
        ('available', 'Available'),
        ('occupied', 'Occupied'),
        ('maintenance', 'Maintenance'),
    )

    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name='seats')
    row = models.CharField(max_length=1)
    number = models.PositiveIntegerField()
    seat_type = models.CharField(max_length=20, choices=SEAT_TYPES, default='standard')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='available')

    def __str__(self):
        return f"{self.label} ({self.room.name})"

    @property
    def label(self):
        return f"{self.row}{self.number}"

    class Meta:
        ordering = ['room', 'row', 'number']
        constraints = [
            models.UniqueConstraint(fields=['room', 'row', 'number'], name='unique_seat_per_room'),
        ]


class Showtime(models.Model):
    movie = models.ForeignKey('movies.Movie', on_delete=models.PROTECT, related_name='showtimes')
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name='showtimes')

    date = models.DateField()
    time = models.TimeField()

    # Frozen at creation: movie price x room-type multiplier, or an explicit override
    price = models.DecimalField(max_digits=10, decimal_places=2)

    # Mutated only inside the booking/cancellation transactions
    available_seats = models.PositiveIntegerField()
    total_seats = models.PositiveIntegerField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.movie.title} - {self.date} {self.time}"

    @property
    def starts_at(self):

        naive = datetime.combine(self.date, self.time)
        return timezone.make_aware(naive, timezone.get_default_timezone())

    def has_started(self, now=None):
        now = now or timezone.now()
        return self.starts_at <= now

    def get_formatted_time(self):

        return self.time.strftime("%I:%M %p")

    def get_formatted_date(self):

        return self.date.strftime("%d %b, %Y")

    class Meta:
        ordering = ['date', 'time']
        constraints = [
            models.UniqueConstraint(fields=['room', 'date', 'time'], name='unique_showtime_slot'),
            models.CheckConstraint(
                condition=models.Q(available_seats__gte=0)
                & models.Q(available_seats__lte=models.F('total_seats')),
                name='showtime_available_seats_range',
            ),
        ]
