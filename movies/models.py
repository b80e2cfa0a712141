from django.db import models
from django.core.validators import MaxValueValidator, MinValueValidator
from decimal import Decimal


class Movie(models.Model):
    STATUS_CHOICES = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    )

    title = models.CharField(max_length=200)
    genre = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    duration = models.PositiveIntegerField(
        help_text="Duration in minutes",
        validators=[MinValueValidator(1)]
    )
    rating = models.DecimalField(
        max_digits=3, decimal_places=1, default=Decimal('0.0'),
        validators=[MinValueValidator(0), MaxValueValidator(10)]
    )
    price = models.DecimalField(
        max_digits=10, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    release_date = models.DateField()
    poster = models.URLField(blank=True)

    # Soft delete: flip to inactive instead of removing a referenced movie
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.release_date.year})"

    @property
    def is_active(self):
        return self.status == 'active'

    def duration_formatted(self):

        hours = self.duration // 60
        minutes = self.duration % 60
        return f"{hours}h {minutes}m"

    class Meta:
        ordering = ['-release_date', 'title']
        constraints = [
            models.CheckConstraint(condition=models.Q(duration__gt=0), name='movie_duration_positive'),
            models.CheckConstraint(condition=models.Q(price__gt=0), name='movie_price_positive'),
            models.CheckConstraint(
                condition=models.Q(rating__gte=0) & models.Q(rating__lte=10),
                name='movie_rating_range',
            ),
        ]


from .theater_models import Room, Seat, Showtime  # noqa: E402,F401
