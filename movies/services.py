import math
from datetime import date as date_cls, time as time_cls
from decimal import Decimal, InvalidOperation

from django.db import transaction, IntegrityError
from django.db.models.deletion import ProtectedError
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_time
import logging

from bookings.exceptions import (
    InvalidRequest, NotFound, SlotConflict, HasActiveBookings, ResourceInUse,
)
from bookings.models import Booking, BookingSeat
from bookings.services import parse_id
from bookings.utils import PriceCalculator, SeatManager, CacheInvalidator, round_money
from .models import Movie
from .theater_models import Room, Seat, Showtime

logger = logging.getLogger(__name__)

SEAT_ROWS = 'ABCDEFGHIJ'


def coerce_date(value):
    if isinstance(value, date_cls):
        return value
    parsed = parse_date(value) if isinstance(value, str) else None
    if parsed is None:
        raise InvalidRequest(f"Invalid date: {value!r}")
    return parsed


def coerce_time(value):
    if isinstance(value, time_cls):
        return value
    parsed = parse_time(value) if isinstance(value, str) else None
    if parsed is None:
        raise InvalidRequest(f"Invalid time: {value!r}")
    return parsed


def coerce_price(value):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Invalid price: {value!r}")
    if not price.is_finite() or price <= 0:
        raise InvalidRequest('Price must be greater than zero')
    return round_money(price)


class CatalogService:

    @staticmethod
    def seat_type_for_row(row_index):

        if row_index < 2:
            return 'vip'
        if row_index < 5:
            return 'premium'
        return 'standard'

    @staticmethod
    def generate_seats(room):

        seats_per_row = math.ceil(room.capacity / len(SEAT_ROWS))
        seats = []
        for row_index, row in enumerate(SEAT_ROWS):
            for number in range(1, seats_per_row + 1):
                if len(seats) >= room.capacity:
                    break
                seats.append(Seat(
                    room=room,
                    row=row,
                    number=number,
                    seat_type=CatalogService.seat_type_for_row(row_index),
                    status='available',
                ))
        Seat.objects.bulk_create(seats)
        return seats

    @staticmethod
    def seats_in_use(room_id):
        return BookingSeat.objects.filter(seat__room_id=room_id).exists()

    @staticmethod
    def validate_capacity(capacity):
        try:
            capacity = int(capacity)
        except (TypeError, ValueError):
            raise InvalidRequest('Capacity must be an integer')
        if not 1 <= capacity <= 500:
            raise InvalidRequest('Capacity must be between 1 and 500')
        return capacity

    @staticmethod
    @transaction.atomic
    def create_room(name, capacity, room_type='standard', location='', status='active'):

        capacity = CatalogService.validate_capacity(capacity)
        if room_type not in dict(Room.ROOM_TYPES):
            raise InvalidRequest(f"Unknown room type: {room_type}")
        if Room.objects.filter(name=name).exists():
            raise InvalidRequest('A room with that name already exists')

        room = Room.objects.create(
            name=name, capacity=capacity, room_type=room_type, location=location, status=status
        )
        CatalogService.generate_seats(room)
        logger.info(f"Room {room.name} created with {capacity} seats")
        return room

    @staticmethod
    @transaction.atomic
    def update_room(room_id, **changes):
        """Update a room; a capacity change destroys and regenerates every seat.

        Seat identity is not preserved, so regeneration is refused while any
        booking line still points at one of the room's seats.
        """
        room = Room.objects.select_for_update().filter(pk=room_id).first()
        if room is None:
            raise NotFound('Room not found')

        capacity = changes.pop('capacity', None)
        if 'name' in changes and Room.objects.filter(name=changes['name']).exclude(pk=room.pk).exists():
            raise InvalidRequest('A room with that name already exists')
        for field in ('name', 'room_type', 'status', 'location'):
            if field in changes:
                setattr(room, field, changes.pop(field))
        if changes:
            raise InvalidRequest(f"Unknown room fields: {sorted(changes)}")

        if capacity is not None:
            capacity = CatalogService.validate_capacity(capacity)
            if capacity != room.capacity:
                if CatalogService.seats_in_use(room.id):
                    raise ResourceInUse('Seats of this room are referenced by bookings')
                room.seats.all().delete()
                room.capacity = capacity
                room.save()
                CatalogService.generate_seats(room)
                logger.info(f"Room {room.name} seats regenerated for capacity {capacity}")
                return room

        room.save()
        return room

    @staticmethod
    def deactivate_movie(movie_id):
        updated = Movie.objects.filter(pk=movie_id).update(status='inactive', updated_at=timezone.now())
        if not updated:
            raise NotFound('Movie not found')
        logger.info(f"Movie {movie_id} deactivated")

    @staticmethod
    def deactivate_room(room_id):
        updated = Room.objects.filter(pk=room_id).update(status='inactive', updated_at=timezone.now())
        if not updated:
            raise NotFound('Room not found')
        logger.info(f"Room {room_id} deactivated")

    @staticmethod
    def delete_movie(movie_id):

        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            raise NotFound('Movie not found')
        if movie.showtimes.exists():
            raise ResourceInUse('The movie has showtimes; deactivate it instead')
        movie.delete()

    @staticmethod
    def delete_room(room_id):

        room = Room.objects.filter(pk=room_id).first()
        if room is None:
            raise NotFound('Room not found')
        if room.showtimes.exists():
            raise ResourceInUse('The room has showtimes; deactivate it instead')
        try:
            room.delete()
        except ProtectedError:
            raise ResourceInUse('Seats of this room are referenced by bookings')


class ShowtimeLedger:

    SLOT_FIELDS = ('room', 'date', 'time')
    LOCKED_FIELDS = ('room', 'date', 'time', 'price')

    @staticmethod
    def has_active_bookings(showtime_id):
        return Booking.objects.active().filter(showtime_id=showtime_id).exists()

    @staticmethod
    def ensure_schedulable(movie=None, room=None):

        if movie is not None and not movie.is_active:
            raise InvalidRequest('The movie is not active')
        if room is not None and not room.is_active:
            raise InvalidRequest('The room is not active')

    @staticmethod
    def ensure_editable(showtime_id, changes):

        touches_locked = any(field in changes for field in ShowtimeLedger.LOCKED_FIELDS)
        if touches_locked and ShowtimeLedger.has_active_bookings(showtime_id):
            raise HasActiveBookings('Showtimes with active bookings cannot change room, date, time or price')

    @staticmethod
    def create_showtime(movie_id, room_id, date, time, price=None):

        date = coerce_date(date)
        time = coerce_time(time)

        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            raise NotFound('Movie not found')
        room = Room.objects.filter(pk=room_id).first()
        if room is None:
            raise NotFound('Room not found')
        ShowtimeLedger.ensure_schedulable(movie, room)

        if price is None:
            price = PriceCalculator.showtime_price(movie, room)
        else:
            price = coerce_price(price)

        if Showtime.objects.filter(room=room, date=date, time=time).exists():
            raise SlotConflict(f"{room.name} is already booked on {date} at {time}")

        try:
            with transaction.atomic():
                showtime = Showtime.objects.create(
                    movie=movie,
                    room=room,
                    date=date,
                    time=time,
                    price=price,
                    available_seats=room.capacity,
                    total_seats=room.capacity,
                )
        except IntegrityError:
            # Lost a race for the same slot
            raise SlotConflict(f"{room.name} is already booked on {date} at {time}")

        logger.info(f"Showtime {showtime.id} created: {movie.title} in {room.name} on {date} {time} at {price}")
        return showtime

    @staticmethod
    def update_showtime(showtime_id, **changes):

        unknown = set(changes) - {'movie', 'room', 'date', 'time', 'price'}
        if unknown:
            raise InvalidRequest(f"Unknown showtime fields: {sorted(unknown)}")

        try:
            with transaction.atomic():
                showtime = ShowtimeLedger._apply_update(showtime_id, changes)
        except IntegrityError:
            raise SlotConflict('Schedule conflicts with another showtime')

        CacheInvalidator.invalidate_showtime_cache(showtime.id)
        logger.info(f"Showtime {showtime.id} updated: {sorted(changes)}")
        return showtime

    @staticmethod
    def _apply_update(showtime_id, changes):

        showtime = Showtime.objects.select_for_update().filter(pk=showtime_id).first()
        if showtime is None:
            raise NotFound('Showtime not found')

        ShowtimeLedger.ensure_editable(showtime.id, changes)

        if 'movie' in changes:
            movie = Movie.objects.filter(pk=changes['movie']).first()
            if movie is None:
                raise NotFound('Movie not found')
            if movie.id != showtime.movie_id:
                ShowtimeLedger.ensure_schedulable(movie=movie)
            showtime.movie = movie

        if 'room' in changes:
            room = Room.objects.filter(pk=changes['room']).first()
            if room is None:
                raise NotFound('Room not found')
            if room.id != showtime.room_id:
                ShowtimeLedger.ensure_schedulable(room=room)
                # Only reachable without active bookings, so every seat is free
                showtime.room = room
                showtime.total_seats = room.capacity
                showtime.available_seats = room.capacity

        if 'date' in changes:
            showtime.date = coerce_date(changes['date'])
        if 'time' in changes:
            showtime.time = coerce_time(changes['time'])
        if 'price' in changes:
            showtime.price = coerce_price(changes['price'])

        if any(field in changes for field in ShowtimeLedger.SLOT_FIELDS):
            clash = Showtime.objects.filter(
                room_id=showtime.room_id, date=showtime.date, time=showtime.time
            ).exclude(pk=showtime.pk).exists()
            if clash:
                raise SlotConflict('Schedule conflicts with another showtime')

        showtime.save()
        return showtime

    @staticmethod
    @transaction.atomic
    def delete_showtime(showtime_id):

        showtime = Showtime.objects.select_for_update().filter(pk=showtime_id).first()
        if showtime is None:
            raise NotFound('Showtime not found')
        if ShowtimeLedger.has_active_bookings(showtime.id):
            raise HasActiveBookings('Showtimes with active bookings cannot be deleted')

        showtime.delete()
        transaction.on_commit(lambda: CacheInvalidator.invalidate_showtime_cache(showtime_id))
        logger.info(f"Showtime {showtime_id} deleted")

    @staticmethod
    def list_showtimes(movie_id=None, room_id=None, date=None):

        showtimes = Showtime.objects.select_related('movie', 'room').filter(
            date__gte=timezone.localdate()
        )
        if movie_id:
            showtimes = showtimes.filter(movie_id=parse_id(movie_id, 'movieId'))
        if room_id:
            showtimes = showtimes.filter(room_id=parse_id(room_id, 'roomId'))
        if date:
            showtimes = showtimes.filter(date=coerce_date(date))
        return showtimes.order_by('date', 'time')

    @staticmethod
    def seat_map(showtime_id):

        showtime = Showtime.objects.select_related('room').filter(pk=showtime_id).first()
        if showtime is None:
            raise NotFound('Showtime not found')
        return showtime, SeatManager.get_seat_map(showtime)
