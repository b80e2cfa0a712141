from decimal import Decimal, ROUND_HALF_UP
from django.core.cache import cache
from django.conf import settings
import logging

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def round_money(value):

    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class CacheKeyBuilder:

    VERSION = "v1"
    PREFIX = "cinemabooking"

    @staticmethod
    def seat_map(showtime_id):
        return f"{CacheKeyBuilder.PREFIX}:{CacheKeyBuilder.VERSION}:seat_map:{showtime_id}"


class CacheInvalidator:

    @staticmethod
    def invalidate_showtime_cache(showtime_id):

        try:
            cache.delete(CacheKeyBuilder.seat_map(showtime_id))
            logger.debug(f"Cache invalidated for showtime {showtime_id}")
        except Exception as e:
            logger.error(f"Cache invalidation error for showtime {showtime_id}: {e}")


class SeatManager:
    """Query functions over the occupancy signal: BookingSeat rows still marked active.

    A line stays active for every booking that was not cancelled, completed ones
    included. This is the same predicate as the partial unique index on
    (showtime, seat), so the conflict check and the index never disagree.

    The booking engine calls these while holding the showtime row lock, so the
    conflict check and the insert that follows see the same state.
    """

    @staticmethod
    def active_lines(showtime_id):
        from .models import BookingSeat

        return BookingSeat.objects.filter(showtime_id=showtime_id, is_active=True)

    @staticmethod
    def find_conflicting_seat_bookings(showtime_id, seat_ids):

        conflicting = SeatManager.active_lines(showtime_id).filter(
            seat_id__in=seat_ids
        ).values_list('seat_id', flat=True)
        return sorted(set(conflicting))

    @staticmethod
    def count_active_booked_seats(showtime_id):
        return SeatManager.active_lines(showtime_id).count()

    @staticmethod
    def booked_seat_ids(showtime_id):
        return set(SeatManager.active_lines(showtime_id).values_list('seat_id', flat=True))

    @staticmethod
    def get_seat_map(showtime):

        cache_key = CacheKeyBuilder.seat_map(showtime.id)
        seat_map = cache.get(cache_key)

        if seat_map is None:
            booked = SeatManager.booked_seat_ids(showtime.id)
            seat_map = []
            for seat in showtime.room.seats.all():
                seat_map.append({
                    'id': seat.id,
                    'row': seat.row,
                    'number': seat.number,
                    'type': seat.seat_type,
                    'status': 'occupied' if seat.id in booked else seat.status,
                })
            cache.set(cache_key, seat_map, timeout=settings.SEAT_MAP_CACHE_TIMEOUT)

        return seat_map


class PriceCalculator:
    """Stepwise booking prices.

    Each seat price and the service fee are rounded half-up to the cent before
    being added, which is how historical totals were produced. Rounding once
    on the exact sum can differ by a cent, so do not change the order.
    """

    @staticmethod
    def seat_price(base_price, seat_type):

        multiplier = settings.SEAT_TYPE_MULTIPLIERS[seat_type]
        return round_money(Decimal(base_price) * multiplier)

    @staticmethod
    def calculate_booking_amount(showtime, seats):

        seat_prices = []
        subtotal = Decimal('0.00')
        for seat in seats:
            price = PriceCalculator.seat_price(showtime.price, seat.seat_type)
            seat_prices.append((seat, price))
            subtotal += price

        service_fee = round_money(subtotal * settings.SERVICE_FEE_RATE)
        total_amount = round_money(subtotal + service_fee)

        return {
            'seat_prices': seat_prices,
            'subtotal': subtotal,
            'service_fee': service_fee,
            'total_amount': total_amount,
        }

    @staticmethod
    def showtime_price(movie, room):

        multiplier = settings.ROOM_TYPE_MULTIPLIERS[room.room_type]
        return round_money(movie.price * multiplier)

    @staticmethod
    def refund_amount(total_price):
        return round_money(Decimal(total_price) * settings.REFUND_RATE)
