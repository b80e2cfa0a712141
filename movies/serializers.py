import json

from bookings.exceptions import InvalidRequest


def parse_json_body(request):

    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequest('Request body must be valid JSON')
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object')
    return data


def serialize_movie(movie):
    return {
        'id': movie.id,
        'title': movie.title,
        'genre': movie.genre,
        'duration': movie.duration,
        'rating': movie.rating,
        'poster': movie.poster,
        'status': movie.status,
    }


def serialize_room(room):
    return {
        'id': room.id,
        'name': room.name,
        'capacity': room.capacity,
        'type': room.room_type,
        'location': room.location,
    }


def serialize_seat(seat):
    return {
        'id': seat.id,
        'row': seat.row,
        'number': seat.number,
        'type': seat.seat_type,
    }


def serialize_showtime(showtime):
    return {
        'id': showtime.id,
        'date': showtime.date.isoformat(),
        'time': showtime.time.strftime('%H:%M:%S'),
        'price': showtime.price,
        'available_seats': showtime.available_seats,
        'total_seats': showtime.total_seats,
        'movie': serialize_movie(showtime.movie),
        'room': serialize_room(showtime.room),
    }


def serialize_page(page):
    return {
        'total': page.paginator.count,
        'page': page.number,
        'totalPages': page.paginator.num_pages,
        'hasNext': page.has_next(),
        'hasPrev': page.has_previous(),
    }
