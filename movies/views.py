from django.core.paginator import Paginator
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_GET

from bookings.decorators import api_admin_required
from bookings.exceptions import InvalidRequest
from .serializers import parse_json_body, serialize_page, serialize_room, serialize_showtime
from .services import ShowtimeLedger


@csrf_exempt
@require_http_methods(["GET", "POST"])
def showtimes(request):

    if request.method == "POST":
        return create_showtime(request)

    try:
        page_number = int(request.GET.get('page', 1))
        limit = int(request.GET.get('limit', 20))
    except ValueError:
        raise InvalidRequest('page and limit must be integers')
    if page_number < 1 or not 1 <= limit <= 100:
        raise InvalidRequest('page must be >= 1 and limit between 1 and 100')

    queryset = ShowtimeLedger.list_showtimes(
        movie_id=request.GET.get('movieId'),
        room_id=request.GET.get('roomId'),
        date=request.GET.get('date'),
    )
    page = Paginator(queryset, limit).get_page(page_number)

    return JsonResponse({
        'success': True,
        'data': {
            'showtimes': [serialize_showtime(showtime) for showtime in page.object_list],
            'pagination': serialize_page(page),
        },
    })


@api_admin_required
def create_showtime(request):

    data = parse_json_body(request)
    missing = [field for field in ('movie_id', 'room_id', 'date', 'time') if not data.get(field)]
    if missing:
        raise InvalidRequest(f"Missing fields: {', '.join(missing)}")

    showtime = ShowtimeLedger.create_showtime(
        movie_id=data['movie_id'],
        room_id=data['room_id'],
        date=data['date'],
        time=data['time'],
        price=data.get('price'),
    )

    return JsonResponse({
        'success': True,
        'message': 'Showtime created successfully',
        'data': {'showtime': serialize_showtime(showtime)},
    }, status=201)


@csrf_exempt
@api_admin_required
@require_http_methods(["PATCH", "DELETE"])
def showtime_detail(request, showtime_id):

    if request.method == "DELETE":
        ShowtimeLedger.delete_showtime(showtime_id)
        return JsonResponse({'success': True, 'message': 'Showtime deleted successfully'})

    data = parse_json_body(request)
    changes = {}
    for field, key in (('movie', 'movie_id'), ('room', 'room_id'), ('date', 'date'), ('time', 'time'), ('price', 'price')):
        if key in data:
            changes[field] = data[key]

    showtime = ShowtimeLedger.update_showtime(showtime_id, **changes)

    return JsonResponse({
        'success': True,
        'message': 'Showtime updated successfully',
        'data': {'showtime': serialize_showtime(showtime)},
    })


@require_GET
def showtime_seats(request, showtime_id):

    showtime, seat_map = ShowtimeLedger.seat_map(showtime_id)

    response = JsonResponse({
        'success': True,
        'data': {
            'showtime': {
                'id': showtime.id,
                'date': showtime.date.isoformat(),
                'time': showtime.time.strftime('%H:%M:%S'),
                'price': showtime.price,
                'available_seats': showtime.available_seats,
            },
            'room': serialize_room(showtime.room),
            'seats': seat_map,
        },
    })
    response['Cache-Control'] = 'no-cache, no-store, must-revalidate, max-age=0'
    return response
