from django.core.paginator import Paginator
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST, require_GET
import logging

from movies.serializers import parse_json_body, serialize_page
from .decorators import api_login_required
from .exceptions import InvalidRequest, NotFound
from .serializers import serialize_booking
from .services import BookingService, role_for

logger = logging.getLogger(__name__)


@csrf_exempt
@api_login_required
@require_http_methods(["GET", "POST"])
def bookings(request):

    if request.method == "POST":
        return create_booking(request)
    return list_bookings(request)


def create_booking(request):

    data = parse_json_body(request)

    booking = BookingService.create_booking(
        showtime_id=data.get('showtime_id'),
        seat_ids=data.get('seat_ids'),
        user=request.user,
        payment_method=data.get('payment_method'),
        customer_email=data.get('customer_email'),
    )

    return JsonResponse({
        'success': True,
        'message': 'Booking created successfully',
        'data': {'booking': serialize_booking(booking)},
    }, status=201)


def list_bookings(request):

    try:
        page_number = int(request.GET.get('page', 1))
        limit = int(request.GET.get('limit', 10))
    except ValueError:
        raise InvalidRequest('page and limit must be integers')
    if page_number < 1 or not 1 <= limit <= 100:
        raise InvalidRequest('page must be >= 1 and limit between 1 and 100')

    queryset = BookingService.list_bookings(request.user, status=request.GET.get('status'))
    page = Paginator(queryset, limit).get_page(page_number)

    return JsonResponse({
        'success': True,
        'data': {
            'bookings': [serialize_booking(booking) for booking in page.object_list],
            'pagination': serialize_page(page),
        },
    })


@api_login_required
@require_GET
def booking_detail(request, booking_id):

    booking = BookingService.get_booking(booking_id, request.user, role_for(request.user))
    return JsonResponse({
        'success': True,
        'data': {'booking': serialize_booking(booking)},
    })


@csrf_exempt
@api_login_required
@require_POST
def cancel_booking(request, booking_id):

    result = BookingService.cancel_booking(booking_id, request.user, role_for(request.user))
    return JsonResponse({
        'success': True,
        'message': 'Booking cancelled successfully',
        'data': result,
    })


@api_login_required
@require_GET
def booking_receipt(request, booking_id):

    booking = BookingService.get_booking(booking_id, request.user, role_for(request.user))
    if not booking.receipt_url:
        raise NotFound('Receipt not available')

    return JsonResponse({
        'success': True,
        'message': 'Receipt ready for download',
        'data': {
            'download_url': booking.receipt_url,
            'filename': f"receipt-{booking.transaction_id}.pdf",
        },
    })
