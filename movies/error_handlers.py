import logging
from django.conf import settings
from django.http import JsonResponse
from django.core.exceptions import PermissionDenied
from django.db import DatabaseError

from bookings.exceptions import BookingError

logger = logging.getLogger(__name__)


def error_response(message, status, exception=None, **extra):

    payload = {
        'success': False,
        'message': message,
    }
    payload.update(extra)
    # Internal detail is for development only
    if settings.DEBUG and exception is not None:
        payload['error'] = f"{type(exception).__name__}: {exception}"
    return JsonResponse(payload, status=status)


def booking_error_response(exception):

    payload = exception.to_dict()
    return JsonResponse(payload, status=exception.status_code)


def handler400(request, exception):

    logger.warning(f'400 Error: {exception}')
    return error_response('The request could not be understood.', 400, exception)


def handler403(request, exception):

    logger.warning(f'403 Error: {exception}')
    return error_response('You do not have permission to access this resource.', 403, exception)


def handler404(request, exception):

    logger.warning(f'404 Error: {exception}')
    return error_response('The requested resource was not found.', 404)


def handler500(request):

    logger.error('500 Internal Server Error')
    return error_response('Internal server error.', 500)


def handler503(request, exception=None):

    logger.error('503 Service Unavailable')
    return error_response('The service is temporarily unavailable.', 503, exception)


class GlobalExceptionMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        return response

    def process_exception(self, request, exception):

        if isinstance(exception, BookingError):
            if exception.status_code >= 500:
                logger.error(f'{exception.code} on {request.path}: {exception.message}', exc_info=True)
            else:
                logger.info(f'{exception.code} on {request.path}: {exception.message}')
            return booking_error_response(exception)

        logger.error(f'Unhandled exception: {exception}', exc_info=True)

        if isinstance(exception, DatabaseError):
            return handler503(request, exception)
        elif isinstance(exception, PermissionDenied):
            return handler403(request, exception)

        return error_response('Internal server error.', 500, exception)
