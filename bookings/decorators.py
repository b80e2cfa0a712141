from functools import wraps

from movies.error_handlers import error_response


def api_login_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return error_response('Authentication required.', 401)
        return view_func(request, *args, **kwargs)

    return wrapper


def api_admin_required(view_func):
    @wraps(view_func)
    @api_login_required
    def wrapper(request, *args, **kwargs):
        if not (request.user.is_staff or request.user.is_superuser):
            return error_response('You do not have permission to access this resource.', 403)
        return view_func(request, *args, **kwargs)

    return wrapper
