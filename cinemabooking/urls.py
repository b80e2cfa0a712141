from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

handler400 = 'movies.error_handlers.handler400'
handler403 = 'movies.error_handlers.handler403'
handler404 = 'movies.error_handlers.handler404'
handler500 = 'movies.error_handlers.handler500'

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/bookings/', include('bookings.urls')),
    path('api/', include('movies.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
