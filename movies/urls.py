from django.urls import path
from . import views

urlpatterns = [
    path('showtimes/', views.showtimes, name='showtimes'),

    path('showtimes/<int:showtime_id>/', views.showtime_detail, name='showtime_detail'),

    path('showtimes/<int:showtime_id>/seats/', views.showtime_seats, name='showtime_seats'),
]
