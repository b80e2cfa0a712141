from django.urls import path
from . import views

urlpatterns = [

    path('', views.bookings, name='bookings'),
    path('<int:booking_id>/', views.booking_detail, name='booking_detail'),
    path('<int:booking_id>/cancel/', views.cancel_booking, name='cancel_booking'),
    path('<int:booking_id>/receipt/', views.booking_receipt, name='booking_receipt'),
]
