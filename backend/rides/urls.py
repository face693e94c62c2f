from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Ride board
    path('', views.rides, name='rides'),
    path('mine/', views.my_rides, name='my-rides'),
    path('driver/portal/', views.driver_portal, name='driver-portal'),

    # Rider actions
    path('<int:ride_id>/request/', views.request_ride, name='request-ride'),
    path('<int:ride_id>/accept/', views.accept_ride, name='accept-ride'),

    # Driver actions
    path('<int:ride_id>/start/', views.start_ride, name='start-ride'),
    path('<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),

    # Shared
    path('<int:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),
    path('<int:ride_id>/receipt/', views.ride_receipt, name='ride-receipt'),
    path('<int:ride_id>/receipt/email/', views.email_ride_receipt, name='email-ride-receipt'),
]

booking_urlpatterns = [
    path('<int:booking_id>/cancel/', views.cancel_booking, name='cancel-booking'),
]
