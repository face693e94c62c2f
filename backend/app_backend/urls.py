from django.contrib import admin
from django.urls import path, include

from rides.urls import booking_urlpatterns
from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("api/health/", health_check),  # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # register, login, refresh, me

    # Rides and bookings (at /api/rides/, /api/bookings/)
    path('api/rides/', include('rides.urls')),
    path('api/bookings/', include(booking_urlpatterns)),

    # Memberships (at /api/memberships/)
    path('api/memberships/', include('memberships.urls')),

    # Ride conversations (at /api/chat/)
    path('api/chat/', include('chat.urls')),
]
