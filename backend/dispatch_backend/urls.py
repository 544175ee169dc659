from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),

    # Authentication endpoints (register, login, refresh)
    path('api/auth/', include('accounts.urls')),

    # Driver APIs (profile, status, location)
    path('api/driver/', include('drivers.urls')),

    # Ride lifecycle and fare preview
    path('api/rides/', include('rides.urls')),

    # Geocoding, routing and place suggestions
    path('api/maps/', include('maps.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
