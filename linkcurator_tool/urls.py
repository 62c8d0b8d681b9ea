"""Root URL configuration for linkcurator_tool.

The admin site browses the stored sessions, pages and blocks; the JSON API
lives under ``/api/``.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('linkcurator.urls')),
]
