"""
URL configuration for the clinicdesk project.

Routes the Django admin, the clinic API, Prometheus metrics and the
OpenAPI documentation (``/swagger/`` and ``/redoc/``).  The catch-all
patterns come last: unknown ``/api/`` paths answer a JSON 404 and any
other path gets the client shell.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path, re_path

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

from clinic.views import spa

# API metadata for Swagger/OpenAPI documentation
api_info = openapi.Info(
    title="Clinic API",
    default_version='v1',
    description="Front desk, queue and consultation services for the clinic.",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('', spa.root, name='root'),
    path('admin/', admin.site.urls),
    path('', include('clinic.routers')),
    path('', include('django_prometheus.urls')),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]

# Uploaded patient photos in development
urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

urlpatterns += [
    re_path(r'^api(?:/(?P<path>.*))?$', spa.api_not_found, name='api_not_found'),
    re_path(r'^(?P<path>.*)$', spa.client_shell, name='client_shell'),
]
