"""
Root, client shell and catch-all routes.

The built client (``CLIENT_DIST_DIR``) is a single page app: its assets
are served by whitenoise and every other non-API path gets
``index.html`` so the client router can take over.  Unknown ``/api/``
paths stay JSON so API callers never receive HTML.
"""
from __future__ import annotations

from django.conf import settings
from django.http import FileResponse, JsonResponse
from django.utils import timezone

from clinic.exceptions import error_payload


def _shell_response():
    index = settings.CLIENT_DIST_DIR / 'index.html'
    if not index.is_file():
        return JsonResponse(error_payload('not_found', 'Client application is not built.'), status=404)
    return FileResponse(index.open('rb'), content_type='text/html')


def root(request):
    if 'text/html' in request.headers.get('Accept', ''):
        return _shell_response()
    return JsonResponse({
        'status': 'ok',
        'service': settings.SERVICE_NAME,
        'time': timezone.now().isoformat(),
    })


def api_not_found(request, path=''):
    return JsonResponse(error_payload('not_found', f'No API route for {request.path}'), status=404)


def client_shell(request, path=''):
    return _shell_response()
