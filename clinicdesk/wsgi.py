"""
WSGI config for the clinicdesk project.

It exposes the WSGI callable as a module-level variable named ``application``.
Realtime updates need the ASGI entry point (``clinicdesk.asgi``); under
WSGI the API works but nothing is pushed to open clients.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clinicdesk.settings')

application = get_wsgi_application()
