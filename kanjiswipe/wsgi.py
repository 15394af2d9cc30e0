"""WSGI entry point for the kanjiswipe project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'kanjiswipe.settings')

application = get_wsgi_application()
