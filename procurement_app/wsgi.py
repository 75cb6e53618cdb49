"""
WSGI config for procurement_app project.

It exposes the WSGI callable as a module-level variable named ``application``.
The schema phase runs once here, before the first request is served.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "procurement_app.settings")

application = get_wsgi_application()

from core.readiness import ensure_schema  # noqa: E402

ensure_schema()
