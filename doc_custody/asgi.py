"""ASGI entrypoint. The event monitor and sweep share this process's event loop."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "doc_custody.settings")

application = get_asgi_application()
