"""Starts the event monitor with the first request when ENABLE_EVENT_MONITORING is set.

Django's ASGI handler has no startup hook, and the monitor needs the server's
running loop, so the first request is the earliest point it can attach.
"""

import logging

from asgiref.sync import iscoroutinefunction, markcoroutinefunction
from django.conf import settings

from .events import get_monitor

logger = logging.getLogger(__name__)


class MonitorAutostartMiddleware:
	async_capable = True
	sync_capable = False

	def __init__(self, get_response):
		self.get_response = get_response
		self.attempted = not settings.ENABLE_EVENT_MONITORING
		if iscoroutinefunction(self.get_response):
			markcoroutinefunction(self)

	async def __call__(self, request):
		if not self.attempted:
			self.attempted = True
			try:
				await get_monitor().start()
			except Exception:
				logger.exception("Event monitoring could not be started")
		return await self.get_response(request)
