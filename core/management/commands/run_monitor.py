"""Run the chain event loop (and the periodic ownership sweep) in the foreground."""

import asyncio
import logging
import signal

from django.conf import settings
from django.core.management.base import BaseCommand

from core.adapters.chain_adapter import get_chain_gateway
from core.events import EventMonitor

logger = logging.getLogger(__name__)


class Command(BaseCommand):
	help = "Poll DocumentNFT events into the ledger and run the reconciliation sweep"

	def add_arguments(self, parser):
		parser.add_argument("--from-block", type=int, default=None, help="First block to scan (default: chain head)")
		parser.add_argument("--poll-seconds", type=float, default=None)
		parser.add_argument(
			"--reconcile-seconds", type=int, default=settings.RECONCILE_INTERVAL_SECONDS,
			help="Sweep interval; 0 disables the sweep",
		)

	def handle(self, *args, **opts):
		asyncio.run(self._run(opts))

	async def _run(self, opts):
		monitor = EventMonitor(
			get_chain_gateway(),
			poll_interval=opts["poll_seconds"],
			reconcile_interval=opts["reconcile_seconds"],
		)
		done = asyncio.Event()
		loop = asyncio.get_running_loop()
		for sig in (signal.SIGINT, signal.SIGTERM):
			try:
				loop.add_signal_handler(sig, done.set)
			except NotImplementedError:
				pass

		await monitor.start(opts["from_block"])
		self.stdout.write(self.style.SUCCESS(f"Monitoring from block {monitor.cursor}"))
		try:
			await done.wait()
		finally:
			await monitor.stop()
			self.stdout.write(str(monitor.status()))
