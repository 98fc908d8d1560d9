"""Event ingestion loop for the DocumentNFT contract.

Polls the gateway for Transfer, ApprovalForAll, TokenPulledBack and TokenMinted
logs with a block cursor and feeds them into the approval ledger and the NFT
status machine. Handlers are independent and best-effort: one failing handler
is logged and never stops the loop. Handlers of one batch run concurrently;
same-key safety comes from the keyed inserts / conditional updates they use.

The loop lives on the caller's event loop (ASGI server or the run_monitor
command) and optionally drives the periodic reconciliation sweep.
"""

import asyncio
import logging
from contextlib import suppress

from django.conf import settings

from .adapters.chain_adapter import ChainEvent, get_chain_gateway
from .ledger import record_approval_event
from .lifecycle import mark_minted, mark_pulled, mark_redeemed
from .reconciliation import run_periodically

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


class EventMonitor:

	def __init__(self, gateway, *, poll_interval: float | None = None, reconcile_interval: float | None = None,
				 max_log_range: int | None = None):
		self.gateway = gateway
		self.poll_interval = poll_interval if poll_interval is not None else settings.CHAIN["EVENT_POLL_SECONDS"]
		self.reconcile_interval = (
			reconcile_interval if reconcile_interval is not None else settings.RECONCILE_INTERVAL_SECONDS
		)
		self.max_log_range = max_log_range or settings.CHAIN["MAX_LOG_RANGE"]
		self.cursor = None  # next block to scan
		self.processed = 0
		self.failed = 0
		self._task = None
		self._sweep_task = None
		self._sweep_stop = None
		self._handlers = {
			"Transfer": self.handle_transfer,
			"ApprovalForAll": self.handle_approval_for_all,
			"TokenPulledBack": self.handle_token_pulled_back,
			"TokenMinted": self.handle_token_minted,
		}

	@property
	def is_running(self) -> bool:
		# a poll task whose loop went away is finished, not running
		return self._task is not None and not self._task.done()

	async def start(self, from_block: int | None = None) -> bool:
		"""
		Start polling. Returns False (and does nothing) if already running.
		"""
		if self.is_running:
			logger.info("Event monitoring already running")
			return False
		await self._cancel_tasks()
		try:
			self.cursor = from_block if from_block is not None else await self.gateway.get_block_number()
		except Exception:
			logger.exception("Error starting event monitoring")
			raise
		self._task = asyncio.create_task(self._run(), name="event-monitor")
		self._task.add_done_callback(self._on_task_done)
		if self.reconcile_interval:
			self._sweep_stop = asyncio.Event()
			self._sweep_task = asyncio.create_task(
				run_periodically(gateway=self.gateway, interval=self.reconcile_interval, stop=self._sweep_stop),
				name="reconciliation-sweep",
			)
		logger.info("Event monitoring started at block %s", self.cursor)
		return True

	async def stop(self) -> bool:
		was_running = self.is_running
		await self._cancel_tasks()
		if was_running:
			logger.info("Event monitoring stopped")
		return was_running

	async def _cancel_tasks(self):
		if self._sweep_stop is not None:
			self._sweep_stop.set()
		for task in (self._task, self._sweep_task):
			if task is not None and not task.done():
				task.cancel()
				with suppress(asyncio.CancelledError):
					await task
		self._task = self._sweep_task = self._sweep_stop = None

	def _on_task_done(self, task):
		if task is not self._task:
			return
		if task.cancelled():
			logger.warning("Event monitor task was cancelled at block %s", self.cursor)
		elif task.exception() is not None:
			logger.error("Event monitor task died at block %s", self.cursor, exc_info=task.exception())

	def status(self) -> dict:
		return {
			"isMonitoring": self.is_running,
			"cursor": self.cursor,
			"processed": self.processed,
			"failed": self.failed,
			"reconcileIntervalSeconds": self.reconcile_interval or None,
		}

	async def _run(self):
		while True:
			try:
				await self.poll_once()
			except asyncio.CancelledError:
				raise
			except Exception:
				# cursor stays at the first unprocessed chunk; retried next tick
				logger.exception("Event poll failed")
			await asyncio.sleep(self.poll_interval)

	async def poll_once(self) -> int:
		"""
		Scan from the cursor to the chain head in chunks of at most
		max_log_range blocks. The cursor moves past each chunk once its
		events are dispatched.
		"""
		head = await self.gateway.get_block_number()
		if self.cursor is None:
			self.cursor = head
		seen = 0
		while self.cursor <= head:
			to_block = min(self.cursor + self.max_log_range - 1, head)
			events = await self.gateway.fetch_events(self.cursor, to_block)
			await self.dispatch(events)
			seen += len(events)
			self.cursor = to_block + 1
		return seen

	async def dispatch(self, events: list[ChainEvent]):
		await asyncio.gather(*(self.handle(ev) for ev in events))

	async def handle(self, event: ChainEvent):
		handler = self._handlers.get(event.name)
		if handler is None:
			return
		try:
			await handler(event)
			self.processed += 1
		except Exception:
			self.failed += 1
			logger.exception("Error handling %s event in tx %s", event.name, event.tx_hash)

	# --- handlers ----------------------------------------------------------

	async def handle_transfer(self, event: ChainEvent):
		frm, to, token_id = event.args["from"], event.args["to"], str(event.args["tokenId"])
		logger.info("Transfer event: Token %s from %s to %s", token_id, frm, to)
		if frm.lower() == ZERO_ADDRESS:
			# the mint itself; TokenMinted drives that transition
			return
		if await mark_redeemed(token_id, to):
			logger.info("Token %s redeemed by %s", token_id, to)

	async def handle_approval_for_all(self, event: ChainEvent):
		owner, operator, approved = event.args["owner"], event.args["operator"], event.args["approved"]
		logger.info("ApprovalForAll event: %s %s %s", owner, "approved" if approved else "revoked", operator)
		timestamp = await self.gateway.get_block_timestamp(event.block_number)
		await record_approval_event(
			owner, operator, approved, event.tx_hash, event.block_number, timestamp, log_index=event.log_index
		)

	async def handle_token_pulled_back(self, event: ChainEvent):
		token_id = str(event.args["tokenId"])
		logger.info("TokenPulledBack event: Token %s from %s by %s", token_id, event.args["from"], event.args["operator"])
		await mark_pulled(token_id, event.tx_hash)

	async def handle_token_minted(self, event: ChainEvent):
		token_id = str(event.args["tokenId"])
		logger.info("TokenMinted event: Token %s to %s", token_id, event.args["to"])
		await mark_minted(token_id, event.tx_hash)


_monitor = None


def get_monitor() -> EventMonitor:
	global _monitor
	if _monitor is None:
		_monitor = EventMonitor(get_chain_gateway())
	return _monitor
