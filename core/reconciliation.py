"""Owner reconciliation: recorded recipient vs live on-chain owner.

Log-only: discrepancies are reported, never corrected or persisted.
Tokens that do not exist on-chain yet are skipped, not flagged.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from django.conf import settings

from .exceptions import ChainGatewayError, TokenNotFound
from .models import NFTRecord, PULLABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
	checked: int = 0
	discrepancies: list = field(default_factory=list)
	skipped: list = field(default_factory=list)
	errors: list = field(default_factory=list)

	def to_dict(self):
		return {
			"checked": self.checked,
			"discrepancies": self.discrepancies,
			"skipped": self.skipped,
			"errors": self.errors,
			"ok": not self.discrepancies,
		}


async def reconcile_ownership(*, gateway) -> ReconciliationReport:
	logger.info("Starting data reconciliation")
	report = ReconciliationReport()
	qs = NFTRecord.objects.filter(status__in=PULLABLE_STATUSES).order_by("id")
	async for nft in qs:
		try:
			owner = await gateway.owner_of(nft.token_id)
		except TokenNotFound:
			logger.info("Token %s not yet minted on-chain", nft.token_id)
			report.skipped.append(nft.token_id)
			continue
		except ChainGatewayError as e:
			logger.warning("Could not check owner of token %s: %s", nft.token_id, e)
			report.errors.append({"tokenId": nft.token_id, "error": e.message})
			continue
		report.checked += 1
		if owner.lower() != nft.recipient_address.lower():
			logger.warning(
				"Discrepancy found for token %s: DB=%s, Chain=%s",
				nft.token_id, nft.recipient_address, owner,
			)
			report.discrepancies.append({
				"tokenId": nft.token_id,
				"status": nft.status,
				"recordedRecipient": nft.recipient_address,
				"chainOwner": owner.lower(),
			})
	logger.info(
		"Data reconciliation completed: %d checked, %d discrepancies, %d skipped",
		report.checked, len(report.discrepancies), len(report.skipped),
	)
	return report


async def run_periodically(*, gateway, interval: float | None = None, stop: asyncio.Event | None = None):
	"""
	Sweep every `interval` seconds until `stop` is set. A failed sweep is
	logged and the schedule continues.
	"""
	interval = interval or settings.RECONCILE_INTERVAL_SECONDS
	stop = stop or asyncio.Event()
	while not stop.is_set():
		try:
			await asyncio.wait_for(stop.wait(), timeout=interval)
		except asyncio.TimeoutError:
			pass
		if stop.is_set():
			break
		try:
			await reconcile_ownership(gateway=gateway)
		except Exception:
			logger.exception("Error during data reconciliation")
