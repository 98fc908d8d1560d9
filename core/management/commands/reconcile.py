"""One-shot ownership sweep: recorded recipient vs on-chain owner."""

import asyncio
import json

from django.core.management.base import BaseCommand

from core.adapters.chain_adapter import get_chain_gateway
from core.reconciliation import reconcile_ownership


class Command(BaseCommand):
	help = "Compare recorded NFT recipients with live owners and report discrepancies"

	def handle(self, *args, **opts):
		report = asyncio.run(reconcile_ownership(gateway=get_chain_gateway()))
		self.stdout.write(json.dumps(report.to_dict(), indent=2))
		if report.discrepancies:
			self.stdout.write(self.style.WARNING(f"{len(report.discrepancies)} discrepancies found"))
		else:
			self.stdout.write(self.style.SUCCESS("No discrepancies"))
