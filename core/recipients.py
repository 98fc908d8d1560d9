"""Connected-recipients dashboard for an operator.

Merges three weakly-consistent sources on every request: the ERC-20 approval
ledger, the NFT records issued by the operator, and live balance/allowance/
approval reads. Nothing is cached. Each live read degrades to "0"/False on
failure so one bad RPC call cannot blank the dashboard.

This is an N+1 fan-out (supported tokens + 1 live reads per recipient); it is
sized for operator-curated recipient lists, not marketplace scale.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from django.conf import settings
from django.utils import timezone

from .constants import normalize_address, supported_tokens
from .ledger import approvals_for_operator, erc20_approvals_for_operator, latest_per_grantor
from .models import NFTRecord, PullbackHistoryRecord, PullbackStatus

logger = logging.getLogger(__name__)


@dataclass
class TokenPosition:
	symbol: str
	contract: str
	approved: bool = False
	allowance: str = "0"
	balance: str = "0"
	tx_hash: str | None = None
	approved_at: datetime | None = None

	def to_dict(self):
		return {
			"contract": self.contract,
			"approved": self.approved,
			"allowance": self.allowance,
			"balance": self.balance,
			"txHash": self.tx_hash,
			"approvedAt": self.approved_at.isoformat() if self.approved_at else None,
		}


@dataclass
class RecipientSummary:
	wallet_address: str
	nft_approved: bool = False
	nft_ledger_approved: bool | None = None
	tokens: dict = field(default_factory=dict)  # lower-case symbol -> TokenPosition
	nfts_received: list = field(default_factory=list)
	pullback_history: list = field(default_factory=list)
	first_approval_at: datetime | None = None
	has_any_approval: bool = False

	def to_dict(self):
		return {
			"walletAddress": self.wallet_address,
			"approvals": {
				"nft": {"approved": self.nft_approved, "ledgerApproved": self.nft_ledger_approved},
				**{sym: {k: v for k, v in pos.to_dict().items() if k != "balance"} for sym, pos in self.tokens.items()},
			},
			"balances": {sym: pos.balance for sym, pos in self.tokens.items()},
			"tokens": {sym: pos.to_dict() for sym, pos in self.tokens.items()},
			"nftsReceived": self.nfts_received,
			"pullbackHistory": self.pullback_history,
			"firstApprovalAt": self.first_approval_at.isoformat() if self.first_approval_at else None,
			"totalNFTs": len(self.nfts_received),
			"hasAnyApproval": self.has_any_approval,
		}


async def _tolerant(coro, default, what: str):
	try:
		return await coro
	except Exception as e:
		logger.error("Error checking %s: %s", what, e)
		return default


def nft_approval_operator() -> str:
	return (settings.CHAIN.get("NFT_APPROVAL_OPERATOR") or settings.CHAIN["CONTRACT_ADDRESS"]).lower()


async def _summarise(recipient: str, *, erc20_rows, ledger_row, nfts, pullbacks, tokens, gateway) -> RecipientSummary:
	nft_operator = nft_approval_operator()
	empty = {"balance": "0", "allowance": "0"}

	reads = [
		_tolerant(gateway.check_erc20_status(contract, recipient), empty, f"{info['symbol']} status for {recipient}")
		for contract, info in tokens.items()
	]
	reads.append(_tolerant(gateway.is_approved_for_all(recipient, nft_operator), False, f"NFT approval for {recipient}"))
	results = await asyncio.gather(*reads)
	live_nft = bool(results[-1])

	summary = RecipientSummary(wallet_address=recipient, nft_approved=live_nft)
	if ledger_row is not None:
		summary.nft_ledger_approved = ledger_row.is_approved

	has_stored = False
	any_allowance = False
	timestamps = []
	for (contract, info), status in zip(tokens.items(), results[:-1]):
		stored = next((r for r in erc20_rows if r.token_contract_address == contract), None)
		allowance = str(status.get("allowance", "0"))
		positive = int(allowance) > 0
		summary.tokens[info["symbol"].lower()] = TokenPosition(
			symbol=info["symbol"],
			contract=contract,
			approved=stored is not None or positive,
			allowance=allowance,
			balance=str(status.get("balance", "0")),
			tx_hash=stored.tx_hash if stored else None,
			approved_at=stored.event_timestamp if stored else None,
		)
		has_stored = has_stored or stored is not None
		any_allowance = any_allowance or positive

	timestamps.extend(r.event_timestamp for r in erc20_rows)
	if ledger_row is not None and ledger_row.is_approved:
		has_stored = True
		timestamps.append(ledger_row.event_timestamp)
	summary.first_approval_at = min(timestamps) if timestamps else None

	summary.nfts_received = [
		{
			"tokenId": n.token_id,
			"filename": n.original_filename or "Unknown",
			"status": n.status,
			"receivedAt": n.created_at.isoformat() if n.created_at else None,
		}
		for n in nfts
	]
	summary.pullback_history = [
		{"tokenSymbol": p.token_symbol, "amount": p.amount, "txHash": p.tx_hash, "timestamp": p.event_timestamp.isoformat()}
		for p in pullbacks
	]
	# OR over ledger and chain: a revocation the ledger missed still shows up
	summary.has_any_approval = has_stored or any_allowance or live_nft
	return summary


def _sort_key(summary: RecipientSummary):
	# newest first approval first; recipients without a timestamp last
	ts = summary.first_approval_at
	return (ts is None, -(ts.timestamp()) if ts else 0)


async def get_connected_recipients(operator_address: str, *, gateway) -> dict:
	operator = normalize_address(operator_address, "operator")
	tokens = supported_tokens()

	erc20_rows = await erc20_approvals_for_operator(operator)
	nfts = [n async for n in NFTRecord.objects.filter(investor_address=operator).order_by("-created_at")]
	ledger_rows = latest_per_grantor(await approvals_for_operator(operator))

	by_recipient = {}
	for row in erc20_rows:
		by_recipient.setdefault(row.grantor_address.lower(), []).append(row)
	nfts_by_recipient = {}
	for n in nfts:
		nfts_by_recipient.setdefault(n.recipient_address.lower(), []).append(n)

	candidates = list(dict.fromkeys([*by_recipient, *nfts_by_recipient]))

	pullbacks = {}
	qs = PullbackHistoryRecord.objects.filter(
		operator_address=operator, status=PullbackStatus.COMPLETED, from_address__in=candidates
	).order_by("-event_timestamp")
	async for p in qs:
		pullbacks.setdefault(p.from_address, []).append(p)

	summaries = await asyncio.gather(*[
		_summarise(
			recipient,
			erc20_rows=by_recipient.get(recipient, []),
			ledger_row=ledger_rows.get(recipient),
			nfts=nfts_by_recipient.get(recipient, []),
			pullbacks=pullbacks.get(recipient, []),
			tokens=tokens,
			gateway=gateway,
		)
		for recipient in candidates
	])

	connected = sorted((s for s in summaries if s.has_any_approval), key=_sort_key)
	return {
		"recipients": connected,
		"count": len(connected),
		"totalRecipients": len(candidates),
		"lastUpdated": timezone.now().isoformat(),
	}
