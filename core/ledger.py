"""Approval ledger: off-chain mirror of NFT and ERC-20 approvals.

Both ingestion paths (chain events and client reports) append to the same
tables; tx_hash uniqueness is what makes replays and double reports harmless.
The "current" approval for a (grantor, operator) pair is the newest row in
chain order (timestamp, block, log index). The chain event is authoritative:
it overwrites a client-reported row for the same tx that disagrees with it,
and a client report that contradicts an existing row is rejected.
It is advisory: money never moves on ledger state alone.
"""

import logging
from datetime import datetime

from django.db import IntegrityError

from .audit import record_audit
from .constants import normalize_address, token_info_for
from .exceptions import InvalidState, RequestValidationError, TransactionNotFound
from .models import ApprovalRecord, ApprovalSource, ERC20ApprovalRecord

logger = logging.getLogger(__name__)

# newest first, ties broken by position on chain, then insertion
CHAIN_ORDER = ("-event_timestamp", "-block_number", "-log_index", "-id")


def _require_tx_hash(tx_hash) -> str:
	if not tx_hash or not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
		raise RequestValidationError("Invalid txHash")
	return tx_hash.lower()


async def _get_or_create(model, lookup: dict, defaults: dict):
	"""
	Keyed insert. A concurrent writer that wins the unique index makes us
	return its row instead.
	"""
	try:
		return await model.objects.aget_or_create(**lookup, defaults=defaults)
	except IntegrityError:
		return await model.objects.aget(**lookup), False


async def record_approval(grantor: str, operator: str, tx_hash: str, *, gateway, client=None):
	"""
	Client report of a setApprovalForAll transaction.

	The approval flag is re-read from the chain, never taken from the caller.
	Returns (record, created). Raises InvalidState when the tx is already
	recorded for a different grantor or operator.
	"""
	grantor = normalize_address(grantor, "walletAddress")
	operator = normalize_address(operator, "operatorAddress")
	tx_hash = _require_tx_hash(tx_hash)

	receipt = await gateway.get_transaction_receipt(tx_hash)
	if not receipt:
		raise TransactionNotFound(details={"txHash": tx_hash})

	is_approved = await gateway.is_approved_for_all(grantor, operator)
	event_timestamp = await gateway.get_block_timestamp(receipt["block_number"])

	record, created = await _get_or_create(
		ApprovalRecord,
		{"tx_hash": tx_hash},
		dict(
			grantor_address=grantor,
			operator_address=operator,
			is_approved=is_approved,
			block_number=receipt["block_number"],
			event_timestamp=event_timestamp,
			source=ApprovalSource.CLIENT,
		),
	)
	if not created and (record.grantor_address, record.operator_address) != (grantor, operator):
		logger.warning(
			"Approval report for %s claims %s -> %s, ledger has %s -> %s",
			tx_hash, grantor, operator, record.grantor_address, record.operator_address,
		)
		raise InvalidState("Transaction already recorded for a different approval", details={"txHash": tx_hash})
	if created:
		await record_audit("approval_recorded", grantor, metadata={
			"operatorAddress": operator,
			"isApproved": is_approved,
			"txHash": tx_hash,
		}, tx_hash=tx_hash, client=client)
	return record, created


async def record_approval_event(owner: str, operator: str, approved: bool, tx_hash: str,
								block_number: int, event_timestamp: datetime, log_index: int = 0):
	"""
	ApprovalForAll observed on-chain. Same ledger, same tx_hash key as the
	client path, so a replayed event is a no-op. A client row for the same tx
	that disagrees with the log is overwritten with the chain's version.
	Returns (record, created).
	"""
	tx_hash = tx_hash.lower()
	fields = dict(
		grantor_address=owner.lower(),
		operator_address=operator.lower(),
		is_approved=bool(approved),
		block_number=block_number,
		log_index=log_index,
		event_timestamp=event_timestamp,
		source=ApprovalSource.EVENT,
	)
	record, created = await _get_or_create(ApprovalRecord, {"tx_hash": tx_hash}, fields)
	if created or record.source == ApprovalSource.EVENT:
		return record, created

	if (record.grantor_address, record.operator_address, record.is_approved) != (
		fields["grantor_address"], fields["operator_address"], fields["is_approved"]
	):
		logger.warning(
			"Client-reported approval %s (%s -> %s) corrected from chain event (%s -> %s)",
			tx_hash, record.grantor_address, record.operator_address, fields["grantor_address"], fields["operator_address"],
		)
	await ApprovalRecord.objects.filter(pk=record.pk).aupdate(**fields)
	return await ApprovalRecord.objects.aget(pk=record.pk), False


async def record_erc20_approval(grantor: str, operator: str, token_contract: str, tx_hash: str,
								*, gateway, client=None):
	"""
	Client report of an ERC-20 approve() for a supported token.
	Returns (record, already_recorded).
	"""
	grantor = normalize_address(grantor, "walletAddress")
	operator = normalize_address(operator, "operatorAddress")
	token_contract = normalize_address(token_contract, "tokenContract")
	tx_hash = _require_tx_hash(tx_hash)
	info = token_info_for(token_contract)

	existing = await ERC20ApprovalRecord.objects.filter(
		tx_hash=tx_hash, token_contract_address=token_contract
	).afirst()
	if existing:
		return existing, True

	receipt = await gateway.get_transaction_receipt(tx_hash)
	if not receipt:
		raise TransactionNotFound(details={"txHash": tx_hash})
	event_timestamp = await gateway.get_block_timestamp(receipt["block_number"])

	record, created = await _get_or_create(
		ERC20ApprovalRecord,
		{"tx_hash": tx_hash, "token_contract_address": token_contract},
		dict(
			grantor_address=grantor,
			operator_address=operator,
			token_symbol=info["symbol"],
			block_number=receipt["block_number"],
			is_approved=True,
			event_timestamp=event_timestamp,
		),
	)
	if created:
		await record_audit("erc20_approval_recorded", grantor, metadata={
			"operatorAddress": operator,
			"tokenContract": token_contract,
			"tokenSymbol": info["symbol"],
			"txHash": tx_hash,
		}, tx_hash=tx_hash, client=client)
	return record, not created


# --- queries ---------------------------------------------------------------

async def approvals_for_grantor(grantor: str, operator: str | None = None) -> list[ApprovalRecord]:
	qs = ApprovalRecord.objects.filter(grantor_address=grantor.lower())
	if operator:
		qs = qs.filter(operator_address=operator.lower())
	return [r async for r in qs.order_by(*CHAIN_ORDER)]


async def approvals_for_operator(operator: str) -> list[ApprovalRecord]:
	qs = ApprovalRecord.objects.filter(operator_address=operator.lower())
	return [r async for r in qs.order_by(*CHAIN_ORDER)]


async def current_approval(grantor: str, operator: str) -> ApprovalRecord | None:
	return await ApprovalRecord.objects.filter(
		grantor_address=grantor.lower(), operator_address=operator.lower()
	).order_by(*CHAIN_ORDER).afirst()


def latest_per_grantor(rows) -> dict:
	"""
	Max-by-timestamp projection of newest-first rows: grantor -> row.
	"""
	current = {}
	for row in rows:
		current.setdefault(row.grantor_address, row)
	return current


async def current_approvals_for_operator(operator: str) -> list[ApprovalRecord]:
	"""
	Grantors whose latest ledger row for this operator is an approval.
	"""
	current = latest_per_grantor(await approvals_for_operator(operator))
	return [row for row in current.values() if row.is_approved]


async def erc20_approvals_for_operator(operator: str) -> list[ERC20ApprovalRecord]:
	qs = ERC20ApprovalRecord.objects.filter(operator_address=operator.lower(), is_approved=True)
	return [r async for r in qs.order_by("-event_timestamp", "-id")]
