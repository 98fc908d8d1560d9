"""Pullback authorizer: the only path that moves recipient assets.

Authorization is always re-derived from live chain reads at call time. The
approval ledger and the local recipient address are never trusted here,
because approvals can be revoked and tokens can move after they were recorded.

Order for both pulls: validate -> live checks -> chain write -> confirmation
-> local record. A crash after the write leaves the local mirror stale; the
reconciliation sweep surfaces that later.
"""

import logging

from django.db import DatabaseError
from django.utils import timezone

from .audit import record_audit
from .constants import normalize_address, parse_amount
from .exceptions import (
	CustodyError,
	InsufficientAllowance,
	InsufficientBalance,
	InvalidState,
	NotApproved,
	NotFound,
	PersistenceError,
	RequestValidationError,
)
from .lifecycle import mark_pulled
from .models import NFTRecord, PULLABLE_STATUSES, PullbackHistoryRecord, PullbackStatus

logger = logging.getLogger(__name__)

# Raised before anything is submitted; these never produce a failed history row.
PRECONDITION_ERRORS = (RequestValidationError, InsufficientAllowance, InsufficientBalance)


async def pull_token(token_id: str, operator_address: str, *, gateway, client=None) -> dict:
	"""
	Reclaim an NFT from whoever holds it now.
	"""
	operator = normalize_address(operator_address, "operatorAddress")

	nft = await NFTRecord.objects.filter(token_id=str(token_id)).afirst()
	if nft is None:
		raise NotFound("NFT not found", details={"tokenId": str(token_id)})

	if nft.status not in PULLABLE_STATUSES:
		raise InvalidState("NFT not yet minted or already pulled", details={"status": nft.status})

	# the chain, not nft.recipient_address, decides who we pull from
	current_owner = (await gateway.owner_of(nft.token_id)).lower()

	if not await gateway.is_approved_for_all(current_owner, operator):
		raise NotApproved(details={"currentOwner": current_owner, "operatorAddress": operator})

	logger.info("Pulling back token %s from %s", nft.token_id, current_owner)
	tx_hash = await gateway.pull_back(current_owner, nft.token_id)
	await gateway.wait_for_transaction(tx_hash)

	if not await mark_pulled(nft.token_id, tx_hash):
		logger.info("Token %s pulled on-chain; status was already terminal", nft.token_id)

	await record_audit("token_pulled", operator, metadata={
		"tokenId": nft.token_id,
		"fromAddress": current_owner,
		"txHash": tx_hash,
	}, token_id=nft.token_id, tx_hash=tx_hash, client=client)

	return {
		"tokenId": nft.token_id,
		"txHash": tx_hash,
		"fromAddress": current_owner,
		"toAddress": operator,
	}


async def _record_failed_pullback(*, token_contract, from_address, operator, amount, token_info,
								  tx_hash, error, gateway):
	"""
	Best-effort forensic row for a failed pull. Its own failure is logged and
	dropped so it never masks the original error.
	"""
	try:
		if token_info is None:
			token_info = await gateway.get_erc20_token_info(token_contract)
		await PullbackHistoryRecord.objects.acreate(
			token_contract_address=token_contract.lower(),
			token_symbol=token_info["symbol"],
			token_name=token_info["name"],
			token_decimals=token_info["decimals"],
			from_address=from_address.lower(),
			operator_address=(operator or "").lower(),
			amount=str(amount or "0"),
			tx_hash=tx_hash or "",
			event_timestamp=timezone.now(),
			status=PullbackStatus.FAILED,
			error_message=str(error),
		)
	except Exception:
		logger.exception("Failed to record failed ERC-20 pullback in database")


async def pull_back_erc20(token_contract: str, from_address: str, amount, operator_address: str,
						  *, gateway, client=None) -> dict:
	"""
	Pull `amount` smallest units of an approved ERC-20 balance from from_address.
	Allowance and balance are checked live, before any transaction is sent.
	"""
	if not token_contract or not from_address or not amount or not operator_address:
		raise RequestValidationError("Missing required fields: tokenContract, fromAddress, amount, operatorAddress")

	token_info = None
	tx_hash = None
	try:
		token_contract = normalize_address(token_contract, "tokenContract")
		from_address = normalize_address(from_address, "fromAddress")
		operator = normalize_address(operator_address, "operatorAddress")
		units = parse_amount(amount)

		token_info = await gateway.get_erc20_token_info(token_contract)
		status = await gateway.check_erc20_status(token_contract, from_address)
		allowance = int(status["allowance"])
		balance = int(status["balance"])

		if allowance < units:
			raise InsufficientAllowance(details={"required": str(units), "current": str(allowance)})
		if balance < units:
			raise InsufficientBalance(details={"required": str(units), "current": str(balance)})

		logger.info("Pulling back %s %s from %s", units, token_info["symbol"], from_address)
		tx_hash = await gateway.pull_back_erc20(token_contract, from_address, units)
		receipt = await gateway.wait_for_transaction(tx_hash)

		record = await PullbackHistoryRecord.objects.acreate(
			token_contract_address=token_contract,
			token_symbol=token_info["symbol"],
			token_name=token_info["name"],
			token_decimals=token_info["decimals"],
			from_address=from_address,
			operator_address=operator,
			amount=str(units),
			tx_hash=tx_hash,
			block_number=receipt["block_number"],
			event_timestamp=timezone.now(),
			status=PullbackStatus.COMPLETED,
		)
	except PRECONDITION_ERRORS:
		raise
	except Exception as e:
		logger.error("Error pulling back ERC-20 tokens from %s: %s", from_address, e)
		await _record_failed_pullback(
			token_contract=token_contract,
			from_address=from_address,
			operator=operator_address,
			amount=amount,
			token_info=token_info,
			tx_hash=tx_hash,
			error=e.message if isinstance(e, CustodyError) else e,
			gateway=gateway,
		)
		if isinstance(e, DatabaseError):
			raise PersistenceError("Pullback submitted but could not be recorded", details={"txHash": tx_hash}) from e
		raise

	await record_audit("erc20_pulled", operator, metadata={
		"tokenContract": token_contract,
		"tokenSymbol": token_info["symbol"],
		"fromAddress": from_address,
		"amount": str(units),
		"txHash": tx_hash,
	}, tx_hash=tx_hash, client=client)

	return {
		"txHash": tx_hash,
		"blockNumber": receipt["block_number"],
		"tokenInfo": token_info,
		"fromAddress": from_address,
		"operatorAddress": operator,
		"amount": str(units),
		"record": record.to_dict(),
	}


async def pullback_history(operator: str | None = None, from_address: str | None = None,
						   token_contract: str | None = None, status: str | None = None,
						   limit: int = 100) -> list[PullbackHistoryRecord]:
	qs = PullbackHistoryRecord.objects.all()
	if operator:
		qs = qs.filter(operator_address=operator.lower())
	if from_address:
		qs = qs.filter(from_address=from_address.lower())
	if token_contract:
		qs = qs.filter(token_contract_address=token_contract.lower())
	if status:
		if status not in PullbackStatus.values:
			raise RequestValidationError("Unknown status", details={"allowed": list(PullbackStatus.values)})
		qs = qs.filter(status=status)
	return [r async for r in qs.order_by("-event_timestamp", "-id")[:limit]]
