"""Document NFT records: two-phase creation and the on-chain mint.

register_document creates the record with a placeholder content reference so
the token id is fixed immediately; the storage pipeline later calls
attach_content_reference. Readers may see the placeholder in between.
"""

import logging

from django.db import IntegrityError
from django.db.models import Count

from .audit import record_audit
from .constants import normalize_address
from .exceptions import ChainGatewayError, InvalidState, NotFound, RequestValidationError, TokenNotFound
from .lifecycle import mark_minted
from .models import NFTRecord, NFTStatus, PULLABLE_STATUSES

logger = logging.getLogger(__name__)


async def register_document(token_id: str, recipient: str, investor: str, token_uri: str,
							original_filename: str = "", *, client=None) -> NFTRecord:
	if not token_id or not str(token_id).isdigit():
		raise RequestValidationError("tokenId must be a decimal integer string")
	if not token_uri:
		raise RequestValidationError("tokenURI is required")
	recipient = normalize_address(recipient, "recipientAddress")
	investor = normalize_address(investor, "investorAddress")
	try:
		nft = await NFTRecord.objects.acreate(
			token_id=str(token_id),
			recipient_address=recipient,
			investor_address=investor,
			token_uri=token_uri,
			original_filename=original_filename or "",
		)
	except IntegrityError:
		raise InvalidState("tokenId already registered", details={"tokenId": str(token_id)})
	await record_audit("document_registered", investor, metadata={
		"recipient": recipient,
		"filename": original_filename,
	}, token_id=nft.token_id, client=client)
	return nft


async def attach_content_reference(token_id: str, content_ref: str) -> NFTRecord:
	"""
	Second phase of the document write. Idempotent: re-attaching the same
	reference is a no-op.
	"""
	if not content_ref:
		raise RequestValidationError("contentRef is required")
	updated = await NFTRecord.objects.filter(token_id=str(token_id)).aupdate(content_ref=content_ref)
	if not updated:
		raise NotFound("NFT not found", details={"tokenId": str(token_id)})
	return await NFTRecord.objects.aget(token_id=str(token_id))


async def get_nft(token_id: str, *, gateway) -> dict:
	"""
	Record plus the live owner when the token should exist on-chain.
	"""
	nft = await NFTRecord.objects.filter(token_id=str(token_id)).afirst()
	if nft is None:
		raise NotFound("NFT not found", details={"tokenId": str(token_id)})
	owner = None
	if nft.status in PULLABLE_STATUSES:
		try:
			owner = await gateway.owner_of(nft.token_id)
		except TokenNotFound:
			logger.info("Token %s not yet on-chain", nft.token_id)
		except ChainGatewayError as e:
			logger.warning("Could not read owner of %s: %s", nft.token_id, e)
	return {"nft": nft.to_dict(), "owner": owner}


async def list_documents(investor: str | None = None, status: str | None = None, limit: int = 200,
						 recipient: str | None = None) -> list[NFTRecord]:
	qs = NFTRecord.objects.all()
	if investor:
		qs = qs.filter(investor_address=investor.lower())
	if recipient:
		qs = qs.filter(recipient_address=recipient.lower())
	if status:
		if status not in NFTStatus.values:
			raise RequestValidationError("Unknown status", details={"allowed": list(NFTStatus.values)})
		qs = qs.filter(status=status)
	return [n async for n in qs.order_by("-created_at")[:limit]]


async def dashboard_stats(investor: str, recent: int = 10) -> dict:
	"""
	Per-status document counts for an investor plus their newest documents.
	"""
	investor = normalize_address(investor, "investorAddress")
	qs = NFTRecord.objects.filter(investor_address=investor)
	stats = {"totalDocuments": 0}
	stats.update({status: 0 for status in NFTStatus.values})
	async for row in qs.values("status").annotate(n=Count("id")):
		stats[row["status"]] = row["n"]
		stats["totalDocuments"] += row["n"]
	recent_docs = [n async for n in qs.order_by("-created_at")[:recent]]
	return {"stats": stats, "recentDocuments": recent_docs}


async def mint_token(token_id: str, *, gateway, client=None) -> dict:
	"""
	Mint the recorded document to its recipient: uploaded -> minted.
	"""
	nft = await NFTRecord.objects.filter(token_id=str(token_id)).afirst()
	if nft is None:
		raise NotFound("NFT not found", details={"tokenId": str(token_id)})
	if nft.status != NFTStatus.UPLOADED:
		raise InvalidState("NFT already minted", details={"status": nft.status})

	tx_hash = await gateway.mint_to(nft.recipient_address, nft.token_uri)
	receipt = await gateway.wait_for_transaction(tx_hash)

	if not await mark_minted(nft.token_id, tx_hash):
		# TokenMinted event got there first; status is already past uploaded
		logger.info("Mint of %s confirmed but status already advanced", nft.token_id)

	await record_audit("nft_minted", nft.investor_address, metadata={
		"tokenId": nft.token_id,
		"txHash": tx_hash,
		"recipient": nft.recipient_address,
	}, token_id=nft.token_id, tx_hash=tx_hash, client=client)

	return {"tokenId": nft.token_id, "txHash": tx_hash, "blockNumber": receipt["block_number"], "status": NFTStatus.MINTED.value}
