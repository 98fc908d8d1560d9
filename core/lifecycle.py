"""Forward-only NFT status transitions.

Each transition is one conditional UPDATE filtered on the allowed source
statuses, so concurrent handlers cannot move a record backwards (a pulled
token never becomes minted again, whatever order events arrive in).
"""

from django.utils import timezone

from .models import NFT_TRANSITIONS, NFTRecord, NFTStatus


async def transition(token_id: str, to_status: str, **fields) -> bool:
	"""
	Move token_id to to_status if its current status allows it.
	Returns True when a row changed.
	"""
	allowed_from = NFT_TRANSITIONS[NFTStatus(to_status)]
	updated = await NFTRecord.objects.filter(
		token_id=str(token_id), status__in=allowed_from
	).aupdate(status=to_status, updated_at=timezone.now(), **fields)
	return updated > 0


async def mark_minted(token_id: str, tx_hash: str) -> bool:
	return await transition(token_id, NFTStatus.MINTED, mint_tx_hash=tx_hash)


async def mark_redeemed(token_id: str, recipient: str) -> bool:
	"""minted -> redeemed, only when the transfer went to the recorded recipient."""
	updated = await NFTRecord.objects.filter(
		token_id=str(token_id),
		status__in=NFT_TRANSITIONS[NFTStatus.REDEEMED],
		recipient_address=recipient.lower(),
	).aupdate(status=NFTStatus.REDEEMED, updated_at=timezone.now())
	return updated > 0


async def mark_pulled(token_id: str, tx_hash: str) -> bool:
	return await transition(token_id, NFTStatus.PULLED, pull_tx_hash=tx_hash)
