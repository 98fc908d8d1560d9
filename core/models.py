"""Database models for the custody backend.


Tables:
- ApprovalRecord: ledger of setApprovalForAll grants/revocations, one row per tx
- ERC20ApprovalRecord: client-reported ERC-20 approve() transactions
- NFTStatus
- NFTRecord: one row per document NFT (authoritative owner is the chain)
- PullbackStatus
- PullbackHistoryRecord: one row per ERC-20 pull attempt (completed or failed)
- AuditLogEntry: diagnostic trail of state-changing actions

Addresses are stored lower-case. Token amounts are decimal strings of
smallest-unit integers.
"""

import uuid
from django.db import models
from django.db.models import Q


class ApprovalSource(models.TextChoices):
	EVENT = "event", "Chain event"
	CLIENT = "client", "Client report"


class ApprovalRecord(models.Model):
	"""
	One row per observed ApprovalForAll transaction, from either ingestion path.

	tx_hash is unique so the event loop and a client report of the same tx
	collapse into a single row. Current state per pair = latest by chain position
	(event_timestamp, block_number, log_index); see core.ledger.CHAIN_ORDER.
	"""
	id = models.BigAutoField(primary_key=True)
	grantor_address = models.CharField(max_length=42, db_index=True)
	operator_address = models.CharField(max_length=42, db_index=True)
	is_approved = models.BooleanField()
	tx_hash = models.CharField(max_length=66, unique=True)
	block_number = models.BigIntegerField()
	log_index = models.IntegerField(default=0)
	event_timestamp = models.DateTimeField()
	recorded_at = models.DateTimeField(auto_now_add=True)
	source = models.CharField(max_length=8, choices=ApprovalSource.choices, default=ApprovalSource.EVENT)

	class Meta:
		indexes = [
			models.Index(fields=["grantor_address", "operator_address", "-event_timestamp", "-block_number", "-log_index"]),
		]


class ERC20ApprovalRecord(models.Model):
	"""
	Client-reported ERC-20 approve() transaction for a supported token.
	Uniqueness: (tx_hash, token_contract_address)
	"""
	id = models.BigAutoField(primary_key=True)
	grantor_address = models.CharField(max_length=42, db_index=True)
	operator_address = models.CharField(max_length=42, db_index=True)
	token_contract_address = models.CharField(max_length=42)
	token_symbol = models.CharField(max_length=16)
	tx_hash = models.CharField(max_length=66)
	block_number = models.BigIntegerField(null=True, blank=True)
	is_approved = models.BooleanField(default=True)
	event_timestamp = models.DateTimeField()
	recorded_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=["tx_hash", "token_contract_address"], name="uniq_erc20_approval_tx_token"),
		]
		indexes = [
			models.Index(fields=["grantor_address", "operator_address", "token_contract_address"]),
			models.Index(fields=["operator_address", "is_approved"]),
		]


class NFTStatus(models.TextChoices):
	UPLOADED = "uploaded", "Uploaded"
	MINTED = "minted", "Minted"
	REDEEMED = "redeemed", "Redeemed"
	PULLED = "pulled", "Pulled"
	REVOKED = "revoked", "Revoked"  # terminal, no transition sets it yet


# Allowed source statuses for each forward transition. pulled/revoked are terminal.
NFT_TRANSITIONS = {
	NFTStatus.MINTED: (NFTStatus.UPLOADED,),
	NFTStatus.REDEEMED: (NFTStatus.MINTED,),
	NFTStatus.PULLED: (NFTStatus.UPLOADED, NFTStatus.MINTED, NFTStatus.REDEEMED),
}

PULLABLE_STATUSES = (NFTStatus.MINTED, NFTStatus.REDEEMED)


class NFTRecord(models.Model):
	"""
	Document NFT. Created by the document pipeline with a placeholder
	content_ref; status moves forward only (see NFT_TRANSITIONS).
	"""
	PLACEHOLDER_REF = "pending"

	id = models.BigAutoField(primary_key=True)
	token_id = models.CharField(max_length=78, unique=True)
	recipient_address = models.CharField(max_length=42, db_index=True)
	investor_address = models.CharField(max_length=42, db_index=True)
	token_uri = models.TextField()
	content_ref = models.CharField(max_length=128, default=PLACEHOLDER_REF)
	original_filename = models.CharField(max_length=255, blank=True, default="")
	status = models.CharField(max_length=16, choices=NFTStatus.choices, default=NFTStatus.UPLOADED, db_index=True)
	mint_tx_hash = models.CharField(max_length=66, blank=True, default="")
	pull_tx_hash = models.CharField(max_length=66, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		indexes = [
			models.Index(fields=["recipient_address", "status"]),
			models.Index(fields=["investor_address", "-created_at"]),
		]

	def to_dict(self):
		return {
			"tokenId": self.token_id,
			"recipientAddress": self.recipient_address,
			"investorAddress": self.investor_address,
			"tokenURI": self.token_uri,
			"contentRef": self.content_ref,
			"filename": self.original_filename,
			"status": self.status,
			"mintTxHash": self.mint_tx_hash or None,
			"pullTxHash": self.pull_tx_hash or None,
			"createdAt": self.created_at.isoformat() if self.created_at else None,
		}


class PullbackStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	COMPLETED = "completed", "Completed"
	FAILED = "failed", "Failed"


class PullbackHistoryRecord(models.Model):
	"""
	Append-only record of ERC-20 pull attempts.

	tx_hash is blank for attempts that failed before submission; uniqueness is
	only enforced on non-blank hashes.
	"""
	id = models.BigAutoField(primary_key=True)
	token_contract_address = models.CharField(max_length=42, db_index=True)
	token_symbol = models.CharField(max_length=32)
	token_name = models.CharField(max_length=128)
	token_decimals = models.IntegerField()
	from_address = models.CharField(max_length=42, db_index=True)
	operator_address = models.CharField(max_length=42, db_index=True)
	amount = models.CharField(max_length=78)
	tx_hash = models.CharField(max_length=66, blank=True, default="")
	block_number = models.BigIntegerField(null=True, blank=True)
	event_timestamp = models.DateTimeField()
	status = models.CharField(max_length=16, choices=PullbackStatus.choices, default=PullbackStatus.PENDING, db_index=True)
	error_message = models.TextField(blank=True, default="")
	recorded_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=["tx_hash"], condition=~Q(tx_hash=""), name="uniq_pullback_tx_when_present"),
		]
		indexes = [
			models.Index(fields=["from_address", "token_contract_address"]),
			models.Index(fields=["operator_address", "status"]),
			models.Index(fields=["-event_timestamp"]),
		]

	def to_dict(self):
		return {
			"tokenContract": self.token_contract_address,
			"tokenSymbol": self.token_symbol,
			"tokenName": self.token_name,
			"tokenDecimals": self.token_decimals,
			"fromAddress": self.from_address,
			"operatorAddress": self.operator_address,
			"amount": self.amount,
			"txHash": self.tx_hash,
			"blockNumber": self.block_number,
			"timestamp": self.event_timestamp.isoformat(),
			"status": self.status,
			"errorMessage": self.error_message or None,
		}


class AuditLogEntry(models.Model):
	"""
	Diagnostic only: written best-effort, never blocks the primary operation.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	action = models.CharField(max_length=64, db_index=True)
	wallet_address = models.CharField(max_length=42, db_index=True)
	token_id = models.CharField(max_length=78, blank=True, default="", db_index=True)
	tx_hash = models.CharField(max_length=66, blank=True, default="")
	metadata = models.JSONField(default=dict, blank=True)
	ip_address = models.CharField(max_length=64, default="unknown")
	user_agent = models.CharField(max_length=255, default="unknown")
	created_at = models.DateTimeField(auto_now_add=True, db_index=True)

	def to_dict(self):
		return {
			"id": str(self.id),
			"action": self.action,
			"walletAddress": self.wallet_address,
			"tokenId": self.token_id or None,
			"txHash": self.tx_hash or None,
			"metadata": self.metadata,
			"timestamp": self.created_at.isoformat(),
		}


def approval_to_dict(record):
	"""Shared serializer for both approval ledgers."""
	data = {
		"walletAddress": record.grantor_address,
		"operatorAddress": record.operator_address,
		"isApproved": record.is_approved,
		"txHash": record.tx_hash,
		"blockNumber": record.block_number,
		"timestamp": record.event_timestamp.isoformat(),
		"recordedAt": record.recorded_at.isoformat() if record.recorded_at else None,
	}
	if isinstance(record, ERC20ApprovalRecord):
		data["tokenContract"] = record.token_contract_address
		data["tokenSymbol"] = record.token_symbol
	else:
		data["source"] = record.source
	return data
