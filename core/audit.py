"""Best-effort audit trail for state-changing actions."""

import logging

from .models import AuditLogEntry

logger = logging.getLogger(__name__)


async def record_audit(action: str, wallet_address: str, *, metadata: dict | None = None,
					   token_id: str | None = None, tx_hash: str | None = None,
					   client: dict | None = None) -> AuditLogEntry | None:
	"""
	Write one audit row. Failures are logged and swallowed; the audit trail is
	diagnostic and must never fail the primary operation.

	client: optional {"ip": .., "user_agent": ..} captured by the view layer.
	"""
	client = client or {}
	try:
		return await AuditLogEntry.objects.acreate(
			action=action,
			wallet_address=(wallet_address or "").lower(),
			token_id=str(token_id) if token_id is not None else "",
			tx_hash=tx_hash or "",
			metadata=metadata or {},
			ip_address=client.get("ip") or "unknown",
			user_agent=(client.get("user_agent") or "unknown")[:255],
		)
	except Exception:
		logger.exception("Failed to create audit log for %s", action)
		return None


async def audit_trail(identifier: str, kind: str | None = None, limit: int = 100) -> list[AuditLogEntry]:
	"""
	Newest-first audit rows for a wallet or a token id. Without `kind`, a 0x
	prefix means wallet.
	"""
	if kind is None:
		kind = "wallet" if identifier.startswith("0x") else "token"
	qs = AuditLogEntry.objects.all()
	if kind == "wallet":
		qs = qs.filter(wallet_address=identifier.lower())
	else:
		qs = qs.filter(token_id=identifier)
	return [row async for row in qs.order_by("-created_at")[:limit]]
