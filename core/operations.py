"""Operation facade used by the HTTP views and management commands.

Every method returns the envelope
	{"success": True, "data": ...} | {"success": False, "error": {code, message, details}}
and never raises. Custody errors keep their code; anything else is logged with
traceback and reported as INTERNAL_ERROR.
"""

import functools
import logging

from .adapters.chain_adapter import get_chain_gateway
from .audit import audit_trail
from .constants import normalize_address
from .documents import (
	attach_content_reference,
	dashboard_stats,
	get_nft,
	list_documents,
	mint_token,
	register_document,
)
from .events import get_monitor
from .exceptions import CustodyError
from .ledger import (
	approvals_for_grantor,
	current_approval,
	current_approvals_for_operator,
	erc20_approvals_for_operator,
	record_approval,
	record_erc20_approval,
)
from .models import approval_to_dict
from .pullback import pull_back_erc20, pull_token, pullback_history
from .recipients import get_connected_recipients
from .reconciliation import reconcile_ownership

logger = logging.getLogger(__name__)


def ok(data):
	return {"success": True, "data": data}


def fail(code: str, message: str, details=None):
	return {"success": False, "error": {"code": code, "message": message, "details": details}}


def enveloped(fn):
	@functools.wraps(fn)
	async def wrapper(*args, **kwargs):
		try:
			return ok(await fn(*args, **kwargs))
		except CustodyError as e:
			logger.info("%s failed: %s %s", fn.__name__, e.code, e.message)
			return fail(e.code, e.message, e.details)
		except Exception as e:
			logger.exception("Unexpected error in %s", fn.__name__)
			return fail("INTERNAL_ERROR", str(e) or "Internal error")
	return wrapper


class CustodyOperations:
	"""
	Entry points for every custody operation. `gateway` defaults to the
	configured chain gateway; tests pass a stub.
	"""

	# --- approvals -----------------------------------------------------------

	@staticmethod
	@enveloped
	async def record_approval(wallet_address, operator_address, tx_hash, *, gateway=None, client=None):
		record, created = await record_approval(
			wallet_address, operator_address, tx_hash, gateway=gateway or get_chain_gateway(), client=client
		)
		return {"approval": approval_to_dict(record), "created": created}

	@staticmethod
	@enveloped
	async def record_erc20_approval(wallet_address, operator_address, token_contract, tx_hash, *, gateway=None, client=None):
		record, already = await record_erc20_approval(
			wallet_address, operator_address, token_contract, tx_hash,
			gateway=gateway or get_chain_gateway(), client=client,
		)
		return {"approval": approval_to_dict(record), "alreadyRecorded": already}

	@staticmethod
	@enveloped
	async def get_approval_status(wallet_address, operator_address=None, *, gateway=None):
		"""
		Ledger history plus, for a given operator, the live on-chain answer.
		"""
		wallet = normalize_address(wallet_address, "walletAddress")
		operator = normalize_address(operator_address, "operatorAddress") if operator_address else None
		history = await approvals_for_grantor(wallet, operator)
		data = {
			"walletAddress": wallet,
			"history": [approval_to_dict(r) for r in history],
			"ledgerStatus": None,
			"currentStatus": None,
		}
		if operator:
			latest = await current_approval(wallet, operator)
			data["ledgerStatus"] = latest.is_approved if latest else None
			try:
				data["currentStatus"] = await (gateway or get_chain_gateway()).is_approved_for_all(wallet, operator)
			except Exception as e:
				logger.warning("Live approval read failed for %s/%s: %s", wallet, operator, e)
		return data

	@staticmethod
	@enveloped
	async def get_approvals_by_operator(operator_address):
		operator = normalize_address(operator_address, "operatorAddress")
		nft = await current_approvals_for_operator(operator)
		erc20 = await erc20_approvals_for_operator(operator)
		return {
			"operatorAddress": operator,
			"nftApprovals": [approval_to_dict(r) for r in nft],
			"erc20Approvals": [approval_to_dict(r) for r in erc20],
		}

	@staticmethod
	@enveloped
	async def get_connected_recipients(operator_address, *, gateway=None):
		view = await get_connected_recipients(operator_address, gateway=gateway or get_chain_gateway())
		view["recipients"] = [s.to_dict() for s in view["recipients"]]
		return view

	# --- pullback ------------------------------------------------------------

	@staticmethod
	@enveloped
	async def pull_token(token_id, operator_address, *, gateway=None, client=None):
		return await pull_token(token_id, operator_address, gateway=gateway or get_chain_gateway(), client=client)

	@staticmethod
	@enveloped
	async def check_erc20_status(token_contract, holder_address, *, gateway=None):
		gateway = gateway or get_chain_gateway()
		token_contract = normalize_address(token_contract, "tokenContract")
		holder = normalize_address(holder_address, "holderAddress")
		info = await gateway.get_erc20_token_info(token_contract)
		status = await gateway.check_erc20_status(token_contract, holder)
		return {
			"tokenInfo": info,
			"holderAddress": holder,
			"balance": status["balance"],
			"allowance": status["allowance"],
			"contractAddress": gateway.contract_address,
		}

	@staticmethod
	@enveloped
	async def pull_back_erc20(token_contract, from_address, amount, operator_address, *, gateway=None, client=None):
		return await pull_back_erc20(
			token_contract, from_address, amount, operator_address,
			gateway=gateway or get_chain_gateway(), client=client,
		)

	@staticmethod
	@enveloped
	async def get_erc20_pullback_history(operator_address=None, from_address=None, token_contract=None,
										 status=None, limit=100):
		rows = await pullback_history(operator_address, from_address, token_contract, status, limit)
		return {"history": [r.to_dict() for r in rows], "count": len(rows)}

	@staticmethod
	@enveloped
	async def get_erc20_token_info(token_contract, *, gateway=None):
		token_contract = normalize_address(token_contract, "tokenContract")
		info = await (gateway or get_chain_gateway()).get_erc20_token_info(token_contract)
		return {"contractAddress": token_contract, **info}

	# --- documents -----------------------------------------------------------

	@staticmethod
	@enveloped
	async def register_document(token_id, recipient_address, investor_address, token_uri, original_filename="",
								*, client=None):
		nft = await register_document(
			token_id, recipient_address, investor_address, token_uri, original_filename, client=client
		)
		return nft.to_dict()

	@staticmethod
	@enveloped
	async def attach_content_reference(token_id, content_ref):
		return (await attach_content_reference(token_id, content_ref)).to_dict()

	@staticmethod
	@enveloped
	async def get_nft(token_id, *, gateway=None):
		return await get_nft(token_id, gateway=gateway or get_chain_gateway())

	@staticmethod
	@enveloped
	async def list_documents(investor_address=None, status=None, limit=200, recipient_address=None):
		rows = await list_documents(investor_address, status, limit, recipient=recipient_address)
		return {"documents": [n.to_dict() for n in rows], "count": len(rows)}

	@staticmethod
	@enveloped
	async def get_recipient_nfts(recipient_address, status=None):
		recipient = normalize_address(recipient_address, "recipientAddress")
		rows = await list_documents(status=status, recipient=recipient)
		return {"nfts": [n.to_dict() for n in rows], "count": len(rows)}

	@staticmethod
	@enveloped
	async def dashboard_stats(investor_address):
		result = await dashboard_stats(investor_address)
		return {"stats": result["stats"], "recentDocuments": [n.to_dict() for n in result["recentDocuments"]]}

	@staticmethod
	@enveloped
	async def mint_token(token_id, *, gateway=None, client=None):
		return await mint_token(token_id, gateway=gateway or get_chain_gateway(), client=client)

	@staticmethod
	@enveloped
	async def audit_trail(identifier, kind=None, limit=100):
		rows = await audit_trail(identifier, kind, limit)
		return {"entries": [r.to_dict() for r in rows], "count": len(rows)}

	# --- background work -----------------------------------------------------

	@staticmethod
	@enveloped
	async def reconcile_now(*, gateway=None):
		report = await reconcile_ownership(gateway=gateway or get_chain_gateway())
		return report.to_dict()

	@staticmethod
	@enveloped
	async def start_monitor(from_block=None):
		monitor = get_monitor()
		started = await monitor.start(from_block)
		return {"started": started, **monitor.status()}

	@staticmethod
	@enveloped
	async def stop_monitor():
		monitor = get_monitor()
		stopped = await monitor.stop()
		return {"stopped": stopped, **monitor.status()}

	@staticmethod
	@enveloped
	async def monitor_status():
		return get_monitor().status()
