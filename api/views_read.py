"""Read-only endpoints: approval state, dashboards, NFTs, ERC-20 status, audit."""

from core.operations import CustodyOperations
from .responses import envelope_response, error_response


def _limit(request, default=100):
	try:
		return max(1, min(int(request.GET.get("limit", default)), 500))
	except ValueError:
		return default


async def approval_status(request, wallet):
	"""
	GET: ledger history for a wallet; ?operator= adds the live on-chain answer
	"""
	return envelope_response(await CustodyOperations.get_approval_status(wallet, request.GET.get("operator")))


async def approvals_by_operator(request, address):
	return envelope_response(await CustodyOperations.get_approvals_by_operator(address))


async def connected_recipients(request):
	"""
	GET: ?operator= recipients with any live or recorded approval to this operator
	"""
	operator = request.GET.get("operator")
	if not operator:
		return error_response("VALIDATION_ERROR", "operator query parameter required")
	return envelope_response(await CustodyOperations.get_connected_recipients(operator))


async def nft_detail(request, token_id):
	return envelope_response(await CustodyOperations.get_nft(token_id))


async def erc20_check(request):
	"""
	GET: ?tokenContract=&holder= live balance + allowance toward the custody contract
	"""
	token_contract, holder = request.GET.get("tokenContract"), request.GET.get("holder")
	if not token_contract or not holder:
		return error_response("VALIDATION_ERROR", "tokenContract and holder required")
	return envelope_response(await CustodyOperations.check_erc20_status(token_contract, holder))


async def erc20_history(request):
	result = await CustodyOperations.get_erc20_pullback_history(
		operator_address=request.GET.get("operator"),
		from_address=request.GET.get("fromAddress"),
		token_contract=request.GET.get("tokenContract"),
		status=request.GET.get("status"),
		limit=_limit(request),
	)
	return envelope_response(result)


async def erc20_info(request):
	token_contract = request.GET.get("tokenContract")
	if not token_contract:
		return error_response("VALIDATION_ERROR", "tokenContract required")
	return envelope_response(await CustodyOperations.get_erc20_token_info(token_contract))


async def audit(request, identifier):
	"""
	GET: audit rows for a wallet (0x...) or token id; ?type=wallet|token overrides detection
	"""
	kind = request.GET.get("type")
	if kind not in (None, "wallet", "token"):
		return error_response("VALIDATION_ERROR", "type must be wallet or token")
	return envelope_response(await CustodyOperations.audit_trail(identifier, kind, _limit(request)))


async def monitor_status(request):
	return envelope_response(await CustodyOperations.monitor_status())


async def recipient_nfts(request):
	"""
	GET: ?recipientAddress=&status= documents minted (or to be minted) to a recipient
	"""
	recipient = request.GET.get("recipientAddress")
	if not recipient:
		return error_response("VALIDATION_ERROR", "recipientAddress query parameter required")
	return envelope_response(await CustodyOperations.get_recipient_nfts(recipient, request.GET.get("status")))


async def dashboard_stats(request):
	"""
	GET: ?investorAddress= per-status counts and the ten newest documents
	"""
	investor = request.GET.get("investorAddress")
	if not investor:
		return error_response("VALIDATION_ERROR", "investorAddress query parameter required")
	return envelope_response(await CustodyOperations.dashboard_stats(investor))
