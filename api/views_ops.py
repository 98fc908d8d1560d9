"""Operational endpoints that change state (approvals, mint, pullback, monitor)."""

from django.http import HttpResponseBadRequest, JsonResponse
from django.middleware.csrf import get_token

from core.operations import CustodyOperations
from .responses import client_meta, envelope_response, error_response, json_body


def _bad_json():
	return error_response("VALIDATION_ERROR", "Request body must be a JSON object")


def health(request):
	return JsonResponse({"ok": True})


def csrf(request):
	# Forces creation/rotation of the CSRF token AND sets 'csrftoken' cookie
	return JsonResponse({"csrftoken": get_token(request)})


async def record_approval(request):
	"""
	POST: {"walletAddress", "operatorAddress", "txHash"} after a setApprovalForAll
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	if not body.get("walletAddress") or not body.get("operatorAddress") or not body.get("txHash"):
		return error_response("VALIDATION_ERROR", "Missing required fields: walletAddress, operatorAddress, txHash")
	result = await CustodyOperations.record_approval(
		body["walletAddress"], body["operatorAddress"], body["txHash"], client=client_meta(request)
	)
	return envelope_response(result, 201 if result["success"] and result["data"]["created"] else 200)


async def record_erc20_approval(request):
	"""
	POST: {"walletAddress", "operatorAddress", "tokenContract", "txHash"} after an approve()
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	required = ("walletAddress", "operatorAddress", "tokenContract", "txHash")
	missing = [k for k in required if not body.get(k)]
	if missing:
		return error_response("VALIDATION_ERROR", "Missing required fields", {"missing": missing})
	result = await CustodyOperations.record_erc20_approval(
		body["walletAddress"], body["operatorAddress"], body["tokenContract"], body["txHash"],
		client=client_meta(request),
	)
	return envelope_response(result, 200 if not result["success"] or result["data"]["alreadyRecorded"] else 201)


async def mint(request):
	"""
	POST: {"tokenId"} mint a registered document to its recipient
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	if not body.get("tokenId"):
		return error_response("VALIDATION_ERROR", "tokenId required")
	result = await CustodyOperations.mint_token(str(body["tokenId"]), client=client_meta(request))
	return envelope_response(result, 201)


async def pull_nft(request, token_id):
	"""
	POST: {"operatorAddress"} pull the NFT back from its current holder
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	if not body.get("operatorAddress"):
		return error_response("VALIDATION_ERROR", "operatorAddress required")
	result = await CustodyOperations.pull_token(token_id, body["operatorAddress"], client=client_meta(request))
	return envelope_response(result)


async def pull_erc20(request):
	"""
	POST: {"tokenContract", "fromAddress", "amount", "operatorAddress"}; amount in smallest units
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	result = await CustodyOperations.pull_back_erc20(
		body.get("tokenContract"), body.get("fromAddress"), body.get("amount"), body.get("operatorAddress"),
		client=client_meta(request),
	)
	return envelope_response(result)


async def attach_content_ref(request, token_id):
	"""
	POST: {"contentRef"} second phase of a document upload
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	result = await CustodyOperations.attach_content_reference(token_id, body.get("contentRef"))
	return envelope_response(result)


async def reconcile(request):
	"""
	POST: run one ownership sweep now and return the report
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	return envelope_response(await CustodyOperations.reconcile_now())


async def monitor_start(request):
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request) or {}
	from_block = body.get("fromBlock")
	if from_block is not None and not str(from_block).isdigit():
		return error_response("VALIDATION_ERROR", "fromBlock must be a block number")
	result = await CustodyOperations.start_monitor(int(from_block) if from_block is not None else None)
	return envelope_response(result)


async def monitor_stop(request):
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	return envelope_response(await CustodyOperations.stop_monitor())


async def documents(request):
	"""
	GET: list documents (?investorAddress=&recipientAddress=&status=)
	POST: {"tokenId", "recipientAddress", "investorAddress", "tokenURI", "originalFilename"?}
	"""
	if request.method == "GET":
		result = await CustodyOperations.list_documents(
			request.GET.get("investorAddress"), request.GET.get("status"),
			recipient_address=request.GET.get("recipientAddress"),
		)
		return envelope_response(result)
	if request.method != "POST":
		return HttpResponseBadRequest("GET or POST only")
	body = json_body(request)
	if body is None:
		return _bad_json()
	result = await CustodyOperations.register_document(
		str(body.get("tokenId") or ""),
		body.get("recipientAddress"),
		body.get("investorAddress"),
		body.get("tokenURI"),
		body.get("originalFilename", ""),
		client=client_meta(request),
	)
	return envelope_response(result, 201)
