"""HTTP endpoints to seed the in-process chain stub (CHAIN_BACKEND=stub only)"""

import json
from django.conf import settings
from django.http import JsonResponse, HttpResponseBadRequest, HttpResponseNotFound
from django.views.decorators.csrf import csrf_exempt

from core.adapters.chain_adapter import get_chain_gateway


def _stub_or_none():
	if settings.CHAIN_BACKEND != "stub":
		return None
	return get_chain_gateway()


def state(request):
	"""
	GET: Dump the simulated chain state
	"""
	stub = _stub_or_none()
	if stub is None:
		return HttpResponseNotFound("chain stub disabled")
	return JsonResponse({
		"blockNumber": stub.block_number,
		"operatorAddress": stub.operator_address,
		"owners": stub.owners,
		"approvals": [{"owner": o, "operator": op, "approved": v} for (o, op), v in stub.approvals.items()],
		"erc20": [{"token": t, "holder": h, **{k: str(v) for k, v in pos.items()}} for (t, h), pos in stub.erc20.items()],
	})


@csrf_exempt
def set_owner(request):
	"""
	POST: {"tokenId": "1", "owner": "0x.."} - move a token, emitting Transfer
	"""
	stub = _stub_or_none()
	if stub is None:
		return HttpResponseNotFound("chain stub disabled")
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json.loads(request.body or b"{}")
	if not body.get("tokenId") or not body.get("owner"):
		return HttpResponseBadRequest("tokenId and owner required")
	tx_hash = stub.transfer(body["tokenId"], body["owner"])
	return JsonResponse({"txHash": tx_hash}, status=201)


@csrf_exempt
def set_approval(request):
	"""
	POST: {"owner": "0x..", "operator": "0x..", "approved": true} - emits ApprovalForAll
	"""
	stub = _stub_or_none()
	if stub is None:
		return HttpResponseNotFound("chain stub disabled")
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json.loads(request.body or b"{}")
	if not body.get("owner") or not body.get("operator"):
		return HttpResponseBadRequest("owner and operator required")
	tx_hash = stub.set_approval_for_all(body["owner"], body["operator"], bool(body.get("approved", True)))
	return JsonResponse({"txHash": tx_hash}, status=201)


@csrf_exempt
def set_erc20(request):
	"""
	POST: {"token": "0x..", "holder": "0x..", "balance": "..", "allowance": ".."}
	"""
	stub = _stub_or_none()
	if stub is None:
		return HttpResponseNotFound("chain stub disabled")
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json.loads(request.body or b"{}")
	if not body.get("token") or not body.get("holder"):
		return HttpResponseBadRequest("token and holder required")
	stub.set_erc20(body["token"], body["holder"], balance=body.get("balance"), allowance=body.get("allowance"))
	tx_hash = stub.mine()
	return JsonResponse({"txHash": tx_hash}, status=201)
