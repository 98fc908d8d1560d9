"""Wallet sign-in: SIWE nonce, verify, session, sign-out, plus the plain nonce login."""

import logging

from django.http import HttpResponseBadRequest, JsonResponse

from core.exceptions import CustodyError
from core.nonces import get_nonce_store
from core.siwe import verify_siwe, verify_wallet_login, wallet_login_message
from .responses import error_response, json_body

logger = logging.getLogger(__name__)

SESSION_KEY = "siwe_address"


def siwe_nonce(request):
	"""
	GET: fresh single-use nonce to embed in the SIWE message
	"""
	store = get_nonce_store()
	store.evict_expired()
	return JsonResponse({"success": True, "data": {"nonce": store.issue()}})


def siwe_verify(request):
	"""
	POST: {"message", "signature"}; on success the address is kept in the session
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None or not body.get("message") or not body.get("signature"):
		return error_response("VALIDATION_ERROR", "message and signature required")
	try:
		address = verify_siwe(body["message"], body["signature"], get_nonce_store())
	except CustodyError as e:
		logger.info("SIWE verification failed: %s", e.message)
		return error_response(e.code, e.message, e.details)
	request.session.cycle_key()
	request.session[SESSION_KEY] = address
	return JsonResponse({"success": True, "data": {"address": address}})


def siwe_session(request):
	address = request.session.get(SESSION_KEY)
	return JsonResponse({"success": True, "data": {"authenticated": address is not None, "address": address}})


def siwe_signout(request):
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	request.session.flush()
	return JsonResponse({"success": True, "data": {"signedOut": True}})


def wallet_nonce(request):
	"""
	POST: {"walletAddress"}; nonce plus the exact message the wallet must sign
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None or not body.get("walletAddress"):
		return error_response("VALIDATION_ERROR", "walletAddress required")
	store = get_nonce_store()
	store.evict_expired()
	nonce = store.issue()
	return JsonResponse({"success": True, "data": {"nonce": nonce, "message": wallet_login_message(nonce)}})


def wallet_login(request):
	"""
	POST: {"walletAddress", "nonce", "signature"}; same session as SIWE on success
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json_body(request)
	if body is None or not all(body.get(k) for k in ("walletAddress", "nonce", "signature")):
		return error_response("VALIDATION_ERROR", "walletAddress, nonce and signature required")
	try:
		address = verify_wallet_login(body["walletAddress"], body["nonce"], body["signature"], get_nonce_store())
	except CustodyError as e:
		logger.info("Wallet login failed for %s: %s", body["walletAddress"], e.message)
		return error_response(e.code, e.message, e.details)
	request.session.cycle_key()
	request.session[SESSION_KEY] = address
	return JsonResponse({"success": True, "data": {"address": address}})
