"""Envelope -> HTTP response helpers shared by the API views."""

import json

from django.http import JsonResponse

# error code -> HTTP status; anything unlisted is a server error
STATUS_BY_CODE = {
	"NOT_FOUND": 404,
	"VALIDATION_ERROR": 400,
	"SIWE_INVALID": 401,
	"INVALID_STATE": 400,
	"INSUFFICIENT_ALLOWANCE": 400,
	"INSUFFICIENT_BALANCE": 400,
	"UNSUPPORTED_TOKEN": 400,
	"TRANSACTION_NOT_FOUND": 400,
	"NOT_APPROVED": 403,
	"CHAIN_GATEWAY_ERROR": 502,
	"TOKEN_NOT_FOUND": 502,
	"PERSISTENCE_ERROR": 500,
	"INTERNAL_ERROR": 500,
}


def envelope_response(result: dict, success_status: int = 200) -> JsonResponse:
	if result["success"]:
		return JsonResponse(result, status=success_status)
	return JsonResponse(result, status=STATUS_BY_CODE.get(result["error"]["code"], 500))


def error_response(code: str, message: str, details=None) -> JsonResponse:
	return envelope_response({"success": False, "error": {"code": code, "message": message, "details": details}})


def json_body(request) -> dict | None:
	"""Parsed JSON object body, or None when the body is not a JSON object."""
	try:
		body = json.loads(request.body or b"{}")
	except (ValueError, UnicodeDecodeError):
		return None
	return body if isinstance(body, dict) else None


def client_meta(request) -> dict:
	forwarded = request.headers.get("X-Forwarded-For", "")
	return {
		"ip": forwarded.split(",")[0].strip() or request.META.get("REMOTE_ADDR") or "unknown",
		"user_agent": request.headers.get("User-Agent", "unknown"),
	}
