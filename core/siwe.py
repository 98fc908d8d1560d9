"""Wallet sign-in checks: Sign-In With Ethereum (EIP-4361) and the plain nonce login."""

import re
from datetime import datetime, timezone as dt_timezone

from django.conf import settings
from eth_account import Account
from eth_account.messages import encode_defunct

from .exceptions import RequestValidationError
from .nonces import NonceStore

_HEADER_RE = re.compile(r"^(?P<domain>\S+) wants you to sign in with your Ethereum account:$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class SiweError(RequestValidationError):
	code = "SIWE_INVALID"
	default_message = "Invalid sign-in message"


def parse_siwe_message(message: str) -> dict:
	"""
	Pull domain, address and the "Key: value" fields out of an EIP-4361 message.
	"""
	lines = (message or "").splitlines()
	if len(lines) < 2:
		raise SiweError("Malformed SIWE message")
	header = _HEADER_RE.match(lines[0].strip())
	if not header or not _ADDRESS_RE.match(lines[1].strip()):
		raise SiweError("Malformed SIWE message")
	fields = {}
	for line in lines[2:]:
		key, sep, value = line.partition(": ")
		if sep and key and key[0].isupper():
			fields[key.strip()] = value.strip()
	if "Nonce" not in fields:
		raise SiweError("SIWE message has no nonce")
	return {"domain": header.group("domain"), "address": lines[1].strip(), **fields}


def verify_siwe(message: str, signature: str, store: NonceStore, now: datetime | None = None) -> str:
	"""
	Verify signature and message, then burn the nonce. Returns the signer
	address (lower-case).
	"""
	parsed = parse_siwe_message(message)
	now = now or datetime.now(dt_timezone.utc)

	if settings.SIWE_DOMAIN and parsed["domain"] != settings.SIWE_DOMAIN:
		raise SiweError("Domain mismatch")

	expires = parsed.get("Expiration Time")
	if expires:
		try:
			expires_at = datetime.fromisoformat(expires.replace("Z", "+00:00"))
		except ValueError:
			raise SiweError("Invalid expiration time")
		if expires_at <= now:
			raise SiweError("Message expired")

	try:
		signer = Account.recover_message(encode_defunct(text=message), signature=signature)
	except Exception:
		raise SiweError("Invalid signature")
	if signer.lower() != parsed["address"].lower():
		raise SiweError("Signature does not match address")

	if not store.consume(parsed["Nonce"]):
		raise SiweError("Invalid or expired nonce")
	return signer.lower()


WALLET_LOGIN_TEMPLATE = "Sign this message to authenticate with Document NFT Marketplace.\n\nNonce: {nonce}"


def wallet_login_message(nonce: str) -> str:
	return WALLET_LOGIN_TEMPLATE.format(nonce=nonce)


def verify_wallet_login(wallet_address: str, nonce: str, signature: str, store: NonceStore) -> str:
	"""
	Plain personal_sign login: the wallet signs wallet_login_message(nonce).
	The nonce is burned only once the signature checks out. Returns the
	address (lower-case).
	"""
	if not wallet_address or not _ADDRESS_RE.match(wallet_address):
		raise RequestValidationError("Invalid walletAddress")
	try:
		signer = Account.recover_message(encode_defunct(text=wallet_login_message(nonce)), signature=signature)
	except Exception:
		raise SiweError("Invalid signature")
	if signer.lower() != wallet_address.lower():
		raise SiweError("Signature does not match address")
	if not store.consume(nonce):
		raise SiweError("Invalid or expired nonce")
	return signer.lower()
