"""Error taxonomy for the custody core.

Each error carries a machine-stable ``code`` that the operation facade puts in
the failure envelope, plus optional ``details`` for the caller.
"""


class CustodyError(Exception):
	code = "INTERNAL_ERROR"
	default_message = "Internal error"

	def __init__(self, message: str | None = None, details: dict | None = None):
		self.message = message or self.default_message
		self.details = details or None
		super().__init__(self.message)


class RequestValidationError(CustodyError):
	code = "VALIDATION_ERROR"
	default_message = "Invalid request"


class NotFound(CustodyError):
	code = "NOT_FOUND"
	default_message = "Not found"


class InvalidState(CustodyError):
	code = "INVALID_STATE"
	default_message = "Operation not valid for current status"


class NotApproved(CustodyError):
	code = "NOT_APPROVED"
	default_message = "Operator not approved by token owner"


class InsufficientAllowance(CustodyError):
	code = "INSUFFICIENT_ALLOWANCE"
	default_message = "Insufficient token allowance"


class InsufficientBalance(CustodyError):
	code = "INSUFFICIENT_BALANCE"
	default_message = "Insufficient token balance"


class UnsupportedToken(CustodyError):
	code = "UNSUPPORTED_TOKEN"
	default_message = "Unsupported token contract"


class TransactionNotFound(CustodyError):
	code = "TRANSACTION_NOT_FOUND"
	default_message = "Transaction not found or not confirmed"


class ChainGatewayError(CustodyError):
	code = "CHAIN_GATEWAY_ERROR"
	default_message = "Blockchain call failed"


class TokenNotFound(ChainGatewayError):
	"""ownerOf reverted: the token does not exist on-chain (yet)."""
	code = "TOKEN_NOT_FOUND"
	default_message = "Token does not exist on-chain"


class PersistenceError(CustodyError):
	code = "PERSISTENCE_ERROR"
	default_message = "Failed to persist record"
