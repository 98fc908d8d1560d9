"""Single-use, time-bounded nonces for wallet sign-in.

NonceStore is the interface; InMemoryNonceStore suits one process. Expiry is
checked on consume and by evict_expired, so correctness never depends on a
background timer having run.
"""

import secrets
import string
import threading
import time
from abc import ABC, abstractmethod

from django.conf import settings

_ALPHABET = string.ascii_letters + string.digits


def generate_nonce(length: int = 17) -> str:
	"""EIP-4361 nonces: at least 8 alphanumeric characters."""
	return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class NonceStore(ABC):

	@abstractmethod
	def issue(self, now: float | None = None) -> str:
		...

	@abstractmethod
	def consume(self, nonce: str, now: float | None = None) -> bool:
		...

	@abstractmethod
	def evict_expired(self, now: float | None = None) -> int:
		...


class InMemoryNonceStore(NonceStore):

	def __init__(self, max_age: float | None = None):
		self.max_age = max_age if max_age is not None else settings.SIWE_NONCE_MAX_AGE_SECONDS
		self._issued = {}  # nonce -> issued_at
		self._lock = threading.Lock()

	def issue(self, now: float | None = None) -> str:
		nonce = generate_nonce()
		with self._lock:
			self._issued[nonce] = time.time() if now is None else now
		return nonce

	def consume(self, nonce: str, now: float | None = None) -> bool:
		"""
		True exactly once per issued, unexpired nonce. Expired nonces are
		dropped on sight.
		"""
		now = time.time() if now is None else now
		with self._lock:
			issued_at = self._issued.pop(nonce, None)
		if issued_at is None:
			return False
		return now - issued_at <= self.max_age

	def evict_expired(self, now: float | None = None) -> int:
		now = time.time() if now is None else now
		with self._lock:
			stale = [n for n, ts in self._issued.items() if now - ts > self.max_age]
			for n in stale:
				del self._issued[n]
		return len(stale)

	def __len__(self):
		return len(self._issued)


_store = None


def get_nonce_store() -> NonceStore:
	global _store
	if _store is None:
		_store = InMemoryNonceStore()
	return _store
