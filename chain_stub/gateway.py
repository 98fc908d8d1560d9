"""In-process chain state to simulate the DocumentNFT contract and ERC-20 tokens.

Implements the same async surface as core.adapters.chain_adapter.ChainAdapter.
Every write mines one block immediately and emits the matching events, so the
event monitor sees the same stream it would see from a node.
"""

import hashlib
import itertools
from datetime import datetime, timezone as dt_timezone

from core.adapters.chain_adapter import ChainEvent
from core.exceptions import ChainGatewayError, TokenNotFound

STUB_OPERATOR = "0x00000000000000000000000000000000000000ff"
ZERO_ADDRESS = "0x" + "0" * 40


class StubChainGateway:
	"""
	Deterministic chain: owners, approvals and ERC-20 positions live in dicts
	keyed by lower-case addresses.
	"""

	def __init__(self, contract_address: str = "0x0000000000000000000000000000000000000c0d",
				 operator_address: str = STUB_OPERATOR):
		self.contract_address = contract_address.lower()
		self.operator_address = operator_address.lower()
		self.reset()

	def reset(self):
		self.block_number = 1
		self.owners = {}  # token_id -> owner
		self.token_uris = {}
		self.approvals = {}  # (owner, operator) -> bool
		self.erc20 = {}  # (token, holder) -> {"balance": int, "allowance": int}
		self.token_info = {}  # token -> {"name", "symbol", "decimals"}
		self.receipts = {}  # tx_hash -> receipt dict
		self.events = []
		self.block_times = {1: datetime.now(dt_timezone.utc)}
		self._tx_seq = itertools.count(1)
		self._next_token_id = itertools.count(1)

	# --- helpers used by tests / seeding views -----------------------------

	def mine(self, events=(), status=1) -> str:
		self.block_number += 1
		self.block_times[self.block_number] = datetime.now(dt_timezone.utc)
		tx_hash = "0x" + hashlib.sha256(f"stub-tx-{next(self._tx_seq)}".encode()).hexdigest()
		self.receipts[tx_hash] = {"tx_hash": tx_hash, "block_number": self.block_number, "status": status}
		for i, (name, args) in enumerate(events):
			self.events.append(ChainEvent(name=name, args=args, tx_hash=tx_hash,
										  block_number=self.block_number, log_index=i))
		return tx_hash

	def set_owner(self, token_id, owner: str):
		self.owners[str(token_id)] = owner.lower()

	def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> str:
		self.approvals[(owner.lower(), operator.lower())] = bool(approved)
		return self.mine([("ApprovalForAll", {"owner": owner, "operator": operator, "approved": bool(approved)})])

	def set_erc20(self, token: str, holder: str, balance=None, allowance=None):
		pos = self.erc20.setdefault((token.lower(), holder.lower()), {"balance": 0, "allowance": 0})
		if balance is not None:
			pos["balance"] = int(balance)
		if allowance is not None:
			pos["allowance"] = int(allowance)

	def set_token_info(self, token: str, name: str, symbol: str, decimals: int = 6):
		self.token_info[token.lower()] = {"name": name, "symbol": symbol, "decimals": int(decimals)}

	def transfer(self, token_id, to: str) -> str:
		token_id = str(token_id)
		frm = self.owners.get(token_id, ZERO_ADDRESS)
		self.owners[token_id] = to.lower()
		return self.mine([("Transfer", {"from": frm, "to": to, "tokenId": int(token_id)})])

	# --- NFT contract ------------------------------------------------------

	async def mint_to(self, recipient: str, token_uri: str) -> str:
		token_id = str(next(self._next_token_id))
		while token_id in self.owners:
			token_id = str(next(self._next_token_id))
		self.owners[token_id] = recipient.lower()
		self.token_uris[token_id] = token_uri
		return self.mine([
			("Transfer", {"from": ZERO_ADDRESS, "to": recipient, "tokenId": int(token_id)}),
			("TokenMinted", {"to": recipient, "tokenId": int(token_id), "tokenURI": token_uri}),
		])

	async def is_approved_for_all(self, owner: str, operator: str) -> bool:
		return self.approvals.get((owner.lower(), operator.lower()), False)

	async def owner_of(self, token_id: str) -> str:
		owner = self.owners.get(str(token_id))
		if owner is None:
			raise TokenNotFound(details={"tokenId": str(token_id)})
		return owner

	async def pull_back(self, from_address: str, token_id: str) -> str:
		token_id = str(token_id)
		if self.owners.get(token_id) != from_address.lower():
			raise ChainGatewayError("Failed to pull token: execution reverted")
		self.owners[token_id] = self.operator_address
		return self.mine([
			("Transfer", {"from": from_address, "to": self.operator_address, "tokenId": int(token_id)}),
			("TokenPulledBack", {"from": from_address, "operator": self.operator_address, "tokenId": int(token_id)}),
		])

	async def check_erc20_status(self, token_contract: str, holder: str) -> dict:
		pos = self.erc20.get((token_contract.lower(), holder.lower()), {"balance": 0, "allowance": 0})
		return {"balance": str(pos["balance"]), "allowance": str(pos["allowance"])}

	async def pull_back_erc20(self, token_contract: str, from_address: str, amount: int) -> str:
		pos = self.erc20.get((token_contract.lower(), from_address.lower()))
		amount = int(amount)
		if pos is None or pos["allowance"] < amount or pos["balance"] < amount:
			raise ChainGatewayError("Failed to pull back ERC-20 tokens: execution reverted")
		pos["allowance"] -= amount
		pos["balance"] -= amount
		return self.mine()

	# --- receipts / blocks -------------------------------------------------

	async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
		return self.receipts.get(tx_hash)

	async def wait_for_transaction(self, tx_hash: str, confirmations: int | None = None,
								   timeout: float | None = None) -> dict:
		receipt = self.receipts.get(tx_hash)
		if receipt is None:
			raise ChainGatewayError("Transaction confirmation failed", details={"txHash": tx_hash})
		if receipt["status"] != 1:
			raise ChainGatewayError("Transaction reverted on-chain", details={"txHash": tx_hash})
		return receipt

	async def get_block_number(self) -> int:
		return self.block_number

	async def get_block_timestamp(self, block_number: int) -> datetime:
		return self.block_times.get(block_number) or datetime.now(dt_timezone.utc)

	async def fetch_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
		return [ev for ev in self.events if from_block <= ev.block_number <= to_block]

	# --- arbitrary ERC-20 reads -------------------------------------------

	async def get_erc20_token_info(self, token_contract: str) -> dict:
		info = self.token_info.get(token_contract.lower())
		if info is None:
			raise ChainGatewayError("Failed to get token information")
		return dict(info)

	async def get_erc20_balance(self, token_contract: str, holder: str) -> str:
		return (await self.check_erc20_status(token_contract, holder))["balance"]

	async def get_erc20_allowance(self, token_contract: str, owner: str, spender: str) -> str:
		return (await self.check_erc20_status(token_contract, owner))["allowance"]
