"""Adapter over the DocumentNFT contract and the ERC-20 tokens it can pull.

Reads are retried on transport failures; writes are signed with the operator
key, submitted once and never retried. Every web3 failure leaves this module
as a ChainGatewayError so callers deal with one error type.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from functools import lru_cache
from typing import Any, Optional

from django.conf import settings
from eth_account import Account
from pydantic import BaseModel, Field, field_validator
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
	ContractLogicError,
	ProviderConnectionError,
	TimeExhausted,
	TransactionNotFound as Web3TransactionNotFound,
)

from ..exceptions import ChainGatewayError, TokenNotFound

logger = logging.getLogger(__name__)

WATCHED_EVENTS = ("Transfer", "ApprovalForAll", "TokenPulledBack", "TokenMinted")


def _fn(name, inputs, outputs=(), mutability="view"):
	return {
		"type": "function",
		"name": name,
		"stateMutability": mutability,
		"inputs": [{"name": n, "type": t} for n, t in inputs],
		"outputs": [{"name": n, "type": t} for n, t in outputs],
	}


def _event(name, inputs):
	return {
		"type": "event",
		"name": name,
		"anonymous": False,
		"inputs": [{"name": n, "type": t, "indexed": idx} for n, t, idx in inputs],
	}


# Minimal DocumentNFT ABI; CONTRACT_ABI_PATH overrides it with the full artifact.
DOCUMENT_NFT_ABI = [
	_fn("mintTo", [("to", "address"), ("tokenURI_", "string")], mutability="nonpayable"),
	_fn("isApprovedForAll", [("owner", "address"), ("operator", "address")], [("", "bool")]),
	_fn("ownerOf", [("tokenId", "uint256")], [("", "address")]),
	_fn("tokenURI", [("tokenId", "uint256")], [("", "string")]),
	_fn("pullBack", [("from", "address"), ("tokenId", "uint256")], mutability="nonpayable"),
	_fn("checkERC20Status", [("tokenContract", "address"), ("holder", "address")],
		[("balance", "uint256"), ("allowance", "uint256")]),
	_fn("pullBackERC20", [("tokenContract", "address"), ("from", "address"), ("amount", "uint256")],
		mutability="nonpayable"),
	_event("Transfer", [("from", "address", True), ("to", "address", True), ("tokenId", "uint256", True)]),
	_event("ApprovalForAll", [("owner", "address", True), ("operator", "address", True), ("approved", "bool", False)]),
	_event("TokenPulledBack", [("from", "address", True), ("operator", "address", True), ("tokenId", "uint256", True)]),
	_event("TokenMinted", [("to", "address", True), ("tokenId", "uint256", True), ("tokenURI", "string", False)]),
]

ERC20_ABI = [
	_fn("name", [], [("", "string")]),
	_fn("symbol", [], [("", "string")]),
	_fn("decimals", [], [("", "uint8")]),
	_fn("balanceOf", [("owner", "address")], [("", "uint256")]),
	_fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
]


class ChainConfig(BaseModel):
	rpc_url: str = Field(..., alias="RPC_URL")
	private_key: str = Field(..., alias="PRIVATE_KEY")
	chain_id: int = Field(..., alias="CHAIN_ID")
	contract_address: str = Field(..., alias="CONTRACT_ADDRESS")
	contract_abi_path: Optional[str] = Field(None, alias="CONTRACT_ABI_PATH")
	tx_timeout_seconds: float = Field(120, alias="TX_TIMEOUT_SECONDS")
	tx_confirmations: int = Field(1, alias="TX_CONFIRMATIONS")

	@field_validator("rpc_url")
	@classmethod
	def _rpc_set(cls, v: str) -> str:
		if not v:
			raise ValueError("RPC_URL is required for CHAIN_BACKEND=web3")
		return v

	@field_validator("private_key")
	@classmethod
	def _pk_hex(cls, v: str) -> str:
		if not isinstance(v, str) or not v.startswith("0x") or len(v) != 66:
			raise ValueError("PRIVATE_KEY must be 0x + 64 hex")
		int(v[2:], 16)  # will raise if invalid
		return v

	@field_validator("contract_address")
	@classmethod
	def _addr_hex(cls, v: str) -> str:
		if not Web3.is_address(v):
			raise ValueError("CONTRACT_ADDRESS must be hex address")
		return v


@dataclass
class ChainEvent:
	"""One decoded log from the watched contract."""
	name: str
	args: dict
	tx_hash: str
	block_number: int
	log_index: int = 0
	extra: dict = field(default_factory=dict)


def load_abi(cfg: ChainConfig) -> Any:
	if cfg.contract_abi_path and os.path.exists(cfg.contract_abi_path):
		with open(cfg.contract_abi_path, "r", encoding="utf-8") as f:
			artifact = json.load(f)
		# hardhat artifacts wrap the ABI
		return artifact["abi"] if isinstance(artifact, dict) else artifact
	return DOCUMENT_NFT_ABI


_read_retry = retry(
	reraise=True,
	stop=stop_after_attempt(3),
	wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
	retry=retry_if_exception_type((ConnectionError, asyncio.TimeoutError, ProviderConnectionError)),
)


def _receipt_dict(receipt) -> dict:
	return {
		"tx_hash": Web3.to_hex(receipt["transactionHash"]),
		"block_number": int(receipt["blockNumber"]),
		"status": int(receipt.get("status", 1)),
	}


class ChainAdapter:
	"""
	Async gateway to the DocumentNFT contract. Read calls are request/response;
	write calls return the tx hash and callers wait via wait_for_transaction.
	"""

	def __init__(self, cfg: ChainConfig, w3: AsyncWeb3 | None = None):
		self.cfg = cfg
		self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(cfg.rpc_url))
		self.account = Account.from_key(cfg.private_key)
		self.contract_address = Web3.to_checksum_address(cfg.contract_address)
		self.contract = self.w3.eth.contract(address=self.contract_address, abi=load_abi(cfg))
		# serialises nonce allocation for this operator key
		self._send_lock = asyncio.Lock()

	@property
	def operator_address(self) -> str:
		return self.account.address

	def _erc20(self, token_contract: str):
		return self.w3.eth.contract(address=Web3.to_checksum_address(token_contract), abi=ERC20_ABI)

	@_read_retry
	async def _read(self, call):
		return await call.call()

	async def _guarded_read(self, what: str, call):
		try:
			return await self._read(call)
		except ChainGatewayError:
			raise
		except Exception as e:
			logger.error("chain read failed: %s: %s", what, e)
			raise ChainGatewayError(f"Failed to {what}") from e

	async def _send(self, what: str, fn) -> str:
		"""
		Build, sign and submit one contract call. Not retried: a resend could
		double-spend if the first submission actually landed.
		"""
		try:
			async with self._send_lock:
				nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
				try:
					gas_est = await fn.estimate_gas({"from": self.account.address})
				except ContractLogicError:
					raise
				except Exception:
					gas_est = 300000
				tx = await fn.build_transaction({
					"from": self.account.address,
					"nonce": nonce,
					"chainId": self.cfg.chain_id,
					"gas": int(gas_est * 1.2),
				})
				signed = self.account.sign_transaction(tx)
				tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
		except Exception as e:
			logger.error("chain write failed: %s: %s", what, e)
			raise ChainGatewayError(f"Failed to {what}: {e}") from e
		return Web3.to_hex(tx_hash)

	# --- NFT contract ------------------------------------------------------

	async def mint_to(self, recipient: str, token_uri: str) -> str:
		logger.info("Minting NFT to %s", recipient)
		fn = self.contract.functions.mintTo(Web3.to_checksum_address(recipient), token_uri)
		return await self._send("mint NFT", fn)

	async def is_approved_for_all(self, owner: str, operator: str) -> bool:
		call = self.contract.functions.isApprovedForAll(
			Web3.to_checksum_address(owner), Web3.to_checksum_address(operator)
		)
		return bool(await self._guarded_read("check approval status", call))

	async def owner_of(self, token_id: str) -> str:
		call = self.contract.functions.ownerOf(int(token_id))
		try:
			owner = await self._read(call)
		except ContractLogicError as e:
			raise TokenNotFound(details={"tokenId": str(token_id)}) from e
		except Exception as e:
			logger.error("chain read failed: ownerOf(%s): %s", token_id, e)
			raise ChainGatewayError("Failed to get token owner") from e
		return str(owner)

	async def pull_back(self, from_address: str, token_id: str) -> str:
		logger.info("Pulling back token %s from %s", token_id, from_address)
		fn = self.contract.functions.pullBack(Web3.to_checksum_address(from_address), int(token_id))
		return await self._send("pull token", fn)

	async def check_erc20_status(self, token_contract: str, holder: str) -> dict:
		"""Balance of holder and its allowance to this contract, as decimal strings."""
		call = self.contract.functions.checkERC20Status(
			Web3.to_checksum_address(token_contract), Web3.to_checksum_address(holder)
		)
		balance, allowance = await self._guarded_read("check ERC-20 token status", call)
		return {"balance": str(int(balance)), "allowance": str(int(allowance))}

	async def pull_back_erc20(self, token_contract: str, from_address: str, amount: int) -> str:
		logger.info("Pulling back %s units of %s from %s", amount, token_contract, from_address)
		fn = self.contract.functions.pullBackERC20(
			Web3.to_checksum_address(token_contract), Web3.to_checksum_address(from_address), int(amount)
		)
		return await self._send("pull back ERC-20 tokens", fn)

	# --- receipts / blocks -------------------------------------------------

	async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
		try:
			receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
		except Web3TransactionNotFound:
			return None
		except Exception as e:
			logger.error("Error getting transaction receipt %s: %s", tx_hash, e)
			return None
		return _receipt_dict(receipt)

	async def wait_for_transaction(self, tx_hash: str, confirmations: int | None = None,
								   timeout: float | None = None) -> dict:
		"""
		Block until tx_hash is mined with `confirmations` blocks on top, bounded by
		timeout. A reverted transaction is an error.
		"""
		confirmations = confirmations or self.cfg.tx_confirmations
		timeout = timeout or self.cfg.tx_timeout_seconds
		loop = asyncio.get_running_loop()
		deadline = loop.time() + timeout
		try:
			receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
			while confirmations > 1:
				head = await self.w3.eth.block_number
				if head - int(receipt["blockNumber"]) + 1 >= confirmations:
					break
				if loop.time() > deadline:
					raise TimeExhausted(f"{tx_hash} not confirmed {confirmations} times within {timeout}s")
				await asyncio.sleep(1)
		except TimeExhausted as e:
			raise ChainGatewayError("Transaction confirmation timed out", details={"txHash": tx_hash}) from e
		except Exception as e:
			logger.error("Error waiting for transaction %s: %s", tx_hash, e)
			raise ChainGatewayError("Transaction confirmation failed", details={"txHash": tx_hash}) from e
		result = _receipt_dict(receipt)
		if result["status"] != 1:
			raise ChainGatewayError("Transaction reverted on-chain", details={"txHash": tx_hash})
		return result

	async def get_block_number(self) -> int:
		try:
			return int(await self.w3.eth.block_number)
		except Exception as e:
			raise ChainGatewayError("Failed to get block number") from e

	async def get_block_timestamp(self, block_number: int) -> datetime:
		try:
			block = await self.w3.eth.get_block(block_number)
		except Exception as e:
			raise ChainGatewayError("Failed to get block") from e
		return datetime.fromtimestamp(int(block["timestamp"]), tz=dt_timezone.utc)

	async def fetch_events(self, from_block: int, to_block: int) -> list[ChainEvent]:
		"""
		Decoded logs of the four watched events in [from_block, to_block],
		ordered by (block, log index).
		"""
		out = []
		try:
			for name in WATCHED_EVENTS:
				event = getattr(self.contract.events, name)
				logs = await event.get_logs(from_block=from_block, to_block=to_block)
				for log in logs:
					out.append(ChainEvent(
						name=name,
						args=dict(log["args"]),
						tx_hash=Web3.to_hex(log["transactionHash"]),
						block_number=int(log["blockNumber"]),
						log_index=int(log["logIndex"]),
					))
		except Exception as e:
			logger.error("Error fetching events %s..%s: %s", from_block, to_block, e)
			raise ChainGatewayError("Failed to fetch contract events") from e
		out.sort(key=lambda ev: (ev.block_number, ev.log_index))
		return out

	# --- arbitrary ERC-20 reads -------------------------------------------

	async def get_erc20_token_info(self, token_contract: str) -> dict:
		token = self._erc20(token_contract)
		try:
			name, symbol, decimals = await asyncio.gather(
				self._read(token.functions.name()),
				self._read(token.functions.symbol()),
				self._read(token.functions.decimals()),
			)
		except Exception as e:
			logger.error("Error getting ERC-20 token info for %s: %s", token_contract, e)
			raise ChainGatewayError("Failed to get token information") from e
		return {"name": name, "symbol": symbol, "decimals": int(decimals)}

	async def get_erc20_balance(self, token_contract: str, holder: str) -> str:
		call = self._erc20(token_contract).functions.balanceOf(Web3.to_checksum_address(holder))
		return str(int(await self._guarded_read("get token balance", call)))

	async def get_erc20_allowance(self, token_contract: str, owner: str, spender: str) -> str:
		call = self._erc20(token_contract).functions.allowance(
			Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
		)
		return str(int(await self._guarded_read("get token allowance", call)))


def load_chain_config() -> ChainConfig:
	return ChainConfig.model_validate(settings.CHAIN)


@lru_cache(maxsize=1)
def get_chain_gateway():
	"""
	Process-wide gateway for CHAIN_BACKEND. The stub keeps its state in memory,
	so it must be a singleton too.
	"""
	if settings.CHAIN_BACKEND == "stub":
		from chain_stub.gateway import StubChainGateway
		return StubChainGateway(contract_address=settings.CHAIN["CONTRACT_ADDRESS"])
	return ChainAdapter(load_chain_config())
