"""The in-process chain honours the gateway contract the core relies on."""

import asyncio

import pytest

from core.exceptions import ChainGatewayError, TokenNotFound
from tests.factories import OPERATOR, RECIPIENT, usdt


def test_owner_of_unknown_token(stub):
	with pytest.raises(TokenNotFound):
		asyncio.run(stub.owner_of("99"))


def test_erc20_reads_are_decimal_strings(stub):
	stub.set_erc20(usdt(), RECIPIENT, balance=2 ** 64, allowance=7)

	async def reads():
		return (
			await stub.check_erc20_status(usdt(), RECIPIENT),
			await stub.get_erc20_balance(usdt(), RECIPIENT),
			await stub.get_erc20_allowance(usdt(), RECIPIENT, stub.contract_address),
		)

	status, balance, allowance = asyncio.run(reads())
	assert status == {"balance": "18446744073709551616", "allowance": "7"}
	assert balance == "18446744073709551616"
	assert allowance == "7"


def test_pull_back_from_wrong_holder_reverts(stub):
	stub.set_owner("1", OPERATOR)
	with pytest.raises(ChainGatewayError):
		asyncio.run(stub.pull_back(RECIPIENT, "1"))


def test_fetch_events_respects_block_range(stub):
	first = stub.set_approval_for_all(RECIPIENT, OPERATOR, True)
	stub.set_approval_for_all(RECIPIENT, OPERATOR, False)
	block = stub.receipts[first]["block_number"]

	events = asyncio.run(stub.fetch_events(block, block))

	assert [(e.name, e.tx_hash, e.args["approved"]) for e in events] == [("ApprovalForAll", first, True)]


def test_reverted_transaction_fails_confirmation(stub):
	tx_hash = stub.mine(status=0)
	with pytest.raises(ChainGatewayError):
		asyncio.run(stub.wait_for_transaction(tx_hash))
