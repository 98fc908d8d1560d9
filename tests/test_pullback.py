"""Pullback authorizer: live checks gate every write."""

from unittest.mock import AsyncMock

from django.test import TestCase
from django.utils import timezone

from core.exceptions import (
	ChainGatewayError,
	InsufficientAllowance,
	InsufficientBalance,
	InvalidState,
	NotApproved,
	NotFound,
)
from core.ledger import record_approval_event
from core.models import AuditLogEntry, NFTRecord, NFTStatus, PullbackHistoryRecord, PullbackStatus
from core.pullback import pull_back_erc20, pull_token
from tests.factories import OPERATOR, OTHER, RECIPIENT, make_nft, make_stub, usdt


class NFTPullbackTests(TestCase):

	def setUp(self):
		self.stub = make_stub()

	async def test_ledger_approval_is_not_enough(self):
		await make_nft("7")
		self.stub.set_owner("7", RECIPIENT)
		# ledger says approved, chain says otherwise (revoked since)
		await record_approval_event(RECIPIENT, OPERATOR, True, "0xabc", 1, timezone.now())

		with self.assertRaises(NotApproved) as ctx:
			await pull_token("7", OPERATOR, gateway=self.stub)
		self.assertEqual(ctx.exception.details["currentOwner"], RECIPIENT)
		self.assertEqual(self.stub.owners["7"], RECIPIENT)
		nft = await NFTRecord.objects.aget(token_id="7")
		self.assertEqual(nft.status, NFTStatus.MINTED)
		self.assertEqual(nft.pull_tx_hash, "")
		self.assertEqual(await PullbackHistoryRecord.objects.acount(), 0)
		self.assertFalse(await AuditLogEntry.objects.filter(action="token_pulled").aexists())

	async def test_pulls_from_current_holder(self):
		await make_nft("7", status=NFTStatus.REDEEMED)
		# the token moved on after it was recorded
		self.stub.set_owner("7", OTHER)
		self.stub.set_approval_for_all(OTHER, OPERATOR, True)

		result = await pull_token("7", OPERATOR, gateway=self.stub)

		self.assertEqual(result["fromAddress"], OTHER)
		self.assertEqual(self.stub.owners["7"], OPERATOR)
		nft = await NFTRecord.objects.aget(token_id="7")
		self.assertEqual(nft.status, NFTStatus.PULLED)
		self.assertEqual(nft.pull_tx_hash, result["txHash"])
		self.assertTrue(await AuditLogEntry.objects.filter(action="token_pulled", token_id="7").aexists())

	async def test_unminted_token_cannot_be_pulled(self):
		await make_nft("8", status=NFTStatus.UPLOADED)
		with self.assertRaises(InvalidState):
			await pull_token("8", OPERATOR, gateway=self.stub)

	async def test_pulled_token_cannot_be_pulled_again(self):
		await make_nft("9", status=NFTStatus.PULLED, pull_tx_hash="0xpull")
		self.stub.set_owner("9", OPERATOR)
		self.stub.pull_back = AsyncMock(return_value="0xshouldnotsend")

		with self.assertRaises(InvalidState):
			await pull_token("9", OPERATOR, gateway=self.stub)
		self.stub.pull_back.assert_not_awaited()
		self.assertEqual((await NFTRecord.objects.aget(token_id="9")).pull_tx_hash, "0xpull")

	async def test_unknown_token_is_not_found(self):
		with self.assertRaises(NotFound):
			await pull_token("404", OPERATOR, gateway=self.stub)


class ERC20PullbackTests(TestCase):

	def setUp(self):
		self.stub = make_stub()

	async def test_allowance_checked_before_any_write(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=2 ** 70, allowance=2 ** 64 - 1)
		self.stub.pull_back_erc20 = AsyncMock(return_value="0xshouldnotsend")

		with self.assertRaises(InsufficientAllowance) as ctx:
			await pull_back_erc20(usdt(), RECIPIENT, str(2 ** 64), OPERATOR, gateway=self.stub)

		self.stub.pull_back_erc20.assert_not_called()
		self.assertEqual(ctx.exception.details, {"required": "18446744073709551616", "current": "18446744073709551615"})
		self.assertEqual(await PullbackHistoryRecord.objects.acount(), 0)

	async def test_exact_allowance_is_enough(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=2 ** 64, allowance=2 ** 64)

		result = await pull_back_erc20(usdt(), RECIPIENT, str(2 ** 64), OPERATOR, gateway=self.stub)

		self.assertEqual(result["amount"], "18446744073709551616")
		self.assertEqual(result["tokenInfo"]["symbol"], "USDT")
		record = await PullbackHistoryRecord.objects.aget(tx_hash=result["txHash"])
		self.assertEqual(record.status, PullbackStatus.COMPLETED)
		self.assertEqual(record.amount, "18446744073709551616")
		self.assertEqual(self.stub.erc20[(usdt(), RECIPIENT)]["balance"], 0)
		self.assertTrue(await AuditLogEntry.objects.filter(action="erc20_pulled", wallet_address=OPERATOR).aexists())

	async def test_balance_checked_after_allowance(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=5, allowance=100)
		with self.assertRaises(InsufficientBalance):
			await pull_back_erc20(usdt(), RECIPIENT, "10", OPERATOR, gateway=self.stub)
		self.assertEqual(await PullbackHistoryRecord.objects.acount(), 0)

	async def test_failed_submission_is_recorded(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=100, allowance=100)
		self.stub.pull_back_erc20 = AsyncMock(side_effect=ChainGatewayError("execution reverted"))

		with self.assertRaises(ChainGatewayError):
			await pull_back_erc20(usdt(), RECIPIENT, "10", OPERATOR, gateway=self.stub)

		record = await PullbackHistoryRecord.objects.aget()
		self.assertEqual(record.status, PullbackStatus.FAILED)
		self.assertEqual(record.tx_hash, "")
		self.assertEqual(record.error_message, "execution reverted")
		self.assertEqual(record.token_symbol, "USDT")

	async def test_reverted_receipt_keeps_tx_hash(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=100, allowance=100)
		reverted = self.stub.mine(status=0)
		self.stub.pull_back_erc20 = AsyncMock(return_value=reverted)

		with self.assertRaises(ChainGatewayError):
			await pull_back_erc20(usdt(), RECIPIENT, "10", OPERATOR, gateway=self.stub)

		record = await PullbackHistoryRecord.objects.aget()
		self.assertEqual(record.status, PullbackStatus.FAILED)
		self.assertEqual(record.tx_hash, reverted)
