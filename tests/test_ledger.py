"""Approval ledger: idempotent recording, chain-ordered projection, event authority."""

from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from core.exceptions import InvalidState, TransactionNotFound, UnsupportedToken
from core.ledger import (
	current_approval,
	current_approvals_for_operator,
	record_approval,
	record_approval_event,
	record_erc20_approval,
)
from core.models import ApprovalRecord, ApprovalSource, AuditLogEntry, ERC20ApprovalRecord
from tests.factories import OPERATOR, OTHER, RECIPIENT, make_stub, usdt


class ERC20ApprovalRecordingTests(TestCase):

	def setUp(self):
		self.stub = make_stub()
		self.stub.receipts["0x111"] = {"tx_hash": "0x111", "block_number": 1, "status": 1}

	async def test_second_report_returns_first_row_unchanged(self):
		first, already = await record_erc20_approval(RECIPIENT, OPERATOR, usdt(), "0x111", gateway=self.stub)
		self.assertFalse(already)
		self.assertEqual(first.token_symbol, "USDT")

		# the duplicate is answered from the ledger, before any receipt lookup
		del self.stub.receipts["0x111"]
		second, already = await record_erc20_approval(RECIPIENT, OPERATOR, usdt(), "0x111", gateway=self.stub)
		self.assertTrue(already)
		self.assertEqual(second.pk, first.pk)
		self.assertEqual(second.recorded_at, first.recorded_at)
		self.assertEqual(await ERC20ApprovalRecord.objects.acount(), 1)
		self.assertEqual(await AuditLogEntry.objects.filter(action="erc20_approval_recorded").acount(), 1)

	async def test_unsupported_token_is_rejected(self):
		with self.assertRaises(UnsupportedToken):
			await record_erc20_approval(RECIPIENT, OPERATOR, "0x" + "12" * 20, "0x111", gateway=self.stub)
		self.assertEqual(await ERC20ApprovalRecord.objects.acount(), 0)

	async def test_unknown_transaction(self):
		with self.assertRaises(TransactionNotFound):
			await record_erc20_approval(RECIPIENT, OPERATOR, usdt(), "0x999", gateway=self.stub)


class NFTApprovalLedgerTests(TestCase):

	def setUp(self):
		self.stub = make_stub()

	async def test_client_report_reads_flag_from_chain(self):
		tx_hash = self.stub.set_approval_for_all(RECIPIENT, OPERATOR, True)
		record, created = await record_approval(RECIPIENT, OPERATOR, tx_hash, gateway=self.stub)
		self.assertTrue(created)
		self.assertTrue(record.is_approved)
		self.assertEqual(record.source, ApprovalSource.CLIENT)

	async def test_event_and_client_report_of_same_tx_collapse(self):
		tx_hash = self.stub.set_approval_for_all(RECIPIENT, OPERATOR, True)
		await record_approval(RECIPIENT, OPERATOR, tx_hash, gateway=self.stub)
		_, created = await record_approval_event(RECIPIENT, OPERATOR, True, tx_hash, 2, timezone.now())
		self.assertFalse(created)
		self.assertEqual(await ApprovalRecord.objects.acount(), 1)

	async def test_missing_receipt(self):
		with self.assertRaises(TransactionNotFound):
			await record_approval(RECIPIENT, OPERATOR, "0xdead", gateway=self.stub)

	async def test_current_state_is_latest_row(self):
		now = timezone.now()
		await record_approval_event(RECIPIENT, OPERATOR, True, "0x01", 10, now - timedelta(hours=2))
		await record_approval_event(RECIPIENT, OPERATOR, False, "0x02", 11, now - timedelta(hours=1))
		await record_approval_event(OTHER, OPERATOR, True, "0x03", 12, now)

		latest = await current_approval(RECIPIENT, OPERATOR)
		self.assertEqual(latest.tx_hash, "0x02")
		self.assertFalse(latest.is_approved)

		approved = await current_approvals_for_operator(OPERATOR)
		self.assertEqual([r.grantor_address for r in approved], [OTHER])

	async def test_same_timestamp_follows_log_order(self):
		now = timezone.now()
		# the revoke is inserted first, as concurrent handlers may do
		await record_approval_event(RECIPIENT, OPERATOR, False, "0x02", 7, now, log_index=1)
		await record_approval_event(RECIPIENT, OPERATOR, True, "0x01", 7, now, log_index=0)

		latest = await current_approval(RECIPIENT, OPERATOR)
		self.assertEqual(latest.tx_hash, "0x02")
		self.assertFalse(latest.is_approved)
		self.assertEqual(await current_approvals_for_operator(OPERATOR), [])

	async def test_event_corrects_misattributed_client_report(self):
		tx_hash = self.stub.set_approval_for_all(RECIPIENT, OPERATOR, True)
		# OTHER has no approval of its own, so the live read says False
		await record_approval(OTHER, OPERATOR, tx_hash, gateway=self.stub)

		record, created = await record_approval_event(RECIPIENT, OPERATOR, True, tx_hash, 1, timezone.now(), log_index=0)

		self.assertFalse(created)
		self.assertEqual(record.grantor_address, RECIPIENT)
		self.assertEqual(record.source, ApprovalSource.EVENT)
		self.assertTrue(record.is_approved)
		self.assertEqual(await ApprovalRecord.objects.acount(), 1)
		self.assertEqual((await current_approval(RECIPIENT, OPERATOR)).tx_hash, tx_hash)
		self.assertIsNone(await current_approval(OTHER, OPERATOR))

	async def test_client_report_conflicting_with_ledger_is_rejected(self):
		tx_hash = self.stub.set_approval_for_all(RECIPIENT, OPERATOR, True)
		await record_approval_event(RECIPIENT, OPERATOR, True, tx_hash, 1, timezone.now())

		with self.assertRaises(InvalidState):
			await record_approval(OTHER, OPERATOR, tx_hash, gateway=self.stub)

		record = await ApprovalRecord.objects.aget(tx_hash=tx_hash)
		self.assertEqual(record.grantor_address, RECIPIENT)
		self.assertFalse(await AuditLogEntry.objects.filter(action="approval_recorded").aexists())
