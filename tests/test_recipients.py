"""Connected-recipients dashboard and the ownership sweep."""

from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from core.exceptions import ChainGatewayError
from core.models import NFTStatus
from core.reconciliation import reconcile_ownership
from core.recipients import get_connected_recipients
from tests.factories import INVESTOR, OPERATOR, OTHER, RECIPIENT, make_erc20_approval, make_nft, make_stub, usdc, usdt


class ConnectedRecipientsTests(TestCase):

	def setUp(self):
		self.stub = make_stub()

	async def test_one_failing_read_degrades_to_zero(self):
		await make_erc20_approval(RECIPIENT, OPERATOR, usdt(), "0x111")
		self.stub.set_erc20(usdc(), RECIPIENT, balance=500, allowance=50)
		real_status = self.stub.check_erc20_status

		async def flaky_status(token, holder):
			if token.lower() == usdt():
				raise ChainGatewayError("rpc timeout")
			return await real_status(token, holder)

		self.stub.check_erc20_status = flaky_status

		view = await get_connected_recipients(OPERATOR, gateway=self.stub)

		self.assertEqual(view["count"], 1)
		row = view["recipients"][0].to_dict()
		self.assertEqual(row["walletAddress"], RECIPIENT)
		self.assertEqual(row["tokens"]["usdt"]["balance"], "0")
		self.assertTrue(row["tokens"]["usdt"]["approved"])
		self.assertEqual(row["tokens"]["usdt"]["txHash"], "0x111")
		self.assertEqual(row["balances"]["usdc"], "500")
		self.assertTrue(row["approvals"]["usdc"]["approved"])
		self.assertFalse(row["approvals"]["nft"]["approved"])

	async def test_recipients_without_any_approval_are_dropped(self):
		await make_nft("1", recipient=RECIPIENT, investor=OPERATOR)
		await make_nft("2", recipient=OTHER, investor=OPERATOR)
		self.stub.set_approval_for_all(OTHER, self.stub.contract_address, True)

		view = await get_connected_recipients(OPERATOR, gateway=self.stub)

		self.assertEqual(view["totalRecipients"], 2)
		self.assertEqual([s.wallet_address for s in view["recipients"]], [OTHER])
		self.assertEqual(view["recipients"][0].to_dict()["totalNFTs"], 1)

	async def test_newest_first_approval_first_and_undated_last(self):
		now = timezone.now()
		await make_erc20_approval(RECIPIENT, OPERATOR, usdt(), "0x01", when=now - timedelta(days=2))
		await make_erc20_approval(OTHER, OPERATOR, usdt(), "0x02", when=now - timedelta(days=1))
		# live allowance only, nothing recorded
		await make_nft("9", recipient=INVESTOR, investor=OPERATOR)
		self.stub.set_erc20(usdc(), INVESTOR, allowance=1)

		view = await get_connected_recipients(OPERATOR, gateway=self.stub)

		self.assertEqual([s.wallet_address for s in view["recipients"]], [OTHER, RECIPIENT, INVESTOR])
		self.assertIsNone(view["recipients"][-1].first_approval_at)


class ReconciliationTests(TestCase):

	async def test_reports_discrepancies_and_skips_unminted(self):
		stub = make_stub()
		await make_nft("1", status=NFTStatus.MINTED)
		await make_nft("2", status=NFTStatus.REDEEMED)
		await make_nft("3", status=NFTStatus.MINTED)
		await make_nft("4", status=NFTStatus.UPLOADED)
		stub.set_owner("1", RECIPIENT)
		stub.set_owner("2", OTHER)

		report = await reconcile_ownership(gateway=stub)

		self.assertEqual(report.checked, 2)
		self.assertEqual(report.skipped, ["3"])
		self.assertEqual(len(report.discrepancies), 1)
		self.assertEqual(report.discrepancies[0]["tokenId"], "2")
		self.assertEqual(report.discrepancies[0]["chainOwner"], OTHER)
		self.assertFalse(report.to_dict()["ok"])
