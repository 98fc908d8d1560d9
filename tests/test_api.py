"""HTTP surface: envelope shape, status mapping, dashboards, wallet sessions."""

from unittest.mock import AsyncMock, patch

from django.test import TestCase
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from core.models import AuditLogEntry, NFTRecord, NFTStatus, PullbackHistoryRecord
from tests.factories import INVESTOR, OPERATOR, OTHER, RECIPIENT, make_nft, make_stub, usdt


class APITests(TestCase):

	def setUp(self):
		self.stub = make_stub()
		patcher = patch("core.operations.get_chain_gateway", return_value=self.stub)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_health(self):
		response = self.client.get("/api/health")
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json(), {"ok": True})

	async def test_pull_without_live_approval_is_forbidden(self):
		await make_nft("7")
		self.stub.set_owner("7", RECIPIENT)

		response = await self.async_client.post(
			"/api/pull/7", {"operatorAddress": OPERATOR}, content_type="application/json"
		)

		self.assertEqual(response.status_code, 403)
		body = response.json()
		self.assertFalse(body["success"])
		self.assertEqual(body["error"]["code"], "NOT_APPROVED")
		nft = await NFTRecord.objects.aget(token_id="7")
		self.assertEqual(nft.status, NFTStatus.MINTED)
		self.assertEqual(await PullbackHistoryRecord.objects.acount(), 0)
		self.assertFalse(await AuditLogEntry.objects.filter(action="token_pulled").aexists())

	async def test_erc20_pull_requires_all_fields(self):
		response = await self.async_client.post(
			"/api/erc20/pull", {"tokenContract": usdt(), "amount": "10"}, content_type="application/json"
		)
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

	async def test_erc20_pull_insufficient_allowance(self):
		self.stub.set_erc20(usdt(), RECIPIENT, balance=10, allowance=1)
		response = await self.async_client.post("/api/erc20/pull", {
			"tokenContract": usdt(),
			"fromAddress": RECIPIENT,
			"amount": "10",
			"operatorAddress": OPERATOR,
		}, content_type="application/json")
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()["error"]["details"], {"required": "10", "current": "1"})

	async def test_erc20_approval_is_created_then_acknowledged(self):
		self.stub.receipts["0x111"] = {"tx_hash": "0x111", "block_number": 1, "status": 1}
		payload = {"walletAddress": RECIPIENT, "operatorAddress": OPERATOR, "tokenContract": usdt(), "txHash": "0x111"}

		first = await self.async_client.post("/api/approvals/erc20", payload, content_type="application/json")
		second = await self.async_client.post("/api/approvals/erc20", payload, content_type="application/json")

		self.assertEqual(first.status_code, 201)
		self.assertEqual(second.status_code, 200)
		self.assertTrue(second.json()["data"]["alreadyRecorded"])
		self.assertEqual(second.json()["data"]["approval"]["tokenSymbol"], "USDT")

	async def test_connected_recipients_needs_operator(self):
		response = await self.async_client.get("/api/approvals/connected-recipients")
		self.assertEqual(response.status_code, 400)

	async def test_document_two_phase_write(self):
		created = await self.async_client.post("/api/documents", {
			"tokenId": "42",
			"recipientAddress": RECIPIENT,
			"investorAddress": INVESTOR,
			"tokenURI": "ipfs://doc-42",
			"originalFilename": "deed.pdf",
		}, content_type="application/json")
		self.assertEqual(created.status_code, 201)
		self.assertEqual(created.json()["data"]["contentRef"], NFTRecord.PLACEHOLDER_REF)

		attached = await self.async_client.post(
			"/api/documents/42/content-ref", {"contentRef": "bafy-doc-42"}, content_type="application/json"
		)
		self.assertEqual(attached.status_code, 200)

		detail = await self.async_client.get("/api/nft/42")
		data = detail.json()["data"]
		self.assertEqual(data["nft"]["contentRef"], "bafy-doc-42")
		self.assertIsNone(data["owner"])

		trail = await self.async_client.get("/api/audit/42")
		self.assertEqual([e["action"] for e in trail.json()["data"]["entries"]], ["document_registered"])
		self.assertEqual(await AuditLogEntry.objects.filter(token_id="42").acount(), 1)

	async def test_recipient_nfts_filters_by_recipient_and_status(self):
		await make_nft("1", recipient=RECIPIENT)
		await make_nft("2", recipient=RECIPIENT, status=NFTStatus.REDEEMED)
		await make_nft("3", recipient=OTHER)

		everything = await self.async_client.get("/api/recipient/nfts", {"recipientAddress": "0x" + RECIPIENT[2:].upper()})
		redeemed = await self.async_client.get("/api/recipient/nfts", {"recipientAddress": RECIPIENT, "status": "redeemed"})
		missing = await self.async_client.get("/api/recipient/nfts")

		self.assertEqual(sorted(n["tokenId"] for n in everything.json()["data"]["nfts"]), ["1", "2"])
		self.assertEqual([n["tokenId"] for n in redeemed.json()["data"]["nfts"]], ["2"])
		self.assertEqual(redeemed.json()["data"]["count"], 1)
		self.assertEqual(missing.status_code, 400)

	async def test_dashboard_stats_counts_by_status(self):
		for token_id, status in [("1", "uploaded"), ("2", "minted"), ("3", "minted"), ("4", "pulled")]:
			await make_nft(token_id, status=status, investor=INVESTOR)
		await make_nft("5", investor=OTHER)

		response = await self.async_client.get("/api/dashboard/stats", {"investorAddress": INVESTOR})

		data = response.json()["data"]
		self.assertEqual(data["stats"], {
			"totalDocuments": 4, "uploaded": 1, "minted": 2, "redeemed": 0, "pulled": 1, "revoked": 0,
		})
		self.assertEqual(sorted(d["tokenId"] for d in data["recentDocuments"]), ["1", "2", "3", "4"])

	async def test_dashboard_recent_documents_are_capped(self):
		for token_id in range(12):
			await make_nft(str(token_id), investor=INVESTOR)
		response = await self.async_client.get("/api/dashboard/stats", {"investorAddress": INVESTOR})
		data = response.json()["data"]
		self.assertEqual(data["stats"]["totalDocuments"], 12)
		self.assertEqual(len(data["recentDocuments"]), 10)

	async def test_unknown_nft(self):
		response = await self.async_client.get("/api/nft/404")
		self.assertEqual(response.status_code, 404)

	async def test_unexpected_errors_become_internal_error(self):
		self.stub.get_erc20_token_info = AsyncMock(side_effect=RuntimeError("boom"))
		response = await self.async_client.get("/api/erc20/info", {"tokenContract": usdt()})
		self.assertEqual(response.status_code, 500)
		self.assertEqual(response.json()["error"]["code"], "INTERNAL_ERROR")


class SiweSessionTests(TestCase):

	def test_sign_in_and_out(self):
		account = Account.create()
		nonce = self.client.get("/api/auth/siwe/nonce").json()["data"]["nonce"]
		message = "\n".join([
			"app.example.com wants you to sign in with your Ethereum account:",
			account.address,
			"",
			"URI: https://app.example.com",
			"Version: 1",
			"Chain ID: 11155111",
			f"Nonce: {nonce}",
			"Issued At: 2026-01-01T00:00:00Z",
		])
		signature = Web3.to_hex(Account.sign_message(encode_defunct(text=message), private_key=account.key).signature)

		verified = self.client.post(
			"/api/auth/siwe/verify", {"message": message, "signature": signature}, content_type="application/json"
		)
		self.assertEqual(verified.status_code, 200)
		session = self.client.get("/api/auth/siwe/session").json()["data"]
		self.assertEqual(session, {"authenticated": True, "address": account.address.lower()})

		replay = self.client.post(
			"/api/auth/siwe/verify", {"message": message, "signature": signature}, content_type="application/json"
		)
		self.assertEqual(replay.status_code, 401)

		self.client.post("/api/auth/siwe/signout")
		self.assertFalse(self.client.get("/api/auth/siwe/session").json()["data"]["authenticated"])


class WalletLoginTests(TestCase):

	def nonce_for(self, address):
		response = self.client.post("/api/auth/nonce", {"walletAddress": address}, content_type="application/json")
		return response.json()["data"]

	def test_signed_nonce_opens_a_session(self):
		account = Account.create()
		issued = self.nonce_for(account.address)
		signature = Web3.to_hex(
			Account.sign_message(encode_defunct(text=issued["message"]), private_key=account.key).signature
		)
		payload = {"walletAddress": account.address, "nonce": issued["nonce"], "signature": signature}

		login = self.client.post("/api/auth/login", payload, content_type="application/json")
		self.assertEqual(login.status_code, 200)
		self.assertEqual(login.json()["data"]["address"], account.address.lower())
		self.assertTrue(self.client.get("/api/auth/siwe/session").json()["data"]["authenticated"])

		replay = self.client.post("/api/auth/login", payload, content_type="application/json")
		self.assertEqual(replay.status_code, 401)

	def test_signature_from_another_wallet_is_rejected(self):
		claimed, signer = Account.create(), Account.create()
		issued = self.nonce_for(claimed.address)
		signature = Web3.to_hex(
			Account.sign_message(encode_defunct(text=issued["message"]), private_key=signer.key).signature
		)

		response = self.client.post("/api/auth/login", {
			"walletAddress": claimed.address, "nonce": issued["nonce"], "signature": signature,
		}, content_type="application/json")

		self.assertEqual(response.status_code, 401)
		self.assertFalse(self.client.get("/api/auth/siwe/session").json()["data"]["authenticated"])

	def test_nonce_needs_wallet_address(self):
		response = self.client.post("/api/auth/nonce", {}, content_type="application/json")
		self.assertEqual(response.status_code, 400)
