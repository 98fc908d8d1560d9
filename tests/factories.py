"""Addresses, a pre-seeded chain stub and record builders for the tests."""

from django.conf import settings
from django.utils import timezone

from chain_stub.gateway import StubChainGateway
from core.models import ERC20ApprovalRecord, NFTRecord

OPERATOR = "0x" + "0a" * 20
RECIPIENT = "0x" + "aa" * 20
OTHER = "0x" + "bb" * 20
INVESTOR = "0x" + "cc" * 20


def usdt() -> str:
	return settings.USDT_ADDRESS.lower()


def usdc() -> str:
	return settings.USDC_ADDRESS.lower()


def make_stub() -> StubChainGateway:
	"""
	Stub chain with token metadata for both supported tokens.
	"""
	stub = StubChainGateway(contract_address=settings.CHAIN["CONTRACT_ADDRESS"], operator_address=OPERATOR)
	stub.set_token_info(usdt(), "Tether USD", "USDT", 6)
	stub.set_token_info(usdc(), "USD Coin", "USDC", 6)
	return stub


async def make_nft(token_id="1", status="minted", recipient=RECIPIENT, investor=INVESTOR, **extra):
	return await NFTRecord.objects.acreate(
		token_id=token_id,
		recipient_address=recipient,
		investor_address=investor,
		token_uri=f"ipfs://doc-{token_id}",
		status=status,
		**extra,
	)


async def make_erc20_approval(grantor=RECIPIENT, operator=OPERATOR, token=None, tx_hash="0x111", when=None):
	token = token or usdt()
	return await ERC20ApprovalRecord.objects.acreate(
		grantor_address=grantor,
		operator_address=operator,
		token_contract_address=token,
		token_symbol=settings.SUPPORTED_TOKENS[token]["symbol"],
		tx_hash=tx_hash,
		block_number=1,
		event_timestamp=when or timezone.now(),
	)
