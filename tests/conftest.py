import pytest

from tests.factories import make_stub


@pytest.fixture
def stub():
	"""Fresh stub chain with USDT/USDC metadata."""
	return make_stub()
