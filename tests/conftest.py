from decimal import Decimal

import pytest
from django.conf import settings as django_settings
from solders.keypair import Keypair

from chain_stub.models import ChainStubAccount
from core.adapters.chain_adapter import StubChainAdapter
from core.constants import usdt_to_units
from core.models import Poll, User

WALLET = "0xabc0000000000000000000000000000000000001"
OTHER_WALLET = "0xabc0000000000000000000000000000000000002"


@pytest.fixture(autouse=True)
def stub_chain(settings):
	settings.CHAIN_MODE = "stub"
	settings.GAS_TOPUP_WAIT_SECONDS = 0
	settings.REFUND_ON_AMBIGUOUS_MINT = True
	settings.ADMIN_API_TOKEN = "test-admin-token"
	settings.CREDITS_PER_USDT = Decimal("3")
	settings.PACKAGE_PRICE_USDT = Decimal("1.00")
	settings.PACKAGE_POLLS = 3


@pytest.fixture
def user(db):
	return User.objects.create(email="alice@example.com", display_name="Alice")


@pytest.fixture
def other_user(db):
	return User.objects.create(email="bob@example.com", display_name="Bob")


@pytest.fixture
def make_poll(db):
	def make(**kwargs):
		fields = dict(
			question="Which one wins?",
			option_a_text="Doge",
			option_b_text="Pepe",
			meme_coin_mode=True,
			blockchain="base",
		)
		fields.update(kwargs)
		return Poll.objects.create(**fields)
	return make


@pytest.fixture
def meme_poll(make_poll):
	return make_poll()


@pytest.fixture
def solana_wallet():
	return str(Keypair().pubkey())


@pytest.fixture
def pay(db):
	"""
	Simulate a confirmed USDT transfer to the treasury; returns the tx hash.
	"""
	def pay(sender, amount, recipient=None, success=True):
		return StubChainAdapter.record_payment(
			sender=sender,
			recipient=recipient or django_settings.TREASURY_WALLET,
			amount_units=usdt_to_units(amount),
			success=success,
		)
	return pay


@pytest.fixture
def drain_gas(db):
	def drain(blockchain="base"):
		adapter = StubChainAdapter(blockchain)
		ChainStubAccount.objects.update_or_create(
			blockchain=blockchain,
			address=adapter.operator_address,
			defaults={"native_balance": Decimal("0")},
		)
	return drain
