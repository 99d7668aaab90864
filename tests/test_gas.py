from decimal import Decimal

import pytest
import requests

from core.adapters.chain_adapter import ChainAdapter, ChainError
from core.adapters.gas_adapter import GasProvider, JupiterProvider, LiFiProvider, PriceOracle, StubGasProvider, providers_for
from core.errors import ErrorKind, RewardError
from core.gas import GasManager


class FakeAdapter(ChainAdapter):
	blockchain = "base"
	native_symbol = "ETH"

	def __init__(self, balance):
		self.balance = Decimal(balance)

	def native_balance(self):
		return self.balance


class FakeProvider(GasProvider):
	chains = ("base",)

	def __init__(self, name, error=None, amount="0"):
		super().__init__()
		self.name = name
		self.error = error
		self.amount = Decimal(amount)
		self.calls = []

	def top_up(self, target, usdt_amount):
		self.calls.append(usdt_amount)
		if self.error:
			raise self.error
		target.balance += self.amount
		return f"{self.name}-tx"


class FakeClock:
	def __init__(self):
		self.now = 0

	def __call__(self):
		return self.now

	def sleep(self, seconds):
		self.now += seconds


def test_enough_gas_needs_no_top_up():
	provider = FakeProvider("first", amount="1")
	manager = GasManager(FakeAdapter("0.5"), providers=[provider])
	assert manager.ensure_gas() == Decimal("0.5")
	assert provider.calls == []


def test_providers_are_tried_in_order():
	failing = FakeProvider("bridge", error=requests.ConnectionError("down"))
	working = FakeProvider("swap", amount="0.01")
	unused = FakeProvider("spare", amount="0.01")
	adapter = FakeAdapter("0")

	balance = GasManager(adapter, providers=[failing, working, unused]).ensure_gas()

	assert balance == Decimal("0.01")
	assert len(failing.calls) == 1
	assert len(working.calls) == 1
	assert unused.calls == []


def test_all_providers_failing_is_insufficient_gas():
	providers = [FakeProvider("a", error=ChainError("reverted")), FakeProvider("b", error=KeyError("quote"))]
	with pytest.raises(RewardError) as exc:
		GasManager(FakeAdapter("0"), providers=providers).ensure_gas()
	assert exc.value.kind == ErrorKind.INSUFFICIENT_GAS
	assert exc.value.http_status == 503


def test_waits_for_bridged_gas_until_deadline(settings):
	settings.GAS_TOPUP_WAIT_SECONDS = 30
	clock = FakeClock()
	provider = FakeProvider("slow-bridge", amount="0")

	with pytest.raises(RewardError):
		GasManager(FakeAdapter("0"), providers=[provider], sleep=clock.sleep, clock=clock).ensure_gas()
	assert clock.now >= 30


def test_oracle_uses_fallback_prices_in_stub_mode(settings):
	settings.FALLBACK_NATIVE_PRICES_USD = {"base": Decimal("2000"), "solana": Decimal("100")}
	oracle = PriceOracle()
	assert oracle.native_price_usd("base") == Decimal("2000")
	# 0.002 ETH * 2000 * 1.05 = 4.20 USDT
	assert oracle.usdt_for_native("base", Decimal("0.002")) == Decimal("4.20")
	# never less than one dollar
	assert oracle.usdt_for_native("solana", Decimal("0.0001")) == Decimal("1.00")


def test_oracle_falls_back_when_coingecko_is_down(settings, monkeypatch):
	settings.CHAIN_MODE = "live"

	def down(*args, **kwargs):
		raise requests.Timeout("slow")
	monkeypatch.setattr(requests, "get", down)

	assert PriceOracle().native_price_usd("solana") == settings.FALLBACK_NATIVE_PRICES_USD["solana"]


def test_stub_mode_uses_stub_provider():
	providers = providers_for("solana")
	assert [type(p) for p in providers] == [StubGasProvider]


def test_live_providers_follow_configured_order(settings):
	settings.CHAIN_MODE = "live"
	settings.GAS_CONVERSION_PROVIDERS = {"base": ["jupiter", "lifi", "bogus"], "solana": ["jupiter", "lifi"]}

	assert [type(p) for p in providers_for("base")] == [LiFiProvider]
	assert [type(p) for p in providers_for("solana")] == [JupiterProvider, LiFiProvider]
