import pytest

from chain_stub.models import ChainStubHolding, ChainStubToken, ChainStubTransaction
from core import registry
from core.adapters.chain_adapter import ChainError, ChainTimeout, StubChainAdapter
from core.errors import ErrorKind, RewardError
from core.minting import CoinMintingService, MintRequest, base_coin_name, coin_symbol, resolve_coin_identity
from core.models import GeneratedCoin, GeneratedCoinStatus

from .conftest import OTHER_WALLET, WALLET

pytestmark = pytest.mark.django_db


def mint(user, poll, option="A", wallet=WALLET):
	return CoinMintingService().mint(MintRequest(user=user, poll=poll, option=option, wallet=wallet))


def test_first_mint_deploys_registers_and_delivers(user, meme_poll):
	coin = mint(user, meme_poll)

	assert coin.status == GeneratedCoinStatus.CREATED
	assert coin.coin_name == "Doge"
	assert coin.coin_symbol == "DOGE"
	assert coin.user_wallet == WALLET
	assert coin.transaction_hash.startswith("0x")
	assert registry.get_token_address(meme_poll.id, "A") == coin.coin_address

	token = ChainStubToken.objects.get()
	assert token.address == coin.coin_address
	assert ChainStubHolding.objects.get(token=token, wallet=WALLET).units == 10 ** 18


def test_mint_is_idempotent_per_user_poll_option(user, meme_poll):
	first = mint(user, meme_poll)
	second = mint(user, meme_poll)

	assert second.pk == first.pk
	assert GeneratedCoin.objects.count() == 1
	assert ChainStubToken.objects.count() == 1
	assert ChainStubTransaction.objects.filter(kind="mint").count() == 1
	assert ChainStubHolding.objects.get(wallet=WALLET).units == 10 ** 18


def test_second_voter_reuses_registered_token(user, other_user, make_poll):
	poll = make_poll(id=42)
	first = mint(user, poll)
	second = mint(other_user, poll, wallet=OTHER_WALLET)

	assert registry.get_entry(42, "A").key == "42:A"
	assert second.coin_address == first.coin_address
	assert second.coin_name == first.coin_name
	assert ChainStubToken.objects.count() == 1
	assert ChainStubTransaction.objects.filter(kind="deploy").count() == 1
	assert ChainStubHolding.objects.filter(wallet__in=[WALLET, OTHER_WALLET]).count() == 2


def test_solana_mint(user, make_poll, solana_wallet):
	poll = make_poll(blockchain="solana")
	coin = mint(user, poll, wallet=solana_wallet)

	assert coin.status == GeneratedCoinStatus.CREATED
	assert coin.blockchain == "solana"
	assert ChainStubHolding.objects.get(wallet=solana_wallet).units == 10 ** 6


def test_demo_mint_makes_no_chain_calls(user, meme_poll, settings):
	coin = mint(user, meme_poll, wallet=None)

	assert coin.status == GeneratedCoinStatus.DEMO
	assert coin.user_wallet == settings.DEMO_WALLET_PLACEHOLDER
	assert coin.transaction_hash.startswith("demo_tx_")
	assert coin.coin_address.startswith("0x")
	assert registry.get_entry(meme_poll.id, "A") is None
	assert ChainStubTransaction.objects.count() == 0


def test_demo_mint_uses_registered_address(user, other_user, meme_poll):
	real = mint(user, meme_poll)
	demo = mint(other_user, meme_poll, wallet=None)
	assert demo.status == GeneratedCoinStatus.DEMO
	assert demo.coin_address == real.coin_address


def test_deployment_failure_marks_failed_then_retry_succeeds(user, meme_poll, monkeypatch):
	original = StubChainAdapter.deploy_token

	def broken(self, name, symbol):
		raise ChainError("execution reverted")
	monkeypatch.setattr(StubChainAdapter, "deploy_token", broken)

	with pytest.raises(RewardError) as exc:
		mint(user, meme_poll)
	assert exc.value.kind == ErrorKind.TOKEN_DEPLOYMENT_FAILED
	coin = GeneratedCoin.objects.get()
	assert coin.status == GeneratedCoinStatus.FAILED
	assert "execution reverted" in coin.last_error
	assert registry.get_entry(meme_poll.id, "A") is None

	monkeypatch.setattr(StubChainAdapter, "deploy_token", original)
	retried = mint(user, meme_poll)
	assert retried.pk == coin.pk
	assert retried.status == GeneratedCoinStatus.CREATED
	assert retried.attempts == 2
	assert retried.last_error == ""


def test_delivery_failure_is_minting_failed(user, meme_poll, monkeypatch):
	def broken(self, token_address, recipient, units):
		raise ChainError("nonce too low")
	monkeypatch.setattr(StubChainAdapter, "mint_to", broken)

	with pytest.raises(RewardError) as exc:
		mint(user, meme_poll)
	assert exc.value.kind == ErrorKind.MINTING_FAILED
	assert not exc.value.ambiguous
	assert GeneratedCoin.objects.get().status == GeneratedCoinStatus.FAILED
	# the deployment itself succeeded and stays registered
	assert registry.get_entry(meme_poll.id, "A") is not None


def test_timeout_leaves_coin_pending_and_never_remints(user, meme_poll, monkeypatch):
	original = StubChainAdapter.mint_to

	def slow(self, token_address, recipient, units):
		raise ChainTimeout("not confirmed", tx_hash="0xpending")
	monkeypatch.setattr(StubChainAdapter, "mint_to", slow)

	with pytest.raises(RewardError) as exc:
		mint(user, meme_poll)
	assert exc.value.kind == ErrorKind.MINTING_FAILED
	assert exc.value.ambiguous
	coin = GeneratedCoin.objects.get()
	assert coin.status == GeneratedCoinStatus.PENDING
	assert coin.transaction_hash == "0xpending"

	monkeypatch.setattr(StubChainAdapter, "mint_to", original)
	again = mint(user, meme_poll)
	assert again.pk == coin.pk
	assert again.status == GeneratedCoinStatus.PENDING
	assert ChainStubTransaction.objects.filter(kind="mint").count() == 0


def test_low_gas_is_topped_up_before_deploy(user, meme_poll, drain_gas):
	drain_gas("base")
	coin = mint(user, meme_poll)

	assert coin.status == GeneratedCoinStatus.CREATED
	assert ChainStubTransaction.objects.filter(kind="gas").count() == 1


def test_no_gas_and_no_provider_is_insufficient_gas(user, meme_poll, drain_gas, monkeypatch):
	drain_gas("base")
	monkeypatch.setattr("core.gas.providers_for", lambda blockchain, oracle=None: [])

	with pytest.raises(RewardError) as exc:
		mint(user, meme_poll)
	assert exc.value.kind == ErrorKind.INSUFFICIENT_GAS
	assert GeneratedCoin.objects.get().status == GeneratedCoinStatus.FAILED
	assert ChainStubToken.objects.count() == 0


def test_cheap_path_tops_up_once_when_out_of_gas(user, other_user, meme_poll, drain_gas):
	mint(user, meme_poll)
	drain_gas("base")

	coin = mint(other_user, meme_poll, wallet=OTHER_WALLET)
	assert coin.status == GeneratedCoinStatus.CREATED
	assert ChainStubTransaction.objects.filter(kind="gas").count() == 1
	assert ChainStubToken.objects.count() == 1


def test_coin_names():
	assert base_coin_name("Doge!! Coin") == "DogeCoin"
	assert base_coin_name("🚀") == ""
	assert coin_symbol("DogeCoin") == "DOGECO"
	assert coin_symbol("Ab_42") == "MEME"
	assert coin_symbol("Cat") == "CAT"


def test_name_collision_with_other_poll_gets_suffix(user, make_poll):
	first = make_poll()
	second = make_poll()
	mint(user, first, wallet=None)

	name, symbol = resolve_coin_identity(second, "A")
	assert name == f"Doge_{second.id}"
	assert symbol == "DOGE"


def test_all_candidates_taken_falls_back_to_random_suffix(user, make_poll):
	target = make_poll()
	other = make_poll()
	GeneratedCoin.objects.create(
		user=user, poll=other, option="A", coin_name="Doge", coin_symbol="DOGE", user_wallet=WALLET, blockchain="base",
	)
	GeneratedCoin.objects.create(
		user=user, poll=other, option="B", coin_name=f"Doge_{target.id}", coin_symbol="DOGE", user_wallet=WALLET, blockchain="base",
	)
	registry.set_token_address(make_poll().id, "A", "0xdead", blockchain="base", coin_name=f"Doge_{target.id}A", coin_symbol="DOGE")

	name, _ = resolve_coin_identity(target, "A")
	assert name.startswith("Doge_")
	assert name not in ("Doge", f"Doge_{target.id}", f"Doge_{target.id}A")


def test_option_text_without_letters_falls_back(user, make_poll):
	poll = make_poll(option_a_text="!!!")
	name, symbol = resolve_coin_identity(poll, "A")
	assert name == f"Poll{poll.id}A"
	assert symbol == "POLLA"


def test_unexpected_error_marks_failed_and_is_reclaimable(user, meme_poll, monkeypatch):
	def broken(self, name, symbol):
		raise TypeError("bad abi")
	monkeypatch.setattr(StubChainAdapter, "deploy_token", broken)

	with pytest.raises(TypeError):
		mint(user, meme_poll)
	coin = GeneratedCoin.objects.get()
	assert coin.status == GeneratedCoinStatus.FAILED
	assert "bad abi" in coin.last_error

	monkeypatch.undo()
	assert mint(user, meme_poll).status == GeneratedCoinStatus.CREATED


def test_gas_check_error_is_deployment_failure(user, meme_poll, monkeypatch):
	def unreachable(self):
		raise ChainError("connection refused")
	monkeypatch.setattr(StubChainAdapter, "native_balance", unreachable)

	with pytest.raises(RewardError) as exc:
		mint(user, meme_poll)
	assert exc.value.kind == ErrorKind.TOKEN_DEPLOYMENT_FAILED
	assert not exc.value.ambiguous
	assert GeneratedCoin.objects.get().status == GeneratedCoinStatus.FAILED
	assert ChainStubToken.objects.count() == 0
