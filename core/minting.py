"""Coin minting: deliver one meme-token unit per (user, poll, option).

Flow for a fresh request:
	claim GeneratedCoin(pending) -> registry lookup
	  hit:  mint_to(existing token)
	  miss: ensure gas -> deploy -> register (first writer wins) -> mint_to
	-> created

The GeneratedCoin row is inserted before any chain call and is the durable
idempotency key. A non-failed row is returned as-is; a failed row is re-claimed
for retry, whatever the failure. A timed-out chain call leaves the row pending,
so it is never minted twice.
"""

import logging
import re
import secrets
from dataclasses import dataclass

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F

from . import registry
from .adapters.chain_adapter import ChainError, ChainTimeout, InsufficientFunds, get_chain_adapter
from .constants import REWARD_UNITS
from .errors import ErrorKind, RewardError
from .gas import GasManager
from .models import GeneratedCoin, GeneratedCoinStatus, Poll, TokenRegistryEntry, User

logger = logging.getLogger(__name__)

MAX_BASE_NAME = 32
FALLBACK_SYMBOL = "MEME"


@dataclass
class MintRequest:
	user: User
	poll: Poll
	option: str
	wallet: str | None = None  # None: walletless demo coin

	@property
	def demo(self) -> bool:
		return not self.wallet


def base_coin_name(text: str) -> str:
	return re.sub(r"[^A-Za-z0-9]", "", text or "")[:MAX_BASE_NAME]


def coin_symbol(name: str) -> str:
	letters = re.sub(r"[^A-Za-z]", "", name).upper()
	return letters[:6] if len(letters) >= 3 else FALLBACK_SYMBOL


def name_taken(name: str, poll_id, option: str) -> bool:
	"""
	A name collides only when another (poll, option) already uses it.
	"""
	return (
		GeneratedCoin.objects.filter(coin_name=name).exclude(poll_id=poll_id, option=option).exists()
		or TokenRegistryEntry.objects.filter(coin_name=name).exclude(poll_id=poll_id, option=option).exists()
	)


def resolve_coin_identity(poll: Poll, option: str) -> tuple[str, str]:
	"""
	(name, symbol) for the poll option's coin. Reuses whatever the option already
	carries, else picks the first free candidate derived from the option text.
	"""
	entry = registry.get_entry(poll.id, option)
	if entry and entry.coin_name:
		return entry.coin_name, entry.coin_symbol

	existing = GeneratedCoin.objects.filter(poll=poll, option=option).exclude(coin_name="").first()
	if existing:
		return existing.coin_name, existing.coin_symbol

	base = base_coin_name(poll.option_text(option)) or f"Poll{poll.id}{option}"
	symbol = coin_symbol(base)
	for candidate in (base, f"{base}_{poll.id}", f"{base}_{poll.id}{option}"):
		if not name_taken(candidate, poll.id, option):
			return candidate, symbol

	while True:
		candidate = f"{base}_{secrets.token_hex(3)}"
		if not name_taken(candidate, poll.id, option):
			return candidate, symbol


class CoinMintingService:
	def __init__(self, adapter_factory=get_chain_adapter, gas_manager_factory=GasManager):
		self.adapter_factory = adapter_factory
		self.gas_manager_factory = gas_manager_factory

	# --- idempotency key ---

	def claim(self, req: MintRequest) -> tuple[GeneratedCoin, bool]:
		"""
		Returns (coin, owned). owned is False when another request already holds
		the key (pending) or finished it (created/demo).
		"""
		name, symbol = resolve_coin_identity(req.poll, req.option)
		wallet = req.wallet or settings.DEMO_WALLET_PLACEHOLDER
		try:
			with transaction.atomic():
				coin = GeneratedCoin.objects.create(
					user=req.user,
					poll=req.poll,
					option=req.option,
					coin_name=name,
					coin_symbol=symbol,
					user_wallet=wallet,
					blockchain=req.poll.blockchain,
					status=GeneratedCoinStatus.PENDING,
				)
			return coin, True
		except IntegrityError:
			coin = GeneratedCoin.objects.get(user=req.user, poll=req.poll, option=req.option)

		if coin.status != GeneratedCoinStatus.FAILED:
			return coin, False

		reclaimed = GeneratedCoin.objects.filter(pk=coin.pk, status=GeneratedCoinStatus.FAILED).update(
			status=GeneratedCoinStatus.PENDING,
			attempts=F("attempts") + 1,
			user_wallet=wallet,
			last_error="",
		)
		coin.refresh_from_db()
		if reclaimed:
			logger.info(f"Retrying coin {coin.pk} for poll {req.poll.id}:{req.option} (attempt {coin.attempts})")
		return coin, bool(reclaimed)

	def _mark(self, coin: GeneratedCoin, status: str, **fields) -> GeneratedCoin:
		for k, v in fields.items():
			setattr(coin, k, v)
		coin.status = status
		coin.save(update_fields=["status", "updated_at", *fields.keys()])
		return coin

	# --- entry point ---

	def mint(self, req: MintRequest) -> GeneratedCoin:
		coin, owned = self.claim(req)
		if not owned:
			logger.info(f"Coin for user {req.user.id} poll {req.poll.id}:{req.option} already {coin.status}")
			return coin
		return self.process(coin, req)

	def process(self, coin: GeneratedCoin, req: MintRequest) -> GeneratedCoin:
		"""
		Chain work for a row the caller has claimed (status pending).
		Leaves the row created, demo, failed, or pending after a timeout.
		"""
		if req.demo:
			return self._mint_demo(coin, req)

		try:
			adapter = self.adapter_factory(req.poll.blockchain)
			address = self._ensure_token(adapter, coin, req)
			receipt = self._deliver(adapter, address, req.wallet)
		except ChainTimeout as e:
			self._mark(coin, GeneratedCoinStatus.PENDING, last_error=f"timeout: {e}", transaction_hash=e.tx_hash or coin.transaction_hash)
			logger.error(f"Mint for coin {coin.pk} timed out; left pending ({e})")
			raise RewardError(
				ErrorKind.MINTING_FAILED,
				"The blockchain did not confirm in time. Your coin will not be minted twice.",
				ambiguous=True,
			)
		except RewardError as e:
			self._mark(coin, GeneratedCoinStatus.FAILED, last_error=e.message)
			raise
		except Exception as e:
			# a row left pending could never be re-claimed
			self._mark(coin, GeneratedCoinStatus.FAILED, last_error=f"unexpected: {e}")
			raise

		coin = self._mark(
			coin,
			GeneratedCoinStatus.CREATED,
			coin_address=address,
			transaction_hash=receipt.tx_hash,
			last_error="",
		)
		logger.info(f"Delivered {REWARD_UNITS} {coin.coin_symbol} ({address}) to {req.wallet}: {receipt.tx_hash}")
		return coin

	# --- steps ---

	def _mint_demo(self, coin: GeneratedCoin, req: MintRequest) -> GeneratedCoin:
		address = registry.get_token_address(req.poll.id, req.option)
		if not address:
			address = self.adapter_factory(req.poll.blockchain).synthetic_address()
		coin = self._mark(
			coin,
			GeneratedCoinStatus.DEMO,
			coin_address=address,
			transaction_hash=f"demo_tx_{secrets.token_hex(8)}",
		)
		logger.info(f"Demo coin {coin.coin_symbol} for user {req.user.id} poll {req.poll.id}:{req.option}")
		return coin

	def _ensure_token(self, adapter, coin: GeneratedCoin, req: MintRequest) -> str:
		entry = registry.get_entry(req.poll.id, req.option)
		if entry:
			return entry.token_address

		try:
			self.gas_manager_factory(adapter).ensure_gas()
		except ChainError as e:
			# no transaction was sent, so even a timed-out balance read is a plain failure
			logger.error(f"Gas check on {adapter.blockchain} failed before deploying {coin.coin_symbol}: {e}")
			raise RewardError(ErrorKind.TOKEN_DEPLOYMENT_FAILED, f"Could not check operator gas: {e}")
		try:
			receipt = adapter.deploy_token(coin.coin_name, coin.coin_symbol)
		except ChainTimeout:
			raise
		except ChainError as e:
			logger.error(f"Deploying {coin.coin_symbol} on {adapter.blockchain} failed: {e}")
			raise RewardError(ErrorKind.TOKEN_DEPLOYMENT_FAILED, f"Token deployment failed: {e}")

		entry, created = registry.set_token_address(
			req.poll.id,
			req.option,
			receipt.token_address,
			blockchain=adapter.blockchain,
			coin_name=coin.coin_name,
			coin_symbol=coin.coin_symbol,
			deploy_tx_hash=receipt.tx_hash,
		)
		if not created and (entry.coin_name, entry.coin_symbol) != (coin.coin_name, coin.coin_symbol):
			coin.coin_name, coin.coin_symbol = entry.coin_name, entry.coin_symbol
			coin.save(update_fields=["coin_name", "coin_symbol", "updated_at"])
		return entry.token_address

	def _deliver(self, adapter, address: str, wallet: str):
		try:
			try:
				return adapter.mint_to(address, wallet, REWARD_UNITS)
			except InsufficientFunds as e:
				logger.warning(f"Out of gas minting on {adapter.blockchain} ({e}); topping up once")
				gas = self.gas_manager_factory(adapter)
				if gas.top_up(adapter.min_gas_balance()):
					gas.wait_for_balance(adapter.min_gas_balance())
				return adapter.mint_to(address, wallet, REWARD_UNITS)
		except ChainTimeout:
			raise
		except InsufficientFunds as e:
			raise RewardError(ErrorKind.INSUFFICIENT_GAS, f"Operator wallet is out of gas: {e}")
		except ChainError as e:
			logger.error(f"Minting {address} to {wallet} failed: {e}")
			raise RewardError(ErrorKind.MINTING_FAILED, f"Minting failed: {e}")


def mint_coin(user: User, poll: Poll, option: str, wallet: str | None = None) -> GeneratedCoin:
	return CoinMintingService().mint(MintRequest(user=user, poll=poll, option=option, wallet=wallet))
