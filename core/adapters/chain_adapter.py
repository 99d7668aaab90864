"""Chain adapter interface + the local chain stub.

The minting and payment services only talk to a ChainAdapter. In live mode that
is EvmChainAdapter (Polygon/Base via web3) or SolanaChainAdapter (solana-py);
with CHAIN_MODE=stub it is StubChainAdapter, which mutates chain_stub tables to
simulate confirmed receipts, balances and gas.

Library exceptions never leave an adapter: they become ChainError,
ChainTimeout (outcome unknown) or InsufficientFunds (operator out of gas).
"""

import os
import secrets
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import F
from solders.keypair import Keypair

from chain_stub.models import ChainStubAccount, ChainStubToken, ChainStubHolding, ChainStubTransaction
from core.wallets import EVM_CHAINS, is_valid_address


class ChainError(Exception):
	pass


class ChainTimeout(ChainError):
	"""
	The call was sent but not confirmed in time; it may still land on-chain.
	"""
	def __init__(self, message: str, tx_hash: str = ""):
		super().__init__(message)
		self.tx_hash = tx_hash


class InsufficientFunds(ChainError):
	pass


@dataclass
class TokenTransfer:
	token: str
	sender: str
	recipient: str
	value: int  # base units
	log_index: int = 0


@dataclass
class PaymentReceipt:
	tx_hash: str
	block_number: int | None
	success: bool
	transfers: list[TokenTransfer] = field(default_factory=list)


@dataclass
class ChainReceipt:
	tx_hash: str
	token_address: str = ""


class ChainAdapter:
	"""
	Operations the reward pipeline needs from a chain.
	"""
	blockchain = ""
	native_symbol = ""
	token_decimals = 18

	@property
	def operator_address(self) -> str:
		raise NotImplementedError

	def is_valid_address(self, address: str) -> bool:
		return is_valid_address(self.blockchain, address)

	def min_gas_balance(self) -> Decimal:
		return settings.MIN_GAS_BALANCE.get(self.blockchain, Decimal("0"))

	def get_payment_receipt(self, tx_hash: str, token_address: str) -> PaymentReceipt | None:
		"""
		Receipt with the decoded Transfer logs of token_address, or None if the tx is unknown.
		"""
		raise NotImplementedError(f"payment verification is not supported on {self.blockchain}")

	def native_balance(self) -> Decimal:
		raise NotImplementedError

	def deploy_token(self, name: str, symbol: str) -> ChainReceipt:
		"""
		Deploy a mintable token owned by the operator; receipt.token_address is set.
		"""
		raise NotImplementedError

	def mint_to(self, token_address: str, recipient: str, units: int) -> ChainReceipt:
		"""
		Mint `units` whole tokens of an existing deployment to recipient.
		"""
		raise NotImplementedError

	def synthetic_address(self) -> str:
		"""
		Address-shaped placeholder for demo coins (never deployed).
		"""
		if self.blockchain in EVM_CHAINS:
			return "0x" + secrets.token_hex(20)
		return str(Keypair().pubkey())


class StubChainAdapter(ChainAdapter):
	"""
	Deterministic chain simulator backed by chain_stub tables.
	Deploy/mint burn a little operator gas so gas management is exercised too.
	"""
	native_symbols = {"base": "ETH", "polygon": "POL", "solana": "SOL"}

	def __init__(self, blockchain: str):
		self.blockchain = blockchain
		self.native_symbol = self.native_symbols.get(blockchain, "ETH")
		self.token_decimals = 6 if blockchain == "solana" else 18

	@property
	def operator_address(self) -> str:
		return f"stub-operator-{self.blockchain}"

	def _tx_hash(self) -> str:
		if self.blockchain in EVM_CHAINS:
			return "0x" + secrets.token_hex(32)
		return str(Keypair().sign_message(os.urandom(32)))

	def _record(self, kind: str, *, success: bool = True, transfers=None) -> ChainStubTransaction:
		return ChainStubTransaction.objects.create(
			tx_hash=self._tx_hash(),
			blockchain=self.blockchain,
			kind=kind,
			block_number=ChainStubTransaction.objects.count() + 1,
			success=success,
			transfers=transfers or [],
		)

	def _operator_account(self) -> ChainStubAccount:
		acct, _ = ChainStubAccount.objects.select_for_update().get_or_create(
			blockchain=self.blockchain,
			address=self.operator_address,
			defaults={"native_balance": settings.CHAIN_STUB_OPERATOR_GAS},
		)
		return acct

	def _spend_gas(self, cost: Decimal):
		acct = self._operator_account()
		if acct.native_balance < cost:
			raise InsufficientFunds(
				f"insufficient funds for gas: have {acct.native_balance} {self.native_symbol}, need {cost}"
			)
		acct.native_balance -= cost
		acct.save(update_fields=["native_balance"])

	def get_payment_receipt(self, tx_hash: str, token_address: str) -> PaymentReceipt | None:
		tx = ChainStubTransaction.objects.filter(tx_hash__iexact=tx_hash, blockchain=self.blockchain).first()
		if tx is None:
			return None
		transfers = [
			TokenTransfer(token=t["token"], sender=t["from"], recipient=t["to"], value=int(t["value"]), log_index=i)
			for i, t in enumerate(tx.transfers)
			if tx.success and t["token"].lower() == token_address.lower()
		]
		return PaymentReceipt(tx_hash=tx.tx_hash, block_number=tx.block_number, success=tx.success, transfers=transfers)

	@transaction.atomic
	def native_balance(self) -> Decimal:
		return self._operator_account().native_balance

	@transaction.atomic
	def credit_native(self, amount: Decimal) -> str:
		"""
		Simulate gas arriving at the operator address (bridge/swap output).
		"""
		acct = self._operator_account()
		acct.native_balance += Decimal(amount)
		acct.save(update_fields=["native_balance"])
		return self._record("gas").tx_hash

	@transaction.atomic
	def deploy_token(self, name: str, symbol: str) -> ChainReceipt:
		self._spend_gas(settings.CHAIN_STUB_DEPLOY_COST)
		token = ChainStubToken.objects.create(
			blockchain=self.blockchain,
			address=self.synthetic_address(),
			name=name,
			symbol=symbol,
		)
		tx = self._record("deploy")
		return ChainReceipt(tx_hash=tx.tx_hash, token_address=token.address)

	@transaction.atomic
	def mint_to(self, token_address: str, recipient: str, units: int) -> ChainReceipt:
		token = ChainStubToken.objects.filter(address=token_address, blockchain=self.blockchain).first()
		if token is None:
			raise ChainError(f"no token deployed at {token_address}")
		self._spend_gas(settings.CHAIN_STUB_MINT_COST)

		base_units = int(units) * 10 ** self.token_decimals
		holding, _ = ChainStubHolding.objects.get_or_create(token=token, wallet=recipient)
		ChainStubHolding.objects.filter(pk=holding.pk).update(units=F("units") + base_units)
		ChainStubToken.objects.filter(pk=token.pk).update(total_units=F("total_units") + base_units)
		tx = self._record("mint")
		return ChainReceipt(tx_hash=tx.tx_hash, token_address=token.address)

	@staticmethod
	def record_payment(sender: str, recipient: str, amount_units: int, token: str | None = None, success: bool = True) -> str:
		"""
		Simulate a stablecoin transfer on the payment chain; returns the tx hash to verify.
		"""
		adapter = StubChainAdapter(settings.PAYMENT_CHAIN)
		transfer = {
			"token": token or settings.USDT_POLYGON_ADDRESS,
			"from": sender,
			"to": recipient,
			"value": int(amount_units),
		}
		return adapter._record("payment", success=success, transfers=[transfer]).tx_hash


def get_chain_adapter(blockchain: str) -> ChainAdapter:
	"""
	Adapter for `blockchain` according to CHAIN_MODE.
	"""
	if settings.CHAIN_MODE == "stub":
		return StubChainAdapter(blockchain)
	if blockchain in EVM_CHAINS:
		from .evm_adapter import EvmChainAdapter
		return EvmChainAdapter(blockchain)
	if blockchain == "solana":
		from .solana_adapter import SolanaChainAdapter
		return SolanaChainAdapter()
	raise ValueError(f"Unsupported blockchain: {blockchain}")
