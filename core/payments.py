"""USDT payment verification + replay guard.

A payment is a confirmed Polygon transaction whose receipt carries a USDT
Transfer log from the sender to the treasury wallet. Each tx hash is consumed
at most once: the ProcessedTransaction insert (unique tx_hash) and the credit
grant commit together or not at all.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction

from .adapters.chain_adapter import ChainError, ChainTimeout, get_chain_adapter
from .constants import credits_for_usdt, units_to_usdt
from .credits import add_credits
from .errors import ErrorKind, RewardError
from .models import ProcessedTransaction
from .wallets import is_valid_address, normalize_wallet

logger = logging.getLogger(__name__)


@dataclass
class VerifiedTransfer:
	tx_hash: str
	sender: str
	recipient: str
	amount_units: int
	block_number: int | None

	@property
	def amount_usdt(self) -> Decimal:
		return units_to_usdt(self.amount_units)


@dataclass
class PaymentResult:
	tx_hash: str
	sender: str
	amount_usdt: Decimal
	credits: int
	balance: int

	@property
	def message(self) -> str:
		return f"Payment verified! Added {self.credits} vote credits for {self.amount_usdt} USDT."


def normalize_tx_hash(tx_hash: str) -> str:
	return (tx_hash or "").strip().lower()


def has_processed(tx_hash: str) -> bool:
	return ProcessedTransaction.objects.filter(tx_hash=normalize_tx_hash(tx_hash)).exists()


def record_processed(transfer: VerifiedTransfer, *, credits_granted: int = 0, purpose: str = "credits") -> ProcessedTransaction:
	"""
	Insert the replay-guard row; the loser of a concurrent insert gets AlreadyProcessed.
	"""
	try:
		with transaction.atomic():
			return ProcessedTransaction.objects.create(
				tx_hash=normalize_tx_hash(transfer.tx_hash),
				from_wallet=normalize_wallet(transfer.sender),
				to_wallet=normalize_wallet(transfer.recipient),
				usdt_amount=transfer.amount_usdt,
				credits_granted=credits_granted,
				block_number=transfer.block_number,
				chain=settings.PAYMENT_CHAIN,
				purpose=purpose,
			)
	except IntegrityError:
		raise RewardError(ErrorKind.ALREADY_PROCESSED, "This transaction has already been processed.")


def find_payment(tx_hash: str, sender_wallet: str) -> VerifiedTransfer:
	"""
	Locate the USDT transfer sender -> treasury in tx_hash's receipt.
	"""
	tx_hash = normalize_tx_hash(tx_hash)
	if not tx_hash:
		raise RewardError(ErrorKind.TRANSACTION_NOT_FOUND, "Transaction hash is required.")
	if not is_valid_address(settings.PAYMENT_CHAIN, sender_wallet):
		raise RewardError(ErrorKind.INVALID_WALLET_ADDRESS, f"Invalid {settings.PAYMENT_CHAIN} wallet address.")
	if has_processed(tx_hash):
		raise RewardError(ErrorKind.ALREADY_PROCESSED, "This transaction has already been processed.")

	adapter = get_chain_adapter(settings.PAYMENT_CHAIN)
	try:
		receipt = adapter.get_payment_receipt(tx_hash, settings.USDT_POLYGON_ADDRESS)
	except ChainTimeout as e:
		logger.warning(f"Receipt lookup for {tx_hash} timed out: {e}")
		raise RewardError(ErrorKind.CHAIN_UNAVAILABLE, "Timed out reading the transaction. Please try again.")
	except ChainError as e:
		logger.warning(f"Receipt lookup for {tx_hash} failed: {e}")
		raise RewardError(ErrorKind.CHAIN_UNAVAILABLE, "Could not reach the payment network. Please try again.")

	if receipt is None:
		raise RewardError(ErrorKind.TRANSACTION_NOT_FOUND, "Transaction not found or not yet confirmed.")
	if not receipt.success:
		raise RewardError(ErrorKind.NO_VALID_TRANSFER, "Transaction failed on-chain.")

	sender = normalize_wallet(sender_wallet)
	treasury = normalize_wallet(settings.TREASURY_WALLET)
	matched = [
		t for t in receipt.transfers
		if normalize_wallet(t.sender) == sender and normalize_wallet(t.recipient) == treasury
	]
	if not matched:
		raise RewardError(
			ErrorKind.NO_VALID_TRANSFER,
			"No valid USDT transfer from your wallet to the platform wallet was found in this transaction.",
		)

	return VerifiedTransfer(
		tx_hash=tx_hash,
		sender=sender,
		recipient=treasury,
		amount_units=sum(t.value for t in matched),
		block_number=receipt.block_number,
	)


def verify_payment(tx_hash: str, sender_wallet: str) -> PaymentResult:
	"""
	Verify a USDT payment and grant floor(amount * CREDITS_PER_USDT) vote credits to the sender.
	"""
	transfer = find_payment(tx_hash, sender_wallet)
	credits = credits_for_usdt(transfer.amount_usdt)
	if credits <= 0:
		raise RewardError(
			ErrorKind.NO_VALID_TRANSFER,
			f"{transfer.amount_usdt} USDT is below the price of one vote credit.",
		)

	with transaction.atomic():
		record_processed(transfer, credits_granted=credits, purpose="credits")
		balance = add_credits(transfer.sender, credits, reason="payment", ref=transfer.tx_hash)

	logger.info(f"Payment {transfer.tx_hash}: {transfer.amount_usdt} USDT from {transfer.sender} -> {credits} credits")
	return PaymentResult(
		tx_hash=transfer.tx_hash,
		sender=transfer.sender,
		amount_usdt=transfer.amount_usdt,
		credits=credits,
		balance=balance,
	)
