"""Credit ledger: spendable vote credits per wallet.

Mutations lock the wallet's CreditBalance row (select_for_update) inside
transaction.atomic, so concurrent debits for one wallet serialize in the
database rather than in process memory. Each mutation writes a ledger entry.
"""

import logging

from django.db import transaction

from .errors import ErrorKind, RewardError
from .models import CreditBalance, CreditLedgerEntry
from .wallets import normalize_wallet

logger = logging.getLogger(__name__)


def _check_amount(n: int) -> int:
	if not isinstance(n, int) or isinstance(n, bool) or n < 0:
		raise ValueError(f"credit amount must be a non-negative integer, got {n!r}")
	return n


def get_credits(wallet: str) -> int:
	row = CreditBalance.objects.filter(wallet=normalize_wallet(wallet)).first()
	return row.credits if row else 0


@transaction.atomic
def add_credits(wallet: str, n: int, *, reason: str = "admin", ref: str = "") -> int:
	"""
	Increase the wallet's balance by exactly n and return the new balance.
	"""
	n = _check_amount(n)
	key = normalize_wallet(wallet)
	if not key:
		raise ValueError("wallet required")

	balance, _ = CreditBalance.objects.select_for_update().get_or_create(wallet=key, defaults={"credits": 0})
	balance.credits += n
	balance.save(update_fields=["credits", "updated_at"])
	CreditLedgerEntry.objects.create(wallet=key, delta=n, reason=reason, ref=ref)

	logger.info(f"Credited {n} to {key} ({reason} {ref}); balance {balance.credits}")
	return balance.credits


@transaction.atomic
def deduct_credits(wallet: str, n: int, *, reason: str = "vote", ref: str = "") -> int:
	"""
	Decrease the balance by n or raise InsufficientCredits with nothing changed.
	"""
	n = _check_amount(n)
	key = normalize_wallet(wallet)

	balance = CreditBalance.objects.select_for_update().filter(wallet=key).first()
	available = balance.credits if balance else 0
	if available < n:
		raise RewardError(
			ErrorKind.INSUFFICIENT_CREDITS,
			f"Insufficient credits. You have {available} credits, but need {n}. Purchase credits with USDT payments.",
			credits=available,
		)
	if n == 0:
		return available

	balance.credits -= n
	balance.save(update_fields=["credits", "updated_at"])
	CreditLedgerEntry.objects.create(wallet=key, delta=-n, reason=reason, ref=ref)

	logger.info(f"Debited {n} from {key} ({reason} {ref}); balance {balance.credits}")
	return balance.credits
