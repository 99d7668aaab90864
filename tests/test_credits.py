import pytest

from core.credits import add_credits, deduct_credits, get_credits
from core.errors import ErrorKind, RewardError
from core.models import CreditLedgerEntry
from core.wallets import is_valid_address, normalize_wallet

from .conftest import WALLET

pytestmark = pytest.mark.django_db


def test_add_credits_increases_balance_by_exactly_n():
	assert get_credits(WALLET) == 0
	assert add_credits(WALLET, 5) == 5
	assert add_credits(WALLET, 2) == 7
	assert get_credits(WALLET) == 7


def test_wallets_are_case_insensitive():
	add_credits(WALLET.upper().replace("0X", "0x"), 3)
	assert get_credits(WALLET) == 3
	assert get_credits(f"  {WALLET}  ") == 3


def test_deduct_more_than_balance_fails_and_leaves_balance():
	add_credits(WALLET, 2)
	with pytest.raises(RewardError) as exc:
		deduct_credits(WALLET, 3)
	assert exc.value.kind == ErrorKind.INSUFFICIENT_CREDITS
	assert exc.value.extra["credits"] == 2
	assert get_credits(WALLET) == 2


def test_deduct_from_unknown_wallet_fails():
	with pytest.raises(RewardError) as exc:
		deduct_credits(WALLET, 1)
	assert exc.value.kind == ErrorKind.INSUFFICIENT_CREDITS
	assert exc.value.http_status == 402
	assert deduct_credits(WALLET, 0) == 0


def test_deduct_returns_remaining_balance():
	add_credits(WALLET, 3)
	assert deduct_credits(WALLET, 1) == 2
	assert get_credits(WALLET) == 2


@pytest.mark.parametrize("amount", [-1, 1.5, True, "2"])
def test_amount_must_be_non_negative_integer(amount):
	with pytest.raises(ValueError):
		add_credits(WALLET, amount)
	with pytest.raises(ValueError):
		deduct_credits(WALLET, amount)


def test_every_mutation_is_in_the_ledger():
	add_credits(WALLET, 3, reason="payment", ref="0xtx")
	deduct_credits(WALLET, 1, reason="vote", ref="poll:1")
	add_credits(WALLET, 1, reason="refund", ref="poll:1")

	entries = list(CreditLedgerEntry.objects.filter(wallet=WALLET).order_by("id").values_list("delta", "reason"))
	assert entries == [(3, "payment"), (-1, "vote"), (1, "refund")]
	assert sum(d for d, _ in entries) == get_credits(WALLET)


def test_normalize_and_validate_wallets(solana_wallet):
	assert normalize_wallet("  0xABC  ") == "0xabc"
	assert is_valid_address("base", WALLET)
	assert is_valid_address("polygon", WALLET.upper().replace("0X", "0x"))
	assert not is_valid_address("base", "0xABC")
	assert not is_valid_address("base", solana_wallet)
	assert is_valid_address("solana", solana_wallet)
	assert not is_valid_address("solana", WALLET)
	assert not is_valid_address("solana", "")
