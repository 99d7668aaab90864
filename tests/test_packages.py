from decimal import Decimal

import pytest

from core.errors import ErrorKind, RewardError
from core.models import MemeCoinPackageStatus, ProcessedTransaction
from core.packages import consume_package_use, get_active_package, list_packages, payment_info, purchase_package
from core.payments import verify_payment

from .conftest import WALLET

pytestmark = pytest.mark.django_db


def test_purchase_activates_package(user, pay):
	tx = pay(WALLET, "1.00")

	package = purchase_package(user, tx, WALLET)

	assert package.status == MemeCoinPackageStatus.ACTIVE
	assert package.total_polls == 3
	assert package.remaining_polls == 3
	assert package.payment_amount == Decimal("1.000000")
	assert ProcessedTransaction.objects.get(tx_hash=tx).purpose == "package"
	assert get_active_package(user) == package


def test_package_payment_cannot_be_replayed(user, pay):
	tx = pay(WALLET, "1.00")
	purchase_package(user, tx, WALLET)

	with pytest.raises(RewardError) as exc:
		purchase_package(user, tx, WALLET)
	assert exc.value.kind == ErrorKind.ALREADY_PROCESSED

	# nor reused to buy vote credits
	with pytest.raises(RewardError) as exc:
		verify_payment(tx, WALLET)
	assert exc.value.kind == ErrorKind.ALREADY_PROCESSED
	assert list_packages(user).count() == 1


def test_underpayment_is_rejected(user, pay):
	tx = pay(WALLET, "0.50")
	with pytest.raises(RewardError) as exc:
		purchase_package(user, tx, WALLET)
	assert exc.value.kind == ErrorKind.NO_VALID_TRANSFER
	assert not ProcessedTransaction.objects.exists()


def test_consume_until_used_up(user, pay):
	package = purchase_package(user, pay(WALLET, "1.00"), WALLET)

	for remaining in (2, 1, 0):
		package = consume_package_use(user, package.id)
		assert package.remaining_polls == remaining
	assert package.used_polls == 3
	assert package.status == MemeCoinPackageStatus.USED_UP
	assert get_active_package(user) is None

	with pytest.raises(RewardError) as exc:
		consume_package_use(user, package.id)
	assert exc.value.kind == ErrorKind.PACKAGE_EXHAUSTED


def test_active_package_is_oldest_with_uses_left(user, pay):
	first = purchase_package(user, pay(WALLET, "1.00"), WALLET)
	second = purchase_package(user, pay(WALLET, "1.00"), WALLET)
	assert get_active_package(user) == first

	for _ in range(3):
		consume_package_use(user, first.id)
	assert get_active_package(user) == second


def test_cannot_consume_someone_elses_package(user, other_user, pay):
	package = purchase_package(user, pay(WALLET, "1.00"), WALLET)
	with pytest.raises(RewardError) as exc:
		consume_package_use(other_user, package.id)
	assert exc.value.kind == ErrorKind.PACKAGE_NOT_FOUND


def test_payment_info(settings):
	info = payment_info()
	assert info["walletAddress"] == settings.TREASURY_WALLET
	assert info["price"] == "1.00"
	assert info["pollsPerPackage"] == 3
	assert info["chain"] == "polygon"
