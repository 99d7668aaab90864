"""MemeCoin packages: bundles of real-coin poll uses bought with a verified USDT payment."""

import logging

from django.conf import settings
from django.db import transaction

from .errors import ErrorKind, RewardError
from .models import MemeCoinPackage, MemeCoinPackageStatus, User
from .payments import find_payment, record_processed

logger = logging.getLogger(__name__)


def payment_info() -> dict:
	return {
		"walletAddress": settings.TREASURY_WALLET,
		"price": str(settings.PACKAGE_PRICE_USDT),
		"token": "USDT",
		"tokenAddress": settings.USDT_POLYGON_ADDRESS,
		"chain": settings.PAYMENT_CHAIN,
		"pollsPerPackage": settings.PACKAGE_POLLS,
	}


def purchase_package(user: User, payment_tx_hash: str, sender_wallet: str) -> MemeCoinPackage:
	"""
	Activate a package for a USDT payment of at least PACKAGE_PRICE_USDT. The
	payment hash goes through the same replay guard as credit purchases.
	"""
	transfer = find_payment(payment_tx_hash, sender_wallet)
	if transfer.amount_usdt < settings.PACKAGE_PRICE_USDT:
		raise RewardError(
			ErrorKind.NO_VALID_TRANSFER,
			f"Package costs {settings.PACKAGE_PRICE_USDT} USDT; received {transfer.amount_usdt}.",
		)

	with transaction.atomic():
		record_processed(transfer, purpose="package")
		package = MemeCoinPackage.objects.create(
			user=user,
			status=MemeCoinPackageStatus.ACTIVE,
			total_polls=settings.PACKAGE_POLLS,
			remaining_polls=settings.PACKAGE_POLLS,
			payment_tx_hash=transfer.tx_hash,
			payment_amount=transfer.amount_usdt,
			payment_chain=settings.PAYMENT_CHAIN,
		)

	logger.info(f"Package {package.id} activated for user {user.id} ({transfer.amount_usdt} USDT, {transfer.tx_hash})")
	return package


def list_packages(user: User):
	return MemeCoinPackage.objects.filter(user=user).order_by("-purchased_at")


def get_active_package(user: User) -> MemeCoinPackage | None:
	"""
	Oldest active package with uses left.
	"""
	return (
		MemeCoinPackage.objects
		.filter(user=user, status=MemeCoinPackageStatus.ACTIVE, remaining_polls__gt=0)
		.order_by("purchased_at")
		.first()
	)


@transaction.atomic
def consume_package_use(user: User, package_id) -> MemeCoinPackage:
	package = MemeCoinPackage.objects.select_for_update().filter(pk=package_id, user=user).first()
	if package is None:
		raise RewardError(ErrorKind.PACKAGE_NOT_FOUND, f"Package {package_id} not found.")
	if package.status != MemeCoinPackageStatus.ACTIVE or package.remaining_polls <= 0:
		raise RewardError(ErrorKind.PACKAGE_EXHAUSTED, "This package has no uses left.")

	package.used_polls += 1
	package.remaining_polls -= 1
	if package.remaining_polls == 0:
		package.status = MemeCoinPackageStatus.USED_UP
	package.save(update_fields=["used_polls", "remaining_polls", "status"])

	logger.info(f"Package {package.id}: {package.remaining_polls}/{package.total_polls} uses left")
	return package
