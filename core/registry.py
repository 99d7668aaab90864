"""Token registry: one deployed token per (poll, option), first writer wins."""

import logging

from django.db import IntegrityError, transaction

from .models import TokenRegistryEntry

logger = logging.getLogger(__name__)


def token_key(poll_id, option: str) -> str:
	return f"{poll_id}:{option}"


def get_entry(poll_id, option: str) -> TokenRegistryEntry | None:
	return TokenRegistryEntry.objects.filter(poll_id=poll_id, option=option).first()


def get_token_address(poll_id, option: str) -> str | None:
	entry = get_entry(poll_id, option)
	return entry.token_address if entry else None


def set_token_address(poll_id, option: str, address: str, *, blockchain: str, coin_name: str = "", coin_symbol: str = "", deploy_tx_hash: str = ""):
	"""
	Register a confirmed deployment. Returns (entry, created); when another writer
	got there first the existing entry comes back with created=False and the
	caller's deployment must be discarded.
	"""
	try:
		with transaction.atomic():
			entry = TokenRegistryEntry.objects.create(
				poll_id=poll_id,
				option=option,
				blockchain=blockchain,
				token_address=address,
				coin_name=coin_name,
				coin_symbol=coin_symbol,
				deploy_tx_hash=deploy_tx_hash,
			)
	except IntegrityError:
		entry = TokenRegistryEntry.objects.get(poll_id=poll_id, option=option)
		if entry.token_address != address:
			logger.warning(
				f"Registry {entry.key} already points to {entry.token_address}; discarding deployment {address}"
			)
		return entry, False

	logger.info(f"Registered token {entry.key} -> {address} on {blockchain}")
	return entry, True
