"""Demo and maintenance helpers built on the reward pipeline.

- seed: demo user + a MemeCoin poll (and optional starter credits)
- backfill_missing_coins: demo coins for meme-coin votes that never got one
"""

import logging

from django.conf import settings
from django.db import transaction

from .credits import add_credits
from .minting import CoinMintingService, MintRequest
from .models import Blockchain, GeneratedCoin, Poll, User, Vote

logger = logging.getLogger(__name__)


class DemoServices:

	@staticmethod
	@transaction.atomic
	def seed_demo_user():
		"""
		Create (or fetch) the demo user
		"""
		user, _ = User.objects.get_or_create(email=settings.DEMO_USER_EMAIL, defaults={"display_name": "Demo User"})
		return user

	@staticmethod
	@transaction.atomic
	def seed_demo_poll(blockchain: str = None):
		user = DemoServices.seed_demo_user()
		poll, _ = Poll.objects.get_or_create(
			creator=user,
			question="Which one wins?",
			defaults=dict(
				option_a_text="Doge",
				option_b_text="Pepe",
				meme_coin_mode=True,
				blockchain=blockchain or settings.DEFAULT_BLOCKCHAIN,
			),
		)
		return user, poll

	@staticmethod
	def seed(wallet: str = "", credits: int = 0, blockchain: str = None):
		"""
		Demo user + poll; grants `credits` to `wallet` when both are given.
		"""
		if blockchain and blockchain not in Blockchain.values:
			raise ValueError(f"Unsupported blockchain: {blockchain}")
		user, poll = DemoServices.seed_demo_poll(blockchain)
		balance = None
		if wallet and credits:
			balance = add_credits(wallet, credits, reason="admin", ref="demo-seed")
		return user, poll, balance


def backfill_missing_coins(*, dry_run: bool = False, minting=None) -> list:
	"""
	Votes on meme-coin polls without a GeneratedCoin get a demo coin.
	Returns the (vote, coin) pairs handled; coin is None on a dry run.
	"""
	minting = minting or CoinMintingService()
	missing = (
		Vote.objects
		.filter(poll__meme_coin_mode=True)
		.select_related("poll", "user")
		.order_by("voted_at")
	)
	handled = []
	for vote in missing:
		if GeneratedCoin.objects.filter(user=vote.user, poll=vote.poll, option=vote.option).exists():
			continue
		if dry_run:
			handled.append((vote, None))
			continue
		coin = minting.mint(MintRequest(user=vote.user, poll=vote.poll, option=vote.option))
		logger.info(f"Backfilled demo coin {coin.coin_symbol} for vote {vote.pk}")
		handled.append((vote, coin))
	return handled
