"""Vote orchestration: validate -> debit -> record -> mint -> done.

Validation, the credit debit and the Vote insert share one transaction with the
poll row locked; the (user, poll) unique constraint is the final arbiter against
duplicate votes, and a failed insert rolls the debit back with it.

Minting runs after commit. If it fails the vote stands, the credit is refunded
and the caller gets a partial outcome describing the failed reward.
"""

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .constants import VOTE_COST_CREDITS
from .credits import add_credits, deduct_credits, get_credits
from .errors import ErrorKind, RewardError
from .minting import CoinMintingService, MintRequest, resolve_coin_identity
from .models import GeneratedCoin, GeneratedCoinStatus, Poll, User, Vote
from .wallets import is_valid_address

logger = logging.getLogger(__name__)

VALID_OPTIONS = ("A", "B")

REWARD_STATUS = {
	GeneratedCoinStatus.CREATED: "delivered",
	GeneratedCoinStatus.DEMO: "demo",
	GeneratedCoinStatus.PENDING: "pending",
	GeneratedCoinStatus.FAILED: "failed",
}


@dataclass
class VoteOutcome:
	vote: Vote
	poll: Poll
	coin: GeneratedCoin | None = None
	credits_used: int = 0
	remaining_credits: int | None = None
	reward_status: str = "none"
	message: str = ""
	error: RewardError | None = None


def get_poll(poll_id) -> Poll:
	poll = Poll.objects.filter(pk=poll_id).first()
	if poll is None:
		raise RewardError(ErrorKind.POLL_NOT_FOUND, f"Poll {poll_id} not found.")
	return poll


def coin_preview(poll: Poll, option: str) -> dict:
	name, symbol = resolve_coin_identity(poll, option)
	return {
		"option": option,
		"pollId": poll.id,
		"optionText": poll.option_text(option),
		"coinName": name,
		"coinSymbol": symbol,
	}


def _validate(poll: Poll, option: str, wallet: str | None, demo: bool) -> str | None:
	"""
	Returns the wallet to reward (None for demo coins or plain polls).
	"""
	if poll.end_time and poll.end_time <= timezone.now():
		raise RewardError(ErrorKind.POLL_CLOSED, "This poll has ended.")
	if not poll.meme_coin_mode:
		return None
	if demo:
		return None
	if not wallet:
		raise RewardError(
			ErrorKind.WALLET_CHOICE_REQUIRED,
			"Connect a wallet or choose demo mode to receive your coin.",
			requiresWalletChoice=True,
			coinPreview=coin_preview(poll, option),
		)
	if not is_valid_address(poll.blockchain, wallet):
		raise RewardError(ErrorKind.INVALID_WALLET_ADDRESS, f"Invalid {poll.blockchain} wallet address.")
	return wallet


def _already_voted(user: User, poll: Poll) -> bool:
	return Vote.objects.filter(user=user, poll=poll).exists()


def cast_vote(user: User, poll_id, option: str, *, wallet: str | None = None, demo: bool = False, minting=None) -> VoteOutcome:
	option = (option or "").strip().upper()
	if option not in VALID_OPTIONS:
		raise RewardError(ErrorKind.INVALID_OPTION, "Option must be 'A' or 'B'.")
	poll = get_poll(poll_id)
	if _already_voted(user, poll):
		raise RewardError(ErrorKind.ALREADY_VOTED, "You have already voted on this poll.")
	wallet = _validate(poll, option, (wallet or "").strip() or None, demo)
	charged = wallet is not None

	with transaction.atomic():
		poll = Poll.objects.select_for_update().get(pk=poll.pk)
		if _already_voted(user, poll):
			raise RewardError(ErrorKind.ALREADY_VOTED, "You have already voted on this poll.")

		remaining = None
		if charged:
			remaining = deduct_credits(wallet, VOTE_COST_CREDITS, reason="vote", ref=f"poll:{poll.id}")

		try:
			with transaction.atomic():
				vote = Vote.objects.create(user=user, poll=poll, option=option)
		except IntegrityError:
			raise RewardError(ErrorKind.ALREADY_VOTED, "You have already voted on this poll.")

		tally = "option_a_votes" if option == "A" else "option_b_votes"
		Poll.objects.filter(pk=poll.pk).update(**{tally: F(tally) + 1})

	poll.refresh_from_db()
	logger.info(f"User {user.id} voted {option} on poll {poll.id} (charged={charged})")

	outcome = VoteOutcome(
		vote=vote,
		poll=poll,
		credits_used=VOTE_COST_CREDITS if charged else 0,
		remaining_credits=remaining,
		message="Vote recorded.",
	)
	if not poll.meme_coin_mode:
		return outcome
	req = MintRequest(user=user, poll=poll, option=option, wallet=wallet)
	return _reward(outcome, req, charged, minting or CoinMintingService())


def retry_reward(user: User, poll_id, wallet: str, *, minting=None) -> VoteOutcome:
	"""
	Re-attempt a failed coin reward for an existing vote. Costs one credit,
	refunded again if the mint fails.

	The coin row is locked while the credit is debited and the row re-claimed,
	so concurrent retries debit once and the others find nothing to retry.
	"""
	poll = get_poll(poll_id)
	vote = Vote.objects.filter(user=user, poll=poll).first()
	if vote is None:
		raise RewardError(ErrorKind.VOTE_NOT_FOUND, "You have not voted on this poll.")

	outcome = VoteOutcome(vote=vote, poll=poll)
	if not poll.meme_coin_mode:
		outcome.message = "This poll does not reward votes with coins."
		return outcome

	minting = minting or CoinMintingService()
	wallet = (wallet or "").strip()
	req = MintRequest(user=user, poll=poll, option=vote.option, wallet=wallet)

	owned = False
	with transaction.atomic():
		coin = GeneratedCoin.objects.select_for_update().filter(user=user, poll=poll, option=vote.option).first()
		if coin is None or coin.status == GeneratedCoinStatus.FAILED:
			if not is_valid_address(poll.blockchain, wallet):
				raise RewardError(ErrorKind.INVALID_WALLET_ADDRESS, f"Invalid {poll.blockchain} wallet address.")
			remaining = deduct_credits(wallet, VOTE_COST_CREDITS, reason="vote", ref=f"retry:poll:{poll.id}")
			coin, owned = minting.claim(req)
			if not owned:
				# someone else holds the key; undo the debit with the rest of the block
				transaction.set_rollback(True)

	if not owned:
		outcome.coin = coin
		outcome.reward_status = REWARD_STATUS[coin.status]
		outcome.message = "Nothing to retry."
		return outcome

	outcome.remaining_credits = remaining
	outcome.credits_used = VOTE_COST_CREDITS
	return _reward(outcome, req, True, minting, claimed=coin)


def _reward(outcome: VoteOutcome, req: MintRequest, charged: bool, minting, claimed: GeneratedCoin | None = None) -> VoteOutcome:
	"""
	Claim (unless the caller already did) and process the vote's coin. A charge
	that ends up owning no claim bought nothing and is refunded.
	"""
	coin, owned = claimed, claimed is not None
	try:
		if coin is None:
			coin, owned = minting.claim(req)
		if owned:
			coin = minting.process(coin, req)
	except RewardError as e:
		logger.warning(f"Reward for vote {outcome.vote.pk} failed: {e}")
		return _compensate(outcome, e, req.wallet, charged)
	except Exception as e:
		logger.exception(f"Unexpected error minting reward for vote {outcome.vote.pk}")
		return _compensate(outcome, RewardError(ErrorKind.MINTING_FAILED, f"Coin creation failed: {e}"), req.wallet, charged)

	outcome.coin = coin
	outcome.reward_status = REWARD_STATUS[coin.status]
	if not owned:
		logger.info(f"Coin {coin.pk} for vote {outcome.vote.pk} already {coin.status}; nothing minted")
		outcome.message = f"Vote recorded. Your coin is already {outcome.reward_status}."
		if charged:
			outcome.remaining_credits = add_credits(req.wallet, VOTE_COST_CREDITS, reason="refund", ref=f"poll:{outcome.poll.id}")
			outcome.credits_used = 0
			outcome.message += " Your credit was refunded."
	elif coin.status == GeneratedCoinStatus.DEMO:
		outcome.message = f"Vote recorded. Demo coin {coin.coin_symbol} generated."
	elif coin.status == GeneratedCoinStatus.CREATED:
		outcome.message = f"Vote recorded. 1 {coin.coin_symbol} sent to {coin.user_wallet}."
	return outcome


def _compensate(outcome: VoteOutcome, error: RewardError, wallet: str | None, charged: bool) -> VoteOutcome:
	refunded = charged and (not error.ambiguous or settings.REFUND_ON_AMBIGUOUS_MINT)
	if refunded:
		outcome.remaining_credits = add_credits(wallet, VOTE_COST_CREDITS, reason="refund", ref=f"poll:{outcome.poll.id}")
		outcome.credits_used = 0
	elif charged:
		outcome.remaining_credits = get_credits(wallet)

	outcome.coin = GeneratedCoin.objects.filter(user_id=outcome.vote.user_id, poll=outcome.poll, option=outcome.vote.option).first()
	outcome.reward_status = "pending" if error.ambiguous else "failed"
	outcome.error = error
	outcome.message = f"Vote recorded, but the coin reward failed: {error.message}"
	if refunded:
		outcome.message += " Your credit was refunded."
	return outcome


def vote_status(user: User, poll_id) -> dict:
	poll = get_poll(poll_id)
	vote = Vote.objects.filter(user=user, poll=poll).first()
	return {
		"hasVoted": vote is not None,
		"option": vote.option if vote else None,
		"pollId": poll.id,
	}
