"""Request parsing, user resolution and JSON shapes shared by the API views."""

import hmac
import json

from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import JsonResponse

from core.errors import RewardError
from core.models import User


def parse_body(request) -> dict:
	"""
	JSON body as a dict; raises ValueError for malformed JSON or a non-object.
	"""
	body = json.loads(request.body or b"{}")
	if not isinstance(body, dict):
		raise ValueError("JSON object expected")
	return body


def current_user(request) -> User:
	"""
	Prefer stable identifiers in this order:
	1) X-User-Id header (UUID primary key of core.User)
	2) fallback to DEMO_USER_EMAIL (dev convenience)
	"""
	uid = request.headers.get("X-User-Id")
	if uid:
		try:
			return User.objects.get(id=uid)
		except ValidationError:
			raise User.DoesNotExist(f"malformed user id {uid!r}")
	user, _ = User.objects.get_or_create(email=settings.DEMO_USER_EMAIL, defaults={"display_name": "Demo User"})
	return user


def admin_allowed(request) -> bool:
	token = settings.ADMIN_API_TOKEN
	if not token:
		return settings.DEBUG
	provided = request.headers.get("X-Admin-Token") or ""
	return hmac.compare_digest(token.encode("utf-8"), provided.encode("utf-8"))


def error_response(e: RewardError) -> JsonResponse:
	return JsonResponse(e.as_dict(), status=e.http_status)


def poll_json(poll) -> dict:
	return {
		"id": poll.id,
		"question": poll.question,
		"optionAText": poll.option_a_text,
		"optionBText": poll.option_b_text,
		"optionAVotes": poll.option_a_votes,
		"optionBVotes": poll.option_b_votes,
		"memeCoinMode": poll.meme_coin_mode,
		"blockchain": poll.blockchain,
		"endTime": poll.end_time.isoformat() if poll.end_time else None,
	}


def vote_json(vote) -> dict:
	return {
		"id": vote.id,
		"pollId": vote.poll_id,
		"userId": str(vote.user_id),
		"option": vote.option,
		"votedAt": vote.voted_at.isoformat(),
	}


def coin_json(coin) -> dict:
	return {
		"id": coin.id,
		"pollId": coin.poll_id,
		"option": coin.option,
		"coinName": coin.coin_name,
		"coinSymbol": coin.coin_symbol,
		"coinAddress": coin.coin_address,
		"userWallet": coin.user_wallet,
		"transactionHash": coin.transaction_hash,
		"blockchain": coin.blockchain,
		"status": coin.status,
		"createdAt": coin.created_at.isoformat(),
	}


def package_json(package) -> dict:
	return {
		"id": package.id,
		"packageType": package.package_type,
		"status": package.status,
		"totalPolls": package.total_polls,
		"usedPolls": package.used_polls,
		"remainingPolls": package.remaining_polls,
		"paymentTxHash": package.payment_tx_hash,
		"paymentAmount": str(package.payment_amount),
		"paymentToken": package.payment_token,
		"paymentChain": package.payment_chain,
		"purchasedAt": package.purchased_at.isoformat(),
	}


def outcome_json(outcome) -> dict:
	reward = {
		"status": outcome.reward_status,
		"creditsUsed": outcome.credits_used,
		"remainingCredits": outcome.remaining_credits,
		"message": outcome.message,
		"coin": coin_json(outcome.coin) if outcome.coin else None,
	}
	if outcome.error is not None:
		reward["error"] = outcome.error.kind.value
	return {"vote": vote_json(outcome.vote), "poll": poll_json(outcome.poll), "reward": reward}
