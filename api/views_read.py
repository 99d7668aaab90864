"""Read-only endpoints to inspect credits, coins, packages and ledger consistency."""

from django.http import JsonResponse, HttpResponseBadRequest
from django.db.models import Count, Sum

from core.credits import get_credits
from core.errors import RewardError
from core.models import CreditBalance, CreditLedgerEntry, GeneratedCoin, ProcessedTransaction, TokenRegistryEntry, User
from core.packages import get_active_package, list_packages, payment_info as package_payment_info
from core.votes import get_poll, vote_status as poll_vote_status
from core.wallets import normalize_wallet

from .helpers import coin_json, current_user, error_response, package_json


def vote_status(request, poll_id: int):
	"""
	GET: {hasVoted, option, pollId} for the current user
	"""
	try:
		return JsonResponse(poll_vote_status(current_user(request), poll_id))
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	except RewardError as e:
		return error_response(e)


def credits(request, wallet: str):
	"""
	GET: Spendable vote credits for a wallet
	"""
	return JsonResponse({"walletAddress": wallet, "credits": get_credits(wallet)})


def user_coins(request):
	"""
	GET: Coins delivered to the current user (newest first)
	"""
	try:
		user = current_user(request)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	rows = GeneratedCoin.objects.filter(user=user).order_by("-created_at")
	return JsonResponse([coin_json(c) for c in rows], safe=False)


def poll_coins(request, poll_id: int):
	"""
	GET: Every coin minted for a poll, plus the registered token per option
	"""
	try:
		poll = get_poll(poll_id)
	except RewardError as e:
		return error_response(e)
	tokens = {
		t.option: {"tokenAddress": t.token_address, "coinName": t.coin_name, "coinSymbol": t.coin_symbol}
		for t in TokenRegistryEntry.objects.filter(poll=poll)
	}
	rows = GeneratedCoin.objects.filter(poll=poll).order_by("created_at")
	return JsonResponse({"pollId": poll.id, "tokens": tokens, "coins": [coin_json(c) for c in rows]})


def payment_info(request):
	return JsonResponse(package_payment_info())


def user_packages(request):
	try:
		user = current_user(request)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	return JsonResponse([package_json(p) for p in list_packages(user)], safe=False)


def active_package(request):
	try:
		user = current_user(request)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	package = get_active_package(user)
	return JsonResponse({"package": package_json(package) if package else None})


def debug_summary(request):
	# Aggregates (None when no rows → coalesce to 0)
	ledger_total = CreditLedgerEntry.objects.aggregate(s=Sum("delta"))["s"] or 0
	balance_total = CreditBalance.objects.aggregate(s=Sum("credits"))["s"] or 0
	per_wallet = {
		r["wallet"]: r["s"]
		for r in CreditLedgerEntry.objects.values("wallet").annotate(s=Sum("delta"))
	}
	mismatched = [
		b.wallet for b in CreditBalance.objects.all()
		if per_wallet.get(normalize_wallet(b.wallet), 0) != b.credits
	]

	coins = dict(GeneratedCoin.objects.values_list("status").annotate(n=Count("id")))
	payments = list(
		ProcessedTransaction.objects
		.order_by("-processed_at")
		.values("tx_hash", "from_wallet", "usdt_amount", "credits_granted", "purpose", "processed_at")[:10]
	)

	return JsonResponse({
		"credits": {
			"ledger_total": ledger_total,
			"balance_total": balance_total,
			"match": ledger_total == balance_total and not mismatched,
			"mismatched_wallets": mismatched,
		},
		"coins_by_status": coins,
		"registered_tokens": TokenRegistryEntry.objects.count(),
		"payments_latest": payments,
		"notes": "ledger_total should equal balance_total when everything is consistent.",
	})
