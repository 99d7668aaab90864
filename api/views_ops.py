"""Operational endpoints that move the system forward (vote/pay/credit/consume)."""

from django.http import JsonResponse, HttpResponseBadRequest, HttpResponseForbidden
from django.views.decorators.csrf import csrf_exempt
from django.middleware.csrf import get_token

from core.credits import add_credits as ledger_add_credits
from core.errors import RewardError
from core.models import User
from core.packages import consume_package_use, purchase_package
from core.payments import verify_payment as verify_usdt_payment
from core.votes import cast_vote, retry_reward

from .helpers import admin_allowed, current_user, error_response, outcome_json, package_json, parse_body
from .views_read import vote_status


def health(request):
	return JsonResponse({"ok": True})


def csrf(request):
	# Forces creation/rotation of the CSRF token AND sets 'csrftoken' cookie
	return JsonResponse({"csrftoken": get_token(request)})


def _vote(request, poll_id: int):
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	if not body.get("option"):
		return HttpResponseBadRequest("option required")

	try:
		user = current_user(request)
		outcome = cast_vote(
			user,
			poll_id,
			body["option"],
			wallet=body.get("walletAddress"),
			demo=bool(body.get("demoMode")),
		)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	except RewardError as e:
		return error_response(e)

	return JsonResponse(outcome_json(outcome), status=201)


def vote(request, poll_id: int):
	"""
	GET: Has the current user voted on this poll?
	POST: Cast a vote; on MemeCoin polls this spends a credit and mints the reward
	"""
	if request.method == "GET":
		return vote_status(request, poll_id)
	if request.method != "POST":
		return HttpResponseBadRequest("GET or POST only")
	return _vote(request, poll_id)


def retry(request, poll_id: int):
	"""
	POST: Re-attempt a failed coin reward for the current user's vote
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	if not body.get("walletAddress"):
		return HttpResponseBadRequest("walletAddress required")

	try:
		outcome = retry_reward(current_user(request), poll_id, body["walletAddress"])
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	except RewardError as e:
		return error_response(e)
	return JsonResponse(outcome_json(outcome))


def verify_payment(request):
	"""
	POST: Verify a USDT transfer to the treasury and grant vote credits
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	tx_hash = body.get("txHash")
	sender = body.get("senderWallet")
	if not tx_hash or not sender:
		return HttpResponseBadRequest("txHash and senderWallet required")

	try:
		result = verify_usdt_payment(tx_hash, sender)
	except RewardError as e:
		return error_response(e)

	return JsonResponse({
		"success": True,
		"credits": result.credits,
		"balance": result.balance,
		"amount": str(result.amount_usdt),
		"txHash": result.tx_hash,
		"message": result.message,
	})


@csrf_exempt
def add_credits(request):
	"""
	POST: Grant credits to a wallet (operators only, X-Admin-Token)
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	if not admin_allowed(request):
		return HttpResponseForbidden("Bad admin token")
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")

	wallet = body.get("walletAddress")
	credits = body.get("credits")
	if not wallet or not isinstance(credits, int) or isinstance(credits, bool) or credits <= 0:
		return HttpResponseBadRequest("walletAddress and a positive integer credits required")

	balance = ledger_add_credits(wallet, credits, reason="admin", ref="admin-api")
	return JsonResponse({"message": f"Added {credits} credits to {wallet}", "newBalance": balance})


def purchase(request):
	"""
	POST: Activate a MemeCoin package from a verified USDT payment
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	tx_hash = body.get("paymentTxHash")
	sender = body.get("senderWallet")
	if not tx_hash or not sender:
		return HttpResponseBadRequest("paymentTxHash and senderWallet required")

	try:
		package = purchase_package(current_user(request), tx_hash, sender)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	except RewardError as e:
		return error_response(e)
	return JsonResponse({"success": True, "package": package_json(package)}, status=201)


def consume(request, package_id: int):
	"""
	POST: Use one poll from a package
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		package = consume_package_use(current_user(request), package_id)
	except User.DoesNotExist:
		return HttpResponseBadRequest("Unknown user")
	except RewardError as e:
		return error_response(e)
	return JsonResponse({"success": True, "package": package_json(package)})
