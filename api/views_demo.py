"""Demo helpers: seed a user with a MemeCoin poll and starter credits."""

from django.http import JsonResponse, HttpResponseBadRequest

from core.services import DemoServices

from .helpers import parse_body, poll_json


def seed(request):
	"""
	POST: Create/fetch the demo user + MemeCoin poll; optionally grant credits to a wallet
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = parse_body(request)
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")

	credits = body.get("credits", 0)
	if not isinstance(credits, int) or isinstance(credits, bool) or credits < 0:
		return HttpResponseBadRequest("credits must be a non-negative integer")
	try:
		user, poll, balance = DemoServices.seed(
			wallet=body.get("walletAddress", ""),
			credits=credits,
			blockchain=body.get("blockchain"),
		)
	except ValueError as e:
		return HttpResponseBadRequest(str(e))

	return JsonResponse({"user_id": str(user.id), "poll": poll_json(poll), "credits": balance})
