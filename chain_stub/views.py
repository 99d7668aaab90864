"""HTTP endpoints for the chain stub: simulate payments, inspect holdings, fund operator gas"""

import json
from decimal import Decimal, InvalidOperation
from django.conf import settings
from django.http import JsonResponse, HttpResponseBadRequest

from core.adapters.chain_adapter import StubChainAdapter
from core.constants import usdt_to_units
from .models import ChainStubHolding, ChainStubAccount


def usdt_transfer(request):
	"""
	POST: Record a confirmed USDT transfer on the payment chain; returns the tx hash to verify
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json.loads(request.body or b"{}")
	sender = body.get("from")
	if not sender:
		return HttpResponseBadRequest("from required")
	try:
		amount = Decimal(str(body.get("amount_usdt", "0")))
	except InvalidOperation:
		return HttpResponseBadRequest("amount_usdt must be a number")
	if amount <= 0:
		return HttpResponseBadRequest("amount_usdt must be > 0")

	tx_hash = StubChainAdapter.record_payment(
		sender=sender,
		recipient=body.get("to") or settings.TREASURY_WALLET,
		amount_units=usdt_to_units(amount),
		success=bool(body.get("success", True)),
	)
	return JsonResponse({"tx_hash": tx_hash, "status": "confirmed"}, status=201)


def holdings(request, wallet: str):
	"""
	GET: Meme-token balances held by a wallet
	"""
	rows = ChainStubHolding.objects.filter(wallet__iexact=wallet).select_related("token")
	return JsonResponse([
		{
			"blockchain": h.token.blockchain,
			"token": h.token.address,
			"symbol": h.token.symbol,
			"units": str(h.units),
		}
		for h in rows
	], safe=False)


def fund_gas(request):
	"""
	POST: Add native gas to the stub operator on a chain
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	body = json.loads(request.body or b"{}")
	blockchain = body.get("blockchain", settings.DEFAULT_BLOCKCHAIN)
	try:
		amount = Decimal(str(body.get("amount", "0")))
	except InvalidOperation:
		return HttpResponseBadRequest("amount must be a number")
	if amount <= 0:
		return HttpResponseBadRequest("amount must be > 0")

	adapter = StubChainAdapter(blockchain)
	tx_hash = adapter.credit_native(amount)
	acct = ChainStubAccount.objects.get(blockchain=blockchain, address=adapter.operator_address)
	return JsonResponse({"tx_hash": tx_hash, "native_balance": str(acct.native_balance)}, status=201)
