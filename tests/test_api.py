import json

import pytest
from django.core.management import call_command

from core.credits import add_credits, get_credits
from core.models import GeneratedCoin, GeneratedCoinStatus, User, Vote

from .conftest import WALLET

pytestmark = pytest.mark.django_db


def post(client, url, body=None, **headers):
	return client.post(url, data=json.dumps(body or {}), content_type="application/json", **headers)


def as_user(user):
	return {"HTTP_X_USER_ID": str(user.id)}


def test_health(client):
	assert client.get("/api/health").json() == {"ok": True}


def test_vote_flow(client, user, meme_poll):
	add_credits(WALLET, 3)

	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A", "walletAddress": WALLET}, **as_user(user))

	assert r.status_code == 201
	body = r.json()
	assert body["vote"]["option"] == "A"
	assert body["poll"]["optionAVotes"] == 1
	assert body["reward"]["status"] == "delivered"
	assert body["reward"]["creditsUsed"] == 1
	assert body["reward"]["remainingCredits"] == 2
	assert body["reward"]["coin"]["coinSymbol"] == "DOGE"

	r = client.get(f"/api/polls/{meme_poll.id}/vote", **as_user(user))
	assert r.json() == {"hasVoted": True, "option": "A", "pollId": meme_poll.id}

	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "B", "walletAddress": WALLET}, **as_user(user))
	assert r.status_code == 409
	assert r.json()["error"] == "AlreadyVoted"


def test_vote_without_credits_is_402(client, user, meme_poll):
	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A", "walletAddress": WALLET}, **as_user(user))
	assert r.status_code == 402
	assert r.json()["error"] == "InsufficientCredits"
	assert r.json()["credits"] == 0
	assert not Vote.objects.exists()


def test_vote_without_wallet_asks_for_choice(client, user, meme_poll):
	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A"}, **as_user(user))
	assert r.status_code == 400
	body = r.json()
	assert body["requiresWalletChoice"] is True
	assert body["coinPreview"]["coinName"] == "Doge"


def test_demo_vote_uses_demo_user_by_default(client, meme_poll, settings):
	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "B", "demoMode": True})
	assert r.status_code == 201
	assert r.json()["reward"]["status"] == "demo"
	assert Vote.objects.get().user.email == settings.DEMO_USER_EMAIL


def test_failed_reward_is_partial_success(client, user, meme_poll, monkeypatch):
	from core.adapters.chain_adapter import ChainError, StubChainAdapter

	def broken(self, *args):
		raise ChainError("rpc exploded")
	monkeypatch.setattr(StubChainAdapter, "mint_to", broken)
	add_credits(WALLET, 1)

	r = post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A", "walletAddress": WALLET}, **as_user(user))

	assert r.status_code == 201
	assert r.json()["reward"]["status"] == "failed"
	assert r.json()["reward"]["error"] == "MintingFailed"
	assert get_credits(WALLET) == 1

	monkeypatch.undo()
	r = post(client, f"/api/polls/{meme_poll.id}/reward/retry", {"walletAddress": WALLET}, **as_user(user))
	assert r.status_code == 200
	assert r.json()["reward"]["status"] == "delivered"
	assert get_credits(WALLET) == 0


def test_bad_requests(client, user, meme_poll):
	assert client.get("/api/verify-payment").status_code == 400
	r = client.post(f"/api/polls/{meme_poll.id}/vote", data="{not json", content_type="application/json")
	assert r.status_code == 400
	assert post(client, f"/api/polls/{meme_poll.id}/vote", {}).status_code == 400
	r = post(client, "/api/polls/999999/vote", {"option": "A", "demoMode": True})
	assert r.status_code == 404
	assert post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A"}, HTTP_X_USER_ID="nope").status_code == 400


def test_verify_payment_via_stub_chain(client):
	r = post(client, "/stub/chain/usdt-transfer", {"from": WALLET, "amount_usdt": "2.00"})
	assert r.status_code == 201
	tx = r.json()["tx_hash"]

	r = post(client, "/api/verify-payment", {"txHash": tx, "senderWallet": WALLET})
	assert r.status_code == 200
	assert r.json()["success"] is True
	assert r.json()["credits"] == 6
	assert r.json()["balance"] == 6

	r = post(client, "/api/verify-payment", {"txHash": tx, "senderWallet": WALLET})
	assert r.status_code == 409
	assert r.json()["error"] == "AlreadyProcessed"

	assert client.get(f"/api/user/credits/{WALLET}").json() == {"walletAddress": WALLET, "credits": 6}


def test_admin_add_credits_requires_token(client):
	body = {"walletAddress": WALLET, "credits": 5}
	assert post(client, "/api/admin/add-credits", body).status_code == 403
	assert post(client, "/api/admin/add-credits", body, HTTP_X_ADMIN_TOKEN="wrong").status_code == 403

	r = post(client, "/api/admin/add-credits", body, HTTP_X_ADMIN_TOKEN="test-admin-token")
	assert r.status_code == 200
	assert r.json()["newBalance"] == 5

	bad = {"walletAddress": WALLET, "credits": -1}
	assert post(client, "/api/admin/add-credits", bad, HTTP_X_ADMIN_TOKEN="test-admin-token").status_code == 400


def test_package_endpoints(client, user, pay):
	info = client.get("/api/packages/payment-info").json()
	assert info["pollsPerPackage"] == 3

	tx = pay(WALLET, "1.00")
	r = post(client, "/api/packages/purchase", {"paymentTxHash": tx, "senderWallet": WALLET}, **as_user(user))
	assert r.status_code == 201
	package_id = r.json()["package"]["id"]

	r = client.get("/api/user/packages/active", **as_user(user))
	assert r.json()["package"]["remainingPolls"] == 3

	r = post(client, f"/api/packages/{package_id}/consume", **as_user(user))
	assert r.json()["package"]["remainingPolls"] == 2
	assert len(client.get("/api/user/packages", **as_user(user)).json()) == 1

	r = post(client, "/api/packages/purchase", {"paymentTxHash": tx, "senderWallet": WALLET}, **as_user(user))
	assert r.status_code == 409


def test_coin_listings(client, user, meme_poll):
	post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A", "demoMode": True}, **as_user(user))

	coins = client.get("/api/user/coins", **as_user(user)).json()
	assert [c["status"] for c in coins] == ["demo"]

	r = client.get(f"/api/polls/{meme_poll.id}/coins").json()
	assert r["pollId"] == meme_poll.id
	assert len(r["coins"]) == 1
	assert r["tokens"] == {}


def test_debug_summary_reports_consistent_ledger(client, pay):
	add_credits(WALLET, 2)
	post(client, "/api/verify-payment", {"txHash": pay(WALLET, "1.00"), "senderWallet": WALLET})

	summary = client.get("/api/debug/summary").json()
	assert summary["credits"]["ledger_total"] == 5
	assert summary["credits"]["balance_total"] == 5
	assert summary["credits"]["match"] is True


def test_demo_seed(client, settings):
	r = post(client, "/api/demo/seed", {"walletAddress": WALLET, "credits": 4})
	assert r.status_code == 200
	assert r.json()["poll"]["memeCoinMode"] is True
	assert r.json()["credits"] == 4
	assert User.objects.filter(email=settings.DEMO_USER_EMAIL).exists()


def test_chain_stub_gas_and_holdings(client, user, meme_poll):
	r = post(client, "/stub/chain/fund-gas", {"blockchain": "base", "amount": "0.5"})
	assert r.status_code == 201
	assert r.json()["native_balance"] == "1.500000000"

	add_credits(WALLET, 1)
	post(client, f"/api/polls/{meme_poll.id}/vote", {"option": "A", "walletAddress": WALLET}, **as_user(user))
	held = client.get(f"/stub/chain/holdings/{WALLET}").json()
	assert held[0]["symbol"] == "DOGE"
	assert held[0]["units"] == str(10 ** 18)


def test_backfill_missing_coins_command(user, meme_poll):
	Vote.objects.create(user=user, poll=meme_poll, option="B")

	call_command("backfill_missing_coins", "--dry-run")
	assert not GeneratedCoin.objects.exists()

	call_command("backfill_missing_coins")
	coin = GeneratedCoin.objects.get()
	assert coin.status == GeneratedCoinStatus.DEMO
	assert coin.option == "B"

	call_command("backfill_missing_coins")
	assert GeneratedCoin.objects.count() == 1
