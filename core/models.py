"""Database models for the reward pipeline.


Tables:
- User: voter identity (auth is handled elsewhere; a demo user is seeded)
- Blockchain
- Poll: a two-option question; meme_coin_mode polls reward votes with tokens
- Vote: one per (user, poll)
- CreditBalance: spendable vote credits per wallet
- CreditLedgerEntry: append-only audit of every credit movement
- ProcessedTransaction: replay guard for payment tx hashes
- TokenRegistryEntry: the token deployed for a (poll, option)
- GeneratedCoinStatus
- GeneratedCoin: one token unit delivered to one user for one (poll, option)
- MemeCoinPackageStatus
- MemeCoinPackage: purchased bundle of real-coin poll uses
"""

import uuid
from django.db import models


OPTION_CHOICES = (("A", "A"), ("B", "B"))


class User(models.Model):
	"""
	Voter identity
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	email = models.EmailField(unique=True)
	display_name = models.CharField(max_length=200)
	created_at = models.DateTimeField(auto_now_add=True)


class Blockchain(models.TextChoices):
	BASE = "base", "Base"
	SOLANA = "solana", "Solana"


class Poll(models.Model):
	"""
	A this-or-that question. Tallies are denormalized counters updated with F() expressions.
	"""
	id = models.BigAutoField(primary_key=True)
	creator = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="polls")
	question = models.CharField(max_length=300)
	option_a_text = models.CharField(max_length=120)
	option_b_text = models.CharField(max_length=120)
	option_a_votes = models.PositiveIntegerField(default=0)
	option_b_votes = models.PositiveIntegerField(default=0)
	meme_coin_mode = models.BooleanField(default=False)
	blockchain = models.CharField(max_length=16, choices=Blockchain.choices, default=Blockchain.BASE)
	end_time = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	def option_text(self, option: str) -> str:
		return self.option_a_text if option == "A" else self.option_b_text


class Vote(models.Model):
	"""
	Immutable vote. Deleting is the only allowed mutation (compensation).
	"""
	id = models.BigAutoField(primary_key=True)
	poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name="votes")
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="votes")
	option = models.CharField(max_length=1, choices=OPTION_CHOICES)
	voted_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		unique_together = (("user", "poll"),)


class CreditBalance(models.Model):
	"""
	Spendable credits keyed by lower-cased wallet address.

	PositiveIntegerField puts a non-negative check on the column itself.
	"""
	id = models.BigAutoField(primary_key=True)
	wallet = models.CharField(max_length=128, unique=True)
	credits = models.PositiveIntegerField(default=0)
	updated_at = models.DateTimeField(auto_now=True)


class CreditLedgerEntry(models.Model):
	"""
	One row per credit movement; sum(delta) per wallet equals CreditBalance.credits.
	"""
	REASONS = (("payment", "Payment"), ("vote", "Vote"), ("refund", "Refund"), ("admin", "Admin"))

	id = models.BigAutoField(primary_key=True)
	wallet = models.CharField(max_length=128, db_index=True)
	delta = models.IntegerField()
	reason = models.CharField(max_length=16, choices=REASONS)
	ref = models.CharField(max_length=128, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)


class ProcessedTransaction(models.Model):
	"""
	Replay guard: tx_hash is unique so a payment can be consumed exactly once.
	"""
	PURPOSES = (("credits", "Vote credits"), ("package", "MemeCoin package"))

	id = models.BigAutoField(primary_key=True)
	tx_hash = models.CharField(max_length=128, unique=True)
	from_wallet = models.CharField(max_length=128)
	to_wallet = models.CharField(max_length=128)
	usdt_amount = models.DecimalField(max_digits=20, decimal_places=6)
	credits_granted = models.PositiveIntegerField(default=0)
	block_number = models.BigIntegerField(null=True, blank=True)
	chain = models.CharField(max_length=32, default="polygon")
	purpose = models.CharField(max_length=16, choices=PURPOSES, default="credits")
	processed_at = models.DateTimeField(auto_now_add=True)


class TokenRegistryEntry(models.Model):
	"""
	The token contract/mint shared by every voter of a (poll, option).
	Written once after a confirmed deployment, never overwritten.
	"""
	id = models.BigAutoField(primary_key=True)
	poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name="tokens")
	option = models.CharField(max_length=1, choices=OPTION_CHOICES)
	blockchain = models.CharField(max_length=16, choices=Blockchain.choices)
	token_address = models.CharField(max_length=128)
	coin_name = models.CharField(max_length=64)
	coin_symbol = models.CharField(max_length=16)
	deploy_tx_hash = models.CharField(max_length=128, blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		unique_together = (("poll", "option"),)

	@property
	def key(self) -> str:
		return f"{self.poll_id}:{self.option}"


class GeneratedCoinStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	CREATED = "created", "Created"
	FAILED = "failed", "Failed"
	DEMO = "demo", "Demo"


class GeneratedCoin(models.Model):
	"""
	A token unit delivered to a voter. The (user, poll, option) row doubles as the
	durable idempotency key for minting: it is inserted as PENDING before any chain call.
	"""
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="coins")
	poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name="coins")
	option = models.CharField(max_length=1, choices=OPTION_CHOICES)
	coin_name = models.CharField(max_length=64)
	coin_symbol = models.CharField(max_length=16)
	coin_address = models.CharField(max_length=128, blank=True, default="")
	user_wallet = models.CharField(max_length=128)
	transaction_hash = models.CharField(max_length=128, blank=True, default="")
	blockchain = models.CharField(max_length=16, choices=Blockchain.choices)
	status = models.CharField(max_length=16, choices=GeneratedCoinStatus.choices, default=GeneratedCoinStatus.PENDING)
	last_error = models.TextField(blank=True, default="")
	attempts = models.PositiveIntegerField(default=1)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		unique_together = (("user", "poll", "option"),)
		indexes = [
			models.Index(fields=["coin_name"]),
		]


class MemeCoinPackageStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	ACTIVE = "active", "Active"
	USED_UP = "used_up", "Used up"


class MemeCoinPackage(models.Model):
	"""
	Entitlement bought with a verified USDT payment; decremented per use.
	"""
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="packages")
	package_type = models.CharField(max_length=32, default="basic")
	status = models.CharField(max_length=16, choices=MemeCoinPackageStatus.choices, default=MemeCoinPackageStatus.PENDING)
	total_polls = models.PositiveIntegerField()
	used_polls = models.PositiveIntegerField(default=0)
	remaining_polls = models.PositiveIntegerField()
	payment_tx_hash = models.CharField(max_length=128, unique=True)
	payment_amount = models.DecimalField(max_digits=20, decimal_places=6)
	payment_token = models.CharField(max_length=16, default="USDT")
	payment_chain = models.CharField(max_length=32, default="polygon")
	purchased_at = models.DateTimeField(auto_now_add=True)
	expires_at = models.DateTimeField(null=True, blank=True)
