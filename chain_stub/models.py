"""In-process chain tables to simulate confirmed on-chain state.

One set of tables serves every simulated chain (polygon, base, solana); rows are
scoped by the blockchain column.
"""

import uuid
from decimal import Decimal
from django.db import models


class ChainStubAccount(models.Model):
	"""
	Native gas balance of an operator address (ETH on base, SOL on solana)
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	blockchain = models.CharField(max_length=16)
	address = models.CharField(max_length=128)
	native_balance = models.DecimalField(max_digits=30, decimal_places=9, default=Decimal("0"))

	class Meta:
		unique_together = (("blockchain", "address"),)


class ChainStubToken(models.Model):
	"""
	A deployed token contract / SPL mint
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	blockchain = models.CharField(max_length=16)
	address = models.CharField(max_length=128, unique=True)
	name = models.CharField(max_length=64)
	symbol = models.CharField(max_length=16)
	total_units = models.BigIntegerField(default=0)
	deployed_at = models.DateTimeField(auto_now_add=True)


class ChainStubHolding(models.Model):
	"""
	Token balance of a wallet
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	token = models.ForeignKey(ChainStubToken, on_delete=models.CASCADE, related_name="holdings")
	wallet = models.CharField(max_length=128)
	units = models.BigIntegerField(default=0)

	class Meta:
		unique_together = (("token", "wallet"),)


class ChainStubTransaction(models.Model):
	"""
	Confirmed transaction with its receipt. For stablecoin payments `transfers`
	holds [{"token", "from", "to", "value"}] like decoded Transfer logs.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	tx_hash = models.CharField(max_length=128, unique=True)
	blockchain = models.CharField(max_length=16)
	kind = models.CharField(max_length=16)  # 'deploy'|'mint'|'payment'|'gas'
	block_number = models.BigIntegerField()
	success = models.BooleanField(default=True)
	transfers = models.JSONField(default=list, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
