"""Operator gas management for token deployment and minting."""

import logging
import time
from decimal import Decimal

import requests
from django.conf import settings

from .adapters.chain_adapter import ChainAdapter, ChainError
from .adapters.gas_adapter import PriceOracle, providers_for
from .errors import ErrorKind, RewardError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5


class GasManager:
	"""
	ensure_gas(): guarantee the operator holds at least the chain minimum, buying
	gas through the configured providers (in order) when it does not.
	"""

	def __init__(self, adapter: ChainAdapter, providers=None, oracle=None, sleep=time.sleep, clock=time.monotonic):
		self.adapter = adapter
		self.oracle = oracle or PriceOracle()
		self.providers = providers if providers is not None else providers_for(adapter.blockchain, self.oracle)
		self.sleep = sleep
		self.clock = clock

	def ensure_gas(self) -> Decimal:
		minimum = self.adapter.min_gas_balance()
		balance = self.adapter.native_balance()
		if balance >= minimum:
			return balance

		logger.warning(
			f"Operator gas low on {self.adapter.blockchain}: {balance} < {minimum} {self.adapter.native_symbol}"
		)
		if self.top_up(minimum * 2 - balance):
			balance = self.wait_for_balance(minimum)

		if balance < minimum:
			raise RewardError(
				ErrorKind.INSUFFICIENT_GAS,
				f"Operator wallet on {self.adapter.blockchain} has {balance} {self.adapter.native_symbol}; need {minimum}.",
				blockchain=self.adapter.blockchain,
			)
		return balance

	def top_up(self, native_amount: Decimal) -> bool:
		"""
		Try each provider once; True as soon as one reports a conversion sent.
		"""
		usdt = self.oracle.usdt_for_native(self.adapter.blockchain, native_amount)
		for provider in self.providers:
			try:
				tx_id = provider.top_up(self.adapter, usdt)
			except (ChainError, requests.RequestException, KeyError, ValueError) as e:
				logger.warning(f"Gas provider {provider.name} failed for {self.adapter.blockchain}: {e}")
				continue
			logger.info(f"Gas top-up via {provider.name}: {usdt} USDT -> {self.adapter.native_symbol} ({tx_id})")
			return True
		return False

	def wait_for_balance(self, minimum: Decimal) -> Decimal:
		deadline = self.clock() + settings.GAS_TOPUP_WAIT_SECONDS
		balance = self.adapter.native_balance()
		while balance < minimum and self.clock() < deadline:
			self.sleep(POLL_INTERVAL_SECONDS)
			balance = self.adapter.native_balance()
		return balance
