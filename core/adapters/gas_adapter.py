"""Gas conversion providers: turn operator USDT into native gas on the minting chains.

- LiFiProvider: cross-chain bridge+swap, Polygon USDT -> ETH on Base / SOL on Solana
- JupiterProvider: Solana USDT -> SOL swap
- StubGasProvider: credits the chain stub directly
- PriceOracle: CoinGecko spot prices with configured fallbacks

Providers are best-effort. They raise on failure and the caller moves on to the next one.
"""

import logging
from decimal import Decimal, ROUND_UP

import requests
from django.conf import settings
from web3 import Web3

from core.constants import usdt_to_units
from .chain_adapter import ChainAdapter, ChainError, StubChainAdapter, get_chain_adapter

logger = logging.getLogger(__name__)

COINGECKO_IDS = {"base": "ethereum", "polygon": "matic-network", "solana": "solana"}

LIFI_CHAIN_IDS = {"polygon": 137, "base": 8453, "solana": 1151111081099710}
LIFI_NATIVE_TOKENS = {
	"base": "0x0000000000000000000000000000000000000000",
	"solana": "11111111111111111111111111111111",
}
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


class PriceOracle:
	def native_price_usd(self, blockchain: str) -> Decimal:
		fallback = Decimal(settings.FALLBACK_NATIVE_PRICES_USD.get(blockchain, "0"))
		if settings.CHAIN_MODE == "stub":
			return fallback

		coin_id = COINGECKO_IDS.get(blockchain)
		try:
			r = requests.get(
				f"{settings.COINGECKO_API_URL}/simple/price",
				params={"ids": coin_id, "vs_currencies": "usd"},
				timeout=settings.HTTP_TIMEOUT_SECONDS,
			)
			r.raise_for_status()
			return Decimal(str(r.json()[coin_id]["usd"]))
		except (requests.RequestException, KeyError, ValueError) as e:
			logger.warning(f"Price lookup for {blockchain} failed ({e}); using fallback {fallback}")
			return fallback

	def usdt_for_native(self, blockchain: str, native_amount: Decimal) -> Decimal:
		"""
		USDT to spend for native_amount of gas, padded by the slippage allowance, at least 1 USDT.
		"""
		price = self.native_price_usd(blockchain)
		usdt = Decimal(native_amount) * price * (1 + settings.GAS_SLIPPAGE)
		return max(usdt, Decimal("1")).quantize(Decimal("0.01"), rounding=ROUND_UP)


class GasProvider:
	name = ""
	chains = ()

	def __init__(self, oracle: PriceOracle | None = None):
		self.oracle = oracle or PriceOracle()

	def supports(self, blockchain: str) -> bool:
		return blockchain in self.chains

	def top_up(self, target: ChainAdapter, usdt_amount: Decimal) -> str:
		"""
		Spend usdt_amount on gas for target's operator; returns the conversion tx id.
		"""
		raise NotImplementedError


class StubGasProvider(GasProvider):
	name = "stub"
	chains = ("base", "polygon", "solana")

	def top_up(self, target: ChainAdapter, usdt_amount: Decimal) -> str:
		if not isinstance(target, StubChainAdapter):
			raise ChainError("stub gas provider only funds the chain stub")
		price = self.oracle.native_price_usd(target.blockchain)
		if price <= 0:
			raise ChainError(f"no price for {target.native_symbol}")
		return target.credit_native(Decimal(usdt_amount) / price)


class LiFiProvider(GasProvider):
	name = "lifi"
	chains = ("base", "solana")

	def quote(self, source: ChainAdapter, target: ChainAdapter, from_units: int) -> dict:
		r = requests.get(
			f"{settings.LIFI_API_URL}/quote",
			params={
				"fromChain": LIFI_CHAIN_IDS[settings.PAYMENT_CHAIN],
				"toChain": LIFI_CHAIN_IDS[target.blockchain],
				"fromToken": settings.USDT_POLYGON_ADDRESS,
				"toToken": LIFI_NATIVE_TOKENS[target.blockchain],
				"fromAmount": str(from_units),
				"fromAddress": source.operator_address,
				"toAddress": target.operator_address,
				"slippage": str(settings.GAS_SLIPPAGE),
			},
			timeout=settings.HTTP_TIMEOUT_SECONDS,
		)
		r.raise_for_status()
		return r.json()

	def top_up(self, target: ChainAdapter, usdt_amount: Decimal) -> str:
		source = get_chain_adapter(settings.PAYMENT_CHAIN)
		from_units = usdt_to_units(usdt_amount)
		quote = self.quote(source, target, from_units)

		approval = quote["estimate"]["approvalAddress"]
		usdt = source.erc20(settings.USDT_POLYGON_ADDRESS)
		source.transact(usdt.functions.approve(Web3.to_checksum_address(approval), from_units))

		req = quote["transactionRequest"]
		tx = {
			"to": Web3.to_checksum_address(req["to"]),
			"data": req["data"],
			"value": int(req.get("value", "0x0"), 16),
		}
		if req.get("gasLimit"):
			tx["gas"] = int(req["gasLimit"], 16)
		receipt = source.send(tx)
		tx_hash = source.w3.to_hex(receipt["transactionHash"])
		logger.info(f"LI.FI bridge {usdt_amount} USDT -> {target.native_symbol} sent: {tx_hash}")
		return tx_hash


class JupiterProvider(GasProvider):
	name = "jupiter"
	chains = ("solana",)

	def top_up(self, target: ChainAdapter, usdt_amount: Decimal) -> str:
		quote = requests.get(
			f"{settings.JUPITER_API_URL}/quote",
			params={
				"inputMint": settings.USDT_SOLANA_MINT,
				"outputMint": WRAPPED_SOL_MINT,
				"amount": str(usdt_to_units(usdt_amount)),
				"slippageBps": int(settings.GAS_SLIPPAGE * 10000),
			},
			timeout=settings.HTTP_TIMEOUT_SECONDS,
		)
		quote.raise_for_status()
		swap = requests.post(
			f"{settings.JUPITER_API_URL}/swap",
			json={
				"quoteResponse": quote.json(),
				"userPublicKey": target.operator_address,
				"wrapAndUnwrapSol": True,
			},
			timeout=settings.HTTP_TIMEOUT_SECONDS,
		)
		swap.raise_for_status()
		signature = target.send_serialized(swap.json()["swapTransaction"])
		logger.info(f"Jupiter swap {usdt_amount} USDT -> SOL sent: {signature}")
		return signature


PROVIDERS = {
	StubGasProvider.name: StubGasProvider,
	LiFiProvider.name: LiFiProvider,
	JupiterProvider.name: JupiterProvider,
}


def providers_for(blockchain: str, oracle: PriceOracle | None = None) -> list[GasProvider]:
	"""
	Configured providers for a chain, in the order they should be tried.
	"""
	if settings.CHAIN_MODE == "stub":
		names = ["stub"]
	else:
		names = settings.GAS_CONVERSION_PROVIDERS.get(blockchain, [])
	providers = []
	for name in names:
		cls = PROVIDERS.get(name.strip())
		if cls is None:
			logger.warning(f"Unknown gas provider {name!r} for {blockchain}")
			continue
		provider = cls(oracle)
		if provider.supports(blockchain):
			providers.append(provider)
	return providers
