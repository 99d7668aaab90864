"""EVM chains through web3.py: Polygon (USDT payments) and Base (meme tokens).

Tokens are created by a factory contract that pre-mints a reserve to the
operator; delivering a unit to a voter is an ERC-20 transfer out of that reserve.
"""

import logging
from decimal import Decimal

import requests
from django.conf import settings
from web3 import Web3
from web3.exceptions import MismatchedABI, TimeExhausted, TransactionNotFound, Web3Exception

from .chain_adapter import ChainAdapter, ChainError, ChainReceipt, ChainTimeout, InsufficientFunds, PaymentReceipt, TokenTransfer

logger = logging.getLogger(__name__)

CHAIN_IDS = {"polygon": 137, "base": 8453}
RPC_SETTINGS = {"polygon": "POLYGON_RPC_URL", "base": "BASE_RPC_URL"}
NATIVE_SYMBOLS = {"polygon": "POL", "base": "ETH"}

# whole tokens minted to the operator when a (poll, option) token is created
TOKEN_RESERVE_UNITS = 1_000_000

ERC20_ABI = [
	{
		"anonymous": False,
		"inputs": [
			{"indexed": True, "name": "from", "type": "address"},
			{"indexed": True, "name": "to", "type": "address"},
			{"indexed": False, "name": "value", "type": "uint256"},
		],
		"name": "Transfer",
		"type": "event",
	},
	{
		"inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
		"name": "transfer",
		"outputs": [{"name": "", "type": "bool"}],
		"stateMutability": "nonpayable",
		"type": "function",
	},
	{
		"inputs": [{"name": "account", "type": "address"}],
		"name": "balanceOf",
		"outputs": [{"name": "", "type": "uint256"}],
		"stateMutability": "view",
		"type": "function",
	},
	{
		"inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
		"name": "approve",
		"outputs": [{"name": "", "type": "bool"}],
		"stateMutability": "nonpayable",
		"type": "function",
	},
]

TOKEN_FACTORY_ABI = [
	{
		"inputs": [
			{"name": "name", "type": "string"},
			{"name": "symbol", "type": "string"},
			{"name": "initialSupply", "type": "uint256"},
			{"name": "owner", "type": "address"},
		],
		"name": "createToken",
		"outputs": [{"name": "", "type": "address"}],
		"stateMutability": "nonpayable",
		"type": "function",
	},
	{
		"anonymous": False,
		"inputs": [
			{"indexed": True, "name": "tokenAddress", "type": "address"},
			{"indexed": False, "name": "name", "type": "string"},
			{"indexed": False, "name": "symbol", "type": "string"},
			{"indexed": True, "name": "owner", "type": "address"},
		],
		"name": "TokenCreated",
		"type": "event",
	},
]


class EvmChainAdapter(ChainAdapter):
	token_decimals = 18

	def __init__(self, blockchain: str):
		if blockchain not in CHAIN_IDS:
			raise ValueError(f"Unsupported EVM chain: {blockchain}")
		self.blockchain = blockchain
		self.native_symbol = NATIVE_SYMBOLS[blockchain]
		self.chain_id = CHAIN_IDS[blockchain]
		url = getattr(settings, RPC_SETTINGS[blockchain])
		self.w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": settings.RPC_TIMEOUT_SECONDS}))
		self._account = None

	@property
	def account(self):
		if self._account is None:
			if not settings.OPERATOR_EVM_PRIVATE_KEY:
				raise ChainError("OPERATOR_EVM_PRIVATE_KEY is not configured")
			self._account = self.w3.eth.account.from_key(settings.OPERATOR_EVM_PRIVATE_KEY)
		return self._account

	@property
	def operator_address(self) -> str:
		return self.account.address

	def erc20(self, address: str):
		return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)

	# --- reads ---

	def get_payment_receipt(self, tx_hash: str, token_address: str) -> PaymentReceipt | None:
		try:
			receipt = self.w3.eth.get_transaction_receipt(tx_hash)
		except TransactionNotFound:
			return None
		except requests.exceptions.Timeout as e:
			raise ChainTimeout(f"{self.blockchain} RPC timed out fetching {tx_hash}") from e
		except (requests.exceptions.RequestException, Web3Exception, ValueError) as e:
			raise ChainError(f"{self.blockchain} RPC error: {e}") from e

		success = receipt["status"] == 1
		transfers = []
		if success:
			token = self.erc20(token_address)
			for log in receipt["logs"]:
				if log["address"].lower() != token_address.lower():
					continue
				try:
					event = token.events.Transfer().process_log(log)
				except MismatchedABI:
					continue
				transfers.append(TokenTransfer(
					token=log["address"],
					sender=event["args"]["from"],
					recipient=event["args"]["to"],
					value=int(event["args"]["value"]),
					log_index=event["logIndex"],
				))
		return PaymentReceipt(
			tx_hash=self.w3.to_hex(receipt["transactionHash"]),
			block_number=receipt["blockNumber"],
			success=success,
			transfers=transfers,
		)

	def native_balance(self) -> Decimal:
		try:
			wei = self.w3.eth.get_balance(self.operator_address)
		except (requests.exceptions.RequestException, Web3Exception) as e:
			raise ChainError(f"{self.blockchain} balance lookup failed: {e}") from e
		return Decimal(wei) / Decimal(10 ** 18)

	def token_balance(self, token_address: str, owner: str) -> int:
		try:
			return self.erc20(token_address).functions.balanceOf(Web3.to_checksum_address(owner)).call()
		except (requests.exceptions.RequestException, Web3Exception) as e:
			raise ChainError(f"{self.blockchain} token balance lookup failed: {e}") from e

	# --- writes ---

	def send(self, tx: dict) -> dict:
		"""
		Sign, broadcast and wait for the receipt of a prepared transaction.
		Raises ChainTimeout once broadcast if confirmation does not arrive in time.
		"""
		tx_hash = None
		try:
			tx.setdefault("from", self.operator_address)
			tx.setdefault("chainId", self.chain_id)
			tx["nonce"] = self.w3.eth.get_transaction_count(self.operator_address, "pending")
			signed = self.account.sign_transaction(tx)
			tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
			receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=settings.RECEIPT_TIMEOUT_SECONDS)
		except TimeExhausted as e:
			raise ChainTimeout(f"{self.blockchain} tx not confirmed in time", tx_hash=self.w3.to_hex(tx_hash)) from e
		except requests.exceptions.Timeout as e:
			raise ChainTimeout(f"{self.blockchain} RPC timed out", tx_hash=self.w3.to_hex(tx_hash) if tx_hash else "") from e
		except (requests.exceptions.RequestException, Web3Exception, ValueError) as e:
			if "insufficient funds" in str(e).lower():
				raise InsufficientFunds(f"{self.blockchain}: {e}") from e
			raise ChainError(f"{self.blockchain} tx failed: {e}") from e

		if receipt["status"] != 1:
			raise ChainError(f"{self.blockchain} tx {self.w3.to_hex(tx_hash)} reverted")
		return receipt

	def transact(self, fn) -> dict:
		try:
			tx = fn.build_transaction({"from": self.operator_address, "chainId": self.chain_id})
		except (requests.exceptions.RequestException, Web3Exception, ValueError) as e:
			if "insufficient funds" in str(e).lower():
				raise InsufficientFunds(f"{self.blockchain}: {e}") from e
			raise ChainError(f"{self.blockchain} could not build tx: {e}") from e
		return self.send(tx)

	def deploy_token(self, name: str, symbol: str) -> ChainReceipt:
		factory = self.w3.eth.contract(
			address=Web3.to_checksum_address(settings.TOKEN_FACTORY_ADDRESS),
			abi=TOKEN_FACTORY_ABI,
		)
		supply = TOKEN_RESERVE_UNITS * 10 ** self.token_decimals
		receipt = self.transact(factory.functions.createToken(name, symbol, supply, self.operator_address))

		for log in receipt["logs"]:
			try:
				event = factory.events.TokenCreated().process_log(log)
			except MismatchedABI:
				continue
			address = event["args"]["tokenAddress"]
			logger.info(f"Deployed {symbol} on {self.blockchain} at {address}")
			return ChainReceipt(tx_hash=self.w3.to_hex(receipt["transactionHash"]), token_address=address)
		raise ChainError("TokenCreated event missing from factory receipt")

	def mint_to(self, token_address: str, recipient: str, units: int) -> ChainReceipt:
		token = self.erc20(token_address)
		amount = int(units) * 10 ** self.token_decimals
		# delivery draws on the reserve pre-minted to the operator at deploy time
		if self.token_balance(token_address, self.operator_address) < amount:
			raise ChainError(f"operator reserve of {token_address} exhausted")
		receipt = self.transact(token.functions.transfer(Web3.to_checksum_address(recipient), amount))
		return ChainReceipt(tx_hash=self.w3.to_hex(receipt["transactionHash"]), token_address=token_address)
