"""Solana through solana-py: one SPL mint per (poll, option), units minted to the voter's ATA.

SPL mints have no name or symbol of their own, so every new mint gets a Metaplex
metadata account (CreateMetadataAccountV3) carrying the coin name and symbol.
"""

import base64
import logging
import struct
from decimal import Decimal

from django.conf import settings
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction, VersionedTransaction
from spl.token.client import Token
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from .chain_adapter import ChainAdapter, ChainError, ChainReceipt, ChainTimeout, InsufficientFunds

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 10 ** 9
SPL_DECIMALS = 6
INSUFFICIENT_MARKERS = ("insufficient", "no record of a prior credit")

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
CREATE_METADATA_V3 = 33
MAX_NAME_LEN = 32
MAX_SYMBOL_LEN = 10


def _chain_error(e: Exception, what: str) -> ChainError:
	if isinstance(e, UnconfirmedTxError):
		return ChainTimeout(f"solana {what} not confirmed in time: {e}")
	text = str(e).lower()
	if any(m in text for m in INSUFFICIENT_MARKERS):
		return InsufficientFunds(f"solana {what}: {e}")
	return ChainError(f"solana {what} failed: {e}")


def _borsh_str(value: str) -> bytes:
	raw = value.encode("utf-8")
	return struct.pack("<I", len(raw)) + raw


def metadata_address(mint: Pubkey) -> Pubkey:
	pda, _ = Pubkey.find_program_address(
		[b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
		TOKEN_METADATA_PROGRAM_ID,
	)
	return pda


def create_metadata_instruction(mint: Pubkey, authority: Pubkey, name: str, symbol: str, uri: str = "") -> Instruction:
	"""
	CreateMetadataAccountV3: mutable, with no creators, collection or uses.
	"""
	data = (
		struct.pack("<B", CREATE_METADATA_V3)
		+ _borsh_str(name[:MAX_NAME_LEN])
		+ _borsh_str(symbol[:MAX_SYMBOL_LEN])
		+ _borsh_str(uri)
		+ struct.pack("<H", 0)  # seller_fee_basis_points
		+ b"\x00\x00\x00"  # creators, collection, uses: None
		+ b"\x01"  # is_mutable
		+ b"\x00"  # collection_details: None
	)
	accounts = [
		AccountMeta(pubkey=metadata_address(mint), is_signer=False, is_writable=True),
		AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
		AccountMeta(pubkey=authority, is_signer=True, is_writable=False),  # mint authority
		AccountMeta(pubkey=authority, is_signer=True, is_writable=True),  # payer
		AccountMeta(pubkey=authority, is_signer=True, is_writable=False),  # update authority
		AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
	]
	return Instruction(program_id=TOKEN_METADATA_PROGRAM_ID, accounts=accounts, data=data)


class SolanaChainAdapter(ChainAdapter):
	blockchain = "solana"
	native_symbol = "SOL"
	token_decimals = SPL_DECIMALS

	def __init__(self):
		self.client = Client(settings.SOLANA_RPC_URL, commitment=Confirmed, timeout=settings.RPC_TIMEOUT_SECONDS)
		self._payer = None

	@property
	def payer(self) -> Keypair:
		if self._payer is None:
			if not settings.OPERATOR_SOLANA_SECRET:
				raise ChainError("OPERATOR_SOLANA_SECRET is not configured")
			self._payer = Keypair.from_base58_string(settings.OPERATOR_SOLANA_SECRET)
		return self._payer

	@property
	def operator_address(self) -> str:
		return str(self.payer.pubkey())

	def tx_opts(self) -> TxOpts:
		return TxOpts(skip_confirmation=False, preflight_commitment=Confirmed)

	def native_balance(self) -> Decimal:
		try:
			lamports = self.client.get_balance(self.payer.pubkey()).value
		except (SolanaRpcException, RPCException) as e:
			raise ChainError(f"solana balance lookup failed: {e}") from e
		return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)

	def deploy_token(self, name: str, symbol: str) -> ChainReceipt:
		try:
			token = Token.create_mint(
				self.client,
				self.payer,
				self.payer.pubkey(),
				SPL_DECIMALS,
				TOKEN_PROGRAM_ID,
			)
		except (SolanaRpcException, RPCException, UnconfirmedTxError) as e:
			raise _chain_error(e, "create_mint") from e
		logger.info(f"Created SPL mint {token.pubkey} for {symbol}")

		tx_hash = self.send_instructions(
			[create_metadata_instruction(token.pubkey, self.payer.pubkey(), name, symbol)],
			"create_metadata",
		)
		logger.info(f"Attached metadata {name} ({symbol}) to {token.pubkey}: {tx_hash}")
		return ChainReceipt(tx_hash=tx_hash, token_address=str(token.pubkey))

	def mint_to(self, token_address: str, recipient: str, units: int) -> ChainReceipt:
		mint = Pubkey.from_string(token_address)
		owner = Pubkey.from_string(recipient)
		token = Token(self.client, mint, TOKEN_PROGRAM_ID, self.payer)
		ata = get_associated_token_address(owner, mint)
		try:
			if self.client.get_account_info(ata).value is None:
				token.create_associated_token_account(owner)
			resp = token.mint_to(
				ata,
				self.payer,
				int(units) * 10 ** SPL_DECIMALS,
				opts=self.tx_opts(),
			)
		except (SolanaRpcException, RPCException, UnconfirmedTxError) as e:
			raise _chain_error(e, "mint_to") from e
		return ChainReceipt(tx_hash=str(resp.value), token_address=token_address)

	def send_instructions(self, instructions: list, what: str) -> str:
		try:
			blockhash = self.client.get_latest_blockhash().value.blockhash
			msg = Message.new_with_blockhash(instructions, self.payer.pubkey(), blockhash)
			tx = Transaction([self.payer], msg, blockhash)
			resp = self.client.send_transaction(tx, opts=self.tx_opts())
		except (SolanaRpcException, RPCException, UnconfirmedTxError) as e:
			raise _chain_error(e, what) from e
		return str(resp.value)

	def send_serialized(self, tx_base64: str) -> str:
		"""
		Sign and send a base64 versioned transaction built by an external API (Jupiter swaps).
		"""
		raw = VersionedTransaction.from_bytes(base64.b64decode(tx_base64))
		signed = VersionedTransaction(raw.message, [self.payer])
		try:
			resp = self.client.send_raw_transaction(bytes(signed), opts=self.tx_opts())
		except (SolanaRpcException, RPCException, UnconfirmedTxError) as e:
			raise _chain_error(e, "swap") from e
		return str(resp.value)
