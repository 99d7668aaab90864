"""Wallet address helpers (normalization + per-chain format checks)."""

from solders.pubkey import Pubkey
from web3 import Web3

EVM_CHAINS = ("base", "polygon")


def normalize_wallet(address: str) -> str:
	"""
	Lookup key for credit balances: trimmed and lower-cased.
	"""
	return (address or "").strip().lower()


def is_valid_address(blockchain: str, address: str) -> bool:
	if not address:
		return False
	address = address.strip()
	if blockchain in EVM_CHAINS:
		# checksum casing is optional; wallets are stored lower-cased anyway
		return Web3.is_address(address.lower())
	if blockchain == "solana":
		try:
			Pubkey.from_string(address)
		except ValueError:
			return False
		return True
	return False
