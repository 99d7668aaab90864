"""Single error type for the reward pipeline.

Every failure the services raise is a RewardError tagged with an ErrorKind, so
views (and callers in general) decode it the same way regardless of origin.
"""

from enum import Enum


class ErrorKind(str, Enum):
	INSUFFICIENT_CREDITS = "InsufficientCredits"
	ALREADY_VOTED = "AlreadyVoted"
	TRANSACTION_NOT_FOUND = "TransactionNotFound"
	NO_VALID_TRANSFER = "NoValidTransfer"
	ALREADY_PROCESSED = "AlreadyProcessed"
	INSUFFICIENT_GAS = "InsufficientGas"
	TOKEN_DEPLOYMENT_FAILED = "TokenDeploymentFailed"
	MINTING_FAILED = "MintingFailed"
	INVALID_WALLET_ADDRESS = "InvalidWalletAddress"
	INVALID_OPTION = "InvalidOption"
	POLL_NOT_FOUND = "PollNotFound"
	POLL_CLOSED = "PollClosed"
	VOTE_NOT_FOUND = "VoteNotFound"
	WALLET_CHOICE_REQUIRED = "WalletChoiceRequired"
	CHAIN_UNAVAILABLE = "ChainUnavailable"
	PACKAGE_EXHAUSTED = "PackageExhausted"
	PACKAGE_NOT_FOUND = "PackageNotFound"


HTTP_STATUS = {
	ErrorKind.INSUFFICIENT_CREDITS: 402,
	ErrorKind.ALREADY_VOTED: 409,
	ErrorKind.TRANSACTION_NOT_FOUND: 404,
	ErrorKind.NO_VALID_TRANSFER: 400,
	ErrorKind.ALREADY_PROCESSED: 409,
	ErrorKind.INSUFFICIENT_GAS: 503,
	ErrorKind.TOKEN_DEPLOYMENT_FAILED: 502,
	ErrorKind.MINTING_FAILED: 502,
	ErrorKind.INVALID_WALLET_ADDRESS: 400,
	ErrorKind.INVALID_OPTION: 400,
	ErrorKind.POLL_NOT_FOUND: 404,
	ErrorKind.POLL_CLOSED: 400,
	ErrorKind.VOTE_NOT_FOUND: 404,
	ErrorKind.WALLET_CHOICE_REQUIRED: 400,
	ErrorKind.CHAIN_UNAVAILABLE: 504,
	ErrorKind.PACKAGE_EXHAUSTED: 400,
	ErrorKind.PACKAGE_NOT_FOUND: 404,
}


class RewardError(Exception):
	"""
	kind: the ErrorKind discriminant
	message: human-readable text safe to show to the user
	extra: structured fields merged into the JSON error body
	ambiguous: True when a chain call timed out and its outcome is unknown
	"""

	def __init__(self, kind: ErrorKind, message: str = "", *, ambiguous: bool = False, **extra):
		self.kind = kind
		self.message = message or kind.value
		self.ambiguous = ambiguous
		self.extra = extra
		super().__init__(f"{kind.value}: {self.message}")

	@property
	def http_status(self) -> int:
		return HTTP_STATUS.get(self.kind, 400)

	def as_dict(self) -> dict:
		return {"error": self.kind.value, "message": self.message, **self.extra}
