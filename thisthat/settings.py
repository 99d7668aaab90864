"""Django settings for the this-or-that meme-coin rewards service.


The service runs the credit-gated reward pipeline:
- Verified USDT payments (Polygon) → vote credits
- Vote on a MemeCoin poll → debit one credit → mint one token unit (Base or Solana)

CHAIN_MODE=stub routes every chain call to the DB-backed chain_stub app so the
whole flow runs locally without RPC endpoints or funded wallets.
"""

import os
from pathlib import Path
from decimal import Decimal


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

def env_decimal(name, default):
    return Decimal(os.getenv(name, default))

#######################
# Chain access. "stub" uses chain_stub tables, "live" talks to real RPC endpoints.
CHAIN_MODE = os.getenv("CHAIN_MODE", "stub")

POLYGON_RPC_URL = os.getenv("POLYGON_RPC_URL", "https://polygon-rpc.com")
BASE_RPC_URL = os.getenv("BASE_RPC_URL", "https://mainnet.base.org")
SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")

# Every outbound call is bounded; a timeout is a failure, never a success.
RPC_TIMEOUT_SECONDS = float(os.getenv("RPC_TIMEOUT_SECONDS", "20"))
RECEIPT_TIMEOUT_SECONDS = float(os.getenv("RECEIPT_TIMEOUT_SECONDS", "120"))
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

# Payments: USDT on Polygon into the treasury wallet
PAYMENT_CHAIN = "polygon"
USDT_POLYGON_ADDRESS = os.getenv("USDT_POLYGON_ADDRESS", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F")
USDT_SOLANA_MINT = os.getenv("USDT_SOLANA_MINT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB")
USDT_DECIMALS = 6
TREASURY_WALLET = os.getenv("TREASURY_WALLET", "0x742d35Cc6636C0532925a3b6F45bb678E9E9cD81")
CREDITS_PER_USDT = env_decimal("CREDITS_PER_USDT", "3")

# Operator keys used for deployment, minting and gas conversion
OPERATOR_EVM_PRIVATE_KEY = os.getenv("OPERATOR_EVM_PRIVATE_KEY", "")
OPERATOR_SOLANA_SECRET = os.getenv("OPERATOR_SOLANA_SECRET", "")  # base58 keypair
TOKEN_FACTORY_ADDRESS = os.getenv("TOKEN_FACTORY_ADDRESS", "0x0000000000000000000000000000000000000000")

# Gas management (native units per chain)
MIN_GAS_BALANCE = {
	"base": env_decimal("MIN_GAS_BASE", "0.001"),
	"solana": env_decimal("MIN_GAS_SOLANA", "0.008"),
}
GAS_CONVERSION_PROVIDERS = {
	"base": os.getenv("GAS_PROVIDERS_BASE", "lifi").split(","),
	"solana": os.getenv("GAS_PROVIDERS_SOLANA", "jupiter,lifi").split(","),
}
GAS_TOPUP_WAIT_SECONDS = float(os.getenv("GAS_TOPUP_WAIT_SECONDS", "90"))
GAS_SLIPPAGE = env_decimal("GAS_SLIPPAGE", "0.05")
LIFI_API_URL = os.getenv("LIFI_API_URL", "https://li.quest/v1")
JUPITER_API_URL = os.getenv("JUPITER_API_URL", "https://quote-api.jup.ag/v6")
COINGECKO_API_URL = os.getenv("COINGECKO_API_URL", "https://api.coingecko.com/api/v3")
FALLBACK_NATIVE_PRICES_USD = {
	"base": env_decimal("FALLBACK_ETH_PRICE_USD", "3500"),
	"solana": env_decimal("FALLBACK_SOL_PRICE_USD", "150"),
}

# MemeCoin packages
PACKAGE_PRICE_USDT = env_decimal("PACKAGE_PRICE_USDT", "1.00")
PACKAGE_POLLS = int(os.getenv("PACKAGE_POLLS", "3"))

# Refund a credit when a mint times out with an unknown outcome. The coin row
# stays "pending" either way, so a retry never mints twice.
REFUND_ON_AMBIGUOUS_MINT = env_bool("REFUND_ON_AMBIGUOUS_MINT", "1")

# Shared secret for /api/admin/*. Empty => allowed only when DEBUG.
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")

# chain_stub knobs
CHAIN_STUB_OPERATOR_GAS = env_decimal("CHAIN_STUB_OPERATOR_GAS", "1")
CHAIN_STUB_DEPLOY_COST = env_decimal("CHAIN_STUB_DEPLOY_COST", "0.0005")
CHAIN_STUB_MINT_COST = env_decimal("CHAIN_STUB_MINT_COST", "0.00005")
#######################


INSTALLED_APPS = [
	"django.contrib.admin",
	"django.contrib.auth",
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
	"chain_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "thisthat.urls"
TEMPLATES = [
	{
		"BACKEND": "django.template.backends.django.DjangoTemplates",
		"DIRS": [],
		"APP_DIRS": True,
		"OPTIONS": {
			"context_processors": [
				"django.template.context_processors.debug",
				"django.template.context_processors.request",
				"django.contrib.auth.context_processors.auth",
				"django.contrib.messages.context_processors.messages",
			],
		},
	},
]


WSGI_APPLICATION = "thisthat.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "thisthat"),
            "USER": os.getenv("POSTGRES_USER", "thisthat"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "thisthat"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
	},
	"handlers": {
		"console": {"class": "logging.StreamHandler", "formatter": "plain"},
	},
	"root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
	"loggers": {
		"django.db.backends": {"level": "WARNING"},
	},
}


AUTH_PASSWORD_VALIDATORS = []


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Demo-wide constants: a single demo user is seeded; demo-mode coins carry a placeholder wallet.
DEMO_USER_EMAIL = os.getenv("DEMO_USER_EMAIL", "demo@thisthat.local")
DEMO_WALLET_PLACEHOLDER = "demo_mode_no_wallet"
DEFAULT_BLOCKCHAIN = os.getenv("DEFAULT_BLOCKCHAIN", "base")
