import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from services.errors import ConfigError

# Load .env early so os.getenv picks up local dev secrets.
_DOTENV_PATHS = [Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"]
for _env_path in _DOTENV_PATHS:
    if _env_path.exists():
        try:  # pragma: no cover - environment bootstrap
            load_dotenv(dotenv_path=_env_path, override=False)
        except OSError as exc:
            logging.getLogger(__name__).warning("Failed to load %s: %s", _env_path, exc)

APP_NAME = "LogiFlow Logistics Dashboard"
APP_VERSION = "1.0.0"
USER_AGENT = "LogiFlow/1.0"

# ----------------------------
# Helpers
# ----------------------------
def _req(name: str) -> str:
    v = (os.getenv(name) or "").strip()
    if not v:
        raise ConfigError(f"Missing required env var: {name}")
    return v

def _opt(name: str) -> str:
    return (os.getenv(name) or "").strip()

def _csv_list(name: str, default: str = "") -> list[str]:
    raw = (os.getenv(name) or default).strip()
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]

def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Env var {name} must be an integer, got {raw!r}")

# ----------------------------
# Logging / storage
# ----------------------------
LOG_LEVEL = os.getenv("LOGISTICS_LOG_LEVEL", "INFO").upper()
DB_PATH = Path(os.getenv("LOGISTICS_DB_PATH") or Path(__file__).resolve().parent / "logistics.db")

# ----------------------------
# Order status lists
# ----------------------------
# Statuses synced from WooCommerce by default ("delvis-levert" = partially delivered)
WOOCOMMERCE_SYNC_STATUSES = _csv_list("WOOCOMMERCE_SYNC_STATUSES", "processing,delvis-levert")
# Statuses that survive the cleanup of old commerce orders
ORDER_STATUSES_TO_KEEP = _csv_list("ORDER_STATUSES_TO_KEEP", "processing,delvis-levert")
# Statuses considered by at-risk detection
AT_RISK_STATUSES = _csv_list("AT_RISK_STATUSES", "processing,on-hold,pending,delvis-levert")


# ----------------------------
# Vendor credentials (explicit objects, env backed)
# ----------------------------
@dataclass(frozen=True)
class WooCommerceConfig:
    store_url: str
    consumer_key: str
    consumer_secret: str
    webhook_secret: str = ""

    @classmethod
    def from_env(cls, require_credentials: bool = True) -> "WooCommerceConfig":
        """
        Webhooks only need the signing secret and the store URL, so they load
        with require_credentials=False and get empty strings for anything unset.
        """
        read = _req if require_credentials else _opt
        return cls(
            store_url=read("WOOCOMMERCE_STORE_URL"),
            consumer_key=read("WOOCOMMERCE_CONSUMER_KEY"),
            consumer_secret=read("WOOCOMMERCE_CONSUMER_SECRET"),
            webhook_secret=_opt("WOOCOMMERCE_WEBHOOK_SECRET"),
        )


@dataclass(frozen=True)
class OngoingWmsConfig:
    base_url: str
    username: str
    password: str
    goods_owner_id: int = 85

    @classmethod
    def from_env(cls) -> "OngoingWmsConfig":
        return cls(
            base_url=_req("ONGOING_BASE_URL"),
            username=_req("ONGOING_USERNAME"),
            password=_req("ONGOING_PASSWORD"),
            goods_owner_id=_int_env("ONGOING_GOODS_OWNER_ID", 85),
        )


@dataclass(frozen=True)
class RackbeatConfig:
    api_key: str
    base_url: str = "https://app.rackbeat.com/api"

    @classmethod
    def from_env(cls) -> "RackbeatConfig":
        return cls(
            api_key=_req("RACKBEAT_API_KEY"),
            base_url=(os.getenv("RACKBEAT_BASE_URL") or "https://app.rackbeat.com/api").strip(),
        )

