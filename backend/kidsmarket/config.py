import os
from typing import Any, Dict, List, Optional

_SERVER_CONFIG: Dict[str, Any] = {}

DEFAULT_LISTING_IMAGE = "https://images.unsplash.com/photo-1558060370-d644479cb6f7?w=400&h=400&fit=crop"


def get_server_secret(key: str, default: Optional[Any] = None) -> Any:
    """Read a server-side secret. Precedence: loaded Mongo config -> environment -> default.
    Do not expose these to clients.
    """
    if key in _SERVER_CONFIG:
        return _SERVER_CONFIG[key]
    return os.getenv(key, default)  # type: ignore[no-any-return]


def _flag(key: str, default: str) -> bool:
    return str(get_server_secret(key, default)).lower() in {"1", "true", "yes"}


def dev_mode() -> bool:
    """When enabled, X-User-Id / X-User-Email headers are trusted as caller identity."""
    return _flag("DEV_MODE", "false")


def checkout_currency() -> str:
    return str(get_server_secret("CHECKOUT_CURRENCY", "eur")).lower()


def default_origin() -> str:
    """Storefront origin for checkout redirects when the request has no Origin header."""
    return str(get_server_secret("DEFAULT_ORIGIN", "https://kids-marketplace.vercel.app"))


def webhook_tolerance() -> int:
    return int(get_server_secret("STRIPE_WEBHOOK_TOLERANCE", 300))


def cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS") or "*"
    return [s.strip() for s in raw.split(",") if s.strip()]


async def load_server_config_from_mongo(mdb) -> None:
    """Load server config from MongoDB into memory if available.
    The expected document shape (collection: config, id: 'runtime'):
      { _id: 'runtime', server: { KEY: VALUE, ... } }
    """
    if mdb is None:
        return
    coll = mdb.get_collection("config")
    doc = await coll.find_one({"_id": "runtime"})
    if not doc:
        return
    server = doc.get("server") or {}
    if isinstance(server, dict):
        # Merge into memory; prefer Mongo values
        _SERVER_CONFIG.update(server)


def reset_server_config() -> None:
    _SERVER_CONFIG.clear()
