"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
Loads pipeline settings from the environment.

- Reads a local .env file once (python-dotenv)
- Provides typed, immutable settings objects
- Never logs credential values

============================================================
RECOGNIZED VARIABLES
============================================================
CORS_PROXY_URL, CORS_API_KEY          authenticated proxy
CORS_FALLBACK_PROXIES                 comma-separated templates
CORS_RESTRICTED_DOMAINS               comma-separated hosts
PROXY_TIMEOUT_SECONDS                 per-attempt timeout
MORALIS_API_KEY, MORALIS_BASE_URL     EVM artifact provider
HELIUS_API_KEY, HELIUS_RPC_URL        Solana artifact provider
NETWORK_<ID>_ENDPOINT / _API_KEY      per-network overrides
FETCH_PAGE_SIZE, FETCH_TIMEOUT_SECONDS, FETCH_MAX_PAGES
PERSISTENCE_BATCH_SIZE
DATABASE_URL
LOG_LEVEL

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# ============================================================
# DEFAULTS
# ============================================================

DEFAULT_CORS_PROXY_URL = "https://proxy.cors.sh/"

DEFAULT_FALLBACK_PROXIES: Tuple[str, ...] = (
    "https://corsproxy.io/?{url}",
    "https://api.allorigins.win/raw?url={encoded_url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
)

DEFAULT_CORS_RESTRICTED_DOMAINS: Tuple[str, ...] = (
    "ipfs.io",
    "nftstorage.link",
    "arweave.net",
    "gateway.pinata.cloud",
    "apymon.com",
    "stoneysociety.io",
    "gateway.ipfs.io",
    "cloudflare-ipfs.com",
    "app.unlock-protocol.com",
    "ipfs.nftstorage.link",
)

MAX_PERSISTENCE_BATCH_SIZE = 100


# ============================================================
# SETTINGS
# ============================================================

@dataclass(frozen=True)
class NetworkEndpoint:
    """Per-network API override."""
    endpoint: Optional[str] = None
    api_key: Optional[str] = None


@dataclass(frozen=True)
class ProxySettings:
    """Settings for the CORS proxy chain."""
    authenticated_proxy_url: str = DEFAULT_CORS_PROXY_URL
    api_key: Optional[str] = None
    fallback_proxies: Tuple[str, ...] = DEFAULT_FALLBACK_PROXIES
    restricted_domains: Tuple[str, ...] = DEFAULT_CORS_RESTRICTED_DOMAINS
    timeout_seconds: float = 10.0

    @property
    def has_authenticated_proxy(self) -> bool:
        """Authenticated proxy is usable only with a credential."""
        return bool(self.api_key and self.authenticated_proxy_url)


@dataclass(frozen=True)
class FetcherSettings:
    """Settings for network artifact fetchers."""
    moralis_api_key: Optional[str] = None
    moralis_base_url: str = "https://deep-index.moralis.io/api/v2.2"
    helius_api_key: Optional[str] = None
    helius_rpc_url: str = "https://mainnet.helius-rpc.com"
    page_size: int = 100
    timeout_seconds: float = 30.0
    max_pages: int = 20
    network_overrides: Dict[str, NetworkEndpoint] = field(default_factory=dict)

    def override_for(self, network: str) -> NetworkEndpoint:
        """Get the endpoint override for a network (empty if none)."""
        return self.network_overrides.get(network, NetworkEndpoint())


@dataclass(frozen=True)
class PipelineSettings:
    """Top-level settings for the artifact pipeline."""
    proxy: ProxySettings = field(default_factory=ProxySettings)
    fetcher: FetcherSettings = field(default_factory=FetcherSettings)
    persistence_batch_size: int = MAX_PERSISTENCE_BATCH_SIZE
    database_url: str = "sqlite:///artifacts.db"
    log_level: str = "INFO"


# ============================================================
# LOADING
# ============================================================

def _split_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{key} must be an integer, got {raw!r}",
            config_key=key,
            original_error=e,
        ) from e


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{key} must be a number, got {raw!r}",
            config_key=key,
            original_error=e,
        ) from e


def _network_overrides(env: Mapping[str, str]) -> Dict[str, NetworkEndpoint]:
    """Collect NETWORK_<ID>_ENDPOINT / NETWORK_<ID>_API_KEY pairs."""
    collected: Dict[str, Dict[str, str]] = {}
    for key, value in env.items():
        if not key.startswith("NETWORK_"):
            continue
        for suffix, attr in (("_ENDPOINT", "endpoint"), ("_API_KEY", "api_key")):
            if key.endswith(suffix):
                network = key[len("NETWORK_"):-len(suffix)].lower()
                if network:
                    collected.setdefault(network, {})[attr] = value
    return {
        network: NetworkEndpoint(**values)
        for network, values in collected.items()
    }


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> PipelineSettings:
    """
    Build settings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ)
        dotenv: Load a .env file into os.environ first

    Returns:
        PipelineSettings

    Raises:
        ConfigurationError: On unparsable numeric values
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    fallback = _split_list(env.get("CORS_FALLBACK_PROXIES")) or DEFAULT_FALLBACK_PROXIES
    restricted = _split_list(env.get("CORS_RESTRICTED_DOMAINS")) or DEFAULT_CORS_RESTRICTED_DOMAINS

    proxy = ProxySettings(
        authenticated_proxy_url=env.get("CORS_PROXY_URL") or DEFAULT_CORS_PROXY_URL,
        api_key=env.get("CORS_API_KEY") or None,
        fallback_proxies=fallback,
        restricted_domains=restricted,
        timeout_seconds=_get_float(env, "PROXY_TIMEOUT_SECONDS", 10.0),
    )

    if not proxy.has_authenticated_proxy:
        logger.warning(
            "CORS_API_KEY not set - media requests go straight to fallback proxies"
        )

    fetcher = FetcherSettings(
        moralis_api_key=env.get("MORALIS_API_KEY") or None,
        moralis_base_url=env.get("MORALIS_BASE_URL") or FetcherSettings.moralis_base_url,
        helius_api_key=env.get("HELIUS_API_KEY") or None,
        helius_rpc_url=env.get("HELIUS_RPC_URL") or FetcherSettings.helius_rpc_url,
        page_size=_get_int(env, "FETCH_PAGE_SIZE", 100),
        timeout_seconds=_get_float(env, "FETCH_TIMEOUT_SECONDS", 30.0),
        max_pages=_get_int(env, "FETCH_MAX_PAGES", 20),
        network_overrides=_network_overrides(env),
    )

    batch_size = _get_int(env, "PERSISTENCE_BATCH_SIZE", MAX_PERSISTENCE_BATCH_SIZE)
    if batch_size < 1:
        raise ConfigurationError(
            "PERSISTENCE_BATCH_SIZE must be positive",
            config_key="PERSISTENCE_BATCH_SIZE",
        )

    return PipelineSettings(
        proxy=proxy,
        fetcher=fetcher,
        persistence_batch_size=min(batch_size, MAX_PERSISTENCE_BATCH_SIZE),
        database_url=env.get("DATABASE_URL") or PipelineSettings.database_url,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
