"""
Artifact Adapter Models - Networks, fetch pages and progress events.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ChainFamily(str, Enum):
    """Address families supported by wallets."""
    EVM = "evm"
    SOLANA = "solana"


class FetcherStatus(Enum):
    """Health status of an artifact fetcher."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NetworkInfo:
    """A blockchain network artifacts can be listed on."""
    value: str
    label: str
    chain_id: str
    family: ChainFamily = ChainFamily.EVM


NETWORKS: Dict[str, NetworkInfo] = {
    info.value: info
    for info in (
        NetworkInfo("eth", "Ethereum", "0x1"),
        NetworkInfo("polygon", "Polygon", "0x89"),
        NetworkInfo("bsc", "Binance Smart Chain", "0x38"),
        NetworkInfo("arbitrum", "Arbitrum", "0xa4b1"),
        NetworkInfo("base", "Base", "0x2105"),
        NetworkInfo("optimism", "Optimism", "0xa"),
        NetworkInfo("linea", "Linea", "0xe708"),
        NetworkInfo("avalanche", "Avalanche", "0xa86a"),
        NetworkInfo("fantom", "Fantom", "0xfa"),
        NetworkInfo("cronos", "Cronos", "0x19"),
        NetworkInfo("palm", "Palm", "0x2a15c308d"),
        NetworkInfo("ronin", "Ronin", "0x7e4"),
        NetworkInfo("gnosis", "Gnosis", "0x64"),
        NetworkInfo("chiliz", "Chiliz", "0x15b38"),
        NetworkInfo("pulsechain", "Pulsechain", "0x171"),
        NetworkInfo("moonbeam", "Moonbeam", "0x504"),
        NetworkInfo("moonriver", "Moonriver", "0x505"),
        NetworkInfo("blast", "Blast", "0x13e31"),
        NetworkInfo("zksync", "zkSync", "0x144"),
        NetworkInfo("mantle", "Mantle", "0x1388"),
        NetworkInfo("polygon_zkevm", "Polygon zkEVM", "0x44d"),
        NetworkInfo("zetachain", "Zetachain", "0x1b58"),
        NetworkInfo("solana", "Solana", "mainnet", ChainFamily.SOLANA),
    )
}


def get_network(value: str) -> Optional[NetworkInfo]:
    """Look up a network by identifier."""
    return NETWORKS.get(value)


def networks_for_family(family: ChainFamily) -> List[str]:
    """Network identifiers belonging to a chain family."""
    return [n.value for n in NETWORKS.values() if n.family == family]


@dataclass
class FetchPage:
    """One page of raw provider records."""
    artifacts: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.cursor is not None


@dataclass(frozen=True)
class FetchProgress:
    """Partial-count progress event for UI feedback."""
    address: str
    network: str
    page: int
    fetched: int
    total_so_far: int
    done: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "network": self.network,
            "page": self.page,
            "fetched": self.fetched,
            "total_so_far": self.total_so_far,
            "done": self.done,
        }


@dataclass
class FetcherHealth:
    """Health status of a fetcher."""
    status: FetcherStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    rate_limit_remaining: Optional[int] = None
    error_count: int = 0
    last_error: Optional[str] = None
    consecutive_failures: int = 0

    def is_usable(self) -> bool:
        """Check if fetcher can still be used."""
        return self.status in (FetcherStatus.HEALTHY, FetcherStatus.DEGRADED, FetcherStatus.UNKNOWN)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "rate_limit_remaining": self.rate_limit_remaining,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
        }
