"""Runtime configuration profiles and sync settings for walletsync."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict

PROFILE = os.getenv("WALLETSYNC_PROFILE", "default")

PROFILES: Dict[str, Dict[str, str]] = {
    "default": {
        "WALLETSYNC_UPDATE_PERIOD": "10",
        "WALLETSYNC_ERROR_UPDATE_PERIOD": "2",
        "WALLETSYNC_REMOTE_MULTIPLIER": "60",
        "WALLETSYNC_BATCH_WORKERS": "1",
        "WALLETSYNC_HTTP_TIMEOUT": "10",
    },
    # Fewer requests for public indexers with strict rate limits.
    "conservative": {
        "WALLETSYNC_UPDATE_PERIOD": "30",
        "WALLETSYNC_ERROR_UPDATE_PERIOD": "10",
        "WALLETSYNC_REMOTE_MULTIPLIER": "60",
        "WALLETSYNC_MAX_TX_FEW_ADDRESSES": "20",
        "WALLETSYNC_MAX_TX_MANY_ADDRESSES": "5",
        "WALLETSYNC_BATCH_WORKERS": "1",
        "WALLETSYNC_HTTP_TIMEOUT": "20",
    },
    "fast": {
        "WALLETSYNC_UPDATE_PERIOD": "5",
        "WALLETSYNC_ERROR_UPDATE_PERIOD": "2",
        "WALLETSYNC_BATCH_WORKERS": "4",
    },
}


def apply_profile() -> None:
    profile = os.getenv("WALLETSYNC_PROFILE", PROFILE)
    if not profile:
        return
    settings = PROFILES.get(profile)
    if not settings:
        return
    for key, value in settings.items():
        os.environ.setdefault(key, value)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class SyncSettings:
    """Tunables for the refresh loop and the history request caps."""
    update_period: float = 10.0
    error_update_period: float = 2.0
    remote_multiplier: int = 60
    few_addresses_limit: int = 5
    max_tx_per_address_if_few_addresses: int = 50
    max_tx_per_address_if_many_addresses: int = 10
    max_tx_per_address_multiplier: int = 4
    max_tx_per_address_allowed_by_backend: int = 1000
    batch_workers: int = 1
    http_timeout: float = 10.0
    rpc_user: str = "user"
    rpc_password: str = "123"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        apply_profile()
        return cls(
            update_period=_env_float("WALLETSYNC_UPDATE_PERIOD", 10.0),
            error_update_period=_env_float("WALLETSYNC_ERROR_UPDATE_PERIOD", 2.0),
            remote_multiplier=_env_int("WALLETSYNC_REMOTE_MULTIPLIER", 60),
            few_addresses_limit=_env_int("WALLETSYNC_FEW_ADDRESSES_LIMIT", 5),
            max_tx_per_address_if_few_addresses=_env_int("WALLETSYNC_MAX_TX_FEW_ADDRESSES", 50),
            max_tx_per_address_if_many_addresses=_env_int("WALLETSYNC_MAX_TX_MANY_ADDRESSES", 10),
            max_tx_per_address_multiplier=_env_int("WALLETSYNC_MAX_TX_MULTIPLIER", 4),
            max_tx_per_address_allowed_by_backend=_env_int("WALLETSYNC_MAX_TX_ALLOWED", 1000),
            batch_workers=max(1, _env_int("WALLETSYNC_BATCH_WORKERS", 1)),
            http_timeout=_env_float("WALLETSYNC_HTTP_TIMEOUT", 10.0),
            rpc_user=os.getenv("WALLETSYNC_RPC_USER", "user"),
            rpc_password=os.getenv("WALLETSYNC_RPC_PASSWORD", "123"),
        )
