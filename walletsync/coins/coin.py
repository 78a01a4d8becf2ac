from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from walletsync.utils.addresses import (
    AddressFormatter,
    format_btc_address,
    format_eth_address,
    format_fiber_address,
)


class CoinType(Enum):
    """Backend family used to sync a coin"""
    INDEXER = "indexer"
    RPC = "rpc"
    LEDGER = "ledger"


@dataclass(frozen=True)
class Coin:
    name: str
    symbol: str
    coin_type: CoinType
    node_url: str = ""
    indexer_url: str = ""
    # Local nodes are polled much more often than remote services.
    is_local: bool = True
    decimals: int = 8
    confirmations_needed: int = 1
    address_format: str = "btc"

    @property
    def format_address(self) -> AddressFormatter:
        return ADDRESS_FORMATTERS.get(self.address_format, format_btc_address)


ADDRESS_FORMATTERS: Dict[str, AddressFormatter] = {
    "btc": format_btc_address,
    "eth": format_eth_address,
    "fiber": format_fiber_address,
}


BTC = Coin(
    name="Bitcoin",
    symbol="BTC",
    coin_type=CoinType.INDEXER,
    indexer_url="https://btc1.trezor.io",
    is_local=False,
    decimals=8,
    confirmations_needed=3,
)

BTC_NODE = Coin(
    name="Bitcoin node",
    symbol="BTC",
    coin_type=CoinType.RPC,
    node_url="http://127.0.0.1:8334",
    is_local=True,
    decimals=8,
    confirmations_needed=3,
)

SKYCOIN = Coin(
    name="Skycoin",
    symbol="SKY",
    coin_type=CoinType.LEDGER,
    node_url="http://127.0.0.1:6420",
    is_local=True,
    decimals=6,
    confirmations_needed=1,
    address_format="fiber",
)

DEFAULT_COINS: Dict[str, Coin] = {
    "BTC": BTC,
    "BTC_NODE": BTC_NODE,
    "SKY": SKYCOIN,
}


def get_coin(name: str) -> Optional[Coin]:
    return DEFAULT_COINS.get(name.upper())
