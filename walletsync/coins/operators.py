"""
Capability contracts implemented once per backend family, and the factory
selecting the implementation for a coin.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Set, Tuple

from walletsync.config import SyncSettings
from walletsync.core.models import (
    AddressesHistoryResponse,
    Output,
    PendingTransactionsResponse,
    Transaction,
    WalletBalance,
    WalletBase,
)

from .coin import Coin, CoinType


class BalanceOperator(Protocol):
    def get_wallet_balance(self, wallet: WalletBase) -> WalletBalance:
        """Confirmed and predicted balance of a wallet and each of its addresses."""

    def get_outputs(self, addresses: Sequence[str]) -> List[Output]:
        """Unspent outputs owned by the addresses."""


class HistoryOperator(Protocol):
    def get_raw_history(self, addresses: Sequence[str], max_per_address: int) -> Tuple[List[Transaction], Set[str]]:
        """
        Transactions of the addresses, deduplicated by id, without the derived
        fields. Also returns the addresses with transactions left out.
        """

    def get_pending_transactions(self, addresses: Sequence[str]) -> PendingTransactionsResponse:
        """Unconfirmed transactions; `user` holds the ones touching the addresses."""

    def get_used_addresses(self, addresses: Sequence[str]) -> Set[str]:
        """Addresses which have received coins at least once."""

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        """Use state of every address of a wallet."""


class NodeWalletsSource(Protocol):
    """Wallets stored by a local ledger node instead of the local store."""

    def load_wallets(self) -> List[WalletBase]:
        ...

    def load_wallet(self, wallet_id: str) -> WalletBase:
        ...

    def add_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[str]:
        ...

    def scan_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[str]:
        ...

    def find_outdated_wallets(self, wallets: Sequence[WalletBase]) -> List[str]:
        ...


@dataclass
class OperatorSet:
    coin: Coin
    balance: BalanceOperator
    history: HistoryOperator
    node_wallets: Optional[NodeWalletsSource] = None


def create_operators(coin: Coin, settings: Optional[SyncSettings] = None, session=None) -> OperatorSet:
    """Build the clients and operators for the backend family of the coin."""
    settings = settings or SyncSettings.from_env()

    if coin.coin_type == CoinType.INDEXER:
        from walletsync.api.indexer import IndexerApiClient
        from .indexer import IndexerBalanceOperator, IndexerHistoryOperator

        client = IndexerApiClient(session=session, timeout=settings.http_timeout)
        return OperatorSet(
            coin=coin,
            balance=IndexerBalanceOperator(coin, client, settings),
            history=IndexerHistoryOperator(coin, client, settings),
        )

    if coin.coin_type == CoinType.RPC:
        from walletsync.api.rpc import NodeRpcClient
        from .rpc import RpcBalanceOperator, RpcHistoryOperator

        client = NodeRpcClient(settings.rpc_user, settings.rpc_password, session=session, timeout=settings.http_timeout)
        return OperatorSet(
            coin=coin,
            balance=RpcBalanceOperator(coin, client, settings),
            history=RpcHistoryOperator(coin, client, settings),
        )

    if coin.coin_type == CoinType.LEDGER:
        from walletsync.api.ledger import LedgerNodeApiClient
        from .ledger import LedgerBalanceOperator, LedgerHistoryOperator, LedgerWalletsSource

        client = LedgerNodeApiClient(session=session, timeout=settings.http_timeout)
        return OperatorSet(
            coin=coin,
            balance=LedgerBalanceOperator(coin, client),
            history=LedgerHistoryOperator(coin, client),
            node_wallets=LedgerWalletsSource(coin, client) if coin.is_local else None,
        )

    raise ValueError(f"Unsupported coin type: {coin.coin_type}")
