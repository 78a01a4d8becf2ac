# walletsync/core/wallet_sync_helper.py
"""
Wallet Sync Helper

Wires the wallets operator, the balance engine, the history aggregator and
the refresh scheduler of one coin together.
"""

import threading
from typing import Callable, Dict, List, Optional, Tuple

from walletsync.coins.coin import Coin, CoinType, get_coin
from walletsync.coins.operators import OperatorSet, create_operators
from walletsync.config import SyncSettings
from walletsync.core.history import HistoryAggregator
from walletsync.core.models import (
    AddressBase,
    AddressesHistoryResponse,
    Output,
    PendingTransactionsResponse,
    TransactionHistory,
    TransactionLimits,
    WalletBase,
    WalletWithBalance,
    WalletWithOutputs,
)
from walletsync.core.scheduler import CycleToken, RefreshScheduler
from walletsync.core.wallet_manager import WalletStateManager
from walletsync.core.wallets import WalletsOperator
from walletsync.utils.console import print_info


def default_store(coin: Coin, session=None):
    """Local ledger nodes keep the data themselves, other coins use the local database."""
    if coin.coin_type == CoinType.LEDGER and coin.is_local:
        from walletsync.api.ledger import LedgerNodeApiClient
        from walletsync.storage.node_storage import NodeStorage

        return NodeStorage(LedgerNodeApiClient(session=session), coin.node_url)

    from walletsync.storage.database import KeyValueDatabase

    return KeyValueDatabase()


class WalletSyncHelper:
    """
    Keeps the balances of the wallets of a coin up to date in the background.

    Parameters:
        coin: Coin to sync
        store: Key/value store for wallets and notes, see `default_store`
        session: requests.Session (or compatible) used by every backend client
        settings: SyncSettings, read from the environment by default
        operators: Prebuilt OperatorSet, mostly for tests
        timer_factory: Timer class used by the scheduler
    """

    def __init__(self, coin: Coin, store=None, session=None, settings: Optional[SyncSettings] = None,
                 operators: Optional[OperatorSet] = None, timer_factory: Callable = threading.Timer):
        self.coin = coin
        self.settings = settings or SyncSettings.from_env()
        self.operators = operators or create_operators(coin, self.settings, session=session)
        self.store = store if store is not None else default_store(coin, session)

        self.wallets = WalletsOperator(coin, self.store, self.operators.node_wallets)
        self.state_manager = WalletStateManager(self.operators.balance, coin.format_address)
        self.history = HistoryAggregator(
            coin,
            self.operators.history,
            self.wallets.wallets_snapshot,
            self.store,
            self.settings,
        )
        self.scheduler = RefreshScheduler(
            self._refresh_cycle,
            update_period=self.settings.update_period,
            error_update_period=self.settings.error_update_period,
            is_local=coin.is_local,
            remote_multiplier=self.settings.remote_multiplier,
            timer_factory=timer_factory,
        )
        self._wallets_subscription = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, load_wallets: bool = True) -> None:
        """Start syncing. Every change of the wallet list restarts the cycle."""
        if self._wallets_subscription is None:
            self._wallets_subscription = self.wallets.current_wallets.subscribe(self._on_wallets_changed)
        if load_wallets:
            self.wallets.load_wallets()
        print_info(f"🔄 Started {self.coin.symbol} sync (interval: {self.scheduler.update_period:g}s)")

    def _on_wallets_changed(self, wallets: Tuple[WalletBase, ...]) -> None:
        self.scheduler.start(0, update_wallets_first=True)

    def _refresh_cycle(self, token: CycleToken) -> Optional[float]:
        wallets = self.wallets.wallets_snapshot()

        if token.update_wallets_first:
            self.state_manager.refresh_balances(wallets, force_quick_update=True, token=token)

        node_wallets = self.operators.node_wallets
        if node_wallets is not None:
            outdated = node_wallets.find_outdated_wallets(wallets)
            if outdated and token.is_current():
                # Publishing the updated wallets starts a new cycle.
                self.wallets.update_wallets_by_id(outdated)
                return 0

        self.state_manager.refresh_balances(wallets, token=token)
        return None

    def refresh_balance(self) -> None:
        """Refresh now instead of waiting for the next cycle."""
        self.scheduler.start(0, update_wallets_first=False)

    def sync_now(self, load_wallets: bool = True) -> Tuple[WalletWithBalance, ...]:
        """Single synchronous reconciliation, without the scheduler."""
        wallets = self.wallets.load_wallets() if load_wallets else self.wallets.wallets_snapshot()
        self.state_manager.refresh_balances(wallets)
        return self.state_manager.wallets_with_balance_snapshot() or ()

    def dispose(self) -> None:
        self.scheduler.stop()
        if self._wallets_subscription is not None:
            self._wallets_subscription.unsubscribe()
            self._wallets_subscription = None
        self.state_manager.dispose()
        self.scheduler.refreshing.complete()
        self.scheduler.had_error.complete()
        self.wallets.dispose()

    # =========================================================================
    # Observables
    # =========================================================================

    @property
    def wallets_with_balance(self):
        return self.state_manager.wallets_with_balance

    @property
    def has_pending_transactions(self):
        return self.state_manager.has_pending_transactions

    @property
    def first_full_update_made(self):
        return self.state_manager.first_full_update_made

    @property
    def refreshing_balance(self):
        return self.scheduler.refreshing

    @property
    def had_error_refreshing_balance(self):
        return self.scheduler.had_error

    @property
    def last_balances_update_time(self):
        return self.state_manager.last_balances_update_time

    # =========================================================================
    # Wallets
    # =========================================================================

    def add_wallet(self, wallet: WalletBase) -> WalletBase:
        return self.wallets.add_wallet(wallet)

    def delete_wallet(self, wallet_id: str) -> None:
        self.wallets.delete_wallet(wallet_id)
        self.state_manager.forget_wallet(wallet_id)

    def add_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[AddressBase]:
        return self.wallets.add_addresses(wallet, num, password)

    def scan_addresses(self, wallet: WalletBase, num: int = 100, password: Optional[str] = None) -> bool:
        return self.wallets.scan_addresses(wallet, num, password)

    # =========================================================================
    # Outputs and history
    # =========================================================================

    def get_outputs(self, addresses: List[str]) -> List[Output]:
        return self.state_manager.get_outputs(addresses)

    def get_wallet_unspent_outputs(self, wallet: WalletBase) -> List[Output]:
        return self.state_manager.get_wallet_unspent_outputs(wallet)

    def outputs_with_wallets(self) -> List[WalletWithOutputs]:
        return self.state_manager.outputs_with_wallets()

    def get_transactions_history(self, wallet: Optional[WalletBase] = None,
                                 limit: TransactionLimits = TransactionLimits.NORMAL_LIMIT) -> TransactionHistory:
        return self.history.get_transactions_history(wallet, limit)

    def get_pending_transactions(self) -> PendingTransactionsResponse:
        return self.history.get_pending_transactions()

    def get_if_addresses_used(self, wallet: WalletBase) -> Dict[str, bool]:
        return self.history.get_if_addresses_used(wallet)

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        return self.history.get_addresses_history(wallet)


# Convenience function to create sync helper
def create_wallet_sync_helper(coin_name: str = "BTC", store=None, session=None,
                              settings: Optional[SyncSettings] = None) -> WalletSyncHelper:
    """Create a new WalletSyncHelper for one of the built-in coins"""
    coin = get_coin(coin_name)
    if coin is None:
        raise ValueError(f"Unknown coin: {coin_name}")
    return WalletSyncHelper(coin, store=store, session=session, settings=settings)
