# walletsync/core/wallet_manager.py
"""
Balance Reconciliation Engine

Keeps the balance snapshot of the current wallet list. Each cycle asks the
coin's balance operator for the balance of every wallet, builds a brand new
immutable snapshot and swaps it in at once, so consumers only ever see a
fully reconciled list or the previous one. Subscribers are only notified
when something actually changed.
"""

import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from walletsync.core.bus import ChangeBus, StateFlag
from walletsync.core.models import (
    AddressBalance,
    AddressWithBalance,
    AddressWithOutputs,
    Output,
    WalletBalance,
    WalletBase,
    WalletWithBalance,
    WalletWithOutputs,
)
from walletsync.utils.addresses import format_plain_address
from walletsync.utils.console import print_debug, print_error, print_info

Snapshot = Tuple[WalletWithBalance, ...]


class ReconciliationState(Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    COMMITTED = "committed"
    FAILED = "failed"


class WalletStateManager:
    """
    Balance engine for one coin.

    Publishes:
        wallets_with_balance: tuple of WalletWithBalance, only on changes
        has_pending_transactions: True while any wallet has unconfirmed coins
        first_full_update_made: True after the first cycle using the network
    """

    def __init__(self, balance_operator, format_address: Optional[Callable[[str], str]] = None):
        self.balance_operator = balance_operator
        self.format_address = format_address or format_plain_address
        self.state_lock = threading.RLock()
        self.state = ReconciliationState.IDLE

        self._snapshot: Optional[Snapshot] = None
        # Raw balance data of the last full update, by wallet id. Used by quick updates.
        self._saved_balance_data: Dict[str, WalletBalance] = {}
        self.last_balances_update_time: Optional[datetime] = None

        self.wallets_with_balance: ChangeBus[Snapshot] = ChangeBus("wallets_with_balance")
        self.has_pending_transactions = StateFlag(False, "has_pending_transactions")
        self.first_full_update_made = StateFlag(False, "first_full_update_made")

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def refresh_balances(self, wallets: Sequence[WalletBase], force_quick_update: bool = False, token=None) -> bool:
        """
        Run one reconciliation cycle over a snapshot of the wallet list.

        With `force_quick_update` the network is skipped and the balance data
        saved by the last full update is reused, which makes local edits of the
        wallet list visible at once.

        Returns True if a change was published. Backend errors propagate and
        leave the last committed snapshot untouched.
        """
        wallets = tuple(wallets)
        with self.state_lock:
            self.state = ReconciliationState.COMPUTING

        started = time.time()
        try:
            if force_quick_update:
                balances = {w.id: self._saved_balance_data.get(w.id, WalletBalance()) for w in wallets}
            else:
                balances = {w.id: self.balance_operator.get_wallet_balance(w) for w in wallets}
            new_snapshot = tuple(self._build_wallet(w, balances[w.id]) for w in wallets)
        except Exception as e:
            with self.state_lock:
                self.state = ReconciliationState.FAILED
            print_error(f"❌ Balance update failed: {e}")
            raise

        lock = token.lock if token is not None else self.state_lock
        with lock:
            if token is not None and not token.is_current():
                print_debug("⏭️  Discarding balances of a superseded cycle")
                with self.state_lock:
                    self.state = ReconciliationState.IDLE
                return False

            with self.state_lock:
                previous = self._snapshot
                changed = force_quick_update or previous is None or self.snapshots_differ(previous, new_snapshot)
                self._snapshot = new_snapshot
                if not force_quick_update:
                    self._saved_balance_data = balances
                    self.last_balances_update_time = datetime.now()
                self.state = ReconciliationState.COMMITTED

        # Subscribers run without any lock held, they may edit the wallet list.
        if changed:
            self.wallets_with_balance.publish(new_snapshot)
        if not force_quick_update:
            self.has_pending_transactions.set_if_changed(any(w.has_pending_coins for w in new_snapshot))
            self.first_full_update_made.set_if_changed(True)
            print_info(f"💰 Balances of {len(wallets)} wallets updated in {time.time() - started:.2f}s")
        return changed

    def _build_wallet(self, wallet: WalletBase, balance: WalletBalance) -> WalletWithBalance:
        addresses: List[AddressWithBalance] = []
        for address in wallet.addresses:
            address_balance = balance.addresses.get(self.format_address(address.address), AddressBalance())
            addresses.append(AddressWithBalance(
                address=address.address,
                confirmed=address.confirmed,
                is_change_address=address.is_change_address,
                current=address_balance.current,
                predicted=address_balance.predicted,
                has_pending_coins=address_balance.has_pending_transactions,
            ))

        return WalletWithBalance(
            id=wallet.id,
            label=wallet.label,
            coin=wallet.coin,
            addresses=tuple(addresses),
            is_hardware=wallet.is_hardware,
            wallet_type=wallet.wallet_type,
            current=balance.current,
            predicted=balance.predicted,
            has_pending_coins=balance.current != balance.predicted or any(a.has_pending_coins for a in addresses),
        )

    @staticmethod
    def snapshots_differ(old: Snapshot, new: Snapshot) -> bool:
        """Compare membership, address counts and every balance value."""
        if len(old) != len(new):
            return True

        for old_wallet, new_wallet in zip(old, new):
            if old_wallet.id != new_wallet.id:
                return True
            if old_wallet.label != new_wallet.label:
                return True
            if len(old_wallet.addresses) != len(new_wallet.addresses):
                return True
            if old_wallet.current != new_wallet.current or old_wallet.predicted != new_wallet.predicted:
                return True
            for old_address, new_address in zip(old_wallet.addresses, new_wallet.addresses):
                if old_address.address != new_address.address:
                    return True
                if old_address.current != new_address.current or old_address.predicted != new_address.predicted:
                    return True
        return False

    # =========================================================================
    # Query methods
    # =========================================================================

    def wallets_with_balance_snapshot(self) -> Optional[Snapshot]:
        with self.state_lock:
            return self._snapshot

    def get_wallet(self, wallet_id: str) -> Optional[WalletWithBalance]:
        snapshot = self.wallets_with_balance_snapshot() or ()
        for wallet in snapshot:
            if wallet.id == wallet_id:
                return wallet
        return None

    def get_saved_balance(self, wallet_id: str) -> Optional[WalletBalance]:
        with self.state_lock:
            return self._saved_balance_data.get(wallet_id)

    def forget_wallet(self, wallet_id: str) -> None:
        with self.state_lock:
            self._saved_balance_data.pop(wallet_id, None)

    def get_outputs(self, addresses: Sequence[str]) -> List[Output]:
        return self.balance_operator.get_outputs(list(addresses))

    def get_wallet_unspent_outputs(self, wallet: WalletBase) -> List[Output]:
        return self.get_outputs(wallet.address_strings)

    def outputs_with_wallets(self) -> List[WalletWithOutputs]:
        """Unspent outputs of every wallet of the current snapshot, by address."""
        snapshot = self.wallets_with_balance_snapshot() or ()
        addresses = [a.address for w in snapshot for a in w.addresses]
        by_address: Dict[str, List[Output]] = {}
        for output in self.get_outputs(addresses):
            by_address.setdefault(self.format_address(output.address), []).append(output)

        result = []
        for wallet in snapshot:
            result.append(WalletWithOutputs(
                id=wallet.id,
                label=wallet.label,
                addresses=tuple(
                    AddressWithOutputs(
                        address=a.address,
                        outputs=tuple(by_address.get(self.format_address(a.address), [])),
                    )
                    for a in wallet.addresses
                ),
            ))
        return result

    def dispose(self) -> None:
        self.wallets_with_balance.complete()
        self.has_pending_transactions.complete()
        self.first_full_update_made.complete()
