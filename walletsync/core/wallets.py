# walletsync/core/wallets.py
"""
Wallets operator

Owns the current wallet list of a coin. Other components only get immutable
snapshots of it; every change goes through this class and is published as a
new snapshot, which restarts the refresh cycle.
"""

import json
import threading
from dataclasses import fields, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from walletsync.core.bus import ChangeBus
from walletsync.core.errors import LogicError
from walletsync.core.models import AddressBase, WalletBase, WalletType
from walletsync.storage.database import StorageType
from walletsync.utils.console import print_info, print_success

WALLET_RECORD_VERSION = 2

# Field names used by version 0 records.
_LEGACY_FIELD_NAMES = {
    "isHardware": "is_hardware",
    "walletType": "wallet_type",
    "hasHwSecurityWarnings": "has_hw_security_warnings",
    "stopShowingHwSecurityPopup": "stop_showing_hw_security_popup",
}

_KNOWN_FIELDS = {f.name for f in fields(WalletBase)}

INVALID_ADDRESS = "invalid"


def _migrate_address(address: Any, default_confirmed: bool) -> Dict:
    if isinstance(address, str):
        return {"address": address, "confirmed": default_confirmed, "is_change_address": False}

    if "address" in address:
        value = address["address"]
    else:
        value = address.get("printableAddressInternal", INVALID_ADDRESS)
    return {
        "address": value,
        "confirmed": address.get("confirmed", default_confirmed),
        "is_change_address": address.get("is_change_address", address.get("isChangeAddress", False)),
    }


def migrate_wallet_record(record: Any, is_hardware: bool = False, coin_name: Optional[str] = None) -> Dict:
    """
    Convert a persisted wallet record of any version to the current shape.

    Unknown fields are dropped, legacy address shapes are converted, a
    missing wallet type means deterministic and a wallet without addresses
    gets a placeholder one. Hardware wallet ids are rebuilt from the coin
    and the first address. The input is not modified.
    """
    if isinstance(record, str):
        record = json.loads(record)

    data = {}
    for key, value in record.items():
        key = _LEGACY_FIELD_NAMES.get(key, key)
        if key in _KNOWN_FIELDS:
            data[key] = value

    if is_hardware:
        data["is_hardware"] = True
    else:
        data.setdefault("is_hardware", False)

    # Addresses of hardware wallets are confirmed on the device only when shown there.
    default_confirmed = not data["is_hardware"]
    addresses = data.get("addresses") or []
    data["addresses"] = [_migrate_address(a, default_confirmed) for a in addresses]
    if not data["addresses"]:
        data["addresses"] = [{"address": INVALID_ADDRESS, "confirmed": default_confirmed, "is_change_address": False}]

    if not data.get("wallet_type"):
        data["wallet_type"] = WalletType.DETERMINISTIC.value

    if coin_name:
        data["coin"] = coin_name
    data.setdefault("coin", "")
    data.setdefault("label", "")

    if data["is_hardware"]:
        data["id"] = f"{data['coin']}-{data['addresses'][0]['address']}"
    data.setdefault("id", "")

    data["version"] = WALLET_RECORD_VERSION
    return data


class WalletsOperator:
    """
    Keeps the wallets of one coin.

    Hardware wallets, and software wallets of coins without a local node,
    are persisted in the key/value store. Software wallets of a local
    ledger node live on the node itself.
    """

    def __init__(self, coin, store=None, node_wallets=None):
        self.coin = coin
        self.store = store
        self.node_wallets = node_wallets
        self._lock = threading.RLock()
        self._wallets: Tuple[WalletBase, ...] = ()
        self.current_wallets: ChangeBus[Tuple[WalletBase, ...]] = ChangeBus("current_wallets")

    @property
    def software_wallets_key(self) -> str:
        return f"sw-wallets-{self.coin.symbol.lower()}"

    @property
    def hardware_wallets_key(self) -> str:
        return f"hw-wallets-{self.coin.symbol.lower()}"

    def wallets_snapshot(self) -> Tuple[WalletBase, ...]:
        with self._lock:
            return self._wallets

    def get_wallet(self, wallet_id: str) -> Optional[WalletBase]:
        for wallet in self.wallets_snapshot():
            if wallet.id == wallet_id:
                return wallet
        return None

    # =========================================================================
    # Loading and saving
    # =========================================================================

    def _load_stored(self, key: str, is_hardware: bool) -> List[WalletBase]:
        if self.store is None:
            return []
        stored = self.store.get(StorageType.CLIENT, key)
        if not stored:
            return []
        if isinstance(stored, str):
            stored = json.loads(stored)

        wallets = []
        for record in stored:
            migrated = migrate_wallet_record(record, is_hardware=is_hardware, coin_name=self.coin.name)
            wallets.append(WalletBase.from_dict(migrated))
        return wallets

    def load_wallets(self) -> Tuple[WalletBase, ...]:
        hardware = self._load_stored(self.hardware_wallets_key, True)
        if self.node_wallets is not None:
            software = self.node_wallets.load_wallets()
        else:
            software = self._load_stored(self.software_wallets_key, False)

        with self._lock:
            self._wallets = tuple(hardware + software)
            wallets = self._wallets
        print_info(f"📱 Loaded {len(wallets)} {self.coin.symbol} wallets")
        self.current_wallets.publish(wallets)
        return wallets

    def _save(self) -> None:
        if self.store is None:
            return
        wallets = self.wallets_snapshot()
        hardware = [dict(w.to_dict(), version=WALLET_RECORD_VERSION) for w in wallets if w.is_hardware]
        self.store.store(StorageType.CLIENT, self.hardware_wallets_key, hardware)
        if self.node_wallets is None:
            software = [dict(w.to_dict(), version=WALLET_RECORD_VERSION) for w in wallets if not w.is_hardware]
            self.store.store(StorageType.CLIENT, self.software_wallets_key, software)

    def _replace_list(self, wallets: Sequence[WalletBase]) -> None:
        with self._lock:
            self._wallets = tuple(wallets)
            self._save()

    def _publish_current(self) -> None:
        # Never called with the lock held, subscribers restart the refresh cycle.
        self.current_wallets.publish(self.wallets_snapshot())

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_wallet(self, wallet: WalletBase) -> WalletBase:
        with self._lock:
            if any(w.id == wallet.id for w in self._wallets):
                raise LogicError("The wallet already exists")
            wallets = list(self._wallets) + [wallet]
            self._replace_list(wallets)
        self._publish_current()
        print_success(f"📱 Added wallet: {wallet.label or wallet.id}")
        return wallet

    def delete_wallet(self, wallet_id: str) -> None:
        with self._lock:
            wallets = [w for w in self._wallets if w.id != wallet_id]
            if len(wallets) == len(self._wallets):
                raise LogicError(f"Unknown wallet: {wallet_id}")
            self._replace_list(wallets)
        self._publish_current()
        print_info(f"🗑️  Removed wallet: {wallet_id}")

    def update_wallet(self, wallet: WalletBase) -> WalletBase:
        """Replace a wallet. Node wallets are read again from the node."""
        if self.node_wallets is not None and not wallet.is_hardware:
            wallet = self.node_wallets.load_wallet(wallet.id)
        with self._lock:
            index = self._index_of(wallet.id)
            wallets = list(self._wallets)
            wallets[index] = wallet
            self._replace_list(wallets)
        self._publish_current()
        return wallet

    def update_wallets_by_id(self, wallet_ids: Sequence[str]) -> None:
        for wallet_id in wallet_ids:
            wallet = self.get_wallet(wallet_id)
            if wallet is not None:
                self.update_wallet(wallet)

    def add_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[AddressBase]:
        source = self._node_source_for(wallet)
        new_addresses = [AddressBase(address=a, confirmed=True) for a in source.add_addresses(wallet, num, password)]
        self._append_addresses(wallet.id, new_addresses)
        return new_addresses

    def scan_addresses(self, wallet: WalletBase, num: int = 100, password: Optional[str] = None) -> bool:
        """Ask the node to look for used addresses after the last known one."""
        source = self._node_source_for(wallet)
        found = source.scan_addresses(wallet, num, password)
        if not found:
            return False
        self._append_addresses(wallet.id, [AddressBase(address=a, confirmed=True) for a in found])
        return True

    def _node_source_for(self, wallet: WalletBase):
        if wallet.is_hardware:
            raise LogicError("Hardware wallet addresses are managed by the device")
        if self.node_wallets is None:
            raise LogicError(f"Addresses can not be created for {self.coin.name} wallets")
        return self.node_wallets

    def _append_addresses(self, wallet_id: str, addresses: List[AddressBase]) -> None:
        with self._lock:
            index = self._index_of(wallet_id)
            wallets = list(self._wallets)
            wallets[index] = replace(wallets[index], addresses=wallets[index].addresses + tuple(addresses))
            self._replace_list(wallets)
        self._publish_current()

    def _index_of(self, wallet_id: str) -> int:
        for i, current in enumerate(self._wallets):
            if current.id == wallet_id:
                return i
        raise LogicError(f"Unknown wallet: {wallet_id}")

    def dispose(self) -> None:
        self.current_wallets.complete()
