import json
import threading

import pytest

from walletsync.coins.coin import BTC
from walletsync.core.errors import LogicError
from walletsync.core.models import AddressBase, WalletBase, WalletType
from walletsync.core.wallets import WalletsOperator, migrate_wallet_record
from walletsync.storage.database import MemoryStore, StorageType


class TestMigration:
    def test_legacy_record(self):
        record = {
            "id": "w1",
            "label": "Old",
            "walletType": "bip44",
            "isHardware": False,
            "addresses": [{"printableAddressInternal": "bc1qaaa", "isChangeAddress": True}],
            "coinHours": 12,
        }

        migrated = migrate_wallet_record(record, coin_name="Bitcoin")

        assert migrated == {
            "id": "w1",
            "label": "Old",
            "coin": "Bitcoin",
            "wallet_type": "bip44",
            "is_hardware": False,
            "addresses": [{"address": "bc1qaaa", "confirmed": True, "is_change_address": True}],
            "version": 2,
        }
        assert "coinHours" in record
        assert record["addresses"][0] == {"printableAddressInternal": "bc1qaaa", "isChangeAddress": True}

    def test_json_string_and_defaults(self):
        migrated = migrate_wallet_record(json.dumps({"id": "w2", "addresses": ["1Abc"]}))
        assert migrated["wallet_type"] == WalletType.DETERMINISTIC.value
        assert migrated["addresses"] == [{"address": "1Abc", "confirmed": True, "is_change_address": False}]
        assert WalletBase.from_dict(migrated).address_strings == ["1Abc"]

    def test_hardware_record(self):
        migrated = migrate_wallet_record({"id": "old-id", "addresses": ["bc1qhw"]}, is_hardware=True, coin_name="Bitcoin")
        assert migrated["id"] == "Bitcoin-bc1qhw"
        assert migrated["addresses"][0]["confirmed"] is False

    def test_record_without_addresses(self):
        migrated = migrate_wallet_record({"id": "w3", "addresses": []})
        assert migrated["addresses"] == [{"address": "invalid", "confirmed": True, "is_change_address": False}]


class FakeNodeWallets:
    def __init__(self):
        self.added = []

    def load_wallets(self):
        return [WalletBase(id="n.wlt", label="Node", coin="Skycoin", addresses=(AddressBase("2abc"),))]

    def load_wallet(self, wallet_id):
        return WalletBase(id=wallet_id, label="Reloaded", coin="Skycoin",
                          addresses=(AddressBase("2abc"), AddressBase("2def")))

    def add_addresses(self, wallet, num, password=None):
        self.added.append((wallet.id, num, password))
        return ["2new"]

    def scan_addresses(self, wallet, num, password=None):
        return []

    def find_outdated_wallets(self, wallets):
        return []


class TestWalletsOperator:
    def _wallet(self, wallet_id="w1", is_hardware=False):
        return WalletBase(id=wallet_id, label="Main", coin="Bitcoin",
                          addresses=(AddressBase("bc1qaaa"),), is_hardware=is_hardware)

    def test_add_and_reload(self):
        store = MemoryStore()
        operator = WalletsOperator(BTC, store)
        published = []
        operator.current_wallets.subscribe(published.append)

        operator.add_wallet(self._wallet())
        operator.add_wallet(self._wallet("hw", is_hardware=True))

        assert [w.id for w in published[-1]] == ["w1", "hw"]
        saved = store.get(StorageType.CLIENT, "sw-wallets-btc")
        assert saved[0]["id"] == "w1"
        assert saved[0]["version"] == 2
        assert len(store.get(StorageType.CLIENT, "hw-wallets-btc")) == 1

        reloaded = WalletsOperator(BTC, store).load_wallets()
        assert [w.id for w in reloaded] == ["Bitcoin-bc1qaaa", "w1"]

    def test_duplicate_wallet(self):
        operator = WalletsOperator(BTC, MemoryStore())
        operator.add_wallet(self._wallet())
        with pytest.raises(LogicError):
            operator.add_wallet(self._wallet())

    def test_delete(self):
        operator = WalletsOperator(BTC, MemoryStore())
        operator.add_wallet(self._wallet())
        operator.delete_wallet("w1")
        assert operator.wallets_snapshot() == ()
        with pytest.raises(LogicError):
            operator.delete_wallet("w1")

    def test_snapshots_are_immutable(self):
        operator = WalletsOperator(BTC, MemoryStore())
        before = operator.wallets_snapshot()
        operator.add_wallet(self._wallet())
        assert before == ()
        assert isinstance(operator.wallets_snapshot(), tuple)

    def test_subscribers_run_without_the_lock(self):
        operator = WalletsOperator(BTC, MemoryStore())
        seen = []

        def on_change(wallets):
            # Another thread must be able to read the list while we are notified.
            reader = threading.Thread(target=lambda: seen.append(operator.wallets_snapshot()))
            reader.start()
            reader.join(2)
            seen.append(reader.is_alive())

        operator.current_wallets.subscribe(on_change, replay=False)
        operator.add_wallet(self._wallet())

        assert seen[-1] is False
        assert [w.id for w in seen[0]] == ["w1"]

    def test_addresses_need_a_node(self):
        operator = WalletsOperator(BTC, MemoryStore())
        wallet = operator.add_wallet(self._wallet())
        with pytest.raises(LogicError):
            operator.add_addresses(wallet, 1)

    def test_hardware_addresses_rejected(self):
        operator = WalletsOperator(BTC, MemoryStore(), FakeNodeWallets())
        wallet = operator.add_wallet(self._wallet("hw", is_hardware=True))
        with pytest.raises(LogicError):
            operator.add_addresses(wallet, 1)

    def test_node_wallets(self):
        node = FakeNodeWallets()
        store = MemoryStore()
        operator = WalletsOperator(BTC, store, node)

        wallets = operator.load_wallets()
        assert [w.id for w in wallets] == ["n.wlt"]

        new = operator.add_addresses(wallets[0], 1, "pw")
        assert [a.address for a in new] == ["2new"]
        assert node.added == [("n.wlt", 1, "pw")]
        assert operator.get_wallet("n.wlt").address_strings == ["2abc", "2new"]
        assert store.get(StorageType.CLIENT, "sw-wallets-btc") is None

        operator.update_wallets_by_id(["n.wlt", "missing"])
        assert operator.get_wallet("n.wlt").label == "Reloaded"

    def test_scan_without_new_addresses(self):
        operator = WalletsOperator(BTC, MemoryStore(), FakeNodeWallets())
        wallets = operator.load_wallets()
        assert operator.scan_addresses(wallets[0]) is False
