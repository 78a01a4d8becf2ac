from decimal import Decimal

import pytest

from walletsync.api.indexer import IndexerApiClient
from walletsync.api.ledger import LedgerNodeApiClient
from walletsync.api.rpc import NodeRpcClient
from walletsync.coins.coin import BTC, BTC_NODE, SKYCOIN, get_coin
from walletsync.coins.indexer import IndexerHistoryOperator
from walletsync.coins.ledger import (
    LedgerBalanceOperator,
    LedgerHistoryOperator,
    LedgerWalletsSource,
    parse_node_time,
    process_node_wallet,
)
from walletsync.coins.operators import create_operators
from walletsync.coins.rpc import RpcBalanceOperator, RpcHistoryOperator
from walletsync.config import SyncSettings
from walletsync.core.errors import BackendFaultError, LogicError
from walletsync.core.models import AddressBase, AddressState, TxEndpoint, WalletBase, WalletType

NO_DATA = {"result": None, "error": {"code": -5, "message": "No information available about address"}}

FUNDING = {
    "txid": "f1",
    "confirmations": 10,
    "time": 1700000000,
    "vin": [{"coinbase": "04ffff"}],
    "vout": [{"n": 0, "value": 1.0, "scriptPubKey": {"addresses": ["1Aaa"]}}],
}

SPEND = {
    "txid": "s1",
    "confirmations": 0,
    "vin": [{"txid": "f1", "vout": 0, "prevOut": {"addresses": ["1Aaa"], "value": 1.0}}],
    "vout": [
        {"n": 0, "value": 0.7, "scriptPubKey": {"addresses": ["1Ext"]}},
        {"n": 1, "value": 0.29, "scriptPubKey": {"addresses": ["1Aaa"]}},
    ],
}


def _wallet(*addresses, wallet_id="w1", is_hardware=False, wallet_type=WalletType.DETERMINISTIC):
    return WalletBase(id=wallet_id, label="Test", coin="Test",
                      addresses=tuple(AddressBase(a) for a in addresses),
                      is_hardware=is_hardware, wallet_type=wallet_type)


class TestIndexerOperators:
    def _history(self):
        return IndexerHistoryOperator(BTC, IndexerApiClient(), SyncSettings())

    def test_process_transaction(self):
        tx = self._history().process_transaction({
            "txid": "t1",
            "blockTime": 1700000000,
            "confirmations": 5,
            "vin": [
                {"txid": "p", "vout": 1, "value": "150000000", "isAddress": True, "addresses": ["bc1qaaa"]},
                {"value": "0", "isAddress": False},
            ],
            "vout": [
                {"n": 0, "value": "100000000", "addresses": ["bc1qext"]},
                {"n": 1, "value": "0", "addresses": []},
                {"n": 2, "value": "49990000", "addresses": ["bc1qbbb"]},
            ],
        })

        assert tx.confirmed is True
        assert tx.timestamp == 1700000000
        assert tx.fee == Decimal("0.0001")
        assert [o.hash for o in tx.outputs] == ["t1/0", "t1/2"]
        assert tx.inputs[0] == TxEndpoint("bc1qaaa", Decimal("1.5"), "p/1")
        assert tx.inputs[1] == TxEndpoint("", Decimal(0), "")

    def test_unconfirmed_transaction_without_block_time(self):
        tx = self._history().process_transaction({"txid": "t2", "confirmations": 0, "vin": [], "vout": []})
        assert tx.timestamp == -1
        assert tx.confirmed is False

    def test_raw_history(self, fake_http):
        tx = {"txid": "t1", "confirmations": 1, "blockTime": 1, "vin": [], "vout": []}
        fake_http.route("get", "/address/bc1qaaa?", {"totalPages": 3, "transactions": [tx]})
        fake_http.route("get", "/address/bc1qbbb?", {"totalPages": 1, "transactions": [tx]})

        transactions, with_more = self._history().get_raw_history(["bc1qaaa", "bc1qbbb"], 10)

        assert [t.id for t in transactions] == ["t1"]
        assert with_more == {"bc1qaaa"}
        assert "pageSize=10&details=txslight" in fake_http.urls()[0]

    def test_pending(self, fake_http):
        fake_http.route("get", "/api/", {"blockbook": {"bestHeight": 800000}})
        fake_http.route("get", "/address/bc1qaaa?", {"transactions": [{
            "txid": "p1",
            "confirmations": 0,
            "vin": [],
            "vout": [{"n": 0, "value": "50000000", "addresses": ["bc1qaaa"]}],
        }]})

        response = self._history().get_pending_transactions(["bc1qaaa"])

        assert fake_http.urls()[0] == "https://btc1.trezor.io/api/"
        assert "from=799998" in fake_http.urls()[-1]
        assert "pageSize=1000" in fake_http.urls()[-1]
        assert [(t.id, t.coins) for t in response.user] == [("p1", Decimal("0.5"))]
        assert response.all == []

    def test_used_addresses(self, fake_http):
        fake_http.route("get", "/address/bc1qaaa?", {"totalReceived": "1000"})
        fake_http.route("get", "/address/bc1qbbb?", {"totalReceived": "0"})
        assert self._history().get_used_addresses(["bc1qaaa", "bc1qbbb", "bc1qnew"]) == {"bc1qaaa"}

    def test_addresses_history_not_supported(self):
        with pytest.raises(LogicError):
            self._history().get_addresses_history(_wallet("bc1qaaa"))


class TestRpcOperators:
    @pytest.fixture
    def node(self, fake_http, make_response):
        history = {"1Aaa": [FUNDING, SPEND]}

        def handler(url, **kwargs):
            address = kwargs["json"]["params"][0]
            if address == "1Broken":
                return make_response(500, {"result": None, "error": {"code": -1, "message": "database error"}})
            if address not in history:
                return make_response(500, NO_DATA)
            return make_response(200, {"result": history[address], "error": None})

        fake_http.route("post", BTC_NODE.node_url, handler=handler)
        return fake_http

    def _client(self):
        return NodeRpcClient()

    def test_wallet_balance(self, node):
        operator = RpcBalanceOperator(BTC_NODE, self._client(), SyncSettings())
        balance = operator.get_wallet_balance(_wallet("1Aaa", "1Unknown"))

        assert balance.current == Decimal("1.0")
        assert balance.predicted == Decimal("0.29")
        assert balance.addresses["1Unknown"].current == 0

    def test_fault_is_raised(self, node):
        operator = RpcBalanceOperator(BTC_NODE, self._client(), SyncSettings())
        with pytest.raises(BackendFaultError):
            operator.get_wallet_balance(_wallet("1Broken"))

    def test_unspent_outputs(self, node):
        operator = RpcBalanceOperator(BTC_NODE, self._client(), SyncSettings())
        outputs = operator.get_outputs(["1Aaa"])
        assert [(o.hash, o.coins) for o in outputs] == [("s1/1", Decimal("0.29"))]

    def test_history(self, node):
        operator = RpcHistoryOperator(BTC_NODE, self._client(), SyncSettings())
        transactions, with_more = operator.get_raw_history(["1Aaa", "1Unknown"], 50)
        by_id = {t.id: t for t in transactions}

        assert with_more == set()
        assert by_id["f1"].inputs[0].hash == "04ffff"
        assert by_id["f1"].fee == 0
        assert by_id["f1"].confirmed is True
        assert by_id["s1"].fee == Decimal("0.01")
        assert by_id["s1"].inputs[0].hash == "f1/0"
        assert by_id["s1"].confirmed is False

    def test_pending_and_used(self, node):
        operator = RpcHistoryOperator(BTC_NODE, self._client(), SyncSettings())
        pending = operator.get_pending_transactions(["1Aaa"])
        assert [(t.id, t.coins) for t in pending.user] == [("s1", Decimal("0.99"))]
        assert operator.get_used_addresses(["1Aaa", "1Unknown"]) == {"1Aaa"}


SKY_WALLET = {
    "meta": {"filename": "a.wlt", "label": "Spending", "type": "bip44", "encrypted": True},
    "entries": [
        {"address": "2e0", "child_number": 0, "change": 0},
        {"address": "2c0", "child_number": 0, "change": 1},
    ],
}


class TestLedgerOperators:
    def test_parse_node_time(self):
        assert parse_node_time("2024-01-01T00:00:00.123456789Z") == 1704067200
        assert parse_node_time("2024-01-01T00:00:00Z") == 1704067200
        assert parse_node_time("garbage") == -1
        assert parse_node_time(None) == -1

    def test_process_node_wallet(self):
        wallet = process_node_wallet(SKY_WALLET, "Skycoin")
        assert wallet.id == "a.wlt"
        assert wallet.encrypted is True
        assert wallet.wallet_type == WalletType.BIP44
        assert [a.is_change_address for a in wallet.addresses] == [False, True]

        deterministic = dict(SKY_WALLET, meta={"filename": "d.wlt", "type": "deterministic"})
        assert not any(a.is_change_address for a in process_node_wallet(deterministic, "Skycoin").addresses)

    def test_software_wallet_balance(self, fake_http):
        fake_http.route("get", "/api/v1/wallet/balance", {
            "confirmed": {"coins": 2000000, "hours": 10},
            "predicted": {"coins": 2500000, "hours": 12},
            "addresses": {"2e0": {"confirmed": {"coins": 2000000}, "predicted": {"coins": 2500000}}},
        })
        balance = LedgerBalanceOperator(SKYCOIN, LedgerNodeApiClient()).get_wallet_balance(_wallet("2e0", wallet_id="a.wlt"))

        assert balance.current == Decimal("2")
        assert balance.predicted == Decimal("2.5")
        assert balance.addresses["2e0"].predicted == Decimal("2.5")
        assert fake_http.urls()[-1].endswith("/api/v1/wallet/balance?id=a.wlt")

    def test_hardware_wallet_balance(self, fake_http):
        fake_http.route("post", "/api/v1/balance", {"confirmed": {"coins": 1000000}, "predicted": {"coins": 1000000}})
        balance = LedgerBalanceOperator(SKYCOIN, LedgerNodeApiClient()).get_wallet_balance(
            _wallet("2e0", "2c0", is_hardware=True))

        assert balance.current == Decimal("1")
        assert fake_http.calls[-1][2]["data"] == "addrs=2e0%2C2c0"

    def test_outputs(self, fake_http):
        fake_http.route("post", "/api/v1/outputs", {"head_outputs": [
            {"hash": "h1", "address": "2e0", "coins": "1.5", "confirmations": 2},
        ]})
        outputs = LedgerBalanceOperator(SKYCOIN, LedgerNodeApiClient()).get_outputs(["2e0"])
        assert [(o.hash, o.coins) for o in outputs] == [("h1", Decimal("1.5"))]

    def test_history_and_addresses(self, fake_http):
        fake_http.route("post", "/api/v1/transactions", [{
            "status": {"confirmed": True, "height": 12},
            "txn": {
                "txid": "t1",
                "timestamp": 1700000000,
                "inputs": [{"uxid": "u0", "owner": "2ext", "coins": "2"}],
                "outputs": [{"uxid": "u1", "dst": "2e0", "coins": "1.5"}],
            },
        }])
        fake_http.route("get", "/api/v1/wallet?", SKY_WALLET)
        history = LedgerHistoryOperator(SKYCOIN, LedgerNodeApiClient())
        wallet = _wallet("2e0", "2c0", wallet_id="a.wlt", wallet_type=WalletType.BIP44)

        transactions, with_more = history.get_raw_history(wallet.address_strings, 50)
        assert transactions[0].confirmations == 12
        assert transactions[0].fee == Decimal("0.5")
        assert with_more == set()

        response = history.get_addresses_history(wallet)
        assert response.external_addresses == [AddressState("2e0", 0, True)]
        assert response.change_addresses == [AddressState("2c0", 0, False)]
        assert response.omitted_addresses is False

    def test_pending(self, fake_http):
        fake_http.route("get", "/api/v1/pendingTxs", [
            {
                "received": "2024-01-01T00:00:00.123456789Z",
                "transaction": {
                    "txid": "p1",
                    "inputs": [{"owner": "2e0", "coins": "1"}],
                    "outputs": [{"dst": "2ext", "coins": "0.5"}, {"dst": "2e0", "coins": "0.5"}],
                },
            },
            {
                "received": "2024-01-02T00:00:00Z",
                "transaction": {
                    "txid": "p2",
                    "inputs": [{"owner": "2zzz", "coins": "3"}],
                    "outputs": [{"dst": "2yyy", "coins": "3"}],
                },
            },
        ])

        response = LedgerHistoryOperator(SKYCOIN, LedgerNodeApiClient()).get_pending_transactions(["2e0"])

        assert [(t.id, t.coins) for t in response.user] == [("p1", Decimal("1"))]
        assert [t.id for t in response.all] == ["p2", "p1"]

    def test_outdated_wallets(self, fake_http):
        fake_http.route("get", "/api/v1/wallets", [
            SKY_WALLET,
            {"meta": {"filename": "b.wlt"}, "entries": [{"address": "2b0"}]},
        ])
        source = LedgerWalletsSource(SKYCOIN, LedgerNodeApiClient())
        local = [_wallet("2e0", wallet_id="a.wlt"), _wallet("2b0", wallet_id="b.wlt")]
        assert source.find_outdated_wallets(local) == ["a.wlt"]


class TestFactory:
    def test_operator_families(self):
        settings = SyncSettings()
        assert isinstance(create_operators(BTC, settings).balance.client, IndexerApiClient)
        assert isinstance(create_operators(BTC_NODE, settings).history, RpcHistoryOperator)

        sky = create_operators(SKYCOIN, settings)
        assert isinstance(sky.node_wallets, LedgerWalletsSource)

    def test_get_coin(self):
        assert get_coin("sky") is SKYCOIN
        assert get_coin("doge") is None
