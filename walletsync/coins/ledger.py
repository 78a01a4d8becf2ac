"""
Operators for coins synced through a Fiber style ledger node.

The node keeps software wallets itself, returns balances per wallet and
answers history queries for many addresses in a single request, so no
per-address batching is needed here.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple

from walletsync.api.ledger import LedgerNodeApiClient
from walletsync.core.errors import LogicError
from walletsync.core.history import UNKNOWN_TIMESTAMP, calculate_fee
from walletsync.core.models import (
    ZERO,
    AddressBalance,
    AddressBase,
    AddressesHistoryResponse,
    AddressState,
    Output,
    PendingTransactionData,
    PendingTransactionsResponse,
    Transaction,
    TxEndpoint,
    WalletBalance,
    WalletBase,
    WalletType,
)
from walletsync.utils.console import print_info
from walletsync.utils.formatting import from_base_units, to_decimal

from .coin import Coin

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def parse_node_time(value: Optional[str]) -> int:
    """Unix time of an RFC 3339 date as sent by the node, -1 if invalid."""
    if not value:
        return UNKNOWN_TIMESTAMP
    # Go sends nanoseconds, fromisoformat accepts up to microseconds.
    text = _FRACTION_RE.sub(r".\1", value.strip()).replace("Z", "+00:00")
    try:
        return int(datetime.fromisoformat(text).timestamp())
    except ValueError:
        return UNKNOWN_TIMESTAMP


def process_node_wallet(wallet: dict, coin_name: str) -> WalletBase:
    """Convert a wallet returned by the node."""
    meta = wallet.get("meta") or {}
    wallet_type = WalletType(meta.get("type") or WalletType.DETERMINISTIC.value)
    addresses = tuple(
        AddressBase(
            address=entry["address"],
            confirmed=True,
            is_change_address=wallet_type != WalletType.DETERMINISTIC and entry.get("change") == 1,
        )
        for entry in wallet.get("entries") or []
    )
    return WalletBase(
        id=meta.get("filename", ""),
        label=meta.get("label", ""),
        coin=coin_name,
        addresses=addresses,
        encrypted=bool(meta.get("encrypted")),
        is_hardware=False,
        wallet_type=wallet_type,
    )


class LedgerBalanceOperator:
    def __init__(self, coin: Coin, client: LedgerNodeApiClient):
        self.coin = coin
        self.client = client

    def _coins(self, data: Optional[dict]) -> Decimal:
        if not data:
            return ZERO
        return from_base_units(data.get("coins"), self.coin.decimals)

    def get_wallet_balance(self, wallet: WalletBase) -> WalletBalance:
        if not wallet.is_hardware:
            response = self.client.get(self.coin.node_url, "wallet/balance", {"id": wallet.id}) or {}
        else:
            response = self.client.post(self.coin.node_url, "balance", {"addrs": ",".join(wallet.address_strings)}) or {}

        fmt = self.coin.format_address
        addresses: Dict[str, AddressBalance] = {}
        for address, data in (response.get("addresses") or {}).items():
            addresses[fmt(address)] = AddressBalance(
                current=self._coins(data.get("confirmed")),
                predicted=self._coins(data.get("predicted")),
            )

        return WalletBalance(
            current=self._coins(response.get("confirmed")),
            predicted=self._coins(response.get("predicted")),
            addresses=addresses,
        )

    def get_outputs(self, addresses: Sequence[str]) -> List[Output]:
        if not addresses:
            return []
        response = self.client.post(self.coin.node_url, "outputs", {"addrs": ",".join(addresses)}) or {}
        return [
            Output(
                address=output["address"],
                coins=to_decimal(output.get("coins")),
                # The node already gives each output a unique id.
                hash=output["hash"],
                confirmations=output.get("confirmations") or 0,
            )
            for output in response.get("head_outputs") or []
        ]


class LedgerHistoryOperator:
    def __init__(self, coin: Coin, client: LedgerNodeApiClient):
        self.coin = coin
        self.client = client

    def _get_node_transactions(self, addresses: Sequence[str]) -> List[dict]:
        if not addresses:
            return []
        return self.client.post(
            self.coin.node_url,
            "transactions",
            {"addrs": ",".join(addresses), "verbose": "true"},
        ) or []

    def process_transaction(self, transaction: dict) -> Transaction:
        txn = transaction.get("txn") or {}
        status = transaction.get("status") or {}
        inputs = tuple(
            TxEndpoint(address=i.get("owner", ""), coins=to_decimal(i.get("coins")), hash=i.get("uxid", ""))
            for i in txn.get("inputs") or []
        )
        outputs = tuple(
            TxEndpoint(address=o.get("dst", ""), coins=to_decimal(o.get("coins")), hash=o.get("uxid", ""))
            for o in txn.get("outputs") or []
        )
        confirmed = bool(status.get("confirmed"))
        return Transaction(
            id=txn.get("txid", ""),
            timestamp=txn.get("timestamp") or UNKNOWN_TIMESTAMP,
            confirmations=status.get("height") or (1 if confirmed else 0),
            confirmed=confirmed,
            inputs=inputs,
            outputs=outputs,
            fee=calculate_fee(inputs, outputs),
        )

    def get_raw_history(self, addresses: Sequence[str], max_per_address: int) -> Tuple[List[Transaction], Set[str]]:
        # One request returns the complete history of every address.
        unique: Dict[str, Transaction] = {}
        for transaction in self._get_node_transactions(addresses):
            processed = self.process_transaction(transaction)
            unique[processed.id] = processed
        return list(unique.values()), set()

    @staticmethod
    def _pending_data(transaction: dict) -> PendingTransactionData:
        body = transaction.get("transaction") or {}
        coins = sum((to_decimal(o.get("coins")) for o in body.get("outputs") or []), ZERO)
        return PendingTransactionData(
            id=body.get("txid", ""),
            coins=coins,
            timestamp=parse_node_time(transaction.get("received")),
            confirmations=0,
        )

    def get_pending_transactions(self, addresses: Sequence[str]) -> PendingTransactionsResponse:
        transactions = self.client.get(self.coin.node_url, "pendingTxs", {"verbose": "true"}) or []
        if not transactions:
            return PendingTransactionsResponse()

        fmt = self.coin.format_address
        local = {fmt(a) for a in addresses}

        def is_local(transaction: dict) -> bool:
            body = transaction.get("transaction") or {}
            return (
                any(fmt(i.get("owner", "")) in local for i in body.get("inputs") or [])
                or any(fmt(o.get("dst", "")) in local for o in body.get("outputs") or [])
            )

        user = [self._pending_data(t) for t in transactions if is_local(t)]
        everything = [self._pending_data(t) for t in transactions]
        user.sort(key=lambda t: t.timestamp, reverse=True)
        everything.sort(key=lambda t: t.timestamp, reverse=True)
        return PendingTransactionsResponse(user=user, all=everything)

    def get_used_addresses(self, addresses: Sequence[str]) -> Set[str]:
        fmt = self.coin.format_address
        wanted = {fmt(a): a for a in addresses}
        used = set()
        for transaction in self._get_node_transactions(addresses):
            for output in (transaction.get("txn") or {}).get("outputs") or []:
                key = fmt(output.get("dst", ""))
                if key in wanted:
                    used.add(wanted[key])
        return used

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        node_wallet = self.client.get(self.coin.node_url, "wallet", {"id": wallet.id})
        if not node_wallet or not node_wallet.get("entries"):
            raise LogicError("Invalid wallet")

        used = self.get_used_addresses(wallet.address_strings)
        entries = {entry["address"]: entry for entry in node_wallet["entries"]}

        response = AddressesHistoryResponse()
        for address in wallet.addresses:
            entry = entries.get(address.address)
            if entry is None:
                response.omitted_addresses = True
                continue
            state = AddressState(
                address=address.address,
                index_in_wallet=entry.get("child_number", 0),
                already_used=address.address in used,
            )
            change = entry.get("change") or 0
            if change == 0:
                response.external_addresses.append(state)
            elif change == 1:
                response.change_addresses.append(state)
            else:
                response.omitted_addresses = True
        return response


class LedgerWalletsSource:
    """Software wallets stored by a local node."""

    def __init__(self, coin: Coin, client: LedgerNodeApiClient):
        self.coin = coin
        self.client = client

    def load_wallets(self) -> List[WalletBase]:
        response = self.client.get(self.coin.node_url, "wallets") or []
        return [process_node_wallet(w, self.coin.name) for w in response]

    def load_wallet(self, wallet_id: str) -> WalletBase:
        response = self.client.get(self.coin.node_url, "wallet", {"id": wallet_id})
        if not response:
            raise LogicError(f"Wallet not found: {wallet_id}")
        return process_node_wallet(response, self.coin.name)

    def add_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[str]:
        params = {"id": wallet.id, "num": num}
        if password:
            params["password"] = password
        response = self.client.post(self.coin.node_url, "wallet/newAddress", params) or {}
        return list(response.get("addresses") or [])

    def scan_addresses(self, wallet: WalletBase, num: int, password: Optional[str] = None) -> List[str]:
        params = {"id": wallet.id, "num": num}
        if password:
            params["password"] = password
        response = self.client.post(self.coin.node_url, "wallet/scan", params) or {}
        return list(response.get("addresses") or [])

    def find_outdated_wallets(self, wallets: Sequence[WalletBase]) -> List[str]:
        """Ids of the wallets whose address count differs from the node's copy."""
        node_wallets = {w.id: w for w in self.load_wallets()}
        outdated = []
        for wallet in wallets:
            node_wallet = node_wallets.get(wallet.id)
            if node_wallet is not None and len(node_wallet.addresses) != len(wallet.addresses):
                outdated.append(wallet.id)
        if outdated:
            print_info(f"🔁 {len(outdated)} wallets changed on the node")
        return outdated
