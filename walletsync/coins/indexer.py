"""Operators for coins synced through a Blockbook style indexer."""
from decimal import Decimal
from typing import Dict, List, Sequence, Set, Tuple

from walletsync.api.indexer import IndexerApiClient
from walletsync.config import SyncSettings
from walletsync.core.batch import fetch_all
from walletsync.core.errors import LogicError
from walletsync.core.history import UNKNOWN_TIMESTAMP
from walletsync.core.models import (
    ZERO,
    AddressBalance,
    AddressesHistoryResponse,
    Output,
    PendingTransactionData,
    PendingTransactionsResponse,
    Transaction,
    TxEndpoint,
    WalletBalance,
    WalletBase,
    make_output_id,
)
from walletsync.utils.formatting import from_base_units, to_decimal

from .coin import Coin


class IndexerBalanceOperator:
    def __init__(self, coin: Coin, client: IndexerApiClient, settings: SyncSettings):
        self.coin = coin
        self.client = client
        self.settings = settings

    def get_address_balance(self, address: str) -> AddressBalance:
        response = self.client.get(self.coin.indexer_url, f"address/{address}", {"details": "basic"}) or {}
        balance = to_decimal(response.get("balance"))
        unconfirmed = to_decimal(response.get("unconfirmedBalance"))
        return AddressBalance(
            current=from_base_units(balance, self.coin.decimals),
            predicted=from_base_units(balance + unconfirmed, self.coin.decimals),
        )

    def get_wallet_balance(self, wallet: WalletBase) -> WalletBalance:
        fmt = self.coin.format_address

        def merge(acc: Dict[str, AddressBalance], address: str, balance: AddressBalance) -> Dict[str, AddressBalance]:
            acc[fmt(address)] = balance
            return acc

        addresses = fetch_all(
            wallet.address_strings,
            self.get_address_balance,
            merge,
            {},
            format_address=fmt,
            not_found_value=AddressBalance(),
            max_workers=self.settings.batch_workers,
        )
        return WalletBalance.from_addresses(addresses)

    def get_address_outputs(self, address: str) -> List[Output]:
        response = self.client.get(self.coin.indexer_url, f"utxo/{address}") or []
        return [
            Output(
                address=address,
                coins=from_base_units(utxo.get("value"), self.coin.decimals),
                hash=make_output_id(utxo["txid"], utxo["vout"]),
                confirmations=utxo.get("confirmations") or 0,
            )
            for utxo in response
        ]

    def get_outputs(self, addresses: Sequence[str]) -> List[Output]:
        def merge(acc: Dict[str, Output], address: str, outputs: List[Output]) -> Dict[str, Output]:
            for output in outputs:
                acc[output.hash] = output
            return acc

        outputs = fetch_all(
            addresses,
            self.get_address_outputs,
            merge,
            {},
            format_address=self.coin.format_address,
            max_workers=self.settings.batch_workers,
        )
        return list(outputs.values())


class IndexerHistoryOperator:
    def __init__(self, coin: Coin, client: IndexerApiClient, settings: SyncSettings):
        self.coin = coin
        self.client = client
        self.settings = settings

    def _get_raw_transactions(self, addresses: Sequence[str], max_per_address: int,
                              starting_block: int = None) -> Tuple[Dict[str, dict], Set[str]]:
        params = {"pageSize": max_per_address, "details": "txslight"}
        if starting_block:
            params["from"] = starting_block

        def query(address: str) -> dict:
            return self.client.get(self.coin.indexer_url, f"address/{address}", params) or {}

        def merge(acc, address: str, response: dict):
            transactions, with_more = acc
            for transaction in response.get("transactions") or []:
                transactions[transaction["txid"]] = transaction
            if (response.get("totalPages") or 0) > 1:
                with_more.add(address)
            return acc

        return fetch_all(
            addresses,
            query,
            merge,
            ({}, set()),
            format_address=self.coin.format_address,
            max_workers=self.settings.batch_workers,
        )

    def process_transaction(self, transaction: dict) -> Transaction:
        decimals = self.coin.decimals
        txid = transaction["txid"]

        outputs = []
        outputs_total = ZERO
        for output in transaction.get("vout") or []:
            value = to_decimal(output.get("value"))
            outputs_total += value
            if value == 0:
                continue
            outputs.append(TxEndpoint(
                address=", ".join(output.get("addresses") or []),
                coins=from_base_units(value, decimals),
                hash=make_output_id(txid, output.get("n", 0)),
            ))

        inputs = []
        inputs_total = ZERO
        for vin in transaction.get("vin") or []:
            inputs_total += to_decimal(vin.get("value"))
            if not vin.get("isAddress"):
                inputs.append(TxEndpoint(address="", coins=ZERO, hash=""))
                continue
            inputs.append(TxEndpoint(
                address=", ".join(vin.get("addresses") or []),
                coins=from_base_units(vin.get("value"), decimals),
                hash=make_output_id(vin.get("txid", ""), vin.get("vout", 0)),
            ))

        fee = from_base_units(inputs_total - outputs_total, decimals)
        confirmations = transaction.get("confirmations") or 0
        return Transaction(
            id=txid,
            timestamp=transaction.get("blockTime") or UNKNOWN_TIMESTAMP,
            confirmations=confirmations,
            confirmed=confirmations >= self.coin.confirmations_needed,
            inputs=tuple(inputs),
            outputs=tuple(outputs),
            fee=fee if fee > 0 else ZERO,
        )

    def get_raw_history(self, addresses: Sequence[str], max_per_address: int) -> Tuple[List[Transaction], Set[str]]:
        transactions, with_more = self._get_raw_transactions(addresses, max_per_address)
        return [self.process_transaction(t) for t in transactions.values()], with_more

    def get_pending_transactions(self, addresses: Sequence[str]) -> PendingTransactionsResponse:
        status = self.client.get_status(self.coin.indexer_url)
        best_height = (status.get("blockbook") or {}).get("bestHeight") or 0
        starting_block = best_height - (self.coin.confirmations_needed - 1)

        transactions, _ = self._get_raw_transactions(
            addresses,
            self.settings.max_tx_per_address_allowed_by_backend,
            starting_block if starting_block > 0 else None,
        )

        user = []
        for transaction in transactions.values():
            processed = self.process_transaction(transaction)
            user.append(PendingTransactionData(
                id=processed.id,
                coins=sum((o.coins for o in processed.outputs), ZERO),
                timestamp=processed.timestamp,
                confirmations=processed.confirmations,
            ))
        return PendingTransactionsResponse(user=user, all=[])

    def get_used_addresses(self, addresses: Sequence[str]) -> Set[str]:
        def query(address: str) -> Decimal:
            response = self.client.get(self.coin.indexer_url, f"address/{address}", {"details": "basic"}) or {}
            return to_decimal(response.get("totalReceived"))

        def merge(acc: Set[str], address: str, total_received: Decimal) -> Set[str]:
            if total_received > 0:
                acc.add(address)
            return acc

        return fetch_all(
            addresses,
            query,
            merge,
            set(),
            format_address=self.coin.format_address,
            max_workers=self.settings.batch_workers,
        )

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        raise LogicError(f"Address history is not supported for {self.coin.name}")
