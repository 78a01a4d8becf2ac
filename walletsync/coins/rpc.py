"""
Operators for coins synced through a btcd style JSON-RPC node.

Everything is derived from `searchrawtransactions`, which returns every
transaction of an address with the previous outputs of its inputs. The node
reports amounts in coins, so no base unit conversion is needed.
"""
from typing import Dict, List, Sequence, Set, Tuple

from walletsync.api.rpc import NodeRpcClient
from walletsync.config import SyncSettings
from walletsync.core.batch import fetch_all
from walletsync.core.errors import BackendFaultError, LogicError, is_rpc_no_data_error
from walletsync.core.history import UNKNOWN_TIMESTAMP, calculate_fee
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
from walletsync.utils.formatting import to_decimal

from .coin import Coin

SEARCH_COUNT = 1000000


def _output_addresses(output: dict) -> List[str]:
    return (output.get("scriptPubKey") or {}).get("addresses") or []


def _input_addresses(vin: dict) -> List[str]:
    return (vin.get("prevOut") or {}).get("addresses") or []


class RpcTransactionSource:
    """One `searchrawtransactions` call per address."""

    def __init__(self, coin: Coin, client: NodeRpcClient, settings: SyncSettings):
        self.coin = coin
        self.client = client
        self.settings = settings

    def search_raw_transactions(self, address: str) -> List[dict]:
        try:
            return self.client.call(
                self.coin.node_url,
                "searchrawtransactions",
                [address, 1, 0, SEARCH_COUNT, 1],
            ) or []
        except BackendFaultError as e:
            # The node answers -5 for addresses without transactions.
            if is_rpc_no_data_error(e):
                return []
            raise

    def transactions_by_address(self, addresses: Sequence[str]) -> Dict[str, List[dict]]:
        fmt = self.coin.format_address

        def merge(acc: Dict[str, List[dict]], address: str, transactions: List[dict]):
            acc[fmt(address)] = transactions
            return acc

        return fetch_all(
            addresses,
            self.search_raw_transactions,
            merge,
            {},
            format_address=fmt,
            max_workers=self.settings.batch_workers,
        )

    def unique_transactions(self, addresses: Sequence[str]) -> Dict[str, dict]:
        result: Dict[str, dict] = {}
        for transactions in self.transactions_by_address(addresses).values():
            for transaction in transactions:
                result[transaction["txid"]] = transaction
        return result


class RpcBalanceOperator(RpcTransactionSource):
    def address_balance(self, address: str, transactions: List[dict]) -> AddressBalance:
        fmt = self.coin.format_address
        key = fmt(address)
        current = ZERO
        predicted = ZERO
        for transaction in transactions:
            confirmed = (transaction.get("confirmations") or 0) >= 1
            delta = ZERO
            for output in transaction.get("vout") or []:
                if key in (fmt(a) for a in _output_addresses(output)):
                    delta += to_decimal(output.get("value"))
            for vin in transaction.get("vin") or []:
                if key in (fmt(a) for a in _input_addresses(vin)):
                    delta -= to_decimal((vin.get("prevOut") or {}).get("value"))
            predicted += delta
            if confirmed:
                current += delta
        return AddressBalance(current=current, predicted=predicted)

    def get_wallet_balance(self, wallet: WalletBase) -> WalletBalance:
        by_address = self.transactions_by_address(wallet.address_strings)
        balances = {
            key: self.address_balance(key, transactions)
            for key, transactions in by_address.items()
        }
        return WalletBalance.from_addresses(balances)

    def get_outputs(self, addresses: Sequence[str]) -> List[Output]:
        fmt = self.coin.format_address
        transactions = self.unique_transactions(addresses)
        wanted = {fmt(a) for a in addresses}

        spent = set()
        for transaction in transactions.values():
            for vin in transaction.get("vin") or []:
                if not vin.get("coinbase"):
                    spent.add(make_output_id(vin.get("txid", ""), vin.get("vout", 0)))

        outputs = []
        for transaction in transactions.values():
            for output in transaction.get("vout") or []:
                output_id = make_output_id(transaction["txid"], output.get("n", 0))
                if output_id in spent:
                    continue
                for address in _output_addresses(output):
                    if fmt(address) in wanted:
                        outputs.append(Output(
                            address=address,
                            coins=to_decimal(output.get("value")),
                            hash=output_id,
                            confirmations=transaction.get("confirmations") or 0,
                        ))
                        break
        return outputs


class RpcHistoryOperator(RpcTransactionSource):
    def process_transaction(self, transaction: dict) -> Transaction:
        txid = transaction["txid"]
        inputs = []
        for vin in transaction.get("vin") or []:
            if vin.get("coinbase"):
                inputs.append(TxEndpoint(address="", coins=ZERO, hash=vin["coinbase"]))
                continue
            inputs.append(TxEndpoint(
                address=", ".join(_input_addresses(vin)),
                coins=to_decimal((vin.get("prevOut") or {}).get("value")),
                hash=make_output_id(vin.get("txid", ""), vin.get("vout", 0)),
            ))

        outputs = tuple(
            TxEndpoint(
                address=", ".join(_output_addresses(output)),
                coins=to_decimal(output.get("value")),
                hash=make_output_id(txid, output.get("n", 0)),
            )
            for output in transaction.get("vout") or []
        )

        confirmations = transaction.get("confirmations") or 0
        return Transaction(
            id=txid,
            timestamp=transaction.get("time") or UNKNOWN_TIMESTAMP,
            confirmations=confirmations,
            confirmed=confirmations >= self.coin.confirmations_needed if confirmations else False,
            inputs=tuple(inputs),
            outputs=outputs,
            fee=calculate_fee(inputs, outputs),
        )

    def get_raw_history(self, addresses: Sequence[str], max_per_address: int) -> Tuple[List[Transaction], Set[str]]:
        # The node always returns the complete history.
        transactions = self.unique_transactions(addresses)
        return [self.process_transaction(t) for t in transactions.values()], set()

    def get_pending_transactions(self, addresses: Sequence[str]) -> PendingTransactionsResponse:
        user = []
        for transaction in self.unique_transactions(addresses).values():
            confirmations = transaction.get("confirmations") or 0
            if confirmations >= self.coin.confirmations_needed:
                continue
            processed = self.process_transaction(transaction)
            user.append(PendingTransactionData(
                id=processed.id,
                coins=sum((o.coins for o in processed.outputs), ZERO),
                timestamp=processed.timestamp,
                confirmations=confirmations,
            ))
        return PendingTransactionsResponse(user=user, all=[])

    def get_used_addresses(self, addresses: Sequence[str]) -> Set[str]:
        by_address = self.transactions_by_address(addresses)
        fmt = self.coin.format_address
        return {a for a in addresses if by_address.get(fmt(a))}

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        raise LogicError(f"Address history is not supported for {self.coin.name}")
