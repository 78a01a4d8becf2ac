# walletsync/core/history.py
"""
Transaction History Aggregator

Builds the transaction history of one wallet or of every wallet: gathers
the addresses, asks the coin's history operator for the raw transactions,
then classifies them (incoming, outgoing, internal or mixed), computes the
balance each one represents for the local wallets, attaches the user notes
and sorts the result, newest first.
"""

import time
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from walletsync.config import SyncSettings
from walletsync.core.errors import LogicError
from walletsync.core.models import (
    ZERO,
    AddressesHistoryResponse,
    PendingTransactionsResponse,
    Transaction,
    TransactionHistory,
    TransactionLimits,
    TransactionType,
    TxEndpoint,
    WalletBase,
    WalletType,
)
from walletsync.storage.database import StorageType
from walletsync.utils.addresses import AddressMap, format_plain_address
from walletsync.utils.console import print_debug, print_info

# Timestamp used by the backends for transactions without a block time.
UNKNOWN_TIMESTAMP = -1


# =========================================================================
# Pure helpers
# =========================================================================

def build_addresses_map(wallets: Iterable[WalletBase],
                        format_address: Callable[[str], str] = format_plain_address) -> Tuple[List[str], AddressMap]:
    """
    Unique address list of the wallets plus the owner of each address.

    An address present in more than one wallet (the same seed used for a
    software and a hardware wallet) belongs to the wallet with most
    addresses. On equal counts the first wallet seen keeps it.
    """
    addresses: List[str] = []
    owners: AddressMap = AddressMap(format_address)
    for wallet in wallets:
        for address in wallet.addresses:
            current_owner = owners.get(address.address)
            if current_owner is None:
                addresses.append(address.address)
                owners[address.address] = wallet
            elif len(current_owner.addresses) < len(wallet.addresses):
                owners[address.address] = wallet
    return addresses, owners


def get_transaction_limit(address_count: int, limit: TransactionLimits, settings: SyncSettings) -> int:
    """Max transactions to request per address. Higher when few addresses are checked."""
    if limit == TransactionLimits.MAX_ALLOWED:
        return settings.max_tx_per_address_allowed_by_backend

    if address_count <= settings.few_addresses_limit:
        value = settings.max_tx_per_address_if_few_addresses
    else:
        value = settings.max_tx_per_address_if_many_addresses

    if limit == TransactionLimits.EXTRA_LIMIT:
        value *= settings.max_tx_per_address_multiplier
    return value


def calculate_fee(inputs: Sequence[TxEndpoint], outputs: Sequence[TxEndpoint]) -> Decimal:
    """Inputs minus outputs, never negative even if the backend data is incomplete."""
    fee = sum((i.coins for i in inputs), ZERO) - sum((o.coins for o in outputs), ZERO)
    return fee if fee > 0 else ZERO


def set_transaction_type(transaction: Transaction, addresses_map: AddressMap) -> Transaction:
    """Return the transaction with its type and involved local wallets set."""
    involved_wallets: Dict[str, bool] = {}

    owns_inputs = False
    owns_all_inputs = True
    first_input_wallet: Optional[str] = None
    other_input_wallets = False
    for endpoint in transaction.inputs:
        wallet = addresses_map.get(endpoint.address)
        if wallet is None:
            owns_all_inputs = False
            continue
        owns_inputs = True
        involved_wallets[wallet.label] = True
        if first_input_wallet is None:
            first_input_wallet = wallet.id
        elif wallet.id != first_input_wallet:
            other_input_wallets = True

    owns_outputs = False
    owns_all_outputs = True
    first_output_wallet: Optional[str] = None
    other_output_wallets = False
    for endpoint in transaction.outputs:
        wallet = addresses_map.get(endpoint.address)
        if wallet is None:
            owns_all_outputs = False
            continue
        owns_outputs = True
        involved_wallets[wallet.label] = True
        if first_output_wallet is None:
            first_output_wallet = wallet.id
        elif wallet.id != first_output_wallet:
            other_output_wallets = True

    same_single_wallet = (
        not other_input_wallets
        and not other_output_wallets
        and first_input_wallet == first_output_wallet
    )

    tx_type = TransactionType.MIXED_OR_UNKNOWN
    if owns_inputs and not owns_outputs:
        tx_type = TransactionType.OUTGOING
    elif not owns_inputs and owns_outputs:
        tx_type = TransactionType.INCOMING
    elif owns_all_inputs and owns_all_outputs:
        if same_single_wallet:
            tx_type = TransactionType.MOVED_BETWEEN_ADDRESSES
        elif not other_input_wallets:
            tx_type = TransactionType.MOVED_BETWEEN_WALLETS
    elif owns_inputs and owns_outputs and not owns_all_outputs:
        # Coins sent to someone else with the change returned to the same wallet.
        if same_single_wallet:
            tx_type = TransactionType.OUTGOING

    return replace(
        transaction,
        type=tx_type,
        involved_local_wallets=", ".join(involved_wallets),
        number_of_involved_local_wallets=len(involved_wallets),
    )


def calculate_general_data(transaction: Transaction, addresses_map: AddressMap) -> Transaction:
    """Set the type, the balance and the relevant local addresses of a transaction."""
    transaction = set_transaction_type(transaction, addresses_map)
    fmt = addresses_map.format_address

    relevant: Dict[str, bool] = {}
    balance = ZERO

    if transaction.type == TransactionType.INCOMING:
        for output in transaction.outputs:
            if output.address in addresses_map:
                relevant[output.address] = True
                balance += output.coins

    elif transaction.type == TransactionType.OUTGOING:
        # Every address of the wallets used for the inputs may receive change.
        possible_return_addresses: Set[str] = set()
        for endpoint in transaction.inputs:
            wallet = addresses_map.get(endpoint.address)
            if wallet is not None:
                relevant[endpoint.address] = True
                possible_return_addresses.update(fmt(a.address) for a in wallet.addresses)
        for output in transaction.outputs:
            if fmt(output.address) not in possible_return_addresses:
                balance -= output.coins

    elif transaction.type in (TransactionType.MOVED_BETWEEN_ADDRESSES, TransactionType.MOVED_BETWEEN_WALLETS):
        input_addresses = set()
        for endpoint in transaction.inputs:
            input_addresses.add(fmt(endpoint.address))
            relevant[endpoint.address] = True
        for output in transaction.outputs:
            if fmt(output.address) not in input_addresses:
                relevant[output.address] = True
                balance += output.coins

    else:
        # Unknown: every local address is relevant and no balance is computed.
        for endpoint in list(transaction.inputs) + list(transaction.outputs):
            if endpoint.address in addresses_map:
                relevant[endpoint.address] = True

    return replace(transaction, balance=balance, relevant_addresses=tuple(relevant))


def sort_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Newest first. Transactions with unknown timestamp go last, keeping their order."""
    transactions = list(transactions)
    known = [t for t in transactions if t.timestamp >= 0]
    unknown = [t for t in transactions if t.timestamp < 0]
    known.sort(key=lambda t: t.timestamp, reverse=True)
    return known + unknown


# =========================================================================
# Aggregator
# =========================================================================

class HistoryAggregator:
    """
    On demand history queries for one coin.

    Parameters:
        coin: Coin being synced
        history_operator: HistoryOperator of the coin's backend family
        wallets_provider: Callable returning the current wallet list snapshot
        store: Key/value store with the transaction notes, optional
    """

    def __init__(self, coin, history_operator, wallets_provider: Callable[[], Sequence[WalletBase]],
                 store=None, settings: Optional[SyncSettings] = None):
        self.coin = coin
        self.history_operator = history_operator
        self.wallets_provider = wallets_provider
        self.store = store
        self.settings = settings or SyncSettings.from_env()

    def get_transactions_history(self, wallet: Optional[WalletBase] = None,
                                 limit: TransactionLimits = TransactionLimits.NORMAL_LIMIT) -> TransactionHistory:
        """History of one wallet, or of all the wallets if `wallet` is None."""
        wallets = [wallet] if wallet is not None else list(self.wallets_provider())
        addresses, addresses_map = build_addresses_map(wallets, self.coin.format_address)
        if not addresses:
            return TransactionHistory()

        max_per_address = get_transaction_limit(len(addresses), limit, self.settings)
        started = time.time()
        raw, addresses_with_more = self.history_operator.get_raw_history(addresses, max_per_address)

        notes = self._load_notes()
        transactions = []
        for transaction in sort_transactions(raw):
            transaction = calculate_general_data(transaction, addresses_map)
            note = notes.get(transaction.id)
            if note:
                transaction = replace(transaction, note=note)
            transactions.append(transaction)

        print_info(f"📜 Loaded {len(transactions)} transactions for {len(addresses)} addresses in {time.time() - started:.2f}s")
        if addresses_with_more:
            print_debug(f"📜 {len(addresses_with_more)} addresses have more transactions")
        return TransactionHistory(transactions=transactions, addresses_with_more_transactions=set(addresses_with_more))

    def get_pending_transactions(self) -> PendingTransactionsResponse:
        """
        Unconfirmed transactions of the local wallets (`user`) and of the
        whole network, when the backend can tell (`all`).
        """
        addresses, _ = build_addresses_map(self.wallets_provider(), self.coin.format_address)
        response = self.history_operator.get_pending_transactions(addresses)

        # Two requests are used to build the list, so confirmations may have changed in between.
        needed = self.coin.confirmations_needed
        user = [t for t in response.user if not t.confirmations or t.confirmations < needed]
        everything = [t for t in response.all if not t.confirmations or t.confirmations < needed]
        user.sort(key=lambda t: t.confirmations)
        everything.sort(key=lambda t: t.confirmations)
        return PendingTransactionsResponse(user=user, all=everything)

    def get_if_addresses_used(self, wallet: WalletBase) -> Dict[str, bool]:
        """Whether each address of the wallet has ever received coins."""
        addresses = wallet.address_strings
        used = {self.coin.format_address(a) for a in self.history_operator.get_used_addresses(addresses)}
        return {a: self.coin.format_address(a) in used for a in addresses}

    def get_addresses_history(self, wallet: WalletBase) -> AddressesHistoryResponse:
        if wallet.wallet_type == WalletType.DETERMINISTIC:
            raise LogicError("Address history is not available for deterministic wallets")
        return self.history_operator.get_addresses_history(wallet)

    def _load_notes(self) -> Dict[str, str]:
        if self.store is None:
            return {}
        notes = self.store.get(StorageType.NOTES, None)
        return dict(notes) if notes else {}
