"""
Wallet, balance, output and transaction models.

Snapshots handed to subscribers are frozen dataclasses holding tuples, so a
consumer can never observe a half-updated wallet. New snapshots are built
every reconciliation cycle instead of mutating the previous one.
"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from walletsync.utils.formatting import format_amount

ZERO = Decimal(0)


class WalletType(Enum):
    """How the addresses of a wallet are obtained"""
    DETERMINISTIC = "deterministic"
    BIP44 = "bip44"
    XPUB = "xpub"


class TransactionType(Enum):
    """Semantic type of a transaction, derived from address ownership"""
    INCOMING = "Incoming"
    OUTGOING = "Outgoing"
    MOVED_BETWEEN_ADDRESSES = "MovedBetweenAddresses"
    MOVED_BETWEEN_WALLETS = "MovedBetweenWallets"
    MIXED_OR_UNKNOWN = "MixedOrUnknown"


class TransactionLimits(Enum):
    """How many transactions per address the history requests ask for"""
    NORMAL_LIMIT = "NormalLimit"
    EXTRA_LIMIT = "ExtraLimit"
    MAX_ALLOWED = "MaxAllowed"


def make_output_id(txid: str, index: int) -> str:
    return f"{txid}/{index}"


def parse_output_id(output_id: str) -> Tuple[str, int]:
    txid, _, index = output_id.rpartition("/")
    if not txid:
        raise ValueError(f"Invalid output id: {output_id}")
    return txid, int(index)


# =========================================================================
# Balances
# =========================================================================

@dataclass(frozen=True)
class AddressBalance:
    current: Decimal = ZERO
    predicted: Decimal = ZERO

    @property
    def has_pending_transactions(self) -> bool:
        return self.current != self.predicted


@dataclass(frozen=True)
class WalletBalance:
    """Raw balance data of a wallet, cached for quick refreshes"""
    current: Decimal = ZERO
    predicted: Decimal = ZERO
    addresses: Dict[str, AddressBalance] = field(default_factory=dict)

    @classmethod
    def from_addresses(cls, addresses: Dict[str, AddressBalance]) -> "WalletBalance":
        current = sum((b.current for b in addresses.values()), ZERO)
        predicted = sum((b.predicted for b in addresses.values()), ZERO)
        return cls(current=current, predicted=predicted, addresses=dict(addresses))

    @property
    def has_pending_transactions(self) -> bool:
        return any(b.has_pending_transactions for b in self.addresses.values())


# =========================================================================
# Wallets
# =========================================================================

@dataclass(frozen=True)
class AddressBase:
    address: str
    confirmed: bool = True
    is_change_address: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class WalletBase:
    """A locally known wallet. Only its public data is needed for syncing."""
    id: str
    label: str
    coin: str
    addresses: Tuple[AddressBase, ...] = ()
    encrypted: bool = False
    is_hardware: bool = False
    has_hw_security_warnings: bool = False
    stop_showing_hw_security_popup: bool = False
    wallet_type: WalletType = WalletType.DETERMINISTIC

    @property
    def address_strings(self) -> List[str]:
        return [a.address for a in self.addresses]

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "label": self.label,
            "coin": self.coin,
            "addresses": [a.to_dict() for a in self.addresses],
            "encrypted": self.encrypted,
            "is_hardware": self.is_hardware,
            "has_hw_security_warnings": self.has_hw_security_warnings,
            "stop_showing_hw_security_popup": self.stop_showing_hw_security_popup,
            "wallet_type": self.wallet_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "WalletBase":
        return cls(
            id=data["id"],
            label=data.get("label", ""),
            coin=data.get("coin", ""),
            addresses=tuple(
                AddressBase(
                    address=a["address"],
                    confirmed=a.get("confirmed", True),
                    is_change_address=a.get("is_change_address", False),
                )
                for a in data.get("addresses", [])
            ),
            encrypted=data.get("encrypted", False),
            is_hardware=data.get("is_hardware", False),
            has_hw_security_warnings=data.get("has_hw_security_warnings", False),
            stop_showing_hw_security_popup=data.get("stop_showing_hw_security_popup", False),
            wallet_type=WalletType(data.get("wallet_type", WalletType.DETERMINISTIC.value)),
        )


@dataclass(frozen=True)
class AddressWithBalance:
    address: str
    confirmed: bool = True
    is_change_address: bool = False
    current: Decimal = ZERO
    predicted: Decimal = ZERO
    has_pending_coins: bool = False

    def to_dict(self, unit: Optional[str] = None, decimals: Optional[int] = None) -> Dict:
        data = asdict(self)
        data.update({
            "current_display": format_amount(self.current, unit, decimals),
            "predicted_display": format_amount(self.predicted, unit, decimals),
        })
        return data


@dataclass(frozen=True)
class WalletWithBalance:
    """Wallet snapshot published by the balance engine"""
    id: str
    label: str
    coin: str
    addresses: Tuple[AddressWithBalance, ...] = ()
    is_hardware: bool = False
    wallet_type: WalletType = WalletType.DETERMINISTIC
    current: Decimal = ZERO
    predicted: Decimal = ZERO
    has_pending_coins: bool = False

    def to_dict(self, unit: Optional[str] = None, decimals: Optional[int] = None) -> Dict:
        return {
            "id": self.id,
            "label": self.label,
            "coin": self.coin,
            "is_hardware": self.is_hardware,
            "wallet_type": self.wallet_type.value,
            "current": self.current,
            "predicted": self.predicted,
            "has_pending_coins": self.has_pending_coins,
            "current_display": format_amount(self.current, unit, decimals),
            "predicted_display": format_amount(self.predicted, unit, decimals),
            "addresses": [a.to_dict(unit, decimals) for a in self.addresses],
        }


# =========================================================================
# Outputs
# =========================================================================

@dataclass(frozen=True)
class Output:
    """Unspent output. `hash` is unique across the whole chain."""
    address: str
    coins: Decimal
    hash: str
    confirmations: int = 0

    def to_dict(self, unit: Optional[str] = None, decimals: Optional[int] = None) -> Dict:
        data = asdict(self)
        data["coins_display"] = format_amount(self.coins, unit, decimals)
        return data


@dataclass(frozen=True)
class AddressWithOutputs:
    address: str
    outputs: Tuple[Output, ...] = ()


@dataclass(frozen=True)
class WalletWithOutputs:
    id: str
    label: str
    addresses: Tuple[AddressWithOutputs, ...] = ()


# =========================================================================
# Transactions
# =========================================================================

@dataclass(frozen=True)
class TxEndpoint:
    """Input or output of a transaction"""
    address: str
    coins: Decimal
    hash: str


@dataclass(frozen=True)
class Transaction:
    """
    A processed transaction.

    `type`, `balance`, `relevant_addresses` and the involved wallets are
    derived from the inputs, outputs and the local wallets every time the
    history is built. They are never stored.
    """
    id: str
    timestamp: int
    confirmations: int
    confirmed: bool
    inputs: Tuple[TxEndpoint, ...] = ()
    outputs: Tuple[TxEndpoint, ...] = ()
    fee: Decimal = ZERO
    type: TransactionType = TransactionType.MIXED_OR_UNKNOWN
    relevant_addresses: Tuple[str, ...] = ()
    involved_local_wallets: str = ""
    number_of_involved_local_wallets: int = 0
    balance: Decimal = ZERO
    note: Optional[str] = None

    def to_dict(self, unit: Optional[str] = None, decimals: Optional[int] = None) -> Dict:
        data = asdict(self)
        data.update({
            "type": self.type.value,
            "balance_display": format_amount(self.balance, unit, decimals),
            "fee_display": format_amount(self.fee, unit, decimals),
        })
        return data


@dataclass
class TransactionHistory:
    transactions: List[Transaction] = field(default_factory=list)
    addresses_with_more_transactions: Set[str] = field(default_factory=set)

    @property
    def has_more(self) -> bool:
        return bool(self.addresses_with_more_transactions)


@dataclass(frozen=True)
class PendingTransactionData:
    id: str
    coins: Decimal
    timestamp: int
    confirmations: int

    def to_dict(self, unit: Optional[str] = None, decimals: Optional[int] = None) -> Dict:
        data = asdict(self)
        data["coins_display"] = format_amount(self.coins, unit, decimals)
        return data


@dataclass
class PendingTransactionsResponse:
    """`user` holds the transactions touching local wallets"""
    user: List[PendingTransactionData] = field(default_factory=list)
    all: List[PendingTransactionData] = field(default_factory=list)


@dataclass(frozen=True)
class AddressState:
    address: str
    index_in_wallet: int
    already_used: bool


@dataclass
class AddressesHistoryResponse:
    external_addresses: List[AddressState] = field(default_factory=list)
    change_addresses: List[AddressState] = field(default_factory=list)
    omitted_addresses: bool = False
