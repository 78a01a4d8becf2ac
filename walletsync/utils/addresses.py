"""Address normalization helpers.

Every address used as a dictionary key or compared against another one goes
through the coin's format function first, so two spellings of the same
address always map to the same entry.
"""
from typing import Callable, Dict, Generic, Iterable, Iterator, MutableMapping, Optional, Tuple, TypeVar

# Bech32 addresses are case insensitive, legacy base58 addresses are not.
BECH32_PREFIXES = ("bc1", "tb1", "bcrt1")

AddressFormatter = Callable[[str], str]

T = TypeVar("T")


def format_btc_address(address: str) -> str:
    address = (address or "").strip()
    if address.lower().startswith(BECH32_PREFIXES):
        return address.lower()
    return address


def format_eth_address(address: str) -> str:
    return (address or "").strip().lower()


def format_fiber_address(address: str) -> str:
    return (address or "").strip()


def format_plain_address(address: str) -> str:
    return address


class AddressMap(MutableMapping, Generic[T]):
    """Dict keyed by normalized address."""

    def __init__(self, format_address: AddressFormatter, items: Optional[Iterable[Tuple[str, T]]] = None):
        self.format_address = format_address
        self._data: Dict[str, T] = {}
        if items:
            for key, value in items:
                self[key] = value

    def __getitem__(self, address: str) -> T:
        return self._data[self.format_address(address)]

    def __setitem__(self, address: str, value: T) -> None:
        self._data[self.format_address(address)] = value

    def __delitem__(self, address: str) -> None:
        del self._data[self.format_address(address)]

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        return self.format_address(address) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"AddressMap({self._data!r})"
