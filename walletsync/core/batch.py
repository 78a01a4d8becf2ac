"""
Address batch fetcher.

Runs one query per address and folds the results into an accumulator.
Addresses are normalized and deduplicated first, so each one is requested
exactly once per call no matter how many wallets list it.
"""

from concurrent.futures import ThreadPoolExecutor, FIRST_EXCEPTION, wait
from typing import Callable, Iterable, List, Optional, TypeVar

from walletsync.core.errors import NotFoundError
from walletsync.utils.console import print_debug

T = TypeVar("T")
R = TypeVar("R")


def unique_addresses(addresses: Iterable[str], format_address: Optional[Callable[[str], str]] = None) -> List[str]:
    """Keep the first spelling of every normalized address, in order."""
    seen = set()
    result: List[str] = []
    for address in addresses:
        key = format_address(address) if format_address else address
        if key in seen:
            continue
        seen.add(key)
        result.append(address)
    return result


def fetch_all(
    addresses: Iterable[str],
    query: Callable[[str], T],
    merge: Callable[[R, str, T], R],
    initial: R,
    format_address: Optional[Callable[[str], str]] = None,
    not_found_value: Optional[T] = None,
    max_workers: int = 1,
) -> R:
    """
    Query every address and merge the results.

    `merge(accumulator, address, result)` returns the new accumulator and is
    always called on the calling thread. A `NotFoundError` for an address
    merges `not_found_value`, or skips the address when that is None. Any
    other backend error aborts the whole batch and is raised.
    """
    pending = unique_addresses(addresses, format_address)
    if not pending:
        return initial

    print_debug(f"📦 Fetching data for {len(pending)} addresses")

    accumulator = initial
    if max_workers <= 1 or len(pending) == 1:
        for address in pending:
            try:
                result = query(address)
            except NotFoundError:
                if not_found_value is None:
                    continue
                result = not_found_value
            accumulator = merge(accumulator, address, result)
        return accumulator

    with ThreadPoolExecutor(max_workers=min(max_workers, len(pending))) as executor:
        futures = {executor.submit(query, address): address for address in pending}
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None and not isinstance(error, NotFoundError):
                for other in not_done:
                    other.cancel()
                raise error

        # Merge in the original address order.
        for future, address in futures.items():
            try:
                result = future.result()
            except NotFoundError:
                if not_found_value is None:
                    continue
                result = not_found_value
            accumulator = merge(accumulator, address, result)
    return accumulator
