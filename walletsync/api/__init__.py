"""Backend clients: indexer REST, node JSON-RPC and ledger-node REST."""
from .base import BaseApiClient, build_query
from .indexer import IndexerApiClient
from .ledger import LedgerNodeApiClient
from .rpc import NodeRpcClient

__all__ = [
    'BaseApiClient',
    'IndexerApiClient',
    'LedgerNodeApiClient',
    'NodeRpcClient',
    'build_query',
]
