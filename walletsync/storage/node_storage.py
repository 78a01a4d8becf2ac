from typing import Any, Optional

from walletsync.api.ledger import LedgerNodeApiClient
from walletsync.core.errors import NotFoundError

from .database import StorageType


class NodeStorage:
    """Key/value store kept by a local ledger node through its `data` endpoint."""

    def __init__(self, client: LedgerNodeApiClient, node_url: str):
        self.client = client
        self.node_url = node_url

    def get(self, storage_type: StorageType, key: Optional[str]) -> Any:
        params = {"type": storage_type.value}
        if key is not None:
            params["key"] = key
        try:
            response = self.client.get(self.node_url, "data", params, use_v2=True)
        except NotFoundError:
            return None
        if not isinstance(response, dict):
            return None
        return response.get("data")

    def store(self, storage_type: StorageType, key: str, value: Any) -> bool:
        self.client.post(self.node_url, "data", {"type": storage_type.value, "key": key, "val": value}, use_v2=True)
        return True
