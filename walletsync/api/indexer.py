from typing import Any, Dict, Optional

from .base import BaseApiClient, build_query


class IndexerApiClient(BaseApiClient):
    """Client for Blockbook style indexers (`/api/v2/...`)."""

    @staticmethod
    def build_url(base_url: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        url = base_url
        if not url.endswith("/api/"):
            url = url.rstrip("/") + "/api/"
        # An empty endpoint is the unversioned status page.
        if endpoint:
            url += "v2/" + endpoint.lstrip("/")
        query = build_query(params)
        if query:
            url += "?" + query
        return url

    def get(self, base_url: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = self.build_url(base_url, endpoint, params)
        response = self._send("get", url)
        return self._decode(response, url)

    def get_status(self, base_url: str) -> Dict[str, Any]:
        """Sync state of the indexer and its backend, `{"blockbook": ..., "backend": ...}`."""
        return self.get(base_url, "") or {}
