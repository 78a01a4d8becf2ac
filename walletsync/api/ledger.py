import json
from typing import Any, Dict, Optional

from walletsync.core.errors import NotFoundError
from walletsync.utils.console import print_debug

from .base import BaseApiClient, build_query


class LedgerNodeApiClient(BaseApiClient):
    """
    Client for Fiber style ledger nodes.

    Requests go to `/api/v1/` unless `use_v2` is set. POSTs fetch a CSRF
    token first and attach it as `X-CSRF-Token`; a node answering 404 on
    the token endpoint has the protection disabled.
    """

    @staticmethod
    def build_url(node_url: str, endpoint: str, params: Optional[Dict[str, Any]] = None, use_v2: bool = False) -> str:
        url = node_url
        if not url.endswith("/api/"):
            url = url.rstrip("/") + "/api/"
        url += ("v2/" if use_v2 else "v1/") + endpoint.lstrip("/")
        query = build_query(params)
        if query:
            url += "?" + query
        return url

    def get(self, node_url: str, endpoint: str, params: Optional[Dict[str, Any]] = None, use_v2: bool = False) -> Any:
        url = self.build_url(node_url, endpoint, params, use_v2)
        response = self._send("get", url, headers={"Content-Type": "application/x-www-form-urlencoded"})
        return self._decode(response, url)

    def post(self, node_url: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
             use_v2: bool = False, send_as_json: bool = False) -> Any:
        csrf_token = self.get_csrf_token(node_url)

        # The v2 api only accepts JSON.
        if use_v2:
            send_as_json = True

        headers = {"Content-Type": "application/json" if send_as_json else "application/x-www-form-urlencoded"}
        if csrf_token:
            headers["X-CSRF-Token"] = csrf_token

        if send_as_json:
            body = json.dumps(params) if params else ""
        else:
            body = build_query(params)

        url = self.build_url(node_url, endpoint, use_v2=use_v2)
        response = self._send("post", url, data=body, headers=headers)
        return self._decode(response, url)

    def get_csrf_token(self, node_url: str) -> Optional[str]:
        try:
            response = self.get(node_url, "csrf")
        except NotFoundError:
            print_debug("🔓 CSRF protection disabled on node")
            return None
        if not isinstance(response, dict):
            return None
        return response.get("csrf_token")
