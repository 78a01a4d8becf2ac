import json
from decimal import Decimal
from typing import Any, List, Optional

from walletsync.core.errors import BackendFaultError

from .base import BaseApiClient


class NodeRpcClient(BaseApiClient):
    """JSON-RPC client for btcd style nodes, authenticated with Basic auth."""

    def __init__(self, user: str = "user", password: str = "123", session=None, timeout: Optional[float] = None):
        super().__init__(session=session, timeout=timeout)
        self.auth = (user, password)

    def call(self, node_url: str, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "id": "0",
        }
        if params is not None:
            payload["params"] = params

        try:
            response = self._send("post", node_url, json=payload, auth=self.auth)
        except BackendFaultError as e:
            # btcd answers RPC errors with a non-2xx status and the error in the body.
            raise self._rpc_error_from_body(e) from e

        # Amounts are floats in coins, keep them exact.
        body = self._decode(response, node_url, parse_float=Decimal) or {}
        error = body.get("error")
        if error:
            raise BackendFaultError(
                str(error.get("message", "RPC error")),
                status=response.status_code,
                code=error.get("code"),
                url=node_url,
            )
        return body.get("result")

    @staticmethod
    def _rpc_error_from_body(error: BackendFaultError) -> BackendFaultError:
        try:
            body = json.loads(error.message)
        except ValueError:
            return error
        rpc_error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(rpc_error, dict):
            return error
        return BackendFaultError(
            str(rpc_error.get("message", error.message)),
            status=error.status,
            code=rpc_error.get("code"),
            url=error.url,
        )
