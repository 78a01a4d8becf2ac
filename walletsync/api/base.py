"""Shared HTTP plumbing for the backend clients."""
import os
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from walletsync.core.errors import BackendFaultError, NoConnectivityError, NotFoundError
from walletsync.utils.console import print_debug

# Characters left as-is by encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_query(params: Optional[Dict[str, Any]]) -> str:
    """Build a query string keeping the parameter order."""
    if not params:
        return ""
    return "&".join(f"{key}={quote(str(value), safe=_URI_COMPONENT_SAFE)}" for key, value in params.items())


class BaseApiClient:
    """
    Executes requests and maps every failure to the walletsync error types.

    `session` can be a `requests.Session` or anything exposing `get` and
    `post` with the same signature. The `requests` module itself is used
    when none is given.
    """

    def __init__(self, session=None, timeout: Optional[float] = None):
        self.http = session if session is not None else requests
        if timeout is None:
            timeout = float(os.getenv("WALLETSYNC_HTTP_TIMEOUT", "10"))
        self.timeout = timeout

    def _send(self, method: str, url: str, **kwargs):
        print_debug(f"🌐 {method.upper()} {url}")
        try:
            response = getattr(self.http, method)(url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NoConnectivityError(f"Backend unreachable: {e}", url=url) from e
        except requests.RequestException as e:
            raise BackendFaultError(f"Request failed: {e}", url=url) from e

        status = response.status_code
        if status == 404:
            raise NotFoundError("Not found", status=status, url=url)
        if status < 200 or status >= 300:
            raise BackendFaultError(self._error_message(response), status=status, url=url)
        return response

    @staticmethod
    def _error_message(response) -> str:
        text = getattr(response, "text", "") or ""
        return text.strip() or f"HTTP {response.status_code}"

    @staticmethod
    def _decode(response, url: str, **json_kwargs) -> Any:
        if not getattr(response, "text", "x"):
            return None
        try:
            return response.json(**json_kwargs)
        except ValueError as e:
            raise BackendFaultError(f"Invalid JSON response: {e}", status=response.status_code, url=url) from e
