"""HTTP wire client for the Stockfighter REST surface.

The client only moves bytes: it attaches the API credential, sends the request
and hands back the raw body. Interpreting the payload is left to the decoders
in :mod:`stockfighter.data.models`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from .errors import TransportError

AUTH_HEADER = "X-Starfighter-Authorization"


@dataclass
class VenueEndpoint:
    """Connection details for the Stockfighter API.

    Attributes:
        rest_url: Base URL of the order book REST API.
        gm_url: Base URL of the game master API (levels and instances).
        websocket_url: Base URL for tickertape and execution streams.
    """

    rest_url: str = "https://api.stockfighter.io/ob/api"
    gm_url: str = "https://www.stockfighter.io/gm"
    websocket_url: str = "wss://api.stockfighter.io/ob/api/ws"


class WireClient:
    """Sends authenticated requests and returns raw response bodies."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[VenueEndpoint] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint or VenueEndpoint()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def get(self, path: str) -> bytes:
        """GET ``path`` and return the body."""

        response = self._request("GET", path)
        return response.content

    def post(self, path: str, body: Optional[bytes] = None) -> bytes:
        """POST a JSON ``body`` to ``path`` and return the response body."""

        response = self._request("POST", path, data=body)
        return response.content

    def delete(self, path: str) -> bool:
        """DELETE ``path``; True when the service acknowledged with a 2xx."""

        response = self._request("DELETE", path)
        acknowledged = 200 <= response.status_code < 300
        if not acknowledged:
            self.logger.warning(
                "DELETE %s returned %s",
                path,
                response.status_code,
                extra={"event": "delete_rejected", "path": path, "status": response.status_code},
            )
        return acknowledged

    def url_for(self, path: str) -> str:
        """Resolve ``path`` against the REST base unless it is already absolute."""

        if path.startswith(("http://", "https://")):
            return path
        return f"{self.endpoint.rest_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, data: Optional[bytes] = None) -> requests.Response:
        url = self.url_for(path)
        self.logger.debug("%s %s", method, url, extra={"event": "http_request", "method": method, "url": url})
        try:
            response = self.session.request(
                method,
                url,
                data=data,
                headers=self._headers(mutating=method != "GET"),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 500:
            self.logger.warning(
                "%s %s returned %s",
                method,
                url,
                response.status_code,
                extra={"event": "http_server_error", "status": response.status_code},
            )
            raise TransportError(f"{method} {url} returned HTTP {response.status_code}")
        return response

    def _headers(self, mutating: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers[AUTH_HEADER] = self.api_key
        if mutating:
            headers["Content-Type"] = "application/json"
        return headers

    def ws_headers(self) -> Dict[str, str]:
        """Headers to send with a streaming handshake."""

        return {AUTH_HEADER: self.api_key} if self.api_key else {}


__all__ = ["AUTH_HEADER", "VenueEndpoint", "WireClient"]
