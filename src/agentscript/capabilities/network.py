"""Network capability: HTTP requests and market quotes.

Network egress is not gated by the write-permission flag.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import httpx
import yfinance

from agentscript.capabilities.base import Capability
from agentscript.core import HostCallError

logger = logging.getLogger(__name__)

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE", "CONNECT"}


class NetworkCapability(Capability):
    """HTTP client and quote lookup."""

    name = "net"
    description = "Make HTTP requests and fetch market quotes."

    def __init__(self, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        """Initialize network capability.

        Args:
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.timeout = timeout
        self._transport = transport

    def http_request(self, options: Mapping) -> dict:
        """Send an HTTP request.

        Args:
            options: {url, method?, headers?, body?}. Method defaults to GET.

        Returns:
            {status, body, headers}
        """
        if not isinstance(options, Mapping):
            raise HostCallError("http_request expects a table with a url field")
        url = options.get("url")
        if not isinstance(url, str) or not url:
            raise HostCallError("http_request needs url field")
        method = str(options.get("method") or "GET").upper()
        if method not in HTTP_METHODS:
            raise HostCallError("http_request method must be a valid HTTP method")

        headers = options.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise HostCallError("http_request headers must be a table")
        headers = {str(name): str(value) for name, value in headers.items()}
        body = options.get("body")
        if body is not None and not isinstance(body, str):
            raise HostCallError("http_request body must be a string")

        logger.debug("net http method=%s url=%s", method, url)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, url, headers=headers, content=body)
        except httpx.HTTPError as exc:
            raise HostCallError(f"http_request failed: {exc}") from exc
        logger.debug("net http status=%s bytes=%s", response.status_code, len(response.content))
        return {
            "status": response.status_code,
            "body": response.text,
            "headers": dict(response.headers),
        }

    def get_quote(self, symbol: str) -> dict:
        """Latest daily quote for ``symbol``: {price, high, low, volume, timestamp}."""
        if not isinstance(symbol, str) or not symbol.strip():
            raise HostCallError("get_quote expects a ticker symbol")
        logger.debug("net quote symbol=%s", symbol)
        try:
            history = yfinance.Ticker(symbol.strip().upper()).history(period="1d")
        except Exception as exc:  # yfinance wraps transport errors inconsistently
            raise HostCallError(f"yahoo api error: {exc}") from exc
        if history is None or history.empty:
            raise HostCallError(f"no quote found for {symbol}")
        bar = history.iloc[-1]
        stamp = history.index[-1]
        return {
            "price": float(bar["Close"]),
            "high": float(bar["High"]),
            "low": float(bar["Low"]),
            "volume": int(bar["Volume"]),
            "timestamp": int(stamp.timestamp()),
        }
