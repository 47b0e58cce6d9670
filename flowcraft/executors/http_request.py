"""Outbound HTTP call executor."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ConfigError, ExecutionError
from .base import NodeExecutor
from .paths import stringify

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
BODYLESS_METHODS = ("GET", "DELETE")


def render_url(url: str, inputs: Dict[str, Any]) -> str:
    """Replace ``{{key}}`` with ``inputs[key]``; unknown placeholders stay."""
    if "{{" not in url or "}}" not in url:
        return url
    for key, value in inputs.items():
        placeholder = "{{" + key + "}}"
        if placeholder in url:
            url = url.replace(placeholder, stringify(value))
    return url


class HttpRequestExecutor(NodeExecutor):
    """Issue a single HTTP request described by the node configuration.

    Config keys: ``url`` (required), ``method`` (default ``GET``),
    ``headers``, ``json_data`` and ``timeout`` in seconds.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        url = config.get("url")
        if not isinstance(url, str) or not url:
            raise ConfigError("url is required in config")

        method = config.get("method") or "GET"
        if not isinstance(method, str):
            raise ConfigError("method must be a string")
        method = method.upper()

        headers = httpx.Headers()
        raw_headers = config.get("headers") or {}
        if isinstance(raw_headers, dict):
            for name, value in raw_headers.items():
                if isinstance(value, str):
                    headers[name] = value

        url = render_url(url, inputs)

        content: Optional[bytes] = None
        if method not in BODYLESS_METHODS:
            try:
                content = (
                    json.dumps(config["json_data"]).encode("utf-8")
                    if "json_data" in config
                    else b""
                )
            except (TypeError, ValueError) as e:
                raise ExecutionError(f"failed to marshal json data: {e}")
            if "content-type" not in headers:
                headers["Content-Type"] = "application/json"

        timeout = config.get("timeout", DEFAULT_TIMEOUT)
        logger.debug(f"{method} {url}")
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=timeout
            ) as client:
                response = await client.request(
                    method, url, headers=headers, content=content
                )
        except httpx.HTTPError as e:
            raise ExecutionError(f"request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {"text": response.text}

        return {"status_code": response.status_code, "data": data}
