from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from . import config
from .submission import Transport

log = logging.getLogger(__name__)


class HttpSubmitTransport:
    """Send the payload to a remote submit endpoint; success means 2xx and ``success: true``."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = url or config.SUBMIT_URL
        if not self.url:
            raise RuntimeError("SUBMIT_URL is not configured")
        self.timeout = config.SUBMIT_TIMEOUT_SEC if timeout is None else timeout
        self._client = client

    async def __call__(self, payload: Dict[str, Any]) -> bool:
        if self._client is not None:
            resp = await self._client.post(self.url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
        if resp.status_code >= 400:
            log.warning("submit endpoint returned %s", resp.status_code)
            return False
        try:
            body = resp.json()
        except ValueError:
            return False
        return bool(isinstance(body, dict) and body.get("success"))


def local_transport(store: Callable[[Dict[str, Any]], bool]) -> Transport:
    """Wrap an in-process store function as an awaitable transport."""

    async def _send(payload: Dict[str, Any]) -> bool:
        return bool(store(payload))

    return _send
