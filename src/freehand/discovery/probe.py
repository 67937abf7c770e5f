# FreeHand: Discovery - Connection Probe
#
# Minimal verification request against a (port, token) pair. The language
# server answers 200 only when the token matches, which is the whole test.

import logging
from typing import Optional

import httpx

from ..core import constants

logger = logging.getLogger(__name__)


class ConnectionProbe:
    """Capability: verify a candidate (port, token) pair."""

    async def verify(self, port: int, token: str) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class HttpsConnectionProbe(ConnectionProbe):
    """POST to the language server's control path over local HTTPS.

    The server uses a self-signed certificate, so verification is off;
    the request never leaves 127.0.0.1.

    Args:
        client: Optional pre-built httpx.AsyncClient (tests inject a
            MockTransport-backed client here).
        scheme: "https" (default) or "http".
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        scheme: str = "https",
        timeout: float = constants.PROBE_TIMEOUT,
    ):
        self._client = client
        self._owns_client = client is None
        self._scheme = scheme
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(verify=False, timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def verify(self, port: int, token: str) -> bool:
        url = f"{self._scheme}://{constants.LOCALHOST}:{port}{constants.PROBE_PATH}"
        headers = {
            "Content-Type": "application/json",
            constants.TOKEN_HEADER: token,
            constants.PROTOCOL_VERSION_HEADER: constants.PROTOCOL_VERSION,
        }
        try:
            resp = await self._get_client().post(url, json={"wrapper_data": {}}, headers=headers)
        except httpx.HTTPError as exc:
            logger.debug("Probe on port %d failed: %s", port, exc)
            return False
        return resp.status_code == 200
