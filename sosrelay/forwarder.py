import logging

import httpx

from sosrelay.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

FALLBACK_ACK = "ACK|UNKNOWN"


class CommandClient:
    """Forwards raw alert payloads to the command service's POST /sos."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport = None):
        self.url = base_url.rstrip("/") + "/sos"
        self.timeout = timeout
        self.transport = transport

    async def forward(self, payload: str) -> str:
        """
        Send one payload and return the ack.

        Raises:
            UpstreamUnavailable: on timeout, connection error, non-2xx
                response or a body that is not JSON. All are retryable.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json={"raw": payload})
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"{type(e).__name__}: {e}"[:300]) from e

        ack = body.get("ack") if isinstance(body, dict) else None
        if not isinstance(ack, str) or not ack:
            logger.warning(f"Command service returned no usable ack: {body!r:.200}")
            return FALLBACK_ACK
        return ack
