"""Livepeer Studio API client.

Only the calls the backend needs: create a recorded stream and read it back
for its ingest key. Webhook signature verification and the recording URL
pattern live here too since both are provider conventions.
"""

import hashlib
import hmac
import logging

import httpx

logger = logging.getLogger(__name__)

INGEST_URL = "rtmp://rtmp.livepeer.com/live"
RECORDING_URL_TEMPLATE = "https://playback.livepeer.studio/recordings/{playback_id}/index.m3u8"


def recording_url_for(playback_id: str) -> str:
    """Well-known HLS recording URL for a playback id (not provider-confirmed)."""
    return RECORDING_URL_TEMPLATE.format(playback_id=playback_id)


def verify_webhook_signature(secret: str, body: bytes, header: str | None) -> bool:
    """Check a ``Livepeer-Signature: t=<ts>,v1=<hex>`` header.

    v1 is the hex HMAC-SHA256 of the raw request body keyed by the webhook
    secret. Several v1 values may be present during secret rotation.
    """
    if not header:
        return False

    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "v1" and value:
            signatures.append(value)

    if not signatures:
        return False

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


class LivepeerAPIClient:
    """Client for the Livepeer Studio REST API.

    Shares one httpx client for connection reuse. Methods return None on
    failure and log the reason.
    """

    def __init__(self, api_key: str, base_url: str = "https://livepeer.studio/api"):
        if not api_key:
            raise ValueError("Livepeer API key is required")

        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            timeout=10.0,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    async def create_stream(self, name: str, record: bool = True) -> dict | None:
        """Create a stream. Returns the provider's stream object."""
        try:
            response = await self._http.post(
                f"{self.base_url}/stream",
                json={"name": name, "record": record},
            )
            if response.status_code not in (200, 201):
                logger.error(
                    f"Livepeer create stream failed: {response.status_code} {response.text[:200]}"
                )
                return None

            data = response.json()
            if not isinstance(data, dict) or not isinstance(data.get("id"), str):
                logger.error("Livepeer create stream returned no stream id")
                return None
            return data

        except Exception as e:
            logger.exception(f"Error creating Livepeer stream: {e}")
            return None

    async def get_stream(self, stream_id: str) -> dict | None:
        """Fetch a stream by provider id (includes ``streamKey``)."""
        try:
            response = await self._http.get(f"{self.base_url}/stream/{stream_id}")
            if response.status_code != 200:
                logger.error(f"Livepeer get stream {stream_id} failed: {response.status_code}")
                return None
            data = response.json()
            return data if isinstance(data, dict) else None

        except Exception as e:
            logger.exception(f"Error fetching Livepeer stream {stream_id}: {e}")
            return None
