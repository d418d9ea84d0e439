"""Token metadata resolution.

Fetches the JSON document a tokenURI points at and maps it to Metadata
through a transform supplied by the embedding application.
"""

import asyncio
import base64
import json
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote_to_bytes

import aiohttp

from salesbot.exceptions import MetadataFetchError
from salesbot.logging import get_logger
from salesbot.models import Metadata

logger = get_logger(__name__)

MetadataTransform = Callable[[dict[str, Any]], Metadata]
UriRewriter = Callable[[str], str]


def identity_transform(document: dict[str, Any]) -> Metadata:
    """Read ``name`` and ``image`` straight from the document."""
    return Metadata(
        name=str(document.get("name") or ""),
        image=str(document.get("image") or ""),
    )


def ipfs_gateway_rewriter(gateway: str) -> UriRewriter:
    """Build a rewriter mapping ``ipfs://<cid>/<path>`` to an HTTP gateway."""
    base = gateway.rstrip("/")

    def rewrite(uri: str) -> str:
        if uri.startswith("ipfs://"):
            path = uri[len("ipfs://"):]
            if path.startswith("ipfs/"):
                path = path[len("ipfs/"):]
            return f"{base}/{path}"
        return uri

    return rewrite


def decode_data_uri(uri: str) -> Any:
    """Decode a ``data:application/json[;base64],...`` URI into JSON.

    Raises:
        MetadataFetchError: If the URI is not JSON or does not decode.
    """
    header, sep, payload = uri.partition(",")
    if not sep:
        raise MetadataFetchError("data URI has no payload")
    media = header[len("data:"):].split(";")
    if media[0] and media[0].lower() not in ("application/json", "text/plain"):
        raise MetadataFetchError(f"Unsupported data URI media type: {media[0]}")
    try:
        if "base64" in (p.lower() for p in media[1:]):
            raw = base64.b64decode(payload, validate=False)
        else:
            raw = unquote_to_bytes(payload)
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise MetadataFetchError(f"data URI does not decode to JSON: {e}") from e


class MetadataResolver:
    """Fetches and normalizes token metadata documents.

    Args:
        session: Optional shared aiohttp session. Created lazily otherwise.
        rewriter: Applied to every URI before fetching (e.g. IPFS gateway).
        default_transform: Used when ``resolve`` is called without one.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        rewriter: UriRewriter | None = None,
        default_transform: MetadataTransform = identity_transform,
        timeout: float = 20.0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._rewriter = rewriter
        self._default_transform = default_transform
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def resolve(
        self, uri: str, transform: MetadataTransform | None = None
    ) -> Metadata:
        """Fetch the document at ``uri`` and apply ``transform`` to it.

        Raises:
            MetadataFetchError: On network, parse or transform failure.
        """
        transform = transform or self._default_transform
        target = self._rewriter(uri) if self._rewriter else uri

        if target.startswith("data:"):
            document = decode_data_uri(target)
        elif target.startswith(("http://", "https://")):
            document = await self._fetch_json(target)
        else:
            raise MetadataFetchError(f"Unsupported metadata URI: {target[:80]!r}")

        if not isinstance(document, dict):
            raise MetadataFetchError(
                f"Metadata document is {type(document).__name__}, expected an object"
            )
        try:
            metadata = transform(document)
        except Exception as e:
            raise MetadataFetchError(f"Metadata transform failed: {e}") from e
        if not isinstance(metadata, Metadata):
            raise MetadataFetchError(
                f"Metadata transform returned {type(metadata).__name__}, expected Metadata"
            )
        return metadata

    async def _fetch_json(self, url: str) -> Any:
        logger.debug("fetching_metadata", url=url)
        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status != 200:
                    raise MetadataFetchError(f"Metadata fetch returned HTTP {response.status}")
                # IPFS gateways often serve JSON as text/plain
                return await response.json(content_type=None)
        except MetadataFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise MetadataFetchError(f"Metadata fetch failed: {e}") from e
