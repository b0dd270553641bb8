"""Content-addressed document store (IPFS pinning).

Two implementations behind one Protocol, picked at import time the same
way the repositories are:

  PinataContentStore: pins through Pinata's ``pinFileToIPFS`` API with
    httpx.  Used whenever PINATA_JWT or the API key pair is configured.

  InMemoryContentStore: keeps bytes in a dict and derives the identifier
    locally as a CIDv1 (raw codec, sha2-256, base32).  Used for dev and
    tests.

Uploads are append-only and never compensated: pinning identical bytes
twice yields the same identifier, so a retried upload is harmless.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import Protocol, runtime_checkable

import httpx

from decertify.core.config import SETTINGS
from decertify.services.errors import UploadFailed

logger = logging.getLogger(__name__)

# CIDv1 header for a raw-codec block addressed by sha2-256:
# <version=1><codec=raw 0x55><multihash fn=sha2-256 0x12><digest len=32>
_CID_V1_RAW_SHA256 = bytes([0x01, 0x55, 0x12, 0x20])


def compute_cid(data: bytes) -> str:
    """Base32 CIDv1 of *data* as a single raw block."""
    digest = hashlib.sha256(data).digest()
    encoded = base64.b32encode(_CID_V1_RAW_SHA256 + digest).decode("ascii")
    return "b" + encoded.lower().rstrip("=")


def gateway_url(content_id: str, gateway: str | None = None) -> str:
    """Public locator for *content_id*: ``https://<gateway>/ipfs/<cid>``."""
    return f"https://{gateway or SETTINGS.ipfs_gateway}/ipfs/{content_id}"


@runtime_checkable
class ContentStore(Protocol):
    async def pin(
        self, data: bytes, *, name: str, keyvalues: dict[str, str]
    ) -> str:
        """Store *data* and return its content identifier.

        Raises UploadFailed when the store is unreachable or rejects it.
        """
        ...

    def gateway_url(self, content_id: str) -> str: ...


class InMemoryContentStore:
    """Local content store for tests.  No eviction; conftest clears it."""

    def __init__(self, gateway: str = "gateway.pinata.cloud") -> None:
        self._gateway = gateway
        self._blobs: dict[str, bytes] = {}
        self._metadata: dict[str, dict[str, object]] = {}

    async def pin(
        self, data: bytes, *, name: str, keyvalues: dict[str, str]
    ) -> str:
        content_id = compute_cid(data)
        self._blobs[content_id] = bytes(data)
        self._metadata[content_id] = {"name": name, "keyvalues": dict(keyvalues)}
        logger.info("Pinned %s (%dB) locally  name=%s", content_id, len(data), name)
        return content_id

    def gateway_url(self, content_id: str) -> str:
        return gateway_url(content_id, self._gateway)

    def get(self, content_id: str) -> bytes | None:
        return self._blobs.get(content_id)

    def metadata(self, content_id: str) -> dict[str, object] | None:
        return self._metadata.get(content_id)


class PinataContentStore:
    """Pinata ``pinFileToIPFS`` client.

    Auth is either a JWT (preferred) or the legacy key/secret pair.
    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    _PIN_FILE_PATH = "/pinning/pinFileToIPFS"

    def __init__(
        self,
        *,
        api_url: str,
        gateway: str,
        jwt: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not jwt and not (api_key and api_secret):
            raise ValueError("Pinata needs PINATA_JWT or PINATA_API_KEY + PINATA_API_SECRET")
        self._api_url = api_url
        self._gateway = gateway
        self._jwt = jwt
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout
        self._transport = transport

    def _auth_headers(self) -> dict[str, str]:
        if self._jwt:
            return {"Authorization": f"Bearer {self._jwt}"}
        return {
            "pinata_api_key": self._api_key or "",
            "pinata_secret_api_key": self._api_secret or "",
        }

    async def pin(
        self, data: bytes, *, name: str, keyvalues: dict[str, str]
    ) -> str:
        form = {
            "pinataMetadata": json.dumps({"name": name, "keyvalues": keyvalues}),
            "pinataOptions": json.dumps({"cidVersion": 1}),
        }
        files = {"file": (name, data, "application/pdf")}

        async with httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.post(
                    self._PIN_FILE_PATH,
                    headers=self._auth_headers(),
                    data=form,
                    files=files,
                )
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "Pinata rejected upload  name=%s status=%d",
                    name,
                    exc.response.status_code,
                )
                raise UploadFailed(
                    f"content store rejected upload with HTTP {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.warning("Pinata unreachable  name=%s error=%s", name, exc)
                raise UploadFailed(f"content store unreachable: {exc}") from exc

        try:
            content_id = resp.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError):
            raise UploadFailed("content store response has no IpfsHash") from None
        if not isinstance(content_id, str) or not content_id:
            raise UploadFailed("content store returned an empty IpfsHash")

        logger.info("Pinned %s (%dB) on Pinata  name=%s", content_id, len(data), name)
        return content_id

    def gateway_url(self, content_id: str) -> str:
        return gateway_url(content_id, self._gateway)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if SETTINGS.has_pinata_credentials:
    content_store: ContentStore = PinataContentStore(
        api_url=SETTINGS.pinata_api_url,
        gateway=SETTINGS.ipfs_gateway,
        jwt=SETTINGS.pinata_jwt,
        api_key=SETTINGS.pinata_api_key,
        api_secret=SETTINGS.pinata_api_secret,
        timeout=SETTINGS.content_store_timeout,
    )
else:
    content_store = InMemoryContentStore(gateway=SETTINGS.ipfs_gateway)
