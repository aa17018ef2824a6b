"""Gallery service HTTP client."""

import base64
import json
from dataclasses import dataclass
from typing import Protocol

import httpx

from gallevr_sync.domain.auth import AuthData
from gallevr_sync.domain.gallery import VerificationStatus
from gallevr_sync.domain.photos import EncodedImage
from gallevr_sync.errors import AuthenticationError, UploadError


class GalleryClient(Protocol):
    """Interface for the remote photo gallery."""

    async def submit_photo(
        self, image: EncodedImage, metadata: dict[str, object], auth: AuthData
    ) -> str:
        """Upload an encoded photo and return its gallery URL."""

    async def check_verification(self, auth: AuthData) -> bool:
        """Return whether the account behind ``auth`` is verified."""


@dataclass
class HttpxGalleryClient(GalleryClient):
    """HTTPX-backed gallery client."""

    base_url: str
    http_client: httpx.AsyncClient
    upload_timeout_seconds: float = 60.0

    @classmethod
    def create(cls, base_url: str) -> "HttpxGalleryClient":
        """Create a gallery client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def submit_photo(
        self, image: EncodedImage, metadata: dict[str, object], auth: AuthData
    ) -> str:
        """POST the image bytes with base64 JSON metadata in a header."""
        url = f"{self.base_url}/vrchat/photo/upload"
        response = await self.http_client.post(
            url,
            params={"user": auth.user_id, "type": image.format},
            content=image.data,
            headers={
                "Content-Type": "application/octet-stream",
                "Authorization": f"Bearer {auth.access_key}",
                "metadata": encode_metadata_header(metadata),
            },
            timeout=self.upload_timeout_seconds,
        )
        if response.status_code in {401, 403}:
            raise AuthenticationError("Gallery rejected the stored access key")
        response.raise_for_status()
        gallery_url = response.text.strip()
        if not gallery_url:
            raise UploadError("Gallery returned an empty URL")
        return gallery_url

    async def check_verification(self, auth: AuthData) -> bool:
        """Query the verification status for the account."""
        url = f"{self.base_url}/vrchat/verify/status/{auth.user_id}"
        response = await self.http_client.get(
            url,
            headers={"Authorization": f"Bearer {auth.access_key}"},
            timeout=15,
        )
        response.raise_for_status()
        return VerificationStatus.model_validate(response.json()).is_verified

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def encode_metadata_header(metadata: dict[str, object]) -> str:
    """Serialize metadata as base64-encoded UTF-8 JSON."""
    raw = json.dumps(metadata, ensure_ascii=False).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")
