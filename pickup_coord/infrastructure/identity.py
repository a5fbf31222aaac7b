"""
Identity-provider client.

The provider owns display profiles; this service only stores the external
id.  Public fields (name, photo, bio) are fetched per lookup and are
optional decoration: any transport or HTTP failure yields ``None`` and a
warning, never an error for the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

import httpx
from pydantic import BaseModel

from pickup_coord.config import settings

logger = logging.getLogger(__name__)


class PublicProfile(BaseModel):
    name: Optional[str] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None


class IdentityClient:
    def __init__(self, base_url: str, api_key: str = "", timeout: float = 3.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def get_public_profile(self, external_id: str) -> Optional[PublicProfile]:
        url = f"{self.base_url}/users/{external_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=self._headers())
            if response.status_code != 200:
                logger.warning(
                    "Profile lookup for %s returned %s", external_id, response.status_code
                )
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Profile lookup for %s failed: %s", external_id, exc)
            return None
        return PublicProfile(
            name=data.get("name") or data.get("full_name"),
            photo_url=data.get("photo_url") or data.get("image_url"),
            bio=data.get("bio"),
        )

    async def get_public_profiles(
        self, external_ids: Iterable[str]
    ) -> dict[str, Optional[PublicProfile]]:
        unique = list(dict.fromkeys(external_ids))
        results = await asyncio.gather(*(self.get_public_profile(i) for i in unique))
        return dict(zip(unique, results))


def get_identity_client() -> IdentityClient:
    """FastAPI dependency; overridden in tests."""
    return IdentityClient(
        settings.identity_api_url,
        api_key=settings.identity_api_key,
        timeout=settings.identity_timeout_seconds,
    )
