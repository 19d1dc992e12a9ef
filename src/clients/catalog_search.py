"""Image similarity search against the product catalog.

The query image is embedded by Vertex AI ``multimodalembedding@001`` and
matched in Supabase through the ``search_products_by_embedding`` RPC.
Ranking happens in the database; this client only moves data between the
two services.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import TYPE_CHECKING, Any

import google.auth
import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as AuthRequest
from pydantic import ValidationError

from src.errors import CollaboratorFailure
from src.models import Product, SearchMatch

if TYPE_CHECKING:
    from google.auth.credentials import Credentials

logger = logging.getLogger(__name__)

_EMBEDDING_MODEL = "multimodalembedding@001"
_EMBEDDING_DIMENSION = 1408
_MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB
_CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class CatalogSearchClient:
    """Finds catalog products that look like a given image.

    Vertex AI calls are authorized with Google application-default
    credentials unless ``credentials`` is given. The access token is
    refreshed whenever it has expired.
    """

    def __init__(
        self,
        vertex_project_id: str,
        supabase_url: str,
        supabase_service_key: str,
        vertex_location: str = "us-central1",
        tenant_id: str | None = None,
        credentials: Credentials | None = None,
        dimension: int = _EMBEDDING_DIMENSION,
    ) -> None:
        self._project_id = vertex_project_id
        self._location = vertex_location
        self._supabase_url = supabase_url
        self._supabase_key = supabase_service_key
        self._tenant_id = tenant_id
        self._credentials = credentials
        self._credentials_lock = asyncio.Lock()
        self._dimension = dimension

    @property
    def embedding_endpoint(self) -> str:
        return (
            f"https://{self._location}-aiplatform.googleapis.com/v1/"
            f"projects/{self._project_id}/locations/{self._location}/"
            f"publishers/google/models/{_EMBEDDING_MODEL}:predict"
        )

    @property
    def search_endpoint(self) -> str:
        return f"{self._supabase_url.rstrip('/')}/rest/v1/rpc/search_products_by_embedding"

    async def search(
        self,
        image_url: str,
        limit: int = 5,
        threshold: float = 0.5,
    ) -> list[SearchMatch]:
        """Return up to ``limit`` products with similarity >= ``threshold``.

        Results keep the order returned by the database (best match first).
        Raises CollaboratorFailure if any step fails.
        """
        async with httpx.AsyncClient(verify=True) as client:
            image = await self._download_image(client, image_url)
            embedding = await self._embed_image(client, image)
            rows = await self._search_products(client, embedding, limit, threshold)
        return [_to_match(row) for row in rows]

    async def _download_image(self, client: httpx.AsyncClient, image_url: str) -> bytes:
        chunks: list[bytes] = []
        received = 0
        try:
            async with client.stream(
                "GET", image_url, timeout=15.0, follow_redirects=True,
            ) as resp:
                if resp.status_code >= 400:
                    raise CollaboratorFailure("image_download", f"HTTP {resp.status_code}")
                async for chunk in resp.aiter_bytes():
                    received += len(chunk)
                    if received > _MAX_IMAGE_BYTES:
                        raise CollaboratorFailure("image_download", "image exceeds 10MB")
                    chunks.append(chunk)
        except httpx.HTTPError as exc:
            raise CollaboratorFailure("image_download", repr(exc)) from exc
        return b"".join(chunks)

    async def _access_token(self) -> str:
        async with self._credentials_lock:
            try:
                return await asyncio.to_thread(self._fresh_token)
            except GoogleAuthError as exc:
                raise CollaboratorFailure("embedding", f"credentials: {exc}") from exc

    def _fresh_token(self) -> str:
        # Blocking: google-auth talks to the token endpoint synchronously.
        if self._credentials is None:
            self._credentials, _ = google.auth.default(scopes=[_CLOUD_PLATFORM_SCOPE])
        if not self._credentials.valid:
            logger.debug("Refreshing Vertex AI access token")
            self._credentials.refresh(AuthRequest())
        return str(self._credentials.token)

    async def _embed_image(self, client: httpx.AsyncClient, image: bytes) -> list[float]:
        body = {
            "instances": [
                {"image": {"bytesBase64Encoded": base64.b64encode(image).decode()}},
            ],
            "parameters": {"dimension": self._dimension},
        }
        headers = {"Authorization": f"Bearer {await self._access_token()}"}
        try:
            resp = await client.post(
                self.embedding_endpoint, json=body, headers=headers, timeout=30.0,
            )
        except httpx.HTTPError as exc:
            raise CollaboratorFailure("embedding", repr(exc)) from exc
        if resp.status_code >= 400:
            raise CollaboratorFailure("embedding", f"HTTP {resp.status_code}")

        try:
            embedding = resp.json()["predictions"][0]["imageEmbedding"]
        except (ValueError, IndexError, KeyError, TypeError) as exc:
            raise CollaboratorFailure("embedding", "no image embedding in response") from exc
        if not isinstance(embedding, list) or not embedding:
            raise CollaboratorFailure("embedding", "no image embedding in response")
        return [float(v or 0) for v in embedding]

    async def _search_products(
        self,
        client: httpx.AsyncClient,
        embedding: list[float],
        limit: int,
        threshold: float,
    ) -> list[dict[str, Any]]:
        headers = {
            "apikey": self._supabase_key,
            "Authorization": f"Bearer {self._supabase_key}",
        }
        body = {
            "query_embedding": embedding,
            "match_threshold": threshold,
            "match_count": limit,
            "filter_tenant_id": self._tenant_id,
        }
        try:
            resp = await client.post(
                self.search_endpoint, json=body, headers=headers, timeout=10.0,
            )
        except httpx.HTTPError as exc:
            raise CollaboratorFailure("catalog_search", repr(exc)) from exc
        if resp.status_code >= 400:
            raise CollaboratorFailure("catalog_search", f"HTTP {resp.status_code}")

        try:
            rows = resp.json()
        except ValueError as exc:
            raise CollaboratorFailure("catalog_search", "invalid JSON response") from exc
        if not isinstance(rows, list):
            raise CollaboratorFailure("catalog_search", "expected a list of rows")
        return rows[:limit]


def _to_match(row: dict[str, Any]) -> SearchMatch:
    try:
        return SearchMatch(
            product=Product.model_validate(row),
            similarity=row.get("similarity", 0.0),
        )
    except (ValidationError, AttributeError) as exc:
        raise CollaboratorFailure("catalog_search", f"invalid product row: {exc}") from exc
