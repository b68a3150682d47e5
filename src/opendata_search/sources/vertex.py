"""
Managed Vector Search Client

Thin client for a Vertex AI Vector Search index endpoint. The query is
embedded with the same provider as the local index, sent to the deployed
index's `findNeighbors` method, and neighbor datapoint ids are resolved
back to items through a caller-supplied lookup.

Missing configuration is reported as `ConfigurationError` so the fallback
chain can skip this stage quietly.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import settings
from ..core.errors import (
    ConfigurationError,
    ProviderError,
    QuotaError,
    StrategyTimeoutError,
    UnavailableError,
)
from ..embeddings.models import Item

logger = logging.getLogger("search.sources.vertex")


class VertexVectorSearchClient:
    """
    Cloud vector search over a deployed Vertex AI index.
    """

    def __init__(
        self,
        embed: Callable[[str], Awaitable[List[float]]],
        resolve: Callable[[str], Optional[Item]],
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        index_endpoint_id: Optional[str] = None,
        deployed_index_id: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Parameters
        ----------
        embed : Callable[[str], Awaitable[List[float]]]
            Produces the query embedding.

        resolve : Callable[[str], Optional[Item]]
            Maps a datapoint id to an item; unknown ids are skipped.

        project_id, location, index_endpoint_id, deployed_index_id, access_token
            Endpoint coordinates and bearer token. Default to settings.
        """
        if access_token is None and settings.vertex_access_token is not None:
            access_token = settings.vertex_access_token.get_secret_value()

        self._embed = embed
        self._resolve = resolve
        self.project_id = project_id or settings.gcp_project_id
        self.location = location or settings.gcp_region
        self.index_endpoint_id = index_endpoint_id or settings.vertex_index_endpoint_id
        self.deployed_index_id = deployed_index_id or settings.vertex_deployed_index_id
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return all(
            (
                self.project_id,
                self.index_endpoint_id,
                self.deployed_index_id,
                self.access_token,
            )
        )

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/"
            f"{self.project_id}/locations/{self.location}/indexEndpoints/"
            f"{self.index_endpoint_id}:findNeighbors"
        )

    async def cloud_vector_search(self, text: str, limit: int) -> List[Item]:
        """
        Return up to `limit` items nearest to `text`, nearest first.

        Raises
        ------
        ConfigurationError
            If any endpoint coordinate or the access token is missing.

        ProviderError
            If the embedding or the neighbor request fails.
        """
        if not self.is_configured:
            raise ConfigurationError("Vertex Vector Search is not configured")

        embedding = await self._embed(text)

        payload = {
            "deployed_index_id": self.deployed_index_id,
            "queries": [
                {
                    "datapoint": {"feature_vector": embedding},
                    "neighbor_count": limit,
                }
            ],
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise StrategyTimeoutError("Vertex findNeighbors timed out") from exc
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            if code == 429:
                raise QuotaError("Vertex quota exceeded") from exc
            if code >= 500:
                raise UnavailableError(f"Vertex returned {code}") from exc
            raise ProviderError(f"Vertex request failed with status {code}") from exc
        except httpx.HTTPError as exc:
            raise UnavailableError(
                f"Vertex unreachable: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise ProviderError("Vertex returned invalid JSON") from exc

        groups = data.get("nearestNeighbors") or data.get("nearest_neighbors") or []
        neighbors = (groups[0].get("neighbors") or []) if groups else []

        items: List[Item] = []
        for neighbor in neighbors:
            datapoint = neighbor.get("datapoint") or {}
            datapoint_id = datapoint.get("datapointId") or datapoint.get("datapoint_id")
            if not datapoint_id:
                continue
            item = self._resolve(datapoint_id)
            if item is None:
                logger.debug("Vertex neighbor %s not in local index", datapoint_id)
                continue
            items.append(item)
            if len(items) >= limit:
                break

        return items
