"""
Embedding Client

This module implements a robust, test-friendly embedding client for the
Gemini embeddings REST API (or any compatible provider). It is responsible for:

- Single-text embedding calls
- Mapping transport and HTTP failures onto the retrieval error taxonomy
- Strict response validation
- Deterministic output semantics for downstream ranking

The class is stateless and safe to reuse across requests and concurrent
tasks. It performs no caching; see `EmbeddingCache`.
"""

from __future__ import annotations

from typing import List, Optional
import logging
import httpx

from ..config import settings
from ..core.errors import (
    ConfigurationError,
    EmbeddingError,
    ProviderError,
    QuotaError,
    UnavailableError,
)

logger = logging.getLogger("search.embedder")


class Embedder:
    """
    Asynchronous embedding generator.

    `embed` is the single-text contract used by the indexer, the local
    vector strategy and the cloud vector client.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to settings.gemini_api_key.

        model : Optional[str]
            Optional override for the embedding model. Defaults to
            settings.embedding_model.

        base_url : Optional[str]
            Root of the embeddings REST API.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Transport override, used by tests to stub the provider.
        """
        if api_key is None and settings.gemini_api_key is not None:
            api_key = settings.gemini_api_key.get_secret_value()

        self.api_key = api_key
        self.model = model or settings.embedding_model
        self.base_url = (base_url or str(settings.embedding_base_url)).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        Raises
        ------
        ConfigurationError
            If no API key is configured.

        QuotaError
            If the provider rejects the call with HTTP 429.

        UnavailableError
            If the provider cannot be reached, times out, or returns a 5xx.

        EmbeddingError
            If the response is malformed.
        """
        payload = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }
        data = await self._post(f"models/{self.model}:embedContent", payload)

        if not isinstance(data.get("embedding"), dict):
            raise EmbeddingError("Embedding response missing 'embedding' field.")

        return self._extract_vector(data["embedding"])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.api_key:
            raise ConfigurationError("Embedding API key is not configured.")

        url = f"{self.base_url}/{path}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "Embedding request rejected: status=%d, model=%s",
                status_code,
                self.model,
            )
            if status_code == 429:
                raise QuotaError("Embedding quota exceeded") from exc
            if status_code >= 500:
                raise UnavailableError(
                    f"Embedding provider returned {status_code}"
                ) from exc
            raise ProviderError(
                f"Embedding request failed with status {status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Embedding request failed (%s): model=%s, error=%s",
                type(exc).__name__,
                self.model,
                str(exc),
            )
            raise UnavailableError(
                f"Embedding provider unreachable: {type(exc).__name__}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        if not isinstance(data, dict):
            raise EmbeddingError("Embedding response must be a JSON object.")

        return data

    @staticmethod
    def _extract_vector(record: object) -> List[float]:
        """
        Parse and validate one embedding record.

        Gemini returns:
            { "values": [0.1, 0.2, ...] }

        Raises
        ------
        EmbeddingError
            If the record has an unexpected structure.
        """
        if not isinstance(record, dict) or "values" not in record:
            raise EmbeddingError(
                f"Malformed embedding record: {record!r}"
            )

        values = record["values"]
        if (
            not isinstance(values, list)
            or not values
            or not all(
                isinstance(x, (float, int)) and not isinstance(x, bool)
                for x in values
            )
        ):
            raise EmbeddingError(
                "Invalid embedding vector: must be a non-empty float list."
            )

        return [float(x) for x in values]
