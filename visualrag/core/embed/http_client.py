import asyncio
import logging
import random
from typing import Any, Dict, List, Optional
import httpx
from visualrag.config.settings import EmbeddingConfig, ImageEmbeddingConfig, settings
from visualrag.core.embed.base import ImageEmbedder, TextEmbedder
from visualrag.core.errors import GenerationRequestError
from visualrag.models.document import VisualRegion

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

class _RetryingPoster:
    """
    POSTs JSON with a bounded per-call timeout and exponential back-off.
    Rate limits, server errors and transport failures are retried; any other
    non-2xx response is returned to the caller as-is.
    """

    def __init__(self,
                 url: str,
                 headers: Dict[str, str],
                 timeout: float,
                 max_retries: int,
                 base_delay: float,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.headers = headers
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.transport = transport

    def _delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt) + random.uniform(0, self.base_delay)

    async def post(self, payload: Dict[str, Any]) -> httpx.Response:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.post(self.url, headers=self.headers, json=payload)

                if response.status_code in RETRYABLE_STATUS:
                    last_error = GenerationRequestError(f"{self.url} returned {response.status_code}")
                    delay = self._delay(attempt)
                    logger.warning(f"Request to {self.url} returned {response.status_code}. Retrying in {delay:.2f}s... (Attempt {attempt+1}/{self.max_retries})")
                else:
                    return response
            except httpx.HTTPError as e:
                last_error = e
                delay = self._delay(attempt)
                logger.warning(f"Request to {self.url} failed: {e}. Retrying in {delay:.2f}s... (Attempt {attempt+1}/{self.max_retries})")

            if attempt < self.max_retries - 1:
                await asyncio.sleep(delay)

        raise GenerationRequestError(f"Failed after {self.max_retries} attempts: {last_error}")


class OpenAIEmbeddingClient(TextEmbedder):
    """
    Embedding client for any OpenAI-compatible ``/embeddings`` endpoint.
    """

    def __init__(self,
                 api_key: str,
                 base_url: Optional[str] = None,
                 model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 max_retries: Optional[int] = None,
                 base_delay: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 config: Optional[EmbeddingConfig] = None):
        self.config = config or settings.embedding
        self.model = model or self.config.model
        base = (base_url or self.config.base_url).rstrip("/")
        self.poster = _RetryingPoster(
            url=f"{base}/embeddings",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json"
            },
            timeout=timeout if timeout is not None else self.config.timeout,
            max_retries=max_retries if max_retries is not None else self.config.max_retries,
            base_delay=base_delay if base_delay is not None else self.config.base_delay,
            transport=transport
        )

    async def embed(self, text: str) -> List[float]:
        response = await self.poster.post({"model": self.model, "input": text})
        if response.is_error:
            raise GenerationRequestError(
                f"Embedding request rejected ({response.status_code}): {response.text[:200]}"
            )
        data = response.json().get("data") or []
        if not data:
            return []
        return [float(v) for v in data[0].get("embedding") or []]


class HttpImageEmbedder(ImageEmbedder):
    """
    Posts region geometry to an external image-embedding service, which crops
    the page itself and answers ``{"embedding": [...]}``.
    """

    def __init__(self,
                 endpoint: str,
                 api_key: str = "",
                 timeout: Optional[float] = None,
                 max_retries: Optional[int] = None,
                 base_delay: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 config: Optional[ImageEmbeddingConfig] = None):
        self.config = config or settings.image_embedding
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.poster = _RetryingPoster(
            url=endpoint,
            headers=headers,
            timeout=timeout if timeout is not None else self.config.timeout,
            max_retries=max_retries if max_retries is not None else self.config.max_retries,
            base_delay=base_delay if base_delay is not None else self.config.base_delay,
            transport=transport
        )

    async def embed_region(self, file_path: str, document_id: str, region: VisualRegion) -> List[float]:
        response = await self.poster.post({
            "filePath": file_path,
            "documentId": document_id,
            "pageNumber": region.page_number,
            "bbox": region.bbox.model_dump(),
            "type": region.type
        })
        if response.is_error:
            logger.warning(f"Image embedding declined for region {region.id} ({response.status_code})")
            return []
        return [float(v) for v in response.json().get("embedding") or []]
