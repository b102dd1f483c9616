import asyncio
import logging
from typing import List, Optional
from visualrag.config.settings import AppSettings, EmbeddingConfig, settings
from visualrag.core.embed.base import ImageEmbedder, TextEmbedder
from visualrag.core.embed.http_client import HttpImageEmbedder, OpenAIEmbeddingClient

logger = logging.getLogger(__name__)

class LocalTextEmbedder(TextEmbedder):
    """
    Generates embeddings in-process with a sentence-transformers model.
    - Uses singleton-style model loading to save memory.
    - Inference runs in a worker thread so the event loop stays responsive.
    """

    _model = None

    def __init__(self,
                 model_name: Optional[str] = None,
                 timeout: Optional[float] = None,
                 config: Optional[EmbeddingConfig] = None):
        self.config = config or settings.embedding
        self.model_name = model_name or self.config.local_model_name
        self.timeout = timeout if timeout is not None else self.config.timeout
        self._load_model()

    def _load_model(self):
        """Loads the sentence-transformer model onto CPU."""
        if LocalTextEmbedder._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info(f"Loading embedding model: {self.model_name}...")
            LocalTextEmbedder._model = SentenceTransformer(self.model_name, device="cpu")
        self.model = LocalTextEmbedder._model

    def _encode(self, text: str) -> List[float]:
        embedding = self.model.encode(
            text,
            show_progress_bar=False,
            normalize_embeddings=self.config.normalise
        )
        return embedding.tolist()

    async def embed(self, text: str) -> List[float]:
        return await asyncio.wait_for(asyncio.to_thread(self._encode, text), timeout=self.timeout)

    async def embed_query(self, query: str) -> List[float]:
        # BGE models expect an instruction prefix on queries only
        return await self.embed(f"{self.config.query_prefix}{query}")


def build_text_embedder(app_settings: AppSettings = settings) -> Optional[TextEmbedder]:
    """Returns the configured text embedding backend, or None when none is available."""
    provider = app_settings.embedding.provider
    if provider == "none":
        return None
    if provider == "local":
        return LocalTextEmbedder(config=app_settings.embedding)
    if provider == "openai":
        if not app_settings.openai_api_key:
            logger.warning("OPENAI_API_KEY is not set. Text embeddings are disabled.")
            return None
        return OpenAIEmbeddingClient(api_key=app_settings.openai_api_key, config=app_settings.embedding)
    raise ValueError(f"Unknown embedding provider: {provider}")


def build_image_embedder(app_settings: AppSettings = settings) -> Optional[ImageEmbedder]:
    endpoint = app_settings.image_embedding.endpoint
    if not endpoint:
        return None
    return HttpImageEmbedder(
        endpoint=endpoint,
        api_key=app_settings.image_embedding_api_key,
        config=app_settings.image_embedding
    )
