from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel
import yaml
import os

class IngestionConfig(BaseModel):
    line_threshold_ratio: float = 0.012     # fraction of page height
    region_padding_ratio: float = 0.004     # vertical padding, fraction of page height
    max_embedding_chars: int = 8000         # character count, not tokens
    progress_span: float = 15.0

class EmbeddingConfig(BaseModel):
    provider: str = "openai"                # "openai" | "local" | "none"
    base_url: str = "https://api.openai.com/v1"
    model: str = "embedding-2"
    local_model_name: str = "BAAI/bge-large-en-v1.5"
    query_prefix: str = "Represent this sentence for searching relevant passages: "
    normalise: bool = True
    timeout: float = 30.0
    max_retries: int = 3
    base_delay: float = 1.0

class ImageEmbeddingConfig(BaseModel):
    endpoint: str = ""
    timeout: float = 30.0
    max_retries: int = 2
    base_delay: float = 1.0

class StorageConfig(BaseModel):
    documents_path: str = "./data/documents"
    uploads_path: str = "./data/uploads"
    qdrant_mode: str = "local"              # "local" | "memory"
    qdrant_path: str = "./data/qdrant_store"
    text_collection: str = "text_embeddings"
    image_collection: str = "image_embeddings"

class SearchConfig(BaseModel):
    default_limit: int = 10
    max_limit: int = 50
    keyword_limit: int = 20
    snippet_window: int = 60
    citation_max_limit: int = 20

class ServerConfig(BaseModel):
    cors_origins: list[str] = ["*"]
    progress_queue_size: int = 100

class AppSettings(BaseSettings):
    ingestion: IngestionConfig = IngestionConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    image_embedding: ImageEmbeddingConfig = ImageEmbeddingConfig()
    storage: StorageConfig = StorageConfig()
    search: SearchConfig = SearchConfig()
    server: ServerConfig = ServerConfig()
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    image_embedding_endpoint: str = ""
    image_embedding_api_key: str = ""
    frontend_origin: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def allowed_origins(self) -> list[str]:
        """FRONTEND_ORIGIN (comma separated) wins over the configured list."""
        if not self.frontend_origin:
            return self.server.cors_origins
        return [o.strip() for o in self.frontend_origin.split(",") if o.strip()]

def load_settings(config_path: str = "visualrag/config/config.yaml") -> AppSettings:
    """Loads settings from config.yaml and applies env overrides."""

    paths_to_try = [
        config_path,
        "config.yaml",
        "config/config.yaml",
        os.path.join(os.path.dirname(__file__), "config.yaml")
    ]

    yaml_data = {}
    for path in paths_to_try:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
            break

    app_settings = AppSettings(
        ingestion=IngestionConfig(**yaml_data.get("ingestion", {})),
        embedding=EmbeddingConfig(**yaml_data.get("embedding", {})),
        image_embedding=ImageEmbeddingConfig(**yaml_data.get("image_embedding", {})),
        storage=StorageConfig(**yaml_data.get("storage", {})),
        search=SearchConfig(**yaml_data.get("search", {})),
        server=ServerConfig(**yaml_data.get("server", {}))
    )

    # Flat env vars override the nested yaml values
    if app_settings.openai_base_url:
        app_settings.embedding.base_url = app_settings.openai_base_url
    if app_settings.openai_embedding_model:
        app_settings.embedding.model = app_settings.openai_embedding_model
    if app_settings.image_embedding_endpoint:
        app_settings.image_embedding.endpoint = app_settings.image_embedding_endpoint

    return app_settings

# Global settings instance
settings = load_settings()
