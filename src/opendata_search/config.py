from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AnyHttpUrl, SecretStr


class Settings(BaseSettings):
    # Embedding provider (Gemini-compatible REST API)
    gemini_api_key: Optional[SecretStr] = None
    embedding_model: str = "text-embedding-004"
    embedding_base_url: AnyHttpUrl = "https://generativelanguage.googleapis.com/v1beta"
    embedding_timeout: float = 15.0

    # Index construction
    index_batch_size: int = 10
    index_concurrency: int = 3
    index_batch_delay: float = 0.1  # seconds between concurrent batch groups

    # Ranking
    similarity_threshold: float = 0.1
    bounded_selection_ratio: float = 0.1

    # Caches
    result_cache_ttl: float = 900.0  # 15 minutes
    result_cache_max_size: int = 1000
    embedding_cache_max_size: Optional[int] = None

    # Fallback chain
    strategy_timeout: float = 10.0
    dynamic_search_enabled: bool = True

    # Tokyo open data catalog (CKAN)
    open_data_base_url: AnyHttpUrl = "https://catalog.data.metro.tokyo.lg.jp/api/3"
    open_data_rows: int = 50
    open_data_timeout: float = 10.0

    # Managed vector search (optional)
    gcp_project_id: Optional[str] = None
    gcp_region: str = "us-central1"
    vertex_index_endpoint_id: Optional[str] = None
    vertex_deployed_index_id: Optional[str] = None
    vertex_access_token: Optional[SecretStr] = None

    admin_api_key: Optional[SecretStr] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
