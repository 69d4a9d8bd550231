from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: Optional[str] = None
    database_name: str = "tutor"
    openai_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    cors_origins: List[str] = ["http://localhost:3000"]
    environment: str = "development"
    engine_name: str = "gpt-4o"
    classifier_engine_name: str = "gpt-4o-mini"

    # Embeddings
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_concurrency: int = 8
    embedding_cache_enabled: bool = True

    # Personalized response pipeline
    conversation_history_limit: int = 5
    relevant_history_count: int = 3
    topic_guard_enabled: bool = True
    llm_timeout_seconds: float = 30.0
    llm_max_attempts: int = 3
    # Must outlast llm_max_attempts * llm_timeout_seconds plus retry backoff
    request_timeout_seconds: float = 120.0

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
