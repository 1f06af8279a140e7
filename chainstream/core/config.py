from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Database
    DATABASE_URL: str
    RUN_MIGRATIONS: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    SLACK_WEBHOOK_URL: str | None = None

    # Chain node (WebSocket subscription + JSON-RPC proxy)
    CHAIN_WS_URL: str = "wss://ethereum-rpc.publicnode.com"
    CHAIN_RPC_URL: str = "https://ethereum-rpc.publicnode.com"
    CHAIN_RPC_TOKEN: str | None = None
    RPC_TIMEOUT_SECONDS: float = 10.0
    STREAM_ENABLED: bool = True
    STREAM_RECONNECT_BASE_SECONDS: float = 5.0
    STREAM_RECONNECT_MAX_SECONDS: float = 60.0

    # Indexer REST API
    INDEXER_API_URL: str = "http://localhost:3000"
    INDEXER_API_TOKEN: str | None = None
    INDEXER_TIMEOUT_SECONDS: float = 15.0

    # Embedding provider
    EMBEDDING_PROVIDER: Literal["gemini", "ollama"] = "gemini"
    EMBEDDING_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    EMBEDDING_API_KEY: str | None = None
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_DIMENSIONS: int = 3072

    # Vector index
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: str | None = None

    # Pipeline workers and sampling
    PIPELINE_WORKERS: int = 8
    SAMPLE_RATE_BLOCK: float = 1.0
    SAMPLE_RATE_TRANSACTION: float = 1 / 20
    SAMPLE_RATE_ADDRESS: float = 1 / 15
    SAMPLE_RATE_SMART_CONTRACT: float = 1 / 5
    SAMPLE_RATE_TOKEN: float = 1 / 15

    # Retry budgets
    BLOCK_POLL_ATTEMPTS: int = 100
    BLOCK_POLL_TIMEOUT_SECONDS: float = 5.0
    BLOCK_POLL_DELAY_SECONDS: float = 1.0
    FETCH_RETRY_ATTEMPTS: int = 3
    TRANSIENT_RETRY_DELAY_SECONDS: float = 3.0
    API_RETRY_DELAY_SECONDS: float = 5.0

    # Broadcast / webhooks
    BROADCAST_QUEUE_SIZE: int = 100
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development

    @property
    def sampling_rates(self) -> dict[str, float]:
        """Embedding sample rate per entity type."""
        return {
            "block": self.SAMPLE_RATE_BLOCK,
            "transaction": self.SAMPLE_RATE_TRANSACTION,
            "address": self.SAMPLE_RATE_ADDRESS,
            "smart_contract": self.SAMPLE_RATE_SMART_CONTRACT,
            "token": self.SAMPLE_RATE_TOKEN,
        }


settings = Settings()
