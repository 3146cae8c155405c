"""Search engine settings loaded from environment variables."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
API_KEY_PLACEHOLDER = "your-openai-api-key-here"


class Settings(BaseSettings):
    """Result sizes, lexical tuning and embedding client settings.

    Values come from the environment or a .env file and are validated on
    load. Ranking weights and thresholds are module constants in
    ``shelf.services.search_service``, not settings.
    """

    # Logging Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Query Embedding Settings
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI model for query and bookmark embeddings",
    )
    embedding_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Embedding request timeout in seconds",
    )
    embedding_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per embedding request",
    )

    # Result Sizes
    result_limit: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum number of ranked results returned by search",
    )
    semantic_top_k: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Semantic candidates retrieved before thresholding",
    )
    filter_only_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum results for operator/filter-only queries",
    )

    # Lexical Index
    lexical_fuzzy: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Fuzzy edit distance as a fraction of query term length",
    )
    lexical_prefix: bool = Field(
        default=True,
        description="Match query terms as prefixes of indexed terms",
    )
    title_boost: float = Field(default=2.0, ge=0.0, description="Boost for title matches")
    domain_boost: float = Field(default=1.5, ge=0.0, description="Boost for domain matches")
    folder_boost: float = Field(default=1.0, ge=0.0, description="Boost for folder matches")
    url_boost: float = Field(default=0.8, ge=0.0, description="Boost for URL matches")
    bm25_k1: float = Field(
        default=1.2,
        ge=0.0,
        description="BM25 k1 parameter (term frequency saturation)",
    )
    bm25_b: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="BM25 b parameter (length normalization)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}, got '{v}'")
        return level

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        """Reject blank or placeholder keys; an unset key disables semantic search."""
        if v is not None and (not v.strip() or v == API_KEY_PLACEHOLDER):
            raise ValueError("openai_api_key must be a real API key when set")
        return v

    @property
    def field_boosts(self) -> dict[str, float]:
        """Per-field boost weights for the lexical index."""
        return {
            "title": self.title_boost,
            "domain": self.domain_boost,
            "folder_path": self.folder_boost,
            "url": self.url_boost,
        }

    def model_post_init(self, __context) -> None:
        """Additional validation after model initialization."""
        # Semantic candidates are thresholded before truncation to result_limit
        if self.semantic_top_k < self.result_limit:
            raise ValueError(
                f"semantic_top_k ({self.semantic_top_k}) must be >= "
                f"result_limit ({self.result_limit})"
            )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Settings: The application settings

    Raises:
        ValueError: If settings validation fails
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing).

    Returns:
        Settings: The reloaded application settings
    """
    global _settings
    _settings = Settings()
    return _settings
