"""
Configuration module for the dashboard-sql application.

This module defines all configuration classes using Pydantic BaseModel and BaseSettings.
Configuration is loaded from environment variables with nested delimiter "__".

Example .env:
    CLICKHOUSE__URL=http://localhost:8123
    CLICKHOUSE__DATABASE=analytics
    LLM__OPENROUTER_API_KEY=sk-xxx
    PIPELINE__DEFAULT_TABLE=daily_worker_summary

Usage:
    from dashboard_sql.config import get_settings
    settings = get_settings()
    print(settings.clickhouse.url)
"""

from functools import lru_cache
from typing import Optional

from dashboard_sql.config_constants import (
    CLICKHOUSE_HTTP_PORT,
    DEFAULT_TARGET_TABLE,
    LogLevel,
    OPENROUTER_LLM_MODELS,
    OPEN_ROUTER_API_URL,
)

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# CLICKHOUSE CONFIGURATION
# =============================================================================

class ClickHouseConfig(BaseModel):
    """
    ClickHouse HTTP interface connection configuration.

    Used by ClickHouseClient for query execution and live table introspection.
    """

    # Base URL of the ClickHouse HTTP interface (scheme, host and port)
    # Use https://host:8443 for ClickHouse Cloud
    url: str = f"http://localhost:{CLICKHOUSE_HTTP_PORT}"

    # Database that unqualified table names resolve against
    database: str = "default"

    # Credentials sent as X-ClickHouse-User / X-ClickHouse-Key headers
    username: str = "default"
    password: str = ""

    # Maximum time (seconds) to establish the HTTP connection
    connect_timeout_seconds: int = 10

    # Maximum time (seconds) to wait for a query response
    # Dashboard queries are aggregations over one table and should finish well below this
    query_timeout_seconds: int = 30

    # Maximum time (seconds) to wait for a connection from the pool
    pool_timeout_seconds: int = 5

    # Maximum total HTTP connections to ClickHouse
    max_connections: int = 20

    # Maximum idle connections to keep alive between requests
    max_keepalive_connections: int = 10

    # If True, every user query is sent with readonly=1
    # CRITICAL for security: the server refuses writes even if every other gate fails
    enforce_read_only: bool = True


# =============================================================================
# LLM CONFIGURATION (OpenRouter)
# =============================================================================

class LLMConfig(BaseModel):
    """
    LLM client configuration for query generation and correction.

    Uses OpenRouter API to access various LLM providers (Claude, GPT-4, etc.).
    Temperature and top_p are set low for deterministic SQL output.
    """

    # OpenRouter API key (get from https://openrouter.ai/keys)
    # Empty key leaves the client disconnected; the health check reports it
    openrouter_api_key: str = ""

    # Default model for query generation and correction
    # Must support tool calling
    # Format: "provider/model-name" (e.g., "anthropic/claude-sonnet-4")
    default_model: str = OPENROUTER_LLM_MODELS.GPT_4O_MINI

    # Sampling temperature (0.0-1.0)
    # Lower = more deterministic; 0.0-0.2 recommended for SQL generation
    temperature: float = 0.1

    # Nucleus sampling parameter (0.0-1.0)
    top_p: float = 0.1

    # Maximum tokens in LLM response
    # Tool payloads carry one query plus explanation; 2048 is generous
    max_tokens: int = 2048

    # Maximum characters allowed in LLM input (prompt + instructions)
    # The rendered catalog and examples use roughly 10K characters
    max_input_chars: int = 50000

    # If True, the model is forced to call the tool; otherwise it may answer in free text
    # Free text answers go through the SQL extraction fallback
    require_tool_call: bool = True

    # OpenRouter API base URL (don't change unless using proxy)
    base_url: str = OPEN_ROUTER_API_URL

    # Maximum time (seconds) to wait for LLM response
    timeout_seconds: int = 60

    # Number of retry attempts on transient LLM errors (handled by the OpenAI SDK)
    max_retries: int = 2


# =============================================================================
# PIPELINE CONFIGURATION
# =============================================================================

class PipelineConfig(BaseModel):
    """
    Configuration for the generate / validate / execute / correct pipeline.
    """

    # Table used when the caller does not name one
    default_table: str = DEFAULT_TARGET_TABLE

    # Run the static column check between generation and execution
    # The check never blocks execution; it only rewrites near-miss column names
    validate_before_execution: bool = True

    # Apply the validator's suggested column substitution before executing
    apply_column_suggestions: bool = True


# =============================================================================
# SCHEMA CATALOG CONFIGURATION
# =============================================================================

class CatalogConfig(BaseModel):
    """
    Location of the schema catalog YAML file.
    """

    # Path to a catalog YAML file; None uses the catalog bundled with the package
    catalog_path: Optional[str] = None


# =============================================================================
# SERVER CONFIGURATION
# =============================================================================

class ServerConfig(BaseModel):
    """
    FastAPI/Uvicorn server configuration.

    Used by run_dev.py and run_prod.py scripts.
    """

    # Network interface to bind (0.0.0.0 = all interfaces)
    host: str = "0.0.0.0"

    # Port number to listen on
    port: int = 8000

    # Python module path for FastAPI app
    app_module: str = "dashboard_sql.main:app"

    # Enable hot reload on code changes (development only)
    reload: bool = True

    # Number of worker processes (production only, ignored with reload=True)
    workers: int = 1


# =============================================================================
# APPLICATION CONFIGURATION
# =============================================================================

class AppConfig(BaseModel):
    """
    General application settings.
    """

    # Logging level: DEBUG, INFO, WARNING, ERROR
    # DEBUG includes full prompts and SQL text
    log_level: LogLevel = LogLevel.INFO

    # Log renderer: "json" (pretty-printed JSON) or "console" (coloured single line)
    log_format: str = "json"


# =============================================================================
# ROOT SETTINGS (Environment Loading)
# =============================================================================

class Settings(BaseSettings):
    """
    Root settings class that loads all configuration from environment.

    Environment variables use "__" (double underscore) as nested delimiter.
    Example: CLICKHOUSE__URL sets settings.clickhouse.url

    Variables needed for a working deployment:
    - CLICKHOUSE__URL, CLICKHOUSE__DATABASE, CLICKHOUSE__USERNAME, CLICKHOUSE__PASSWORD
    - LLM__OPENROUTER_API_KEY
    """

    # ClickHouse connection settings
    clickhouse: ClickHouseConfig = ClickHouseConfig()

    # LLM client settings (OpenRouter)
    llm: LLMConfig = LLMConfig()

    # Pipeline behaviour
    pipeline: PipelineConfig = PipelineConfig()

    # Schema catalog location
    catalog: CatalogConfig = CatalogConfig()

    # FastAPI server settings
    server: ServerConfig = ServerConfig()

    # Application-wide settings
    app: AppConfig = AppConfig()

    model_config = SettingsConfigDict(
        env_file=".env",            # Load from .env file in project root
        env_file_encoding="utf-8",  # UTF-8 encoding for .env file
        case_sensitive=False,       # ENV_VAR and env_var are equivalent
        env_nested_delimiter="__",  # Use __ for nested config (CLICKHOUSE__URL)
        extra="ignore",             # Unrelated variables in .env are not errors
    )


# =============================================================================
# SINGLETON ACCESSOR
# =============================================================================

@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance (singleton pattern).

    Settings are loaded once and cached for the lifetime of the application.

    Returns:
        Settings instance with all configuration loaded from environment
    """
    return Settings()
