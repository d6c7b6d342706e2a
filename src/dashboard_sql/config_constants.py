from enum import Enum


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class OPENROUTER_LLM_MODELS(str, Enum):
    # OpenAI models
    GPT_4O = "openai/gpt-4o"
    GPT_4O_MINI = "openai/gpt-4o-mini"

    # Anthropic Claude models
    ANTHROPIC_SONNET_45 = "anthropic/claude-4.5-sonnet"
    ANTHROPIC_HAIKU_45 = "anthropic/claude-haiku-4.5"

    # Google Gemini models
    GEMINI_3_FLASH_PREVIEW = "google/gemini-3-flash-preview"

OPEN_ROUTER_API_URL = "https://openrouter.ai/api/v1"

# -------------------------
# ClickHouse Constants
# -------------------------

# Default ports of the ClickHouse HTTP interface (plain / TLS)
CLICKHOUSE_HTTP_PORT = 8123
CLICKHOUSE_HTTPS_PORT = 8443

# Table the pipeline targets when the caller does not name one
DEFAULT_TARGET_TABLE = "daily_worker_summary"
