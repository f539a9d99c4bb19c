"""Application-level constants for llmkv.

This module keeps only cross-cutting identity, file and environment constants.
"""

# ============================================================================
# Application identity
# ============================================================================

APP_NAME = "llmkv"

# ============================================================================
# Provider identifiers
# ============================================================================

PROVIDER_OPENAI = "openai"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_GEMINI = "gemini"
PROVIDER_OPENROUTER = "openrouter"
PROVIDER_OLLAMA = "ollama"

PROVIDER_DISPLAY_NAMES = {
    PROVIDER_OPENAI: "OpenAI",
    PROVIDER_ANTHROPIC: "Anthropic",
    PROVIDER_GEMINI: "Google Gemini",
    PROVIDER_OPENROUTER: "OpenRouter",
    PROVIDER_OLLAMA: "Ollama",
}

# ============================================================================
# Default directories and paths
# ============================================================================

USER_DATA_DIR = f"~/.{APP_NAME}"
DEFAULT_STORE_PATH = f"{USER_DATA_DIR}/credentials.json"
DEFAULT_KEYRING_SERVICE = APP_NAME
DEFAULT_USER_ID = "local"

LOG_FILE_EXTENSION = ".log"
DATETIME_FORMAT_FILENAME = "%Y-%m-%d_%H-%M-%S"

# ============================================================================
# Environment variables
# ============================================================================

ENV_ENCRYPTION_KEY = "LLMKV_ENCRYPTION_KEY"
ENV_STORE = "LLMKV_STORE"
ENV_STORE_PATH = "LLMKV_STORE_PATH"
ENV_KEYRING_SERVICE = "LLMKV_KEYRING_SERVICE"
ENV_TIMEOUT = "LLMKV_TIMEOUT"
ENV_RETRY_ATTEMPTS = "LLMKV_RETRY_ATTEMPTS"
ENV_KEEPALIVE_INTERVAL = "LLMKV_KEEPALIVE_INTERVAL"
ENV_COMPRESSION_THRESHOLD = "LLMKV_COMPRESSION_THRESHOLD"
ENV_MAX_COMPARE_TARGETS = "LLMKV_MAX_COMPARE_TARGETS"

# ============================================================================
# Streaming wire format
# ============================================================================

SSE_STREAM_START = ": stream-start\n\n"
SSE_KEEPALIVE = ": keep-alive\n\n"
SSE_DONE_SENTINEL = "[DONE]"
SSE_HEADERS = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
