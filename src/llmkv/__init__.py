"""llmkv - encrypted LLM key vault and multi-provider chat gateway."""

__version__ = "0.1.0"

from .config import GatewayConfig, load_config_file
from .domain import ChatMessage, ChatRequest, ChatResponse, CompareTarget
from .gateway import Gateway, describe_error
from .vault import SecretVault

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "CompareTarget",
    "Gateway",
    "GatewayConfig",
    "SecretVault",
    "describe_error",
    "load_config_file",
]
