"""
AI collaborators: the Ollama client, its rate-limit retry wrapper and the
bounded image description pool.
"""

from .config import Settings, load_prompt_config, load_settings  # noqa: F401
from .describer import (  # noqa: F401
    Progress,
    describe_all,
    make_async_describer,
    retry_failed,
    run_describe_all,
)
from .ollama_client import OllamaVisionClient, flags_from_response  # noqa: F401
from .retry import backoff_delay, call_with_backoff  # noqa: F401

__all__ = [
    "Settings",
    "load_prompt_config",
    "load_settings",
    "Progress",
    "describe_all",
    "make_async_describer",
    "retry_failed",
    "run_describe_all",
    "OllamaVisionClient",
    "flags_from_response",
    "backoff_delay",
    "call_with_backoff",
]
