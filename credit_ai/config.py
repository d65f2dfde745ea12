from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

load_dotenv()


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _parse_list(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    ollama_host: str
    vision_model: str
    chat_model: str
    keep_alive: str
    describe_concurrency: int = 2
    max_attempts: int = 3
    backoff_base: float = 1.0
    request_timeout: int = 300
    preferred_vendors: List[str] | None = None


DEFAULT_PREFERRED_VENDORS: List[str] = [
    "Shutterstock",
    "Getty Images",
    "Alamy Stock Photo",
    "Bridgeman Images",
    "Mauritius Images",
    "Reuters",
    "Science Photo Library",
    "Nature Photo Library",
    "OUP",
]

DEFAULT_PROMPT_CONFIG: Dict[str, Any] = {
    "preferred_vendors": DEFAULT_PREFERRED_VENDORS,
    "describe_prompt": "Describe the main subject of this image in one brief sentence.",
}


def load_settings() -> Settings:
    return Settings(
        ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        vision_model=os.getenv("VISION_MODEL", "llava"),
        chat_model=os.getenv("CHAT_MODEL", "llama3"),
        keep_alive=os.getenv("KEEP_ALIVE", "5m"),
        describe_concurrency=max(1, _parse_int(os.getenv("DESCRIBE_CONCURRENCY"), 2)),
        max_attempts=max(1, _parse_int(os.getenv("AI_MAX_ATTEMPTS"), 3)),
        backoff_base=_parse_float(os.getenv("AI_BACKOFF_BASE"), 1.0),
        request_timeout=_parse_int(os.getenv("REQUEST_TIMEOUT"), 300),
        preferred_vendors=_parse_list(os.getenv("PREFERRED_VENDORS")) or None,
    )


def load_prompt_config(path: Path = Path("config/credits.yaml")) -> Dict[str, Any]:
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}
    merged = {**DEFAULT_PROMPT_CONFIG, **(data or {})}
    if not merged.get("preferred_vendors"):
        merged["preferred_vendors"] = list(DEFAULT_PREFERRED_VENDORS)
    return merged
