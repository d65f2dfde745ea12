from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from credit_common.errors import RateLimited, TransientCallFailure
from credit_common.schema import CreditRecord, Flag

from .config import DEFAULT_PREFERRED_VENDORS, DEFAULT_PROMPT_CONFIG, Settings
from .retry import call_with_backoff

LOGGER = logging.getLogger(__name__)

DESCRIBE_PROMPT = DEFAULT_PROMPT_CONFIG["describe_prompt"]

ANOMALY_PROMPT_TEMPLATE = """You are a data quality analyst reviewing a JSON list of image acknowledgements.
Flag every record that looks incorrect, incomplete, inconsistent or badly formatted.
For each flagged record give a short label (for example "Redundant vendor", "Placeholder",
"Misspelling", "Non-preferred vendor conflict") followed by a one-sentence explanation.

Preferred vendors must appear exactly as written (casing, spelling and spacing):
{vendors}
Other vendors are acceptable.

Source and acknowledgement rules:
- The acknowledgement may name other, non-preferred vendors.
- It must not contain its own source vendor or another preferred vendor, unless the
  acknowledgement consists of the source vendor name alone.
  Valid: Source "Shutterstock", Acknowledgement "Shutterstock".
  Invalid: Source "Shutterstock", Acknowledgement "Getty Images".
  Valid: Source "Shutterstock", Acknowledgement "iStock".
  Invalid: Source "iStock", Acknowledgement "John Smith/iStock".
  Valid: Source "Shutterstock", Acknowledgement "John Smith/iStock".
  Valid: Source "Getty Images", Acknowledgement "Corbis/John Smith/iStock".

Also flag: placeholders or junk ("test", "null", "xxx", "NA"), descriptions instead of
credits ("white kitten on table"), URLs or numeric IDs, trailing punctuation or spacing
problems ("Alamy Stock Photo."), casing mistakes ("reuters", "Getty images") and empty values.

Respond with a JSON object {{"flags": [...]}} where each item has the keys
"source", "acknowledgement", "pageNumber" and "reason".

Data: {data}"""


def _is_rate_limited(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    body = response.text or ""
    return "RESOURCE_EXHAUSTED" in body


class OllamaVisionClient:
    """Ollama chat client for image descriptions and acknowledgement anomaly checks."""

    def __init__(
        self,
        host: str,
        vision_model: str = "llava",
        chat_model: str = "llama3",
        keep_alive: str = "5m",
        timeout: int = 300,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        preferred_vendors: Optional[List[str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.vision_model = vision_model
        self.chat_model = chat_model
        self.keep_alive = keep_alive
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.preferred_vendors = list(preferred_vendors or DEFAULT_PREFERRED_VENDORS)
        self.session = session or requests.Session()
        self.describe_prompt = DESCRIBE_PROMPT

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "OllamaVisionClient":
        return cls(
            host=settings.ollama_host,
            vision_model=settings.vision_model,
            chat_model=settings.chat_model,
            keep_alive=settings.keep_alive,
            timeout=settings.request_timeout,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base,
            preferred_vendors=settings.preferred_vendors,
            session=session,
        )

    def _chat(self, payload: Dict[str, Any]) -> str:
        url = f"{self.host}/api/chat"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientCallFailure(f"Request to {url} failed: {exc}") from exc

        if _is_rate_limited(response):
            raise RateLimited(f"HTTP {response.status_code} from {url}: rate limit hit")
        try:
            response.raise_for_status()
            data = response.json()
        except (requests.HTTPError, ValueError) as exc:
            raise TransientCallFailure(f"Unexpected response from {url}: {exc}") from exc

        message = data.get("message") or {}
        return (message.get("content") or "").strip()

    def _describe_once(self, image_bytes: bytes, mime_type: str) -> str:
        payload = {
            "model": self.vision_model,
            "stream": False,
            "messages": [
                {
                    "role": "user",
                    "content": self.describe_prompt,
                    "images": [base64.b64encode(image_bytes).decode("ascii")],
                }
            ],
            "options": {"temperature": 0.0},
            "keep_alive": self.keep_alive,
        }
        description = self._chat(payload)
        if not description:
            raise TransientCallFailure(f"Empty description returned for {mime_type} image")
        return description

    def describe_image(self, image_bytes: bytes, mime_type: str) -> str:
        """Single-sentence description of one image."""

        return call_with_backoff(
            lambda: self._describe_once(image_bytes, mime_type),
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            label="Image description",
        )

    def build_anomaly_prompt(self, records: Sequence[CreditRecord]) -> str:
        data = [
            {
                "source": r.source,
                "acknowledgement": r.acknowledgement,
                "pageNumber": r.page_number,
            }
            for r in records
        ]
        vendors = "\n".join(f"- {vendor}" for vendor in self.preferred_vendors)
        return ANOMALY_PROMPT_TEMPLATE.format(vendors=vendors, data=json.dumps(data, ensure_ascii=False))

    def _classify_once(self, records: Sequence[CreditRecord]) -> List[Flag]:
        payload = {
            "model": self.chat_model,
            "stream": False,
            "format": "json",
            "messages": [{"role": "user", "content": self.build_anomaly_prompt(records)}],
            "options": {"temperature": 0.0},
            "keep_alive": self.keep_alive,
        }
        content = self._chat(payload)
        if not content:
            return []
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise TransientCallFailure(f"Anomaly check returned invalid JSON: {exc}") from exc
        return flags_from_response(parsed, records)

    def classify_anomalies(self, records: Sequence[CreditRecord]) -> List[Flag]:
        """Ask the model to flag suspicious acknowledgements; returns Flags tied to the input records."""

        if not records:
            return []
        return call_with_backoff(
            lambda: self._classify_once(records),
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            label="AI analysis",
        )


def flags_from_response(parsed: Any, records: Sequence[CreditRecord]) -> List[Flag]:
    """
    Turn the model's JSON into Flags.

    Accepts a bare list or an object with a "flags" list. Items are matched back
    to the input by source, acknowledgement and page so the row index survives;
    unmatched items become standalone records.
    """

    if isinstance(parsed, dict):
        items = parsed.get("flags") or []
    elif isinstance(parsed, list):
        items = parsed
    else:
        items = []

    by_key = {}
    for record in records:
        by_key.setdefault((record.source, record.acknowledgement, record.page_number), record)

    flags: List[Flag] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        source = str(item.get("source", ""))
        acknowledgement = str(item.get("acknowledgement", ""))
        page_number = str(item.get("pageNumber", item.get("page_number", "")))
        record = by_key.get((source, acknowledgement, page_number)) or CreditRecord(
            source=source,
            acknowledgement=acknowledgement,
            page_number=page_number,
        )
        flags.append(Flag(record=record, reason=str(item.get("reason", "")).strip()))
    LOGGER.info("AI analysis flagged %d of %d records", len(flags), len(records))
    return flags
