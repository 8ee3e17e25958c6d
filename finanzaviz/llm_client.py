from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse, urlunparse
import requests

from .models import ChatMessage


class LLMClient:
    """Thin client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: int = 120,
        chat_model: Optional[str] = None,
        post_fn: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.model = model
        self.chat_model = chat_model or model
        self.api_key = api_key
        self.base_url = _normalize_base_url(base_url)
        self.timeout = timeout
        self._post = post_fn or requests.post

    def generate_structured(
        self,
        parts: Sequence[Dict[str, Any]],
        schema: Dict[str, Any],
        temperature: float = 0.2,
    ) -> str:
        payload = {
            "contents": [{"role": "user", "parts": list(parts)}],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }
        data = self._generate(self.model, payload)
        return _response_text(data)

    def chat(
        self,
        system_instruction: str,
        messages: Sequence[ChatMessage],
        thinking_budget: int = 16000,
    ) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [
                {"role": msg.role, "parts": [{"text": msg.text}]} for msg in messages
            ],
            "generationConfig": {
                "thinkingConfig": {"thinkingBudget": thinking_budget},
            },
        }
        data = self._generate(self.chat_model, payload)
        return _response_text(data)

    def _generate(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/v1beta/models/{model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        resp = self._post(url, headers=headers, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


def _response_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
        raise ValueError(f"Empty response from model ({reason})")
    parts: List[Dict[str, Any]] = (candidates[0].get("content") or {}).get("parts") or []
    # Thought summaries are returned as parts flagged with "thought".
    return "".join(p.get("text", "") for p in parts if not p.get("thought"))


def _normalize_base_url(base_url: str) -> str:
    """Accept root URL, /v1beta URL, or a full generateContent endpoint and normalize."""
    raw = (base_url or "").strip()
    if not raw:
        return ""

    parsed = urlparse(raw)
    if not parsed.scheme or not parsed.netloc:
        return raw.rstrip("/")

    path = parsed.path.rstrip("/")
    lowered = path.lower()
    models_marker = "/models/"
    version_suffix = "/v1beta"

    idx = lowered.find(models_marker)
    if idx != -1:
        path = path[:idx]
        lowered = path.lower()
    if lowered.endswith(version_suffix):
        path = path[: -len(version_suffix)]

    normalized = parsed._replace(path=path, params="", query="", fragment="")
    return urlunparse(normalized).rstrip("/")
