"""AI replies for messages no keyword handler claims.

Chat completions via OpenRouter. Returns None on any failure so the caller
can fall back to the static prompt.
Security: NEVER log prompts or replies.
"""

import os

import requests

from bizchat.domain.models import Business
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

from .history_cache import HistoryCache

logger = get_logger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "openai/gpt-4o-mini"
HTTP_TIMEOUT = 20


def system_prompt(business: Business) -> str:
    return (
        f"You are an AI assistant for {business.name}. "
        "Help customers with questions about products, prices, orders and payments. "
        "Keep replies short, friendly and accurate. "
        "If you do not know something, say so and offer to connect them with the team."
    )


class AiResponder:
    def __init__(
        self,
        api_key: str,
        history: HistoryCache,
        model: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._history = history
        self._model = model or os.environ.get("AI_MODEL", DEFAULT_MODEL)
        self._session = session or requests.Session()

    @property
    def history(self) -> HistoryCache:
        return self._history

    def reply(self, business: Business, conversation_id: str, text: str) -> str | None:
        key = f"{business.id}:{conversation_id}"
        self._history.append(key, "user", text)
        messages = [{"role": "system", "content": system_prompt(business)}]
        messages.extend(self._history.get(key))

        try:
            response = self._session.post(
                OPENROUTER_API_URL,
                json={
                    "model": self._model,
                    "messages": messages,
                    "max_tokens": 500,
                    "temperature": 0.7,
                },
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "BizChat",
                },
                timeout=HTTP_TIMEOUT,
            )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(
                "ai reply failed",
                extra={
                    "extra_fields": safe_log_context(
                        conversation_id=conversation_id,
                        error_type=type(e).__name__,
                    )
                },
            )
            return None

        reply = (content or "").strip()
        if not reply:
            return None
        self._history.append(key, "assistant", reply)
        return reply


def build_ai_responder_from_env() -> AiResponder | None:
    api_key = os.environ.get("OPENROUTER_API_KEY", "")
    if not api_key:
        return None
    return AiResponder(api_key=api_key, history=HistoryCache())
