"""Client for the external chatbot HTTP service.

The service receives the user's message plus a short window of the
conversation and answers with a reply text. When no service URL is
configured a canned supportive reply is returned instead so the chat
feature keeps working in local development.
"""

from __future__ import annotations

import logging
import random
from typing import Any

import httpx

from ..config import settings
from ..errors import UpstreamServiceError

logger = logging.getLogger("pulihhati.chatbot")

HISTORY_WINDOW = 10

FALLBACK_REPLIES = (
    "I understand how you're feeling. Would you like to talk more about it?",
    "That sounds challenging. How has this been affecting you?",
    "Thank you for sharing that with me. What do you think might help in this situation?",
    "I'm here to listen. Would you like to explore some coping strategies together?",
    "It's okay to feel that way. Many people experience similar emotions.",
)

# Reply field names used by the chatbot deployments we have talked to.
_REPLY_KEYS = ("response", "reply", "message", "answer")


def fallback_reply() -> str:
    return random.choice(FALLBACK_REPLIES)


def _extract_reply(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in _REPLY_KEYS:
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value
    raise UpstreamServiceError("Chatbot returned an unexpected response")


def get_reply(message: str, history: list[dict[str, str]], session_id: int) -> str:
    """Forward `message` to the chatbot service and return its reply text."""
    if not settings.CHATBOT_API_URL:
        return fallback_reply()
    headers = {"Content-Type": "application/json"}
    if settings.CHATBOT_API_KEY:
        headers["Authorization"] = f"Bearer {settings.CHATBOT_API_KEY}"
    payload = {
        "message": message,
        "session_id": session_id,
        "history": history[-HISTORY_WINDOW:],
    }
    try:
        with httpx.Client(timeout=settings.CHATBOT_TIMEOUT_SECONDS) as client:
            resp = client.post(settings.CHATBOT_API_URL, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
    except httpx.TimeoutException as exc:
        logger.warning("chatbot timed out after %.0fs", settings.CHATBOT_TIMEOUT_SECONDS)
        raise UpstreamServiceError("Chatbot service timed out") from exc
    except httpx.HTTPStatusError as exc:
        logger.warning("chatbot returned HTTP %s", exc.response.status_code)
        raise UpstreamServiceError(f"Chatbot service error ({exc.response.status_code})") from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("chatbot request failed: %s", exc)
        raise UpstreamServiceError("Chatbot service unavailable") from exc
    return _extract_reply(data)
