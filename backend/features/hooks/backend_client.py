"""
backend/features/hooks/backend_client.py

Generative backend client.

The orchestrator only depends on the GenerativeBackend protocol: one async
call that turns a BackendRequest into raw text. GroqHookBackend is the
production implementation over groq.AsyncGroq. Clients are built explicitly
(app lifespan, tests) and passed in; nothing here is a module-level global.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol
import asyncio
import logging
import time

import groq

from backend.core.config import settings, Settings
from backend.core.errors import BackendUnavailableError
from backend.core.logging import latency_bucket_ms
from backend.models.entitlement import ModelClass


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendRequest:
    model_class: ModelClass
    model_name: str
    system_prompt: str
    user_prompt: str
    temperature: float
    max_tokens: int


class GenerativeBackend(Protocol):
    async def complete(self, request: BackendRequest) -> str:
        """Return the raw completion text or raise BackendUnavailableError."""
        ...


class GroqHookBackend:
    """GenerativeBackend over the Groq chat completions API."""

    def __init__(self, client: Any, *, timeout_seconds: float = 30.0):
        self._client = client
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "GroqHookBackend":
        cfg = cfg or settings
        client = groq.AsyncGroq(
            api_key=cfg.GROQ_API_KEY,
            timeout=cfg.BACKEND_TIMEOUT_SECONDS,
            max_retries=cfg.BACKEND_MAX_RETRIES,
        )
        return cls(client, timeout_seconds=cfg.BACKEND_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    async def complete(self, request: BackendRequest) -> str:
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    messages=[
                        {"role": "system", "content": request.system_prompt},
                        {"role": "user", "content": request.user_prompt},
                    ],
                    model=request.model_name,
                    temperature=request.temperature,
                    max_tokens=request.max_tokens,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("[backend] timeout", extra={"model_name": request.model_name, "timeout": self._timeout_seconds})
            raise BackendUnavailableError("Generation backend timed out") from exc
        except groq.APITimeoutError as exc:
            logger.warning("[backend] client timeout", extra={"model_name": request.model_name})
            raise BackendUnavailableError("Generation backend timed out") from exc
        except groq.APIConnectionError as exc:
            logger.warning("[backend] connection error", extra={"model_name": request.model_name})
            raise BackendUnavailableError("Generation backend unreachable") from exc
        except groq.APIStatusError as exc:
            logger.warning(
                "[backend] error status",
                extra={"model_name": request.model_name, "status": getattr(exc, "status_code", None)},
            )
            raise BackendUnavailableError("Generation backend returned an error") from exc

        content = _first_content(response)
        latency_ms = (time.perf_counter() - started) * 1000
        if not content or not content.strip():
            logger.warning("[backend] empty completion", extra={"model_name": request.model_name})
            raise BackendUnavailableError("Generation backend returned no content")

        logger.info(
            "[backend] completion received",
            extra={
                "model_class": ModelClass(request.model_class).value,
                "model_name": request.model_name,
                "latency_bucket": latency_bucket_ms(latency_ms),
                "chars": len(content),
            },
        )
        return content


def _first_content(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)
