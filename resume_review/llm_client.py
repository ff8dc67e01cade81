"""Language model client: send chat messages, get raw text back."""
import asyncio
import time
from typing import List, Optional, Sequence

import httpx
import ollama
from loguru import logger

from resume_review.config import Settings, settings as default_settings
from resume_review.errors import (
    EMPTY_RESPONSE,
    INVALID_CREDENTIALS,
    TIMEOUT,
    UNREACHABLE,
    UPSTREAM_ERROR,
    UPSTREAM_RATE_LIMITED,
    ConfigurationError,
    UpstreamError,
)
from resume_review.models import ChatMessage

PLACEHOLDER_API_KEY = "your_api_key_here"


class ChatClient:
    """Thin wrapper over ``ollama.AsyncClient`` with error translation.

    Credentials and model are resolved on each call so a missing key fails
    the request that needs it rather than application startup.
    """

    def __init__(self, config: Optional[Settings] = None, client: Optional[ollama.AsyncClient] = None):
        self.config = config or default_settings
        self._client = client

    def _resolve_config(self) -> tuple[str, str, str]:
        api_key = self.config.llm_api_key
        if not api_key or api_key == PLACEHOLDER_API_KEY:
            raise ConfigurationError("LLM_API_KEY is not configured. Please set it in your .env file.")
        if not self.config.llm_model:
            raise ConfigurationError("Missing LLM_MODEL environment variable.")
        return api_key, self.config.llm_base_url, self.config.llm_model

    def _get_client(self, api_key: str, base_url: str) -> ollama.AsyncClient:
        if self._client is None:
            self._client = ollama.AsyncClient(
                host=base_url,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.config.llm_timeout_seconds,
            )
        return self._client

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send the conversation and return the assistant's raw text."""
        api_key, base_url, model = self._resolve_config()
        client = self._get_client(api_key, base_url)

        temperature = self.config.llm_temperature if temperature is None else temperature
        max_tokens = self.config.llm_max_tokens if max_tokens is None else max_tokens
        payload: List[dict] = [m.model_dump() for m in messages]

        logger.info(f"LLM request: {base_url} model={model} messages={len(payload)} max_tokens={max_tokens}")
        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                client.chat(
                    model=model,
                    messages=payload,
                    options={"temperature": temperature, "num_predict": max_tokens},
                ),
                timeout=self.config.llm_timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"LLM request timed out after {self.config.llm_timeout_seconds}s")
            raise UpstreamError(TIMEOUT) from e
        except ollama.ResponseError as e:
            raise self._translate_status(e.status_code, e.error) from e
        except (ConnectionError, httpx.TransportError) as e:
            logger.error(f"LLM service unreachable: {e}")
            raise UpstreamError(UNREACHABLE) from e

        content = (response["message"]["content"] or "").strip()
        elapsed = int((time.time() - start_time) * 1000)
        logger.info(f"LLM response in {elapsed}ms, {len(content)} chars")

        if not content:
            raise UpstreamError(EMPTY_RESPONSE)
        return content

    @staticmethod
    def _translate_status(status: int, body: str) -> UpstreamError:
        logger.error(f"LLM API error ({status}): {body}")
        if status == 401:
            return UpstreamError(INVALID_CREDENTIALS, status=status)
        if status == 429:
            return UpstreamError(UPSTREAM_RATE_LIMITED, status=status)
        return UpstreamError(UPSTREAM_ERROR, status=status, body=body)


# Global instance
chat_client: Optional[ChatClient] = None


def get_chat_client() -> ChatClient:
    """Get the global chat client instance."""
    global chat_client
    if chat_client is None:
        chat_client = ChatClient()
    return chat_client
