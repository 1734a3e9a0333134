"""Single-turn completion client (system prompt + one user message -> text)."""

from __future__ import annotations

import logging
from typing import Optional

import anthropic

from topicfeed.errors import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)


class CompletionClient:
    """Thin wrapper over the Anthropic Messages API.

    The pipeline only needs ``complete(system, user, max_tokens) -> str``.
    Retries are disabled: a failed call surfaces as one CompletionError and
    callers decide whether to skip it.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60,
        temperature: float = 0.7,
        client: Optional[anthropic.Anthropic] = None,
    ):
        self.api_key = api_key or ""
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = temperature
        self._client = client

    @classmethod
    def from_config(cls, cfg: dict) -> "CompletionClient":
        return cls(
            api_key=cfg.get("anthropic_api_key", ""),
            model=cfg["model"],
            base_url=cfg.get("ai_base_url"),
            timeout=cfg.get("ai_timeout", 60),
            temperature=cfg.get("ai_temperature", 0.7),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def require_configured(self):
        if not self.configured:
            raise ConfigurationError(
                "Anthropic API key not configured. Set ANTHROPIC_API_KEY or add anthropic_api_key to config.yaml"
            )

    def _get_client(self) -> anthropic.Anthropic:
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, system: str, user: str, max_tokens: int = 1000) -> str:
        self.require_configured()
        kwargs = {}
        if system:
            kwargs["system"] = system
        try:
            response = self._get_client().messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": user}],
                **kwargs,
            )
        except anthropic.APIStatusError as e:
            raise CompletionError(f"API error {e.status_code}: {e.message}") from e
        except anthropic.APIConnectionError as e:
            raise CompletionError(f"Could not reach the completion API: {e}") from e
        except anthropic.APIError as e:
            raise CompletionError(f"Completion failed: {e}") from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()

    def test_connection(self) -> tuple[bool, Optional[str]]:
        """Round-trip a trivial prompt. Returns (ok, error message)."""
        try:
            reply = self.complete("", 'Say "Connection successful!" and nothing else.', max_tokens=20)
        except (ConfigurationError, CompletionError) as e:
            return False, str(e)
        if not reply:
            return False, "Empty response"
        return True, None
