from __future__ import annotations

from prweave_core.providers.base import BaseAnalyzer


class AnthropicAnalyzer(BaseAnalyzer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str):
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prweave[anthropic]'"
            )
        self._sdk = anthropic
        self.client = anthropic.Anthropic(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.MODEL,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            timeout=timeout,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()

    def _is_transient(self, error: Exception) -> bool:
        # APITimeoutError is a subclass of APIConnectionError.
        return isinstance(
            error,
            (self._sdk.RateLimitError, self._sdk.APIConnectionError, self._sdk.InternalServerError),
        )
