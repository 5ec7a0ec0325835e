from __future__ import annotations

try:
    import openai as _openai
except ImportError:
    _openai = None  # type: ignore[assignment]

from prweave_core.providers.base import BaseAnalyzer


class OpenAIAnalyzer(BaseAnalyzer):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str):
        if _openai is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'prweave[openai]'"
            )
        self.client = _openai.OpenAI(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        response = self.client.chat.completions.create(
            model=self.MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            timeout=timeout,
        )
        return response.choices[0].message.content

    def _is_transient(self, error: Exception) -> bool:
        return isinstance(
            error,
            (_openai.RateLimitError, _openai.APIConnectionError, _openai.InternalServerError),
        )
