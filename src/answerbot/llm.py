from __future__ import annotations
import asyncio
from dataclasses import dataclass
import logging
from typing import Callable, Optional, Sequence
from google import genai
from google.genai import types

from .engine.types import ChatMessage, CompletionOptions, ModelServiceError
from .state import TokenUsage

logger = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "assistant": "model"}

@dataclass
class GeminiModelService:
    api_key: str
    model: str = "gemini-3-flash-preview"
    timeout_sec: float = 30.0
    on_usage: Optional[Callable[[TokenUsage], None]] = None

    def _client(self) -> genai.Client:
        return genai.Client(api_key=self.api_key)

    def _build_request(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions,
    ) -> tuple[list[types.Content], types.GenerateContentConfig]:
        system_parts = [m.content for m in messages if m.role == "system"]
        contents: list[types.Content] = []
        for message in messages:
            if message.role == "system":
                continue
            role = _ROLE_MAP.get(message.role)
            if role is None:
                raise ValueError(f"unsupported message role: {message.role}")
            contents.append(types.Content(role=role, parts=[types.Part(text=message.content)]))
        config = types.GenerateContentConfig(
            system_instruction="\n".join(system_parts) or None,
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
        )
        return contents, config

    async def complete(self, messages: Sequence[ChatMessage], options: CompletionOptions) -> str:
        contents, config = self._build_request(messages, options)
        logger.info(
            "llm_usage: complete model=%s messages=%s prompt_len=%s",
            self.model,
            len(messages),
            sum(len(m.content) for m in messages),
        )
        client = self._client()

        def _call():
            return client.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )

        try:
            resp = await asyncio.wait_for(asyncio.to_thread(_call), timeout=self.timeout_sec)
        except asyncio.TimeoutError as exc:
            raise ModelServiceError(f"model request timed out after {self.timeout_sec}s") from exc
        self._report_usage(resp)
        text = (resp.text or "").strip()
        if not text:
            raise ModelServiceError("model response missing content")
        return text

    def _report_usage(self, resp) -> None:
        usage = getattr(resp, "usage_metadata", None)
        if self.on_usage is None or usage is None:
            return
        self.on_usage(
            TokenUsage(
                prompt_tokens=usage.prompt_token_count,
                completion_tokens=usage.candidates_token_count,
                total_tokens=usage.total_token_count,
            )
        )
