"""Best-effort text generation client for request enrichment.

Every public method returns ``None`` when generation is disabled, unconfigured
or fails for any reason. Callers treat ``None`` as "no enrichment".
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import TextGenerationError
from app.core.logging import get_logger
from app.schemas.customer_requests import IssueSuggestion
from app.services import prompts

if TYPE_CHECKING:
    from app.core.config import Settings

logger = get_logger(__name__)
DEFAULT_SUGGESTION_PRIORITY = 2


def _message_content(payload: object) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, str):
        return None
    return content.strip() or None


def parse_issue_suggestion(raw: str) -> IssueSuggestion:
    """Validate a JSON issue suggestion, filling defaults for optional fields."""
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TextGenerationError("Suggestion was not valid JSON") from exc
    if not isinstance(decoded, dict):
        raise TextGenerationError("Suggestion was not a JSON object")
    title = decoded.get("title")
    description = decoded.get("description")
    if not isinstance(title, str) or not title.strip():
        raise TextGenerationError("Suggestion is missing a title")
    if not isinstance(description, str) or not description.strip():
        raise TextGenerationError("Suggestion is missing a description")
    labels = decoded.get("labels")
    priority = decoded.get("priority")
    try:
        return IssueSuggestion(
            title=title.strip(),
            description=description.strip(),
            labels=[str(label) for label in labels] if isinstance(labels, list) else [],
            priority=(
                priority
                if isinstance(priority, int) and not isinstance(priority, bool)
                else DEFAULT_SUGGESTION_PRIORITY
            ),
        )
    except PydanticValidationError as exc:
        raise TextGenerationError("Suggestion had an invalid shape") from exc


class TextGenerationClient:
    """OpenAI-compatible chat completions client, feature-flagged off by default."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.enabled = settings.ai_enabled()
        self.api_key = settings.openai_api_key.strip()
        self.base_url = settings.openai_base_url.rstrip("/")
        self.model = settings.openai_model
        self.timeout_seconds = settings.openai_timeout_seconds
        self.transport = transport

    async def _complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int | None = None,
        json_response: bool = False,
    ) -> str:
        request_payload: dict[str, object] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
        }
        if max_tokens is not None:
            request_payload["max_tokens"] = max_tokens
        if json_response:
            request_payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                transport=self.transport,
            ) as client:
                response = await client.post("/chat/completions", json=request_payload)
        except httpx.HTTPError as exc:
            raise TextGenerationError(f"Text generation request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TextGenerationError(
                f"Text generation API error: {response.status_code} - {response.text[:300]}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TextGenerationError("Text generation response was not JSON") from exc
        content = _message_content(payload)
        if content is None:
            raise TextGenerationError("No content in text generation response")
        return content

    async def suggest_issue_structure(
        self,
        *,
        content: str,
        request_type: str,
        metadata: Mapping[str, object] | None = None,
    ) -> IssueSuggestion | None:
        if not self.enabled:
            return None
        try:
            raw = await self._complete(
                system_prompt=prompts.ISSUE_STRUCTURE_SYSTEM_PROMPT,
                user_prompt=prompts.issue_structure_prompt(
                    content=content,
                    request_type=request_type,
                    metadata=metadata,
                ),
                temperature=0.3,
                json_response=True,
            )
            return parse_issue_suggestion(raw)
        except TextGenerationError as exc:
            logger.warning("text_generation.issue_structure.failed error=%s", exc.message)
            return None

    async def draft_creation_message(
        self,
        *,
        user_name: str | None,
        request_type: str,
        summary: str,
        identifier: str,
    ) -> str | None:
        if not self.enabled:
            return None
        try:
            return await self._complete(
                system_prompt=prompts.CREATION_SYSTEM_PROMPT,
                user_prompt=prompts.creation_message_prompt(
                    user_name=user_name,
                    request_type=request_type,
                    summary=summary,
                    identifier=identifier,
                ),
                temperature=0.7,
                max_tokens=150,
            )
        except TextGenerationError as exc:
            logger.warning(
                "text_generation.creation_message.failed identifier=%s error=%s",
                identifier,
                exc.message,
            )
            return None

    async def draft_resolution_message(
        self,
        *,
        user_name: str | None,
        original_content: str,
        latest_comment: str | None,
        identifier: str,
    ) -> str | None:
        if not self.enabled:
            return None
        try:
            return await self._complete(
                system_prompt=prompts.RESOLUTION_SYSTEM_PROMPT,
                user_prompt=prompts.resolution_message_prompt(
                    user_name=user_name,
                    original_content=original_content,
                    latest_comment=latest_comment,
                    identifier=identifier,
                ),
                temperature=0.7,
                max_tokens=200,
            )
        except TextGenerationError as exc:
            logger.warning(
                "text_generation.resolution_message.failed identifier=%s error=%s",
                identifier,
                exc.message,
            )
            return None
