from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Mapping, Optional

import aiohttp
from pydantic import ValidationError

from comprehension_gate.config.models import BackendSettings
from comprehension_gate.core.errors import CollaboratorError
from comprehension_gate.services.interfaces import (
    EditorialContent,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    PreviewResult,
    ReferencedAction,
    ScoreReport,
)
from comprehension_gate.services.wire import EditorialRow, GenerationPayload, PostRow, PreviewPayload, ScorePayload

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionResetError,
)

_GENERATION_STATUS_KINDS = {402: "credits_exhausted", 429: "rate_limited"}


class BackendClient:
    """
    aiohttp transport for every collaborator the gate consumes.

    Edge functions are called with POST, table reads with GET against the REST
    endpoint. Nothing is retried here: a failed call raises CollaboratorError and
    the gate decides what that means for the workflow.

    Use as an async context manager so one session is shared across calls.
    """

    def __init__(self, settings: BackendSettings) -> None:
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "BackendClient":
        timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout, headers=self._headers())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> dict[str, str]:
        token = self._settings.access_token or self._settings.api_key
        return {
            "apikey": self._settings.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("BackendClient used outside of its async context.")
        return self._session

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> tuple[int, Any]:
        session = self._require_session()
        url = f"{self._base_url}{path}"
        started = time.perf_counter()
        try:
            async with session.request(method, url, json=json_body, params=params) as response:
                status = response.status
                payload = await response.json(content_type=None)
        except _TRANSPORT_ERRORS as exc:
            logger.warning("backend.request_failed operation=%s error=%s", operation, type(exc).__name__)
            raise CollaboratorError(f"{operation} request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            logger.warning("backend.invalid_json operation=%s", operation)
            raise CollaboratorError(f"{operation} returned invalid JSON") from exc
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.debug("backend.call operation=%s latency_ms=%s", operation, elapsed_ms)
        return status, payload

    async def _invoke_function(self, name: str, body: Mapping[str, Any]) -> tuple[int, Any]:
        return await self._request_json("POST", f"/functions/v1/{name}", operation=name, json_body=body)

    async def _select_one(self, table: str, *, row_id: str, columns: str) -> Optional[dict]:
        status, payload = await self._request_json(
            "GET",
            f"/rest/v1/{table}",
            operation=f"select_{table}",
            params={"id": f"eq.{row_id}", "select": columns, "limit": "1"},
        )
        if status != 200:
            raise CollaboratorError(f"select_{table} failed with status {status}")
        if not isinstance(payload, list):
            raise CollaboratorError(f"select_{table} returned unexpected payload")
        if not payload:
            return None
        return payload[0]

    async def fetch_preview(self, url: str) -> Optional[PreviewResult]:
        status, payload = await self._invoke_function("fetch-article-preview", {"url": url})
        if status != 200:
            raise CollaboratorError(f"fetch-article-preview failed with status {status}")
        if not isinstance(payload, dict):
            return None
        try:
            return PreviewPayload.model_validate(payload).to_result()
        except ValidationError as exc:
            raise CollaboratorError("fetch-article-preview returned an unexpected payload") from exc

    async def get_referenced_action(self, reference_id: str) -> Optional[ReferencedAction]:
        row = await self._select_one("posts", row_id=reference_id, columns="id,shared_url,quoted_post_id")
        if row is None:
            return None
        try:
            return PostRow.model_validate(row).to_action()
        except ValidationError as exc:
            raise CollaboratorError("posts row has an unexpected shape") from exc

    async def get_editorial(self, editorial_id: str) -> Optional[EditorialContent]:
        row = await self._select_one("daily_focus", row_id=editorial_id, columns="id,title,summary,deep_content")
        if row is None:
            return None
        try:
            return EditorialRow.model_validate(row).to_content()
        except ValidationError as exc:
            raise CollaboratorError("daily_focus row has an unexpected shape") from exc

    async def generate_questions(self, request: GenerationRequest) -> GenerationResult:
        body: dict[str, Any] = {
            "isPrePublish": True,
            "userText": request.user_text,
            "questionCount": request.question_count,
            "testMode": request.test_mode,
        }
        if request.source_ref:
            body["sourceUrl"] = request.source_ref
        if request.summary_text:
            body["summary"] = request.summary_text
        if request.title:
            body["title"] = request.title

        status, payload = await self._invoke_function("generate-qa", body)
        if status in _GENERATION_STATUS_KINDS:
            return GenerationFailure(
                message=f"generate-qa rejected the request with status {status}",
                kind=_GENERATION_STATUS_KINDS[status],  # type: ignore[arg-type]
            )
        if status != 200:
            raise CollaboratorError(f"generate-qa failed with status {status}")
        try:
            return GenerationPayload.model_validate(payload).to_result()
        except ValidationError as exc:
            raise CollaboratorError("generate-qa returned an unexpected payload") from exc

    async def validate_answers(self, *, qa_id: str, answers: Mapping[str, str]) -> ScoreReport:
        status, payload = await self._invoke_function("submit-qa", {"qaId": qa_id, "answers": dict(answers)})
        if status != 200:
            raise CollaboratorError(f"submit-qa failed with status {status}")
        try:
            return ScorePayload.model_validate(payload).to_report()
        except ValidationError as exc:
            raise CollaboratorError("submit-qa returned an unexpected payload") from exc
