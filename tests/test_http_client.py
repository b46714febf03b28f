import unittest
from typing import Any, Dict, List, Tuple

from aiohttp import test_utils, web

from comprehension_gate.config.models import BackendSettings
from comprehension_gate.core.errors import CollaboratorError
from comprehension_gate.services.http import BackendClient
from comprehension_gate.services.interfaces import (
    EditorialContent,
    GeneratedQuiz,
    GenerationFailure,
    GenerationRequest,
    InsufficientContextResult,
    PreviewResult,
    ReferencedAction,
    ScoreReport,
)


def _request(**overrides: Any) -> GenerationRequest:
    values: Dict[str, Any] = dict(
        source_ref="https://example.com/a",
        summary_text="Summary",
        user_text="my take",
        question_count=3,
        test_mode="MIXED",
        title="Title",
    )
    values.update(overrides)
    return GenerationRequest(**values)


class BackendClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.function_responses: Dict[str, Tuple[int, Any]] = {}
        self.table_rows: Dict[str, List[Dict[str, Any]]] = {}

        app = web.Application()
        app.router.add_post("/functions/v1/{name}", self._function)
        app.router.add_get("/rest/v1/{table}", self._table)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.addAsyncCleanup(self.server.close)

        settings = BackendSettings(
            base_url=str(self.server.make_url("/")),
            api_key="anon-key",
            access_token="user-jwt",
        )
        self.client = BackendClient(settings)
        await self.client.__aenter__()
        self.addAsyncCleanup(self.client.close)

    async def _function(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.calls.append(
            (
                name,
                {
                    "body": await request.json(),
                    "apikey": request.headers.get("apikey"),
                    "authorization": request.headers.get("Authorization"),
                },
            )
        )
        status, payload = self.function_responses[name]
        if isinstance(payload, str):
            return web.Response(text=payload, status=status)
        return web.json_response(payload, status=status)

    async def _table(self, request: web.Request) -> web.StreamResponse:
        table = request.match_info["table"]
        self.calls.append((table, {"query": dict(request.query)}))
        return web.json_response(self.table_rows.get(table, []))

    async def test_fetch_preview(self) -> None:
        self.function_responses["fetch-article-preview"] = (
            200,
            {"success": True, "title": "T", "content": "Body", "platform": "youtube", "sourceRef": "yt:1"},
        )
        preview = await self.client.fetch_preview("https://youtube.com/watch?v=1")

        self.assertEqual(preview, PreviewResult(title="T", content="Body", platform="youtube", source_ref="yt:1"))
        name, call = self.calls[0]
        self.assertEqual(name, "fetch-article-preview")
        self.assertEqual(call["body"], {"url": "https://youtube.com/watch?v=1"})
        self.assertEqual(call["apikey"], "anon-key")
        self.assertEqual(call["authorization"], "Bearer user-jwt")

    async def test_unsuccessful_preview_is_none(self) -> None:
        self.function_responses["fetch-article-preview"] = (200, {"success": False, "error": "blocked"})
        self.assertIsNone(await self.client.fetch_preview("https://example.com"))

    async def test_generate_questions_drops_answer_keys(self) -> None:
        self.function_responses["generate-qa"] = (
            200,
            {
                "qaId": "qa-7",
                "questions": [
                    {
                        "id": "q1",
                        "stem": "What is claimed?",
                        "choices": [{"id": "a", "text": "A"}, {"id": "b", "text": "B"}],
                        "correctId": "a",
                    }
                ],
            },
        )
        result = await self.client.generate_questions(_request())

        self.assertIsInstance(result, GeneratedQuiz)
        self.assertEqual(result.qa_id, "qa-7")
        self.assertEqual([c.id for c in result.questions[0].choices], ["a", "b"])
        self.assertFalse(hasattr(result.questions[0], "correctId"))
        self.assertEqual(
            self.calls[0][1]["body"],
            {
                "isPrePublish": True,
                "userText": "my take",
                "questionCount": 3,
                "testMode": "MIXED",
                "sourceUrl": "https://example.com/a",
                "summary": "Summary",
                "title": "Title",
            },
        )

    async def test_generate_questions_without_source(self) -> None:
        self.function_responses["generate-qa"] = (200, {"insufficient_context": True})
        result = await self.client.generate_questions(_request(source_ref=None, summary_text=None, title=None))

        self.assertIsInstance(result, InsufficientContextResult)
        self.assertNotIn("sourceUrl", self.calls[0][1]["body"])

    async def test_generate_questions_structured_error(self) -> None:
        self.function_responses["generate-qa"] = (
            200,
            {"error": "No transcript available", "errorKind": "transcript_unavailable"},
        )
        result = await self.client.generate_questions(_request())
        self.assertEqual(result, GenerationFailure(message="No transcript available", kind="transcript_unavailable"))

    async def test_generate_questions_status_kinds(self) -> None:
        for status, kind in ((402, "credits_exhausted"), (429, "rate_limited")):
            self.function_responses["generate-qa"] = (status, {"error": "nope"})
            result = await self.client.generate_questions(_request())
            self.assertIsInstance(result, GenerationFailure)
            self.assertEqual(result.kind, kind)

    async def test_generate_questions_server_error(self) -> None:
        self.function_responses["generate-qa"] = (500, {"error": "boom"})
        with self.assertRaises(CollaboratorError):
            await self.client.generate_questions(_request())

    async def test_invalid_json_is_a_collaborator_error(self) -> None:
        self.function_responses["generate-qa"] = (200, "<html>gateway</html>")
        with self.assertRaises(CollaboratorError):
            await self.client.generate_questions(_request())

    async def test_validate_answers_sends_only_qa_id_and_answers(self) -> None:
        self.function_responses["submit-qa"] = (
            200,
            {"passed": False, "score": 2, "total": 5, "wrongIndexes": [0, 3, 4]},
        )
        report = await self.client.validate_answers(qa_id="qa-7", answers={"q1": "a", "q2": "c"})

        self.assertEqual(report, ScoreReport(score=2, total=5, passed=False, wrong_indexes=("0", "3", "4")))
        self.assertEqual(self.calls[0][1]["body"], {"qaId": "qa-7", "answers": {"q1": "a", "q2": "c"}})

    async def test_get_referenced_action(self) -> None:
        self.table_rows["posts"] = [
            {"id": "p1", "shared_url": "", "quoted_post_id": "p0"},
        ]
        action = await self.client.get_referenced_action("p1")

        self.assertEqual(action, ReferencedAction(id="p1", quoted_reference_id="p0"))
        table, call = self.calls[0]
        self.assertEqual(table, "posts")
        self.assertEqual(call["query"], {"id": "eq.p1", "select": "id,shared_url,quoted_post_id", "limit": "1"})

    async def test_missing_rows_are_none(self) -> None:
        self.assertIsNone(await self.client.get_referenced_action("missing"))
        self.assertIsNone(await self.client.get_editorial("missing"))

    async def test_get_editorial_prefers_deep_content(self) -> None:
        self.table_rows["daily_focus"] = [
            {"id": "d1", "title": "Daily", "summary": "short", "deep_content": "long analysis"},
        ]
        self.assertEqual(
            await self.client.get_editorial("d1"),
            EditorialContent(id="d1", title="Daily", body="long analysis"),
        )

    async def test_client_requires_context(self) -> None:
        client = BackendClient(BackendSettings())
        with self.assertRaises(RuntimeError):
            await client.fetch_preview("https://example.com")


if __name__ == "__main__":
    unittest.main()
