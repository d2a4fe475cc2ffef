"""Tests for the external game API client and its stream parser."""

import json

import httpx
import pytest

from src.core.exceptions import ProviderError
from src.generation.events import CompleteEvent, ErrorEvent, FileGeneratedEvent, ProgressEvent
from src.generation.external_api import ExternalGameAPI, _StreamState, parse_line
from src.utilities.config import ExternalAPIConfig


def sse(*payloads) -> bytes:
    """Encode payloads (dicts or raw strings) as an event-stream body."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def make_api(handler) -> ExternalGameAPI:
    return ExternalGameAPI(ExternalAPIConfig(), transport=httpx.MockTransport(handler))


async def collect(api: ExternalGameAPI, prompt: str = "Build a platformer", target_id: str = "c1"):
    return [event async for event in api.generate(prompt, target_id)]


class TestParseLine:
    """Tests for single-line parsing."""

    @pytest.mark.parametrize("line", ["", "   ", ": keep-alive", "event: progress", "retry: 1000"])
    def test_non_data_lines_ignored(self, line):
        state = _StreamState()

        assert parse_line(line, state) is None
        assert state.malformed == 0

    def test_malformed_json_counted_and_skipped(self):
        state = _StreamState()

        assert parse_line("data: {not json", state) is None
        assert state.malformed == 1

    def test_non_object_payload_skipped(self):
        state = _StreamState()

        assert parse_line("data: [1, 2, 3]", state) is None
        assert state.malformed == 1

    def test_step_payload_becomes_progress(self):
        event = parse_line('data: {"step": 1, "totalSteps": 4, "stepName": "Planning"}', _StreamState())

        assert isinstance(event, ProgressEvent)
        assert event.total_steps == 4
        assert event.step_name == "Planning"

    def test_filename_spelling_variants(self):
        state = _StreamState()

        first = parse_line('data: {"fileName": "index.html", "content": "<html></html>"}', state)
        second = parse_line('data: {"filename": "game.js", "content": "let x = 1"}', state)

        assert isinstance(first, FileGeneratedEvent)
        assert isinstance(second, FileGeneratedEvent)
        assert second.file.language == "javascript"
        assert set(state.files) == {"index.html", "game.js"}

    def test_unknown_payload_ignored(self):
        state = _StreamState()

        assert parse_line('data: {"hello": "world"}', state) is None
        assert state.recognized == 0

    def test_empty_file_content_is_not_a_file(self):
        state = _StreamState()

        assert parse_line('data: {"fileName": "a.js", "content": ""}', state) is None
        assert state.files == {}

    def test_null_files_is_not_a_completion(self):
        state = _StreamState()

        assert parse_line('data: {"files": null}', state) is None
        assert state.completion_seen is False
        assert isinstance(state.finish(), ErrorEvent)

    def test_empty_files_list_still_completes(self):
        state = _StreamState()

        parse_line('data: {"files": []}', state)

        assert state.completion_seen is True
        assert isinstance(state.finish(), CompleteEvent)


class TestGenerate:
    """Tests for streaming a generation."""

    @pytest.mark.asyncio
    async def test_posts_prompt_and_subdomain(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse({"error": "stop"}))

        await collect(make_api(handler), prompt="Snake game", target_id="conv-1")

        assert seen["path"] == "/api/generate/simple2"
        assert seen["body"] == {"prompt": "Snake game", "subdomain": "conv-1"}

    @pytest.mark.asyncio
    async def test_malformed_line_does_not_stop_the_stream(self):
        body = sse(
            {"step": 1, "totalSteps": 2, "stepName": "Planning"},
            "{this is not json",
            {"fileName": "index.html", "content": "<html></html>"},
        )
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        file_events = [e for e in events if isinstance(e, FileGeneratedEvent)]
        assert len(file_events) == 1
        assert file_events[0].file.path == "index.html"
        assert isinstance(events[-1], CompleteEvent)

    @pytest.mark.asyncio
    async def test_files_payload_completes_at_end_of_stream(self):
        body = sse(
            {"fileName": "index.html", "content": "<html>v1</html>"},
            {
                "files": [
                    {"path": "index.html", "content": "<html>v2</html>"},
                    {"path": "game.js", "content": "run()"},
                ],
                "metadata": {"title": "Jumper"},
            },
        )
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        assert [e.type for e in events] == ["file_generated", "complete"]
        complete = events[-1]
        paths = {f.path: f.content for f in complete.files}
        assert paths == {"index.html": "<html>v1</html>", "game.js": "run()"}
        assert complete.metadata["title"] == "Jumper"

    @pytest.mark.asyncio
    async def test_setup_instructions_complete_immediately(self):
        body = sse(
            {"fileName": "index.html", "content": "<html></html>"},
            {
                "chatId": "chat-1",
                "projectId": "proj-1",
                "setupInstructions": {"liveUrl": "https://c1.games.example.com"},
                "totalFiles": 1,
            },
            {"fileName": "late.js", "content": "ignored"},
        )
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        assert [e.type for e in events] == ["file_generated", "complete"]
        assert events[-1].live_url == "https://c1.games.example.com"
        assert events[-1].metadata["projectId"] == "proj-1"

    @pytest.mark.asyncio
    async def test_error_payload_is_terminal(self):
        body = sse(
            {"step": 1},
            {"error": "Model overloaded", "details": {"retryAfter": 30}},
            {"fileName": "index.html", "content": "<html></html>"},
        )
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        assert [e.type for e in events] == ["progress", "error"]
        assert events[-1].error == "Model overloaded"
        assert json.loads(events[-1].details) == {"retryAfter": 30}

    @pytest.mark.asyncio
    async def test_empty_stream_ends_with_error(self):
        body = sse("garbage", "more garbage")
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert "without any valid events" in events[0].error

    @pytest.mark.asyncio
    async def test_progress_only_stream_ends_with_error(self):
        body = sse({"step": 1, "totalSteps": 3, "stepName": "Planning"})
        events = await collect(make_api(lambda request: httpx.Response(200, content=body)))

        assert [e.type for e in events] == ["progress", "error"]
        assert "before any game files" in events[-1].error

    @pytest.mark.asyncio
    async def test_error_status_raises_provider_error(self):
        api = make_api(lambda request: httpx.Response(500, text="upstream exploded"))

        with pytest.raises(ProviderError) as exc_info:
            await collect(api)

        assert exc_info.value.status_code == 500
        assert "upstream exploded" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_transport_failure_raises_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await collect(make_api(handler))

        assert exc_info.value.details == "ConnectError"


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_healthy(self):
        api = make_api(lambda request: httpx.Response(200, json={"status": "ok"}))

        assert await api.health_check() is True

    @pytest.mark.asyncio
    async def test_unhealthy_status(self):
        api = make_api(lambda request: httpx.Response(503))

        assert await api.health_check() is False

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert await make_api(handler).health_check() is False
