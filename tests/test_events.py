"""Tests for the generation event vocabulary."""

import json

import pytest
from pydantic import ValidationError

from src.generation.events import (
    CompleteEvent,
    ConnectedEvent,
    EndEvent,
    ErrorEvent,
    FileGeneratedEvent,
    GameFile,
    GenerationCompleteEvent,
    PingEvent,
    ProgressEvent,
    WaitingEvent,
    is_terminal,
    parse_client_event,
)


class TestGameFile:
    """Tests for file type and language inference."""

    @pytest.mark.parametrize(
        "path,file_type,language",
        [
            ("index.html", "html", "html"),
            ("styles/main.CSS", "css", "css"),
            ("game.js", "js", "javascript"),
            ("levels.json", "json", "json"),
            ("README.md", "md", "markdown"),
            ("Makefile", "js", "javascript"),
            ("sprite.ts", "js", "javascript"),
        ],
    )
    def test_from_path_infers_type_and_language(self, path, file_type, language):
        game_file = GameFile.from_path(path, "content")

        assert game_file.type == file_type
        assert game_file.language == language

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError):
            GameFile(path="", content="x", type="js", language="javascript")


class TestSerialization:
    """Tests for SSE frame encoding."""

    def test_frame_format(self):
        frame = EndEvent().to_sse()

        assert frame == 'data: {"type":"end"}\n\n'

    def test_camel_case_aliases(self):
        event = ProgressEvent(step=2, total_steps=5, step_name="Writing game logic", progress=40)
        payload = json.loads(event.to_sse()[len("data: "):])

        assert payload == {
            "type": "progress",
            "step": 2,
            "totalSteps": 5,
            "stepName": "Writing game logic",
            "progress": 40,
        }

    def test_none_fields_omitted(self):
        payload = json.loads(ConnectedEvent().to_sse()[len("data: "):])

        assert payload == {"type": "connected"}

    def test_generation_complete_payload(self):
        event = GenerationCompleteEvent(files_count=3, preview_url="/api/conversations/c1/preview")
        payload = json.loads(event.to_sse()[len("data: "):])

        assert payload["type"] == "generation_complete"
        assert payload["progress"] == 100
        assert payload["filesCount"] == 3
        assert payload["previewUrl"] == "/api/conversations/c1/preview"
        assert "liveUrl" not in payload

    def test_ping_carries_timestamp(self):
        payload = json.loads(PingEvent().to_sse()[len("data: "):])

        assert payload["type"] == "ping"
        assert payload["timestamp"] > 0


class TestParseClientEvent:
    """Tests for validating payloads against the closed vocabulary."""

    def test_round_trips_known_types(self):
        event = parse_client_event({"type": "waiting", "message": "Waiting"})

        assert isinstance(event, WaitingEvent)

    def test_accepts_camel_case_input(self):
        event = parse_client_event(
            {
                "type": "file_generated",
                "file": {"path": "game.js", "content": "x", "type": "js", "language": "javascript"},
                "totalFiles": 2,
            }
        )

        assert isinstance(event, FileGeneratedEvent)
        assert event.total_files == 2

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_event({"type": "confetti"})

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_event({"message": "hello"})

    def test_internal_complete_is_not_a_client_event(self):
        with pytest.raises(ValidationError):
            parse_client_event({"type": "complete", "files": []})


class TestTerminal:
    def test_complete_and_error_are_terminal(self):
        assert is_terminal(CompleteEvent())
        assert is_terminal(ErrorEvent(error="boom"))

    def test_other_events_are_not_terminal(self):
        assert not is_terminal(ProgressEvent(step=1))
        assert not is_terminal(GenerationCompleteEvent(files_count=1))
        assert not is_terminal(EndEvent())
