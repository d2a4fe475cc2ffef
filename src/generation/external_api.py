"""
External Game API Client

Streams a game generation from the external generation service and
translates its event-stream wire format into normalized generation events.
"""

import json
import logging
from typing import Any, AsyncGenerator, Optional

import httpx
from pydantic import ValidationError

from src.core.exceptions import ProviderError
from src.generation.events import (
    CompleteEvent,
    ErrorEvent,
    EventModel,
    FileGeneratedEvent,
    GameFile,
    ProgressEvent,
    is_terminal,
)
from src.utilities.config import ExternalAPIConfig

logger = logging.getLogger(__name__)

DEFAULT_GAME_TYPE = "HTML5 Canvas Game"
DEFAULT_FRAMEWORK = "Vanilla JavaScript"


class _StreamState:
    """Accumulates what one provider stream has produced so far."""

    def __init__(self):
        self.files: dict[str, GameFile] = {}
        self.metadata: dict[str, Any] = {}
        self.completion_seen = False
        self.recognized = 0
        self.malformed = 0

    def add_file(self, file: GameFile) -> None:
        self.files[file.path] = file

    def complete(self, live_url: Optional[str] = None) -> CompleteEvent:
        return CompleteEvent(
            files=list(self.files.values()),
            metadata=self.metadata,
            live_url=live_url,
        )

    def translate(self, payload: dict[str, Any]) -> Optional[EventModel]:
        """Map one decoded payload to an event, or None when it only updates state."""
        if payload.get("step") is not None:
            event = ProgressEvent(
                step=payload["step"],
                total_steps=payload.get("totalSteps"),
                step_name=payload.get("stepName"),
                progress=payload.get("progress"),
                message=payload.get("message"),
            )
            self.recognized += 1
            return event

        file_name = payload.get("fileName") or payload.get("filename")
        content = payload.get("content")
        if file_name and isinstance(content, str) and content:
            self.recognized += 1
            game_file = GameFile.from_path(file_name, content)
            self.add_file(game_file)
            logger.info(f"File generated: {file_name} ({len(game_file.content)} chars)")
            return FileGeneratedEvent(
                file=game_file,
                index=payload.get("index"),
                total_files=payload.get("totalFiles"),
            )

        if isinstance(payload.get("files"), list):
            self.recognized += 1
            for item in payload["files"]:
                if not isinstance(item, dict) or not item.get("path"):
                    continue
                if item["path"] not in self.files:
                    self.add_file(GameFile.from_path(item["path"], item.get("content") or ""))
            self.metadata.update(payload.get("metadata") or {})
            self.completion_seen = True
            logger.info(f"Completion payload received: {len(self.files)} files")
            return None

        if payload.get("chatId") and payload.get("projectId") and payload.get("setupInstructions"):
            self.recognized += 1
            setup = payload["setupInstructions"]
            live_url = None
            if isinstance(setup, dict):
                live_url = setup.get("liveUrl") or setup.get("url")
            self.metadata.update(
                {
                    "gameType": DEFAULT_GAME_TYPE,
                    "framework": DEFAULT_FRAMEWORK,
                    "totalFiles": payload.get("totalFiles", len(self.files)),
                    "projectId": payload["projectId"],
                    "chainUsed": payload.get("chainUsed"),
                    "chainSteps": payload.get("chainSteps"),
                }
            )
            logger.info(f"Final completion event for project {payload['projectId']} (live URL: {live_url})")
            return self.complete(live_url=live_url)

        if payload.get("error"):
            self.recognized += 1
            details = payload.get("details")
            return ErrorEvent(
                error=str(payload["error"]),
                details=details if isinstance(details, str) or details is None else json.dumps(details),
            )

        logger.debug(f"Unknown event payload from external API: {payload}")
        return None

    def finish(self) -> EventModel:
        """Terminal event for a stream that ended without one."""
        if self.completion_seen or self.files:
            return self.complete()
        if self.recognized:
            return ErrorEvent(
                error="External API stream ended before any game files were generated",
                details=f"{self.recognized} event(s) received without a result",
            )
        return ErrorEvent(
            error="External API stream ended without any valid events",
            details=f"{self.malformed} malformed line(s) skipped",
        )


def parse_line(line: str, state: _StreamState) -> Optional[EventModel]:
    """
    Parse a single event-stream line.

    ``event:`` lines, comments and blank lines are ignored. ``data:`` lines
    carry a JSON payload whose shape decides the event kind. Malformed
    lines are logged and skipped.
    """
    line = line.strip()
    if not line or line.startswith(":") or line.startswith("event:"):
        return None
    if not line.startswith("data:"):
        logger.debug(f"Ignoring non-data line from external API: {line[:200]}")
        return None

    raw = line[len("data:"):].strip()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        state.malformed += 1
        logger.warning(f"Failed to parse SSE line: {line[:200]} ({e})")
        return None

    if not isinstance(payload, dict):
        state.malformed += 1
        logger.warning(f"Skipping non-object SSE payload: {raw[:200]}")
        return None

    try:
        return state.translate(payload)
    except ValidationError as e:
        state.malformed += 1
        logger.warning(f"Skipping invalid SSE payload: {raw[:200]} ({e.error_count()} errors)")
        return None


class ExternalGameAPI:
    """
    Client for the external game-generation service.

    ``generate()`` is a lazy, finite async sequence: it yields progress and
    file events as they arrive and ends with exactly one ``complete`` or
    ``error`` event. Transport failures and non-success responses raise
    ``ProviderError`` instead. Closing the generator early closes the
    underlying HTTP response.
    """

    def __init__(
        self,
        config: ExternalAPIConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            config: External API configuration
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.transport = transport

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self.transport)

    def _stream_timeout(self) -> httpx.Timeout:
        read_timeout = self.config.read_timeout or None
        return httpx.Timeout(read_timeout, connect=self.config.connect_timeout)

    async def generate(self, prompt: str, target_id: str) -> AsyncGenerator[EventModel, None]:
        """
        Stream a game generation.

        Args:
            prompt: User prompt describing the game
            target_id: Identifier the provider publishes the game under
                (the conversation ID)

        Yields:
            ProgressEvent, FileGeneratedEvent, then one CompleteEvent or ErrorEvent

        Raises:
            ProviderError: If the request fails or the provider answers with an error status
        """
        logger.info(
            f"Starting external game generation for: {prompt[:100]}... "
            f"({self.base_url}{self.config.generate_path}, subdomain={target_id})"
        )
        state = _StreamState()

        try:
            async with self._client(self._stream_timeout()) as client:
                async with client.stream(
                    "POST",
                    self.config.generate_path,
                    json={"prompt": prompt, "subdomain": target_id},
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderError(
                            f"External API error: {response.status_code} {response.reason_phrase}",
                            status_code=response.status_code,
                            details=body[:1000],
                        )

                    async for line in response.aiter_lines():
                        event = parse_line(line, state)
                        if event is None:
                            continue
                        yield event
                        if is_terminal(event):
                            return

            yield state.finish()

        except httpx.HTTPError as e:
            raise ProviderError(f"External API request failed: {e}", details=type(e).__name__) from e

    async def health_check(self) -> bool:
        """
        Check whether the external API is reachable.

        Returns:
            True if the health endpoint answers with a success status
        """
        try:
            async with self._client(httpx.Timeout(self.config.health_timeout)) as client:
                response = await client.get(self.config.health_path)
            healthy = response.is_success
            logger.info(f"External API health: {'healthy' if healthy else 'unhealthy'}")
            return healthy
        except httpx.HTTPError as e:
            logger.warning(f"External API health check failed: {e}")
            return False
