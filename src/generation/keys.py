from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationKey:
    """Correlates a queued generation with the stream that will carry it."""

    conversation_id: str
    message_id: str

    def __str__(self) -> str:
        return f"{self.conversation_id}:{self.message_id}"
