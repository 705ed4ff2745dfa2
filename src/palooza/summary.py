"""One-sentence conversation summaries.

The finished transcript is rendered as ``Name: text`` lines and completed
with the Gemini text model.
"""

import logging

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.palooza.models import ConversationStyle, Persona

logger = logging.getLogger(__name__)


class SummaryTranscript(BaseModel):
    """One transcript entry as sent by the client (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = ""
    speaker_id: str
    text: str
    timestamp: int = 0


class SummaryRequest(BaseModel):
    """Body of ``POST /api/conversation/summary``."""

    model_config = ConfigDict(extra="ignore")

    personas: list[Persona] = Field(..., min_length=2)
    topic: str
    style: ConversationStyle | None = None
    transcripts: list[SummaryTranscript] = Field(default_factory=list)


def build_summary_prompt(
    personas: list[Persona], topic: str, transcripts: list[SummaryTranscript]
) -> str:
    """Render the summary prompt.

    Transcript lines are ordered by timestamp regardless of the order the
    client sent them in. Speakers not among ``personas`` render as ``Unknown``.
    """
    names = {persona.id: persona.name for persona in personas}
    ordered = sorted(transcripts, key=lambda entry: entry.timestamp)
    lines = "\n".join(
        f"{names.get(entry.speaker_id, 'Unknown')}: {entry.text}" for entry in ordered
    )
    return (
        f"Summarize in a sentence the conversation between {personas[0].name} and "
        f"{personas[1].name} on the topic {topic}. "
        f"The conversation is as follows: {lines}"
    )


class ConversationSummarizer:
    """Completes summary prompts with a Gemini text model."""

    def __init__(self, client: genai.Client, model: str) -> None:
        self._client = client
        self._model = model

    @staticmethod
    def generation_config() -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=1,
            top_p=0.95,
            max_output_tokens=8192,
            thinking_config=types.ThinkingConfig(include_thoughts=False, thinking_budget=0),
        )

    async def summarize(self, request: SummaryRequest) -> str:
        """Summarize one conversation.

        Raises:
            Exception: Whatever the Gemini client raises; callers report it
        """
        prompt = build_summary_prompt(request.personas, request.topic, request.transcripts)
        logger.info(
            "Requesting conversation summary",
            extra={"model": self._model, "transcripts": len(request.transcripts)},
        )
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=self.generation_config(),
        )
        return response.text or ""
