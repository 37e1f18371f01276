"""
Lesson content generation via Groq.

One attempt per request. Any failure surfaces as ProducerError so the
caller can release the credit reservation; the user re-triggers manually.
"""

import logging
from typing import Optional, Protocol

import groq

from tutor.core.config import settings
from tutor.core.errors import ProducerError
from tutor.models.content import ContentArtifact, ContentType

logger = logging.getLogger(__name__)

HINDI_BOARDS = {"BSEB"}

_TYPE_INSTRUCTIONS = {
    ContentType.PDF_FREE: "Write concise revision notes for this chapter.",
    ContentType.NOTES_SIMPLE: "Write short, simple study notes covering every key concept of this chapter.",
    ContentType.NOTES_PREMIUM: "Write detailed premium notes with definitions, worked examples, diagrams described in words and exam tips.",
    ContentType.MCQ_SIMPLE: "Write 10 multiple choice questions with four options each and mark the correct answer.",
    ContentType.MCQ_ANALYSIS: "Write 15 multiple choice questions with four options each, the correct answer and a short explanation of why each wrong option is wrong.",
    ContentType.WEEKLY_TEST: "Write a 20 question weekly test of multiple choice questions with an answer key at the end.",
    ContentType.PDF_PREMIUM: "Write a complete chapter study guide: summary, notes, formulae, solved examples and practice questions.",
    ContentType.PDF_VIEWER: "Write a complete chapter study guide suitable for printing.",
}


def language_for_board(board: Optional[str]) -> str:
    if board and board.upper() in HINDI_BOARDS:
        return "Hindi"
    return settings.DEFAULT_LANGUAGE


def build_prompt(
    board: str,
    class_level: str,
    stream: Optional[str],
    subject: str,
    chapter: str,
    language: str,
    content_type: ContentType,
) -> str:
    class_part = f"Class {class_level}"
    if stream:
        class_part += f" ({stream})"
    return (
        f"Board: {board}\n"
        f"{class_part}\n"
        f"Subject: {subject}\n"
        f"Chapter: {chapter}\n"
        f"Language: {language}\n\n"
        f"{_TYPE_INSTRUCTIONS[ContentType(content_type)]} "
        f"Respond in {language} using Markdown."
    )


class ContentProducer(Protocol):
    def generate(
        self,
        board: str,
        class_level: str,
        stream: Optional[str],
        subject: str,
        chapter: str,
        language: str,
        content_type: ContentType,
    ) -> ContentArtifact:
        ...


class GroqContentProducer:
    def __init__(self, client=None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GROQ_MODEL

    @property
    def client(self):
        if self._client is None:
            if not settings.GROQ_API_KEY:
                raise ProducerError("Content generation is not configured")
            self._client = groq.Groq(api_key=settings.GROQ_API_KEY)
        return self._client

    def generate(
        self,
        board: str,
        class_level: str,
        stream: Optional[str],
        subject: str,
        chapter: str,
        language: str,
        content_type: ContentType,
    ) -> ContentArtifact:
        prompt = build_prompt(board, class_level, stream, subject, chapter, language, content_type)
        logger.info(
            "[producer] generating",
            extra={"content_type": ContentType(content_type).value, "prompt_preview": prompt[:50]},
        )

        try:
            completion = self.client.chat.completions.create(
                messages=[
                    {
                        "role": "system",
                        "content": "You are an experienced school teacher preparing exam-focused study material for Indian board students. Be accurate, clear and syllabus aligned.",
                    },
                    {
                        "role": "user",
                        "content": prompt,
                    },
                ],
                model=self.model,
                temperature=settings.GROQ_TEMPERATURE,
                max_tokens=settings.GROQ_MAX_TOKENS,
            )
            text = completion.choices[0].message.content
        except ProducerError:
            raise
        except Exception as e:
            logger.error(f"[producer] Groq generation error: {e}", exc_info=True)
            raise ProducerError("Content generation failed. Please try again.") from e

        if not text or not text.strip():
            raise ProducerError("Content generation returned no content. Please try again.")

        return ContentArtifact(
            content=text.strip(),
            title=chapter,
            content_type=ContentType(content_type).value,
            language=language,
            subject=subject,
        )
