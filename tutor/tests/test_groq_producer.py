import pytest

from tutor.core.config import settings
from tutor.core.errors import ProducerError
from tutor.features.content.producer import GroqContentProducer, build_prompt, language_for_board
from tutor.models.content import ContentType
from tutor.tests.fakes import FakeCompletions, FakeGroq


def _generate(producer, content_type=ContentType.NOTES_SIMPLE, stream=None):
    return producer.generate("CBSE", "11", stream, "Biology", "Photosynthesis", "English", content_type)


def test_generate_returns_artifact():
    completions = FakeCompletions()
    producer = GroqContentProducer(client=FakeGroq(completions=completions), model="test-model")

    artifact = _generate(producer, stream="Science")

    assert artifact.content.startswith("## Notes")
    assert artifact.title == "Photosynthesis"
    call = completions.calls[0]
    assert call["model"] == "test-model"
    user_prompt = call["messages"][1]["content"]
    assert "Class 11 (Science)" in user_prompt
    assert "Chapter: Photosynthesis" in user_prompt


def test_client_error_becomes_producer_error():
    completions = FakeCompletions(error=RuntimeError("rate limited"))
    producer = GroqContentProducer(client=FakeGroq(completions=completions))

    with pytest.raises(ProducerError):
        _generate(producer)
    assert len(completions.calls) == 1


def test_empty_completion_is_an_error():
    producer = GroqContentProducer(client=FakeGroq(completions=FakeCompletions(content="   ")))
    with pytest.raises(ProducerError, match="no content"):
        _generate(producer)


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    with pytest.raises(ProducerError, match="not configured"):
        _generate(GroqContentProducer())


def test_language_and_prompt():
    assert language_for_board("bseb") == "Hindi"
    assert language_for_board("CBSE") == settings.DEFAULT_LANGUAGE
    prompt = build_prompt("BSEB", "10", None, "Science", "Light", "Hindi", ContentType.MCQ_SIMPLE)
    assert "Class 10\n" in prompt
    assert "multiple choice" in prompt
    assert prompt.endswith("Respond in Hindi using Markdown.")
