"""
Tests for answer synthesis.

ChatOllama is mocked, so no Ollama server is required.
"""

from unittest.mock import Mock, patch

import pytest

from newsrag.models import Passage
from newsrag.query.answer_service import (
    FAILED_ANSWER,
    AnswerSynthesisService,
    GenerationError,
    OllamaAnswerer,
)


def _passages():
    return [
        Passage(id="1", score=0.9, title="Chip shortage eases", link="https://x/1", full_content="Supply recovers."),
        Passage(id="2", score=0.8, title="New AI model", link="https://x/2", full_content="A lab released..."),
    ]


class TestOllamaAnswerer:

    @patch('newsrag.query.answer_service.ChatOllama')
    def test_llm_configuration(self, mock_chat):
        OllamaAnswerer(llm_model="llama3.1:latest", temperature=0.2, max_tokens=256,
                       ollama_base_url="http://ollama:11434")

        mock_chat.assert_called_once_with(
            model="llama3.1:latest",
            temperature=0.2,
            base_url="http://ollama:11434",
            num_predict=256
        )

    @patch('newsrag.query.answer_service.ChatOllama')
    def test_generate_returns_content(self, mock_chat):
        mock_chat.return_value.invoke.return_value = Mock(content="An answer")

        assert OllamaAnswerer().generate("prompt") == "An answer"

    @patch('newsrag.query.answer_service.ChatOllama')
    def test_generate_wraps_errors(self, mock_chat):
        mock_chat.return_value.invoke.side_effect = RuntimeError("model not loaded")

        with pytest.raises(GenerationError, match="model not loaded"):
            OllamaAnswerer().generate("prompt")


class TestAnswerSynthesisService:

    def test_context_blocks_are_ranked_by_position(self):
        service = AnswerSynthesisService(Mock())

        context = service._format_context(_passages())

        assert context == (
            "Passage 1: Chip shortage eases\nSupply recovers.\n\n"
            "Passage 2: New AI model\nA lab released..."
        )

    def test_prompt_contains_query_and_context(self):
        answerer = Mock()
        answerer.generate.return_value = "  Things are improving.  "
        service = AnswerSynthesisService(answerer)

        answer = service.synthesize("What is new?", _passages())

        prompt = answerer.generate.call_args.args[0]
        assert 'answer to the query: "What is new?"' in prompt
        assert "Passage 2: New AI model" in prompt
        assert prompt.rstrip().endswith("Answer:")
        assert answer == "Things are improving."

    def test_generation_failure_returns_sentinel(self):
        answerer = Mock()
        answerer.generate.side_effect = GenerationError("boom")

        assert AnswerSynthesisService(answerer).synthesize("q", _passages()) == FAILED_ANSWER

    def test_none_answer_becomes_empty_string(self):
        answerer = Mock()
        answerer.generate.return_value = None

        assert AnswerSynthesisService(answerer).synthesize("q", _passages()) == ""
