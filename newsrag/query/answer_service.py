"""
Answer Synthesis Service

Turns retrieved passages into an answer:
1. Context formatting (one numbered block per passage)
2. Prompt construction from a fixed instruction template
3. LLM-based answer generation through Ollama
"""

import logging
from typing import List

from langchain_ollama import ChatOllama

from ..models import Passage

logger = logging.getLogger(__name__)

FAILED_ANSWER = "Failed to generate answer"

PROMPT_TEMPLATE = """You are a helpful assistant. Based on the following context, provide a concise and accurate answer to the query: "{query}"

Context:
{context}

Answer:"""


class GenerationError(Exception):
    """Raised when the LLM fails to produce an answer."""
    pass


class OllamaAnswerer:
    """
    Answerer backed by an Ollama chat model.
    """

    def __init__(
        self,
        llm_model: str = "llama3.1:latest",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        ollama_base_url: str = "http://localhost:11434"
    ):
        """
        Args:
            llm_model: Ollama model name for answer generation
            temperature: LLM temperature (0.0-1.0, higher = more creative)
            max_tokens: Maximum tokens in generated answer
            ollama_base_url: Base URL for Ollama service
        """
        self.llm_model = llm_model
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.llm = ChatOllama(
            model=llm_model,
            temperature=temperature,
            base_url=ollama_base_url,
            num_predict=max_tokens
        )

    def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Raises:
            GenerationError: If LLM generation fails
        """
        try:
            response = self.llm.invoke(prompt)
        except Exception as e:
            raise GenerationError(f"Error generating answer with LLM: {str(e)}")

        if hasattr(response, 'content'):
            return response.content
        return str(response)


class AnswerSynthesisService:
    """
    Builds a context block from passages and asks the answerer for a reply.

    Generation failures never propagate: the caller gets FAILED_ANSWER.
    """

    def __init__(self, answerer):
        self.answerer = answerer

    def _format_context(self, passages: List[Passage]) -> str:
        """
        Render passages as "Passage {rank}: {title}\\n{content}" blocks.

        Rank is the 1-based input position, not the score.
        """
        return "\n\n".join(
            f"Passage {rank}: {passage.title}\n{passage.full_content}"
            for rank, passage in enumerate(passages, 1)
        )

    def _build_prompt(self, query: str, context: str) -> str:
        return PROMPT_TEMPLATE.format(query=query, context=context)

    def synthesize(self, query: str, passages: List[Passage]) -> str:
        """
        Answer `query` from `passages`.

        Args:
            query: User's question
            passages: Retrieved passages, in rank order

        Returns:
            Trimmed answer text, or FAILED_ANSWER if generation failed
        """
        prompt = self._build_prompt(query, self._format_context(passages))

        try:
            answer = self.answerer.generate(prompt)
        except Exception as e:
            logger.error(f"Error generating answer: {e}")
            return FAILED_ANSWER

        return (answer or "").strip()
