from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

# Generic type variable for the Pydantic model expected in structured responses.
T = TypeVar("T", bound=BaseModel)


class Generation(BaseModel):
    text: str
    total_tokens: int = 0


class GenerationChunk(BaseModel):
    """A streamed fragment. Usage-only chunks carry empty text."""
    text: str = ""
    total_tokens: int = 0


class LLMProvider(ABC):
    """
    Abstract Base Class interface that defines the contract for any LLM provider
    (OpenAI, Anthropic, Local LLaMA, etc.)

    Messages are OpenAI-style dicts; the system prompt is the leading
    system message.
    """

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> Generation:
        """
        Generates a complete text response.
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[dict],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[GenerationChunk]:
        """
        Generates a response as a stream of text fragments.
        """
        pass

    @abstractmethod
    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> T:
        """
        Generates a response from the LLM strictly matching the Pydantic 'response_model'.
        """
        pass
