from typing import Any, AsyncIterator, Dict, List, Optional, Type, TypeVar
from openai import AsyncOpenAI
from pydantic import BaseModel

from ..interface import Generation, GenerationChunk, LLMProvider
from ...config import settings

T = TypeVar("T", bound=BaseModel)

class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = settings.OPENAI_MODEL,
        temperature: float = settings.LLM_TEMPERATURE,
    ):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature

    async def generate(
        self,
        messages: List[dict],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> Generation:
        completion = await self.client.chat.completions.create(
            **self._request_args(messages, tools, model)
        )
        choice = completion.choices[0]
        usage = completion.usage
        return Generation(
            text=choice.message.content or "",
            total_tokens=usage.total_tokens if usage else 0,
        )

    async def stream(
        self,
        messages: List[dict],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[GenerationChunk]:
        response = await self.client.chat.completions.create(
            **self._request_args(messages, tools, model),
            stream=True,
            stream_options={"include_usage": True},
        )
        async for chunk in response:
            # The final chunk carries usage and no choices.
            if chunk.usage:
                yield GenerationChunk(total_tokens=chunk.usage.total_tokens)
            if chunk.choices and chunk.choices[0].delta.content:
                yield GenerationChunk(text=chunk.choices[0].delta.content)

    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> T:
        completion = await self.client.beta.chat.completions.parse(
            model=model or self.model_name,
            messages=messages,
            response_format=response_model,
            temperature=temperature,
        )

        # We unwrap the specific OpenAI response structure here
        return completion.choices[0].message.parsed

    def _request_args(
        self,
        messages: List[dict],
        tools: Optional[List[Dict[str, Any]]],
        model: Optional[str],
    ) -> Dict[str, Any]:
        args: Dict[str, Any] = {
            "model": model or self.model_name,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tools:
            args["tools"] = tools
        return args
