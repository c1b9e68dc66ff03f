from missing_matters.services.llm.base import LLMError, LLMProvider, LLMResponse
from missing_matters.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMError", "LLMProvider", "LLMResponse", "OpenAIProvider"]
