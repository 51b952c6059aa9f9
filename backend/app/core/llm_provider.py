"""
Provider-agnostic LLM factory for the extraction and content-generation
capabilities.

Switch LLM provider by changing env vars:
  LLM_PROVIDER=gemini | openai | groq
  LLM_MODEL=gemini-2.0-flash | gpt-4o-mini | llama-3.1-70b-versatile
  LLM_API_KEY=your-key
"""

from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import Runnable
from pydantic import BaseModel

from app.config import get_settings

SUPPORTED_PROVIDERS = ("gemini", "openai", "groq")


def create_llm() -> BaseChatModel:
    """Create a chat model from env configuration.

    Raises:
        ValueError: If provider is not supported.
    """
    settings = get_settings()

    match settings.LLM_PROVIDER:
        case "gemini":
            from langchain_google_genai import ChatGoogleGenerativeAI

            return ChatGoogleGenerativeAI(
                model=settings.LLM_MODEL,
                google_api_key=settings.LLM_API_KEY,
                temperature=settings.LLM_TEMPERATURE,
            )

        case "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=settings.LLM_MODEL,
                api_key=settings.LLM_API_KEY,
                temperature=settings.LLM_TEMPERATURE,
            )

        case "groq":
            from langchain_groq import ChatGroq

            return ChatGroq(
                model=settings.LLM_MODEL,
                api_key=settings.LLM_API_KEY,
                temperature=settings.LLM_TEMPERATURE,
            )

        case _:
            raise ValueError(
                f"Unknown LLM provider: '{settings.LLM_PROVIDER}'. "
                f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )


def create_structured_llm(schema: type[BaseModel]) -> Runnable:
    """Chat model whose output is parsed into ``schema``."""
    return create_llm().with_structured_output(schema)
