import logging
from typing import Optional

from llama_index.core import Settings
from llama_index.embeddings.ollama import OllamaEmbedding
from llama_index.embeddings.openai import OpenAIEmbedding
from llama_index.llms.ollama import Ollama
from llama_index.llms.openai import OpenAI

from ...setting import LLMSettings, get_settings
from ..gateway import LLMGateway

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "ollama")

# Cache for LLM models to avoid re-initialization
_llm_cache: dict = {}


class LocalModel:
    """Builds the LLM and embedding model from settings and installs them
    as llama_index ``Settings.llm`` / ``Settings.embed_model``.

    The LLM is always wrapped in an LLMGateway so every provider call is
    logged and counted.
    """

    @staticmethod
    def _resolve(setting: Optional[LLMSettings]) -> LLMSettings:
        setting = setting or get_settings().llm
        if setting.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported LLM provider '{setting.provider}' "
                f"(expected one of {', '.join(SUPPORTED_PROVIDERS)})"
            )
        return setting

    @classmethod
    def llm(cls, setting: Optional[LLMSettings] = None):
        """Get or create the raw LLM for the configured provider."""
        setting = cls._resolve(setting)
        cache_key = f"{setting.provider}_{setting.model}"
        if cache_key in _llm_cache:
            logger.debug(f"Using cached LLM model: {setting.model}")
            return _llm_cache[cache_key]

        if setting.provider == "openai":
            model = OpenAI(
                model=setting.model,
                temperature=setting.temperature,
                max_tokens=setting.max_tokens,
                api_key=setting.api_key,
            )
        else:
            model = Ollama(
                model=setting.model,
                base_url=f"http://{setting.ollama_host}:{setting.ollama_port}",
                temperature=setting.temperature,
                request_timeout=setting.request_timeout,
            )

        _llm_cache[cache_key] = model
        logger.debug(f"Created and cached {setting.provider.upper()} model: {setting.model}")
        return model

    @classmethod
    def embed_model(cls, setting: Optional[LLMSettings] = None):
        setting = cls._resolve(setting)
        if setting.provider == "openai":
            return OpenAIEmbedding(model=setting.embed_model, api_key=setting.api_key)
        return OllamaEmbedding(
            model_name=setting.embed_model,
            base_url=f"http://{setting.ollama_host}:{setting.ollama_port}",
        )

    @classmethod
    def configure(cls, setting: Optional[LLMSettings] = None) -> LLMGateway:
        """Install the gateway-wrapped LLM and the embedding model globally."""
        setting = cls._resolve(setting)
        gateway = LLMGateway(cls.llm(setting))
        Settings.llm = gateway
        Settings.embed_model = cls.embed_model(setting)
        logger.info(
            f"Configured {setting.provider} models: llm={setting.model} "
            f"embed={setting.embed_model}"
        )
        return gateway

    @staticmethod
    def clear_cache() -> None:
        """Clear the LLM model cache."""
        _llm_cache.clear()
        logger.info("LLM model cache cleared")
