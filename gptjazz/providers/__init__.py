from .litellm import CompletionClient, LiteLLMClient

__all__ = ["CompletionClient", "LiteLLMClient"]
