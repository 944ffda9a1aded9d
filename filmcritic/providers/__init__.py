from .litellm import LiteLLMModelService

__all__ = ["LiteLLMModelService"]
