from .capabilities import LlmCapabilities, extract_prompt_list
from .client import ChatClient

__all__ = ["ChatClient", "LlmCapabilities", "extract_prompt_list"]
