from autodiagram.llm.base import ChatMessage, StructuredModel, call_with_timeout
from autodiagram.llm.factory import create_model
from autodiagram.llm.json_output import extract_json

__all__ = ["ChatMessage", "StructuredModel", "call_with_timeout", "create_model", "extract_json"]
