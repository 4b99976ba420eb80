"""FAQ answer engine - fuzzy knowledge-base matching with LLM fallback."""

from .bootstrap import load_engine
from .resolver import AnswerResolver

__all__ = ["load_engine", "AnswerResolver"]
