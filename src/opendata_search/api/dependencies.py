from functools import lru_cache

from ..config import settings
from ..retrieval.engine import RetrievalEngine


@lru_cache
def get_engine() -> RetrievalEngine:
    return RetrievalEngine.from_settings(settings)
