from .cache import ICacheService
from .query_executor import IQueryExecutor

__all__ = [
    "ICacheService",
    "IQueryExecutor",
]
