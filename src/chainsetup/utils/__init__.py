"""General utility functions"""

from .retry_call import async_retry_call, retry_call

__all__ = [
    "async_retry_call",
    "retry_call",
]
