"""Read-only selectors returning domain DTOs."""

from privileges_kernel.selectors.base import BaseSelector
from privileges_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "BaseSelector",
    "RequestSelector",
]
