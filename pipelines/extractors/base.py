"""
Base Extractor

Abstract base class for upstream fetchers.
"""

from abc import ABC, abstractmethod
from typing import Any

from core.logging import get_logger


class BaseExtractor(ABC):
    """
    Abstract base class for upstream fetchers.

    Extractors only talk to the upstream service and hand back raw bodies
    or parsed JSON; building tracker rows is left to the transformers.

    Subclasses wrap their request methods in @with_retry and a circuit
    breaker, and take a rate-limiter slot before each request.
    """

    def __init__(self, name: str):
        self.name = name
        self.log = get_logger(f"extractor.{name}")

    @abstractmethod
    def extract(self, **kwargs: Any) -> Any:
        """
        Fetch from the upstream service.

        Raises:
            NetworkError, RateLimitError, ServerError for retryable failures
        """
        pass
