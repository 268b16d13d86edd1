"""
Data Extractors

Fetchers for the upstream osu! API.
"""

from pipelines.extractors.base import BaseExtractor
from pipelines.extractors.osu_api import FetchFailure, OsuApiExtractor

__all__ = [
    "BaseExtractor",
    "FetchFailure",
    "OsuApiExtractor",
]
