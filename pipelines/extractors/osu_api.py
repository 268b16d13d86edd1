"""
osu! API Extractor

Fetches beatmap metadata and leaderboards from the osu! API v1
(https://github.com/ppy/osu-api/wiki).
"""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Callable, Optional, Sequence, TypeVar

import requests
from pyrate_limiter import Limiter

from core.rate_limit import acquire, build_rate_limiter
from core.resilience import osu_api_circuit, resilient_request, with_retry
from core.settings import settings
from pipelines.extractors.base import BaseExtractor

MODE_STANDARD = 0
APPROVED_RANKED = 1

T = TypeVar("T")


class FetchFailure(Exception):
    """A fan-out fetch failed; identifies which beatmap it was for."""

    def __init__(self, index: int, beatmap_id: str, error: Exception):
        super().__init__(f"fetch for beatmap {beatmap_id} failed: {error}")
        self.index = index
        self.beatmap_id = beatmap_id
        self.error = error


class OsuApiExtractor(BaseExtractor):
    """
    Extractor for the osu! API v1.

    The API key is passed in by the caller; every request takes a slot
    from the shared rate limiter before it is sent.

    Raw methods return the response body unparsed so callers can decide
    how to treat malformed payloads. Transport and HTTP errors raise.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = settings.osu_api_base_url,
        rate_limiter: Optional[Limiter] = None,
        session: Optional[requests.Session] = None,
        max_workers: int = settings.fetch_workers,
        timeout: int = settings.http_timeout,
    ):
        super().__init__("osu_api")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter or build_rate_limiter(
            settings.api_rate_limit_per_minute,
            settings.api_rate_limit_per_second,
            settings.api_rate_limit_max_wait_seconds,
        )
        self.session = session or requests.Session()
        self.max_workers = max_workers
        self.timeout = timeout

    def extract(self, **kwargs: Any) -> Any:
        """Not used directly - use specific methods below."""
        raise NotImplementedError("Use get_beatmap_raw, get_scores_raw or get_beatmaps_since")

    def _get(self, endpoint: str, params: dict[str, Any]) -> str:
        acquire(self.rate_limiter)
        response = resilient_request(
            self.session,
            "GET",
            f"{self.base_url}/{endpoint}",
            timeout=self.timeout,
            params={"k": self._api_key, **params},
        )
        return response.text

    @with_retry(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )
    @osu_api_circuit
    def get_beatmap_raw(self, beatmap_id: str) -> str:
        """get_beatmaps?b=<id>: a JSON list with zero or one beatmap."""
        self.log.debug("beatmap_request", beatmap_id=beatmap_id)
        return self._get("get_beatmaps", {"b": beatmap_id})

    @with_retry(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )
    @osu_api_circuit
    def get_scores_raw(self, beatmap_id: str) -> str:
        """get_scores?b=<id>: the leaderboard, best first."""
        self.log.debug("scores_request", beatmap_id=beatmap_id)
        return self._get("get_scores", {"b": beatmap_id})

    @with_retry(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )
    @osu_api_circuit
    def get_beatmaps_since(
        self,
        since: date,
        mode: int = MODE_STANDARD,
        approved: int = APPROVED_RANKED,
    ) -> list[dict]:
        """
        Beatmaps ranked/approved since `since`.

        Returns:
            List of raw beatmap dicts

        Raises:
            ValueError: If the body is not a JSON list
        """
        self.log.debug("discovery_request", since=since.isoformat(), mode=mode)
        body = self._get(
            "get_beatmaps",
            {"since": since.isoformat(), "m": mode, "approved": approved},
        )
        beatmaps = json.loads(body)
        if not isinstance(beatmaps, list):
            raise ValueError(f"Expected a list of beatmaps, got {type(beatmaps).__name__}")

        self.log.info("discovery_complete", since=since.isoformat(), beatmap_count=len(beatmaps))
        return beatmaps

    def get_scores(self, beatmap_id: str) -> list[dict]:
        """
        Leaderboard as parsed JSON, [] when the body is not a JSON list.

        Transport errors still raise.
        """
        body = self.get_scores_raw(beatmap_id)
        try:
            scores = json.loads(body)
        except json.JSONDecodeError:
            self.log.warning("scores_unparseable", beatmap_id=beatmap_id)
            return []
        return scores if isinstance(scores, list) else []

    def fetch_all(
        self,
        fetch: Callable[[str], T],
        beatmap_ids: Sequence[str],
    ) -> list[T]:
        """
        Run `fetch` for every id together and wait for all of them.

        Results come back in the order of `beatmap_ids`, whatever order the
        requests complete in.

        Raises:
            FetchFailure: For the first id (in submission order) whose fetch raised
        """
        if not beatmap_ids:
            return []

        workers = min(self.max_workers, len(beatmap_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="osu-fetch") as pool:
            futures = [pool.submit(fetch, beatmap_id) for beatmap_id in beatmap_ids]

            results = []
            for index, (beatmap_id, future) in enumerate(zip(beatmap_ids, futures)):
                try:
                    results.append(future.result())
                except Exception as e:
                    for pending in futures[index + 1 :]:
                        pending.cancel()
                    raise FetchFailure(index, beatmap_id, e) from e
            return results
