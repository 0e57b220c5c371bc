from typing import Optional
import httpx
from .cache import KeyedCache, MAX_LECTURE_AGE
from .result import Err, Ok, Result
from .store import OfflineStore
import logging

logger = logging.getLogger(__name__)


class ContentClient:
    """
    Read side of the quiz client.

    A failed read is "content unavailable": the client falls back to the
    offline copy of the lecture when there is one.
    """

    def __init__(self, http: httpx.Client, store: OfflineStore,
                 lecture_cache: Optional[KeyedCache] = None):
        self.http = http
        self.store = store
        self.lecture_cache = lecture_cache or KeyedCache(max_age=MAX_LECTURE_AGE)

    def _get(self, path: str) -> Result:
        try:
            response = self.http.get(path)
        except httpx.HTTPError as e:
            return Err(f"Network error: {e}")
        if response.is_success:
            return Ok(response.json())
        return Err(
            f"GET {path} failed: {response.status_code}",
            status_code=response.status_code,
            retryable=response.status_code >= 500,
        )

    def get_hierarchy(self) -> Result:
        result = self._get("/api/years")
        if result.ok:
            self.lecture_cache.put("hierarchy", result.value)
            return result
        cached = self.lecture_cache.get("hierarchy")
        if cached is not None:
            return Ok(cached, cached=True)
        return result

    def get_lecture(self, lecture_id: str) -> Result:
        cached = self.lecture_cache.get(lecture_id)
        if cached is not None:
            return Ok(cached, cached=True)

        result = self._get(f"/api/lectures/{lecture_id}")
        if result.ok:
            self.lecture_cache.put(lecture_id, result.value)
            self.store.save_lecture(result.value)
            return result

        offline = self.store.get_lecture(lecture_id)
        if offline is not None:
            logger.info(f"Lecture {lecture_id} unavailable ({result.error}), using offline copy")
            return Ok(offline, cached=True)
        return result

    def invalidate_lecture(self, lecture_id: str) -> None:
        self.lecture_cache.invalidate(lecture_id)
