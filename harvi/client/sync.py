import uuid
from typing import Dict, List, Optional, Tuple
import httpx
from .cache import KeyedCache
from .result import Err, Ok, Result
from .store import OfflineStore
import logging

logger = logging.getLogger(__name__)

SAVE_QUIZ_RESULT = "saveQuizResult"

ENDPOINTS = {
    SAVE_QUIZ_RESULT: "/api/quiz-results",
}


def post_item(http: httpx.Client, item: dict) -> Result:
    """POST one queued write. Only a 2xx response counts as delivered."""
    path = ENDPOINTS.get(item["action"])
    if path is None:
        return Err(f"Unknown sync action: {item['action']}", retryable=False)
    try:
        response = http.post(path, json=item["data"])
    except httpx.HTTPError as e:
        return Err(f"Network error: {e}")
    if response.is_success:
        return Ok(response.json())
    # 4xx will not get better by retrying, 5xx might
    return Err(
        f"Server rejected item {item['id']}: {response.status_code}",
        status_code=response.status_code,
        retryable=response.status_code >= 500,
    )


class SyncQueue:
    """
    Finished quizzes waiting to be uploaded.

    Items stay queued until the server acknowledges them, so a failed drain
    loses nothing. Each quiz result carries a client-generated id, which the
    server upserts on, so replaying an item that was in fact delivered is
    harmless.
    """

    def __init__(self, store: OfflineStore, stats_cache: Optional[KeyedCache] = None):
        self.store = store
        self.stats_cache = stats_cache

    def enqueue_result(self, lecture_id: str, answers: List[dict], score: int, total: int,
                       time_spent: Optional[int] = None, result_id: Optional[str] = None) -> dict:
        payload = {
            "id": result_id or str(uuid.uuid4()),
            "lectureId": lecture_id,
            "answers": answers,
            "timeSpent": time_spent,
        }
        self.store.save_result({
            "id": payload["id"],
            "lectureId": lecture_id,
            "score": score,
            "total": total,
            "timeSpent": time_spent,
        })
        self.store.clear_progress(lecture_id)
        return self.enqueue(SAVE_QUIZ_RESULT, payload)

    def enqueue(self, action: str, data: dict) -> dict:
        if action not in ENDPOINTS:
            raise ValueError(f"Unknown sync action: {action}")
        return self.store.queue_sync(action, data)

    def pending(self) -> List[dict]:
        return self.store.pending_sync()

    def drain(self, http: httpx.Client) -> List[Tuple[int, Result]]:
        """Upload every pending item; returns (queue item id, Result) per item."""
        pending = self.store.pending_sync()
        if not pending:
            return []

        logger.info(f"Syncing {len(pending)} pending items...")
        outcomes = []
        for item in pending:
            result = post_item(http, item)
            if result.ok:
                self.store.mark_synced(item["id"])
                if self.stats_cache is not None:
                    self.stats_cache.invalidate(item["data"].get("lectureId"))
                logger.info(f"Synced item {item['id']}")
            else:
                logger.warning(result.error)
            outcomes.append((item["id"], result))

        synced = sum(1 for _, result in outcomes if result.ok)
        logger.info(f"Sync completed: {synced}/{len(outcomes)} delivered")
        return outcomes

    def summary(self, outcomes: List[Tuple[int, Result]]) -> Dict[str, int]:
        return {
            "synced": sum(1 for _, result in outcomes if result.ok),
            "failed": sum(1 for _, result in outcomes if not result.ok),
            "pending": len(self.store.pending_sync()),
        }
