import copy
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from .cache import MAX_LECTURE_AGE, is_stale
import logging

logger = logging.getLogger(__name__)

EMPTY_STATE = {
    "lectures": {},
    "quizProgress": {},
    "quizResults": [],
    "syncQueue": [],
    "nextSyncId": 1,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OfflineStore:
    """
    Local persistence for offline quiz taking.

    Everything lives in one JSON file that is rewritten atomically on each
    change: cached lectures, in-progress quizzes keyed by lectureId, finished
    results and the queue of writes waiting to be uploaded.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._state = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return copy.deepcopy(EMPTY_STATE)
        with open(self.path, "r", encoding="utf-8") as f:
            state = json.load(f)
        for key, value in EMPTY_STATE.items():
            state.setdefault(key, copy.deepcopy(value))
        return state

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._state, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # Lectures
    def save_lecture(self, lecture: dict) -> dict:
        stored = dict(lecture)
        stored["cachedAt"] = _now_iso()
        self._state["lectures"][lecture["id"]] = stored
        self._save()
        return stored

    def get_lecture(self, lecture_id: str, allow_stale: bool = True) -> Optional[dict]:
        lecture = self._state["lectures"].get(lecture_id)
        if lecture is None:
            return None
        if not allow_stale and is_stale(lecture.get("cachedAt"), MAX_LECTURE_AGE):
            return None
        return lecture

    def all_lectures(self) -> List[dict]:
        return list(self._state["lectures"].values())

    # Quiz progress
    def save_progress(self, lecture_id: str, current_index: int, score: int,
                      metadata: Optional[dict] = None) -> dict:
        progress = {
            "lectureId": lecture_id,
            "currentIndex": current_index,
            "score": score,
            "metadata": metadata or {},
            "timestamp": _now_iso(),
        }
        # One in-progress quiz per lecture; a new save replaces the old one
        self._state["quizProgress"][lecture_id] = progress
        self._save()
        return progress

    def get_progress(self, lecture_id: str) -> Optional[dict]:
        return self._state["quizProgress"].get(lecture_id)

    def clear_progress(self, lecture_id: str) -> None:
        if self._state["quizProgress"].pop(lecture_id, None) is not None:
            self._save()

    # Results
    def save_result(self, result: dict) -> dict:
        self._state["quizResults"].append(dict(result))
        self._save()
        return result

    def results(self, lecture_id: Optional[str] = None) -> List[dict]:
        items = self._state["quizResults"]
        if lecture_id is not None:
            items = [item for item in items if item.get("lectureId") == lecture_id]
        return list(items)

    # Sync queue
    def queue_sync(self, action: str, data: dict) -> dict:
        item = {
            "id": self._state["nextSyncId"],
            "action": action,
            "data": data,
            "timestamp": _now_iso(),
            "synced": False,
        }
        self._state["nextSyncId"] += 1
        self._state["syncQueue"].append(item)
        self._save()
        logger.info(f"Action queued for sync: {action}")
        return item

    def pending_sync(self) -> List[dict]:
        return [item for item in self._state["syncQueue"] if not item["synced"]]

    def mark_synced(self, item_id: int) -> Optional[dict]:
        for item in self._state["syncQueue"]:
            if item["id"] == item_id:
                item["synced"] = True
                item["syncedAt"] = _now_iso()
                self._save()
                return item
        return None

    def stats(self) -> dict:
        return {
            "cachedLectures": len(self._state["lectures"]),
            "quizResults": len(self._state["quizResults"]),
            "pendingSyncs": len(self.pending_sync()),
        }

    def clear_all(self) -> None:
        self._state = copy.deepcopy(EMPTY_STATE)
        self._save()
