import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from harvi.client import ContentClient, Err, KeyedCache, Ok, OfflineStore, SyncQueue, is_stale


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def store(tmp_path):
    return OfflineStore(tmp_path / "offline.json")


def make_http(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://harvi.test")


def test_cache_entries_expire_after_max_age():
    clock = FakeClock()
    cache = KeyedCache(max_age=timedelta(hours=24), clock=clock)
    cache.put("L1", {"id": "L1"})

    clock.advance(hours=23)
    assert cache.get("L1") == {"id": "L1"}

    clock.advance(hours=2)
    assert cache.get("L1") is None
    assert "L1" not in cache


def test_cache_invalidation_notifies_listeners():
    cache = KeyedCache()
    dropped = []
    cache.on_invalidate(dropped.append)

    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.invalidate("a") is True
    assert cache.invalidate("missing") is False
    cache.clear()

    assert dropped == ["a", "missing", "b"]
    assert len(cache) == 0


def test_is_stale():
    now = datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert is_stale(None, now=now)
    assert is_stale("garbage", now=now)
    assert not is_stale("2024-01-01T12:00:00+00:00", now=now)
    assert is_stale("2023-12-31T12:00:00", now=now)


def test_store_persists_across_instances(tmp_path):
    path = tmp_path / "offline.json"
    first = OfflineStore(path)
    first.save_lecture({"id": "L1", "title": "Heart", "questions": []})
    first.save_progress("L1", current_index=3, score=2)

    second = OfflineStore(path)
    assert second.get_lecture("L1")["title"] == "Heart"
    assert second.get_progress("L1")["currentIndex"] == 3
    assert json.loads(path.read_text())["nextSyncId"] == 1


def test_progress_is_one_per_lecture(store):
    store.save_progress("L1", current_index=1, score=1)
    store.save_progress("L1", current_index=4, score=3)
    assert store.get_progress("L1")["currentIndex"] == 4

    store.clear_progress("L1")
    assert store.get_progress("L1") is None


def test_stale_lecture_hidden_when_requested(store):
    lecture = store.save_lecture({"id": "L1", "title": "Heart", "questions": []})
    lecture["cachedAt"] = "2000-01-01T00:00:00+00:00"

    assert store.get_lecture("L1", allow_stale=False) is None
    assert store.get_lecture("L1")["id"] == "L1"


def test_enqueue_result_records_and_clears_progress(store):
    queue = SyncQueue(store)
    store.save_progress("L1", current_index=2, score=1)

    item = queue.enqueue_result("L1", [{"questionId": "q1", "selectedAnswerIndex": 1}], score=1, total=1,
                                result_id="r-1")

    assert item["action"] == "saveQuizResult"
    assert item["data"]["id"] == "r-1"
    assert store.get_progress("L1") is None
    assert store.results("L1")[0]["score"] == 1
    assert [pending["id"] for pending in queue.pending()] == [item["id"]]


def test_enqueue_unknown_action_is_rejected(store):
    with pytest.raises(ValueError):
        SyncQueue(store).enqueue("deleteEverything", {})


def test_drain_marks_only_acknowledged_items(store):
    queue = SyncQueue(store)
    ok_item = queue.enqueue_result("L1", [], score=0, total=1, result_id="good")
    bad_item = queue.enqueue_result("L2", [], score=0, total=1, result_id="bad")

    def handler(request):
        body = json.loads(request.content)
        if body["id"] == "good":
            return httpx.Response(201, json={"id": "good"})
        return httpx.Response(503, json={"kind": "TransactionError", "retryable": True})

    with make_http(handler) as http:
        outcomes = dict(queue.drain(http))

    assert isinstance(outcomes[ok_item["id"]], Ok)
    failure = outcomes[bad_item["id"]]
    assert isinstance(failure, Err)
    assert failure.status_code == 503
    assert failure.retryable is True
    assert [item["id"] for item in queue.pending()] == [bad_item["id"]]


def test_drain_keeps_items_on_network_error_and_invalidates_stats_on_success(store):
    stats = KeyedCache()
    stats.put("L1", {"attempts": 3})
    queue = SyncQueue(store, stats_cache=stats)
    queue.enqueue_result("L1", [], score=0, total=1, result_id="r-1")

    def offline(request):
        raise httpx.ConnectError("offline", request=request)

    with make_http(offline) as http:
        outcomes = queue.drain(http)
    assert not outcomes[0][1].ok
    assert len(queue.pending()) == 1
    assert "L1" in stats

    with make_http(lambda request: httpx.Response(200, json={"id": "r-1"})) as http:
        outcomes = queue.drain(http)
    assert queue.summary(outcomes) == {"synced": 1, "failed": 0, "pending": 0}
    assert "L1" not in stats


def test_client_error_is_not_retryable(store):
    queue = SyncQueue(store)
    queue.enqueue_result("L1", [], score=0, total=1)

    with make_http(lambda request: httpx.Response(422, json={"code": "InvalidAnswers"})) as http:
        (_, result), = queue.drain(http)

    assert result.retryable is False
    assert len(queue.pending()) == 1


def test_content_client_falls_back_to_offline_copy(store):
    lecture = {"id": "L1", "title": "Heart", "subjectId": "S1", "questions": []}

    with make_http(lambda request: httpx.Response(200, json=lecture)) as http:
        result = ContentClient(http, store).get_lecture("L1")
    assert result.ok and not result.cached

    with make_http(lambda request: httpx.Response(503)) as http:
        result = ContentClient(http, store).get_lecture("L1")
    assert result.ok
    assert result.cached
    assert result.value["title"] == "Heart"


def test_content_client_reports_unavailable_content(store):
    with make_http(lambda request: httpx.Response(404, json={"kind": "NotFoundError"})) as http:
        result = ContentClient(http, store).get_lecture("ghost")
    assert not result.ok
    assert result.status_code == 404


def test_content_client_serves_from_cache(store):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"id": "L1", "title": "Heart", "questions": []})

    with make_http(handler) as http:
        client = ContentClient(http, store)
        client.get_lecture("L1")
        cached = client.get_lecture("L1")
        client.invalidate_lecture("L1")
        client.get_lecture("L1")

    assert cached.cached is True
    assert calls == ["/api/lectures/L1", "/api/lectures/L1"]
