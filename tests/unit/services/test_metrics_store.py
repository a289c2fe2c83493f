from datetime import UTC, datetime, timedelta

import pytest

from paywallflower.models.metrics import MethodRanking
from paywallflower.services.metrics_store import MetricsStore, compare_rankings, rank_key

NEWS = "https://news.example/story"


def _ranking(method: str, recent: float, overall: float, avg_ms: float) -> MethodRanking:
    return MethodRanking(
        method=method,
        success_rate=overall,
        recent_success_rate=recent,
        average_response_time=avg_ms,
        total_attempts=10,
        consecutive_failures=0,
    )


@pytest.fixture
def store() -> MetricsStore:
    return MetricsStore()


class TestRecordAttempt:
    def test_fail_then_success(self, store):
        store.record_attempt(NEWS, "m1", False, 100)
        store.record_attempt(NEWS, "m1", True, 300)

        agg = store.get_aggregate("news.example", "m1")
        assert agg.total_attempts == 2
        assert agg.successful_attempts == 1
        assert agg.failed_attempts == 1
        assert agg.success_rate == 50.0
        assert agg.average_response_time == 200.0
        assert agg.min_response_time == 100
        assert agg.max_response_time == 300
        assert agg.consecutive_failures == 0
        assert agg.last_success is not None
        assert agg.recent_success_rate == 50.0

    def test_updates_global_aggregate_across_domains(self, store):
        store.record_attempt(NEWS, "m1", True, 100)
        store.record_attempt("https://www.other.example/a", "m1", False, 100)

        assert store.get_global_aggregate("m1").total_attempts == 2
        assert store.get_global_success_rate("m1") == 50.0
        assert store.get_success_rate("other.example", "m1") == 0.0

    def test_invalid_url_goes_to_unknown_domain(self, store):
        record = store.record_attempt("not a url", "m1", False, 0)

        assert record.domain == "unknown"
        assert store.get_aggregate("unknown", "m1").total_attempts == 1

    def test_unknown_pair_rates_are_zero(self, store):
        assert store.get_success_rate("news.example", "missing") == 0.0
        assert store.get_global_success_rate("missing") == 0.0

    def test_recent_window_keeps_last_twenty(self, store):
        for _ in range(20):
            store.record_attempt(NEWS, "m1", False, 10)
        for _ in range(20):
            store.record_attempt(NEWS, "m1", True, 10)

        agg = store.get_aggregate("news.example", "m1")
        assert len(agg.recent_attempts) == 20
        assert agg.recent_success_rate == 100.0
        assert agg.success_rate == 50.0

    def test_recent_attempt_log_is_bounded(self):
        store = MetricsStore(max_recent_attempts=5)

        for i in range(8):
            store.record_attempt(f"https://news.example/{i}", "m1", True, 10)

        urls = [a.url for a in store.recent_attempts]
        assert urls == [f"https://news.example/{i}" for i in range(3, 8)]


class TestRanking:
    def test_recent_rate_gap_wins(self):
        a = _ranking("a", recent=90, overall=50, avg_ms=900)
        b = _ranking("b", recent=70, overall=95, avg_ms=100)

        assert compare_rankings(a, b) < 0

    def test_small_recent_gap_falls_through_to_overall(self):
        a = _ranking("a", recent=80, overall=60, avg_ms=900)
        b = _ranking("b", recent=85, overall=80, avg_ms=100)

        assert sorted([a, b], key=rank_key)[0].method == "b"

    def test_ties_broken_by_response_time(self):
        a = _ranking("a", recent=80, overall=80, avg_ms=400)
        b = _ranking("b", recent=78, overall=77, avg_ms=150)

        assert sorted([a, b], key=rank_key)[0].method == "b"

    def test_identical_rankings_compare_equal(self):
        a = _ranking("a", recent=80, overall=80, avg_ms=100)
        assert compare_rankings(a, a.model_copy(update={"method": "b"})) == 0

    def test_best_methods_requires_min_attempts(self, store):
        for _ in range(3):
            store.record_attempt(NEWS, "steady", True, 100)
        for _ in range(2):
            store.record_attempt(NEWS, "new", True, 50)

        assert store.get_best_methods_for_domain("news.example") == []
        best = store.get_best_methods_for_domain("news.example", min_attempts=3)
        assert [r.method for r in best] == ["steady"]

    def test_best_methods_ordered(self, store):
        for _ in range(5):
            store.record_attempt(NEWS, "reliable", True, 800)
            store.record_attempt(NEWS, "flaky", False, 100)

        best = store.get_best_methods_for_domain("news.example")

        assert [r.method for r in best] == ["reliable", "flaky"]
        assert best[0].recent_success_rate == 100.0


class TestBlacklistCandidates:
    def test_ten_failures_blacklists(self, store):
        for _ in range(10):
            store.record_attempt(NEWS, "dead", False, 50)

        assert store.get_methods_to_blacklist("news.example") == ["dead"]

    def test_one_success_in_ten_still_blacklists(self, store):
        store.record_attempt(NEWS, "flaky", True, 50)
        for _ in range(9):
            store.record_attempt(NEWS, "flaky", False, 50)

        assert store.get_methods_to_blacklist("news.example") == ["flaky"]

    def test_nine_failures_not_enough(self, store):
        for _ in range(9):
            store.record_attempt(NEWS, "dead", False, 50)

        assert store.get_methods_to_blacklist("news.example") == []

    def test_recent_success_spares_method(self, store):
        for _ in range(18):
            store.record_attempt(NEWS, "recovering", False, 50)
        for _ in range(2):
            store.record_attempt(NEWS, "recovering", True, 50)

        # 90% failure overall and in the window: still at the threshold
        assert store.get_methods_to_blacklist("news.example") == ["recovering"]

        store.record_attempt(NEWS, "recovering", True, 50)

        assert store.get_methods_to_blacklist("news.example") == []


class TestReporting:
    def test_domain_metrics(self, store):
        for _ in range(5):
            store.record_attempt(NEWS, "m1", True, 100)
        store.record_attempt(NEWS, "m2", False, 100)

        data = store.get_domain_metrics("news.example")

        assert data["total_attempts"] == 6
        assert data["total_successes"] == 5
        assert set(data["methods"]) == {"m1", "m2"}
        assert [r["method"] for r in data["best_methods"]] == ["m1"]

    def test_domain_metrics_unknown(self, store):
        assert store.get_domain_metrics("nowhere.example") is None

    def test_global_metrics(self, store):
        store.record_attempt(NEWS, "m1", True, 100)
        store.record_attempt("https://other.example/a", "m1", False, 100)

        data = store.get_global_metrics()

        assert data["total_attempts"] == 2
        assert data["overall_success_rate"] == 50.0
        assert data["total_domains"] == 2
        assert data["recent_attempts_count"] == 2

    def test_min_response_time_without_attempts_serializes_as_none(self, store):
        store.record_attempt(NEWS, "m1", True, 100)
        store.import_metrics({"global_metrics": {"m2": {}}})

        assert store.get_global_metrics()["methods"]["m2"]["min_response_time"] is None

    def test_trending_window(self, store):
        store.record_attempt(NEWS, "m1", True, 100)
        old = store.record_attempt(NEWS, "m1", False, 300)
        old.timestamp = datetime.now(UTC) - timedelta(hours=30)

        trending = store.get_trending_data(hours=24)

        assert trending["time_range"] == "24 hours"
        assert trending["total_attempts"] == 1
        assert trending["method_trends"]["m1"]["success_rate"] == 100.0
        assert trending["domain_trends"]["news.example"]["attempts"] == 1


class TestLifecycle:
    def test_clear_domain(self, store):
        store.record_attempt(NEWS, "m1", True, 100)
        store.record_attempt("https://other.example/a", "m1", True, 100)

        store.clear_domain_metrics("news.example")

        assert store.get_domain_metrics("news.example") is None
        assert store.get_domain_metrics("other.example") is not None
        assert store.get_global_aggregate("m1").total_attempts == 2

    def test_clear_all(self, store):
        store.record_attempt(NEWS, "m1", True, 100)

        store.clear_all_metrics()

        assert store.get_global_metrics()["total_attempts"] == 0
        assert store.recent_attempts == []

    def test_export_then_import_restores_state(self, store):
        for success in (True, False, True):
            store.record_attempt(NEWS, "m1", success, 120)

        restored = MetricsStore()
        restored.import_metrics(store.export_metrics())

        agg = restored.get_aggregate("news.example", "m1")
        assert agg.total_attempts == 3
        assert agg.recent_success_rate == pytest.approx(200 / 3)
        assert len(agg.recent_attempts) == 3
        assert restored.get_global_success_rate("m1") == pytest.approx(200 / 3)
        assert len(restored.recent_attempts) == 3
