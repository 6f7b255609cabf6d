"""
Tests for the QueryService projections.
"""

import json
from datetime import datetime, timedelta, timezone

from core.config import IPPrivacy
from core.data_store import DataStore
from core.models import EstimateRegistration, StoreState, View, ViewMetadata
from pipeline.queries import MAX_LISTED_ESTIMATES, MAX_STATS_VIEWS, QueryService, redact_ip
from pipeline.recorder import EventRecorder


class TestRedactIP:

    def test_truncates_ipv4(self):
        assert redact_ip("203.0.113.42") == "203.0.113.xxx"

    def test_truncates_ipv6(self):
        assert redact_ip("2001:db8::1") == "2001:db8::xxxx"

    def test_hash_is_salted_and_stable(self):
        first = redact_ip("203.0.113.42", IPPrivacy.HASH, salt="s1")

        assert first == redact_ip("203.0.113.42", IPPrivacy.HASH, salt="s1")
        assert first != redact_ip("203.0.113.42", IPPrivacy.HASH, salt="s2")
        assert "203.0.113" not in first
        assert len(first) == 16

    def test_unparseable_address_fully_hidden(self):
        assert redact_ip("testclient") == "xxx"


class TestViewStats:

    def test_three_views_same_ip(self, recorder, queries, clock, tracking_id):
        """Test the stats after three views from the same address."""
        for _ in range(3):
            recorder.record_view(tracking_id, ViewMetadata(ip_address="203.0.113.42", user_agent="Mozilla/5.0"))

        stats = queries.get_view_stats(tracking_id)

        assert stats.view_count == 3
        assert stats.last_viewed_at == clock.calls[2]
        assert [v["timestamp"] for v in stats.views] == [clock.calls[2], clock.calls[1], clock.calls[0]]
        assert all(v["ipAddress"] == "203.0.113.xxx" for v in stats.views)
        assert all(v["userAgent"] == "Mozilla/5.0" for v in stats.views)

    def test_unknown_id_has_zero_stats(self, queries):
        stats = queries.get_view_stats("nothing-here")

        assert stats.view_count == 0
        assert stats.last_viewed_at is None
        assert stats.views == []

    def test_only_fifty_most_recent_returned(self, recorder, queries, clock, tracking_id):
        for _ in range(MAX_STATS_VIEWS + 10):
            recorder.record_view(tracking_id)

        stats = queries.get_view_stats(tracking_id)

        assert stats.view_count == MAX_STATS_VIEWS + 10
        assert len(stats.views) == MAX_STATS_VIEWS
        assert stats.views[0]["timestamp"] == clock.calls[-1]

    def test_sorted_by_viewed_at_not_insertion(self, data_store, queries, tracking_id):
        base = datetime(2025, 3, 1, tzinfo=timezone.utc)

        def _add(state: StoreState) -> None:
            state.views.append(View(id=1, tracking_id=tracking_id, viewed_at=base + timedelta(hours=2)))
            state.views.append(View(id=2, tracking_id=tracking_id, viewed_at=base))

        data_store.mutate(_add)

        stats = queries.get_view_stats(tracking_id)
        assert stats.last_viewed_at == base + timedelta(hours=2)

    def test_hash_mode_uses_ip_hash_field(self, recorder, data_store, tracking_id):
        recorder.record_view(tracking_id, ViewMetadata(ip_address="203.0.113.42"))
        queries = QueryService(data_store, ip_privacy=IPPrivacy.HASH, ip_salt="pepper")

        entry = queries.get_view_stats(tracking_id).views[0]

        assert "ipAddress" not in entry
        assert entry["ip_hash"] == redact_ip("203.0.113.42", IPPrivacy.HASH, "pepper")

    def test_missing_ip_stays_null(self, recorder, queries, tracking_id):
        recorder.record_view(tracking_id)

        assert queries.get_view_stats(tracking_id).views[0]["ipAddress"] is None

    def test_serializes_with_camel_case_keys(self, recorder, queries, tracking_id):
        recorder.record_view(tracking_id)

        payload = queries.get_view_stats(tracking_id).model_dump(by_alias=True)

        assert set(payload) == {"trackingId", "viewCount", "lastViewedAt", "views"}


class TestListEstimates:

    def test_newest_first(self, recorder, queries):
        """Test that estimates created at T1 < T2 list as [T2, T1]."""
        recorder.register_estimate("FIRST")
        recorder.register_estimate("SECOND")

        listing = queries.list_estimates()

        assert [e.tracking_id for e in listing.estimates] == ["SECOND", "FIRST"]

    def test_view_aggregates(self, recorder, queries, clock):
        recorder.register_estimate("A", EstimateRegistration(title="Deck", customer_name="Jordan"))
        recorder.register_estimate("B")
        recorder.record_view("A")
        recorder.record_view("A")

        by_id = {e.tracking_id: e for e in queries.list_estimates().estimates}

        assert by_id["A"].view_count == 2
        assert by_id["A"].last_viewed_at == clock.calls[-1]
        assert by_id["A"].title == "Deck"
        assert by_id["A"].customer_name == "Jordan"
        assert by_id["B"].view_count == 0
        assert by_id["B"].last_viewed_at is None

    def test_capped_at_one_hundred(self, recorder, queries):
        for i in range(MAX_LISTED_ESTIMATES + 20):
            recorder.register_estimate(f"T{i:03d}")

        estimates = queries.list_estimates().estimates

        assert len(estimates) == MAX_LISTED_ESTIMATES
        assert estimates[0].tracking_id == f"T{MAX_LISTED_ESTIMATES + 19:03d}"
        assert estimates[-1].tracking_id == "T020"

    def test_naive_persisted_timestamps_sort_with_new_ones(self, data_file, clock):
        """Test that an old file without offsets still lists beside new stubs."""
        data_file.write_text(json.dumps({
            "estimates": {"OLD": {"tracking_id": "OLD", "created_at": "2025-01-01T08:00:00"}},
            "views": [{"id": 1, "tracking_id": "OLD", "viewed_at": "2025-01-02T08:00:00"}],
        }))
        store = DataStore(data_file)
        store.load()
        EventRecorder(store, clock=clock).record_view("NEW")

        estimates = QueryService(store).list_estimates().estimates

        assert [e.tracking_id for e in estimates] == ["NEW", "OLD"]
        assert estimates[1].last_viewed_at == datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)

    def test_queries_do_not_mutate(self, recorder, queries, data_store, tracking_id):
        recorder.record_view(tracking_id)
        before = data_store.snapshot()

        queries.get_view_stats(tracking_id)
        queries.get_view_stats("unknown")
        queries.list_estimates()
        queries.list_notifications()

        assert data_store.snapshot() == before
        assert data_store.get_estimate("unknown") is None


class TestNotificationFeed:

    def test_unread_count(self, dispatcher, queries, data_store):
        for tracking_id in ["A", "B", "C"]:
            dispatcher.dispatch(tracking_id)
        first = data_store.get_notifications()[0]
        data_store.mark_notification_read(first.id)

        feed = queries.list_notifications()

        assert len(feed.notifications) == 3
        assert feed.unread_count == 2
