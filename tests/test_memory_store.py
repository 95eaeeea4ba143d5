"""Tests for the in-process document store."""
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from mix_server.exception.ConcurrentUpdateError import ConcurrentUpdateError
from mix_server.exception.NotFoundError import NotFoundError
from mix_server.repository.base_repository import SERVER_TIMESTAMP, ASCENDING, DESCENDING, matches
from mix_server.repository.memory_store import InMemoryRepository
from mix_server.utils.time_utils import MonotonicClock


@pytest.fixture
def store():
    return InMemoryRepository('things')


class TestMatches:
    """Equality matching with array-contains semantics."""

    def test_scalar_equality(self):
        assert matches({'a': 1}, {'a': 1})
        assert not matches({'a': 1}, {'a': 2})

    def test_list_field_contains_value(self):
        doc = {'participants': ['a', 'b']}
        assert matches(doc, {'participants': 'a'})
        assert not matches(doc, {'participants': 'c'})

    def test_missing_field_does_not_match(self):
        assert not matches({}, {'a': 1})

    def test_no_conditions_matches_everything(self):
        assert matches({'a': 1}, None)


class TestCrud:

    def test_create_assigns_id_and_version(self, store):
        doc_id = store.create({'name': 'x'})
        doc = store.get(doc_id)
        assert doc['id'] == doc_id
        assert doc['name'] == 'x'
        assert doc['_v'] == 1

    def test_create_with_explicit_id(self, store):
        assert store.create({'id': 'fixed', 'name': 'x'}) == 'fixed'
        with pytest.raises(ValueError):
            store.create({'id': 'fixed'})

    def test_reads_are_copies(self, store):
        doc_id = store.create({'tags': ['a']})
        doc = store.get(doc_id)
        doc['tags'].append('b')
        assert store.get(doc_id)['tags'] == ['a']

    def test_get_missing_returns_none(self, store):
        assert store.get('nope') is None

    def test_server_timestamp_resolved(self, store):
        doc_id = store.create({'created_at': SERVER_TIMESTAMP, 'nested': {'at': SERVER_TIMESTAMP}})
        doc = store.get(doc_id)
        assert isinstance(doc['created_at'], datetime)
        assert doc['created_at'].tzinfo is not None
        assert isinstance(doc['nested']['at'], datetime)

    def test_update_bumps_version(self, store):
        doc_id = store.create({'n': 1})
        store.update(doc_id, {'n': 2})
        doc = store.get(doc_id)
        assert doc['n'] == 2
        assert doc['_v'] == 2

    def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update('nope', {'n': 1})

    def test_update_with_stale_version_raises(self, store):
        doc_id = store.create({'n': 1})
        store.update(doc_id, {'n': 2}, expected_version=1)
        with pytest.raises(ConcurrentUpdateError) as exc:
            store.update(doc_id, {'n': 3}, expected_version=1)
        assert exc.value.actual_version == 2
        assert store.get(doc_id)['n'] == 2

    def test_delete(self, store):
        doc_id = store.create({'n': 1})
        store.delete(doc_id)
        assert store.get(doc_id) is None
        assert len(store) == 0


class TestFilter:

    def test_order_and_limit(self, store):
        for n in (3, 1, 2):
            store.create({'kind': 'x', 'n': n})
        store.create({'kind': 'y', 'n': 0})
        asc = store.filter({'kind': 'x'}, order_by=('n', ASCENDING))
        assert [d['n'] for d in asc] == [1, 2, 3]
        desc = store.filter({'kind': 'x'}, order_by=('n', DESCENDING), limit=2)
        assert [d['n'] for d in desc] == [3, 2]

    def test_missing_order_field_sorts_first(self, store):
        store.create({'n': 2})
        store.create({})
        store.create({})
        ordered = store.filter(order_by=('n', ASCENDING))
        assert [d.get('n') for d in ordered] == [None, None, 2]


class TestArrayOps:

    def test_union_is_idempotent(self, store):
        doc_id = store.create({'reactions': {}})
        assert store.array_union(doc_id, 'reactions.fire', 'u1')
        assert store.array_union(doc_id, 'reactions.fire', 'u1')
        assert store.get(doc_id)['reactions'] == {'fire': ['u1']}

    def test_remove_last_value_drops_key(self, store):
        doc_id = store.create({'reactions': {'fire': ['u1']}})
        assert store.array_remove(doc_id, 'reactions.fire', 'u1')
        assert store.get(doc_id)['reactions'] == {}

    def test_remove_absent_value_is_noop(self, store):
        doc_id = store.create({'reactions': {}})
        assert store.array_remove(doc_id, 'reactions.fire', 'u1')
        doc = store.get(doc_id)
        assert 'fire' not in doc['reactions']
        assert doc['_v'] == 1

    def test_missing_document_returns_false(self, store):
        assert store.array_union('nope', 'reactions.fire', 'u1') is False
        assert store.array_remove('nope', 'reactions.fire', 'u1') is False


class TestSubscribe:

    def test_initial_snapshot_and_changes(self, store):
        snapshots = []
        unsubscribe = store.subscribe({'kind': 'x'}, snapshots.append)
        assert snapshots == [[]]

        doc_id = store.create({'kind': 'x'})
        assert len(snapshots) == 2
        assert snapshots[-1][0]['id'] == doc_id

        unsubscribe()
        store.create({'kind': 'x'})
        assert len(snapshots) == 2

    def test_unrelated_change_is_not_delivered(self, store):
        snapshots = []
        store.subscribe({'kind': 'x'}, snapshots.append)
        store.create({'kind': 'y'})
        assert snapshots == [[]]

    def test_unsubscribe_is_idempotent(self, store):
        unsubscribe = store.subscribe(None, lambda docs: None)
        assert store.listener_count == 1
        unsubscribe()
        unsubscribe()
        assert store.listener_count == 0

    def test_failing_callback_does_not_break_writes(self, store):
        def boom(docs):
            if docs:
                raise RuntimeError('listener bug')

        store.subscribe(None, boom)
        doc_id = store.create({'n': 1})
        assert store.get(doc_id)['n'] == 1

    def test_concurrent_writers_deliver_latest_snapshot_last(self, store, monkeypatch):
        delivered = []
        store.subscribe(None, lambda docs: delivered.append(sorted(d['name'] for d in docs)))

        reading = threading.Event()
        release = threading.Event()
        real_filter = store.filter

        def stalled_filter(*args, **kwargs):
            docs = real_filter(*args, **kwargs)
            if threading.current_thread().name == 'writer-one':
                reading.set()
                release.wait(5)
            return docs

        monkeypatch.setattr(store, 'filter', stalled_filter)
        first = threading.Thread(target=store.create, args=({'name': 'one'},), name='writer-one')
        second = threading.Thread(target=store.create, args=({'name': 'two'},), name='writer-two')

        first.start()
        assert reading.wait(5)
        second.start()
        deadline = time.monotonic() + 5
        while len(store) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        first.join(5)
        second.join(5)

        assert len(store) == 2
        assert delivered[-1] == ['one', 'two']


class TestMonotonicClock:

    def test_strictly_increasing_when_wall_clock_stalls(self):
        frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)
        clock = MonotonicClock(source=lambda: frozen)
        first, second, third = clock.now(), clock.now(), clock.now()
        assert first < second < third
        assert second - first == timedelta(milliseconds=1)

    def test_survives_backwards_step(self):
        times = iter([
            datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc),
        ])
        clock = MonotonicClock(source=lambda: next(times))
        assert clock.now() < clock.now()

    def test_truncates_to_milliseconds(self):
        clock = MonotonicClock(source=lambda: datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc))
        assert clock.now().microsecond == 123000
