import os
import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from servicebook.models import Client
from servicebook.services.entity_store import Storage


def _storage(tmp_path) -> Storage:
    return Storage(db_path=str(tmp_path / "data" / "services.sqlite3"))


def test_ids_start_at_one_and_increase(tmp_path):
    storage = _storage(tmp_path)
    assert [storage.ids.next_id() for _ in range(3)] == [1, 2, 3]
    assert storage.ids.current() == 4


def test_counter_and_records_survive_reopen(tmp_path):
    storage = _storage(tmp_path)
    first = storage.ids.next_id()
    storage.clients.insert(first, Client(id=first, name="Ann", contact_info="ann@x.com"))

    reopened = _storage(tmp_path)
    assert reopened.ids.next_id() == first + 1
    restored = reopened.clients.get(first)
    assert restored is not None
    assert restored.name == "Ann"


def test_insert_returns_previous_value(tmp_path):
    storage = _storage(tmp_path)
    assert storage.clients.insert(7, Client(id=7, name="Old", contact_info="o")) is None
    previous = storage.clients.insert(7, Client(id=7, name="New", contact_info="n"))
    assert previous is not None
    assert previous.name == "Old"
    assert storage.clients.get(7).name == "New"
    assert len(storage.clients) == 1


def test_partitions_are_independent(tmp_path):
    storage = _storage(tmp_path)
    storage.clients.insert(1, Client(id=1, name="Ann", contact_info="a"))
    assert storage.providers.get(1) is None
    assert storage.bookings.get(1) is None
    assert len(storage.providers) == 0


def test_iterate_is_key_ordered_and_restartable(tmp_path):
    storage = _storage(tmp_path)
    for entity_id in (5, 2, 9):
        storage.clients.insert(entity_id, Client(id=entity_id, name=f"c{entity_id}", contact_info="x"))

    assert [entity_id for entity_id, _ in storage.clients.iterate()] == [2, 5, 9]

    running = storage.clients.iterate()
    assert next(running)[0] == 2
    storage.clients.insert(1, Client(id=1, name="late", contact_info="x"))
    assert [entity_id for entity_id, _ in running] == [5, 9]

    assert [entity_id for entity_id, _ in storage.clients.iterate()] == [1, 2, 5, 9]


def test_iterate_snapshot_taken_at_call(tmp_path):
    storage = _storage(tmp_path)
    storage.clients.insert(1, Client(id=1, name="first", contact_info="x"))

    pending = storage.clients.iterate()
    storage.clients.insert(2, Client(id=2, name="second", contact_info="x"))

    assert [entity_id for entity_id, _ in pending] == [1]


def test_get_outside_integer_range_is_missing(tmp_path):
    storage = _storage(tmp_path)
    assert storage.bookings.get(2**64 - 1) is None
    assert storage.clients.get(-(2**63) - 1) is None


def test_failed_transaction_rolls_back_counter_and_writes(tmp_path):
    storage = _storage(tmp_path)
    with pytest.raises(RuntimeError):
        with storage.transaction():
            entity_id = storage.ids.next_id()
            storage.clients.insert(entity_id, Client(id=entity_id, name="Ghost", contact_info="x"))
            raise RuntimeError("abort")

    assert storage.clients.get(1) is None
    assert storage.ids.next_id() == 1


def test_concurrent_allocation_never_repeats(tmp_path):
    storage = _storage(tmp_path)
    with ThreadPoolExecutor(max_workers=8) as pool:
        issued = list(pool.map(lambda _: storage.ids.next_id(), range(200)))
    assert sorted(issued) == list(range(1, 201))
