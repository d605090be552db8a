import unittest
import os
import sys
import threading
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from appointment_scheduler.booking.appointment_store import AppointmentStore
from appointment_scheduler.booking.database import MemoryStorage
from appointment_scheduler.booking.error_utils import ConflictError, NotFoundError, StorageError, ValidationError


class FailingStorage(MemoryStorage):
    """Memory storage whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def write_all(self, records):
        if self.fail:
            raise StorageError(path="nowhere")
        super().write_all(records)


class AppointmentStoreTest(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.store = AppointmentStore(self.storage)

    def book(self, **overrides):
        candidate = {"name": "Ada", "email": "Ada@X.com", "dateTime": "2024-01-08T09:00:00.000Z", "reason": ""}
        candidate.update(overrides)
        return self.store.create(candidate)

    def test_create_normalizes_input(self):
        appointment = self.book(name="  Ada Lovelace ", email=" Ada@X.com ", reason="  checkup  ",
                                dateTime="2024-01-08T10:00:00+01:00")
        record = appointment.to_dict()
        self.assertEqual(record["name"], "Ada Lovelace")
        self.assertEqual(record["email"], "ada@x.com")
        self.assertEqual(record["reason"], "checkup")
        self.assertEqual(record["dateTime"], "2024-01-08T09:00:00.000Z")
        self.assertTrue(record["createdAt"].endswith("Z"))

    def test_create_then_list_contains_exactly_one_match(self):
        appointment = self.book()
        matches = [a for a in self.store.list() if a.id == appointment.id]
        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0], appointment)

    def test_create_writes_through_to_storage(self):
        appointment = self.book()
        self.assertEqual(self.storage.read_all(), [appointment.to_dict()])

    def test_reason_defaults_to_empty(self):
        appointment = self.store.create({"name": "Ada", "email": "ada@x.com", "dateTime": "2024-01-08T09:00:00Z"})
        self.assertEqual(appointment.reason, "")

    def test_missing_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            self.store.create({"name": "  ", "dateTime": "2024-01-08T09:00:00Z"})
        self.assertEqual(ctx.exception.message, "Missing required fields")
        self.assertEqual(ctx.exception.details["missing"], ["name", "email"])
        self.assertEqual(self.store.list(), [])

    def test_invalid_date(self):
        with self.assertRaises(ValidationError) as ctx:
            self.book(dateTime="next tuesday")
        self.assertEqual(ctx.exception.message, "Invalid date format")

    def test_invalid_email(self):
        with self.assertRaises(ValidationError):
            self.book(email="not-an-email")

    def test_non_string_name(self):
        with self.assertRaises(ValidationError):
            self.book(name=42)

    def test_reason_too_long(self):
        with self.assertRaises(ValidationError):
            self.book(reason="x" * 1001)

    def test_conflict_within_tolerance(self):
        self.book()
        with self.assertRaises(ConflictError) as ctx:
            self.book(dateTime="2024-01-08T09:00:30.000Z")
        self.assertEqual(ctx.exception.requested_time, "2024-01-08T09:00:30.000Z")
        self.assertEqual(len(self.store.list()), 1)

    def test_outside_tolerance_succeeds(self):
        self.book()
        self.book(dateTime="2024-01-08T09:05:00.000Z")
        self.assertEqual(len(self.store.list()), 2)

    def test_ids_are_unique_and_increasing(self):
        first = self.book()
        second = self.book(dateTime="2024-01-08T09:30:00.000Z")
        third = self.book(dateTime="2024-01-08T10:00:00.000Z")
        self.assertLess(first.id, second.id)
        self.assertLess(second.id, third.id)

    def test_list_is_snapshot_in_insertion_order(self):
        later = self.book(dateTime="2024-01-09T09:00:00.000Z")
        earlier = self.book(dateTime="2024-01-08T09:00:00.000Z")
        snapshot = self.store.list()
        self.assertEqual([a.id for a in snapshot], [later.id, earlier.id])
        snapshot.clear()
        self.assertEqual(len(self.store.list()), 2)

    def test_list_twice_is_equal(self):
        self.book()
        self.assertEqual(self.store.list(), self.store.list())

    def test_delete(self):
        appointment = self.book()
        deleted = self.store.delete(appointment.id)
        self.assertEqual(deleted["id"], appointment.id)
        self.assertTrue(deleted["deletedAt"].endswith("Z"))
        self.assertNotIn(appointment.id, [a.id for a in self.store.list()])
        self.assertEqual(self.storage.read_all(), [])

    def test_delete_accepts_string_id(self):
        appointment = self.book()
        self.store.delete(str(appointment.id))
        self.assertEqual(self.store.list(), [])

    def test_delete_unknown_id_does_not_mutate(self):
        self.book()
        before = self.store.list()
        for unknown in (12345, "abc", None):
            with self.assertRaises(NotFoundError):
                self.store.delete(unknown)
        self.assertEqual(self.store.list(), before)

    def test_delete_twice(self):
        appointment = self.book()
        self.store.delete(appointment.id)
        with self.assertRaises(NotFoundError):
            self.store.delete(appointment.id)

    def test_get(self):
        appointment = self.book()
        self.assertEqual(self.store.get(appointment.id), appointment)
        with self.assertRaises(NotFoundError):
            self.store.get(1)

    def test_loads_existing_records(self):
        appointment = self.book()
        reloaded = AppointmentStore(self.storage)
        self.assertEqual(reloaded.list(), [appointment])
        newer = reloaded.create({"name": "Bob", "email": "bob@x.com", "dateTime": "2024-01-08T11:00:00Z"})
        self.assertGreater(newer.id, appointment.id)

    def test_failed_write_rolls_back_create(self):
        storage = FailingStorage()
        store = AppointmentStore(storage)
        storage.fail = True
        with self.assertRaises(StorageError):
            store.create({"name": "Ada", "email": "ada@x.com", "dateTime": "2024-01-08T09:00:00Z"})
        self.assertEqual(store.list(), [])

    def test_failed_write_rolls_back_delete(self):
        storage = FailingStorage()
        store = AppointmentStore(storage)
        appointment = store.create({"name": "Ada", "email": "ada@x.com", "dateTime": "2024-01-08T09:00:00Z"})
        storage.fail = True
        with self.assertRaises(StorageError):
            store.delete(appointment.id)
        self.assertEqual(store.list(), [appointment])

    def test_malformed_stored_record(self):
        with self.assertRaises(StorageError):
            AppointmentStore(MemoryStorage([{"id": 1, "name": "A"}]))

    def test_stored_record_with_bad_date(self):
        record = {"id": 1, "name": "Ada", "email": "ada@x.com", "dateTime": "garbage", "reason": "",
                  "createdAt": "2024-01-01T00:00:00.000Z"}
        with self.assertRaises(StorageError):
            AppointmentStore(MemoryStorage([record]))

    def test_stored_records_with_duplicate_id(self):
        record = {"id": 1, "name": "Ada", "email": "ada@x.com", "dateTime": "2024-01-08T09:00:00.000Z", "reason": "",
                  "createdAt": "2024-01-01T00:00:00.000Z"}
        other = dict(record, dateTime="2024-01-09T09:00:00.000Z")
        with self.assertRaises(StorageError):
            AppointmentStore(MemoryStorage([record, other]))


class ConcurrentAccessTest(unittest.TestCase):
    THREADS = 8

    def setUp(self):
        self.store = AppointmentStore(MemoryStorage())
        self.barrier = threading.Barrier(self.THREADS)
        self.results = []
        self.errors = []

    def run_threads(self, target):
        threads = [threading.Thread(target=target, args=(n,)) for n in range(self.THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def test_concurrent_create_same_slot(self):
        def create(n):
            self.barrier.wait()
            try:
                self.results.append(self.store.create(
                    {"name": f"Guest {n}", "email": f"guest{n}@x.com", "dateTime": "2024-01-08T09:00:00Z"}))
            except ConflictError as e:
                self.errors.append(e)

        self.run_threads(create)
        self.assertEqual(len(self.results), 1)
        self.assertEqual(len(self.errors), self.THREADS - 1)
        self.assertEqual(len(self.store.list()), 1)

    def test_concurrent_delete_same_id(self):
        appointment = self.store.create({"name": "Ada", "email": "ada@x.com", "dateTime": "2024-01-08T09:00:00Z"})

        def delete(n):
            self.barrier.wait()
            try:
                self.results.append(self.store.delete(appointment.id))
            except NotFoundError as e:
                self.errors.append(e)

        self.run_threads(delete)
        self.assertEqual(len(self.results), 1)
        self.assertEqual(len(self.errors), self.THREADS - 1)
        self.assertEqual(self.store.list(), [])


if __name__ == '__main__':
    unittest.main()
