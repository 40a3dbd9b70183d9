import unittest
from datetime import datetime, timezone

from gallery.catalog import Catalog, ImageRecord
from gallery.errors import StorageUnavailableError
from gallery.metadata_store import InMemoryMetadataStore
from gallery.reconciler import Reconciler, record_from_object
from gallery.storage import InMemoryMediaStorage


def _at(minute: int) -> datetime:
    return datetime(2024, 5, 1, 10, minute, tzinfo=timezone.utc)


def _saved(item_id: str, category, url: str = "", caption: str = "") -> ImageRecord:
    return ImageRecord(
        id=item_id,
        url=url or f"https://cdn.test/{item_id}.jpg",
        storage_id=item_id,
        category=category,
        caption=caption,
        uploaded_at="2024-04-01T00:00:00Z",
    )


class ReconcileTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryMediaStorage()
        self.storage.add_object("josh-farewell/josh/a", created_at=_at(1), width=800, height=600)
        self.storage.add_object("josh-farewell/josh/b", created_at=_at(2))
        self.storage.add_object(
            "josh-farewell/family/c", created_at=_at(3), format="mp4", resource_type="video"
        )
        self.store = InMemoryMetadataStore()
        self.reconciler = Reconciler(self.storage, self.store)

    def assertConsistent(self, catalog: Catalog):
        self.assertEqual(catalog.mismatches(), [])
        ids = [record.id for _, record in catalog.records()]
        self.assertEqual(len(ids), len(set(ids)))

    def test_builds_buckets_from_storage_listing(self):
        catalog = self.reconciler.reconcile()

        self.assertEqual(catalog.counts(), {"josh": 2, "family": 1, "friends": 0})
        first = catalog.bucket("josh")[0]
        self.assertEqual(first.id, "josh-farewell_josh_a_2024-05-01T10:01:00Z")
        self.assertEqual(first.category, "josh")
        self.assertEqual(first.caption, "")
        self.assertEqual((first.width, first.height), (800, 600))
        self.assertEqual(first.uploaded_at, "2024-05-01T10:01:00Z")
        self.assertEqual(catalog.bucket("family")[0].resource_type, "video")
        self.assertConsistent(catalog)
        self.assertEqual(
            sorted(self.storage.list_calls),
            ["josh-farewell/family/", "josh-farewell/friends/", "josh-farewell/josh/"],
        )

    def test_result_is_persisted(self):
        catalog = self.reconciler.reconcile()
        self.assertEqual(self.store.load(), catalog)

    def test_reconcile_is_idempotent(self):
        first = self.reconciler.reconcile()
        second = self.reconciler.reconcile()
        self.assertEqual(first, second)

    def test_storage_listing_replaces_saved_bucket(self):
        self.store.save(Catalog({"josh": [_saved("old", "josh", caption="kept?")]}))
        catalog = self.reconciler.reconcile()
        self.assertNotIn("old", catalog.ids())

    def test_empty_listing_falls_back_to_saved_bucket_restamped(self):
        self.store.save(Catalog({"friends": [_saved("f1", "family"), _saved("f2", None)]}))

        catalog = self.reconciler.reconcile()

        self.assertEqual([r.id for r in catalog.bucket("friends")], ["f1", "f2"])
        self.assertEqual({r.category for r in catalog.bucket("friends")}, {"friends"})
        self.assertConsistent(catalog)

    def test_unavailable_storage_keeps_saved_catalog(self):
        saved = Catalog(
            {
                "josh": [_saved("j1", "josh", caption="Smiling")],
                "family": [_saved("fa1", "friends")],
            }
        )
        self.store.save(saved)
        self.storage.unavailable = True

        catalog = self.reconciler.reconcile()

        self.assertEqual(catalog.bucket("josh")[0].caption, "Smiling")
        self.assertEqual(catalog.bucket("family")[0].category, "family")
        self.assertEqual(catalog.bucket("friends"), [])
        self.assertConsistent(catalog)

    def test_unavailable_storage_without_saved_catalog_gives_empty(self):
        self.storage.unavailable = True
        catalog = self.reconciler.reconcile()
        self.assertEqual(catalog.total_count(), 0)
        self.assertEqual(self.store.load(), catalog)

    def test_duplicate_ids_keep_first_occurrence(self):
        self.storage.unavailable = True
        self.store.save(
            Catalog({"family": [_saved("dup", "family")], "friends": [_saved("dup", "friends")]})
        )
        catalog = self.reconciler.reconcile()
        self.assertEqual(catalog.find("dup"), ("family", 0))
        self.assertEqual(catalog.bucket("friends"), [])

    def test_listing_is_bounded(self):
        reconciler = Reconciler(self.storage, self.store, max_results=1)
        catalog = reconciler.reconcile()
        self.assertEqual(len(catalog.bucket("josh")), 1)

    def test_needs_reconcile(self):
        self.assertTrue(Reconciler.needs_reconcile(None))
        self.assertTrue(Reconciler.needs_reconcile(Catalog.empty()))
        self.assertFalse(Reconciler.needs_reconcile(Catalog({"josh": [_saved("1", "josh")]})))

    def test_custom_labels_and_root(self):
        storage = InMemoryMediaStorage()
        storage.add_object("memorial/primary-subject/x", created_at=_at(5))
        reconciler = Reconciler(
            storage,
            InMemoryMetadataStore(("primary-subject", "family", "friends")),
            labels=("primary-subject", "family", "friends"),
            root_folder="memorial/",
        )
        catalog = reconciler.reconcile()
        self.assertEqual(catalog.bucket("primary-subject")[0].category, "primary-subject")


class RecordFromObjectTests(unittest.TestCase):
    def test_naive_timestamp_treated_as_utc(self):
        storage = InMemoryMediaStorage()
        stored = storage.add_object("root/friends/z", created_at=datetime(2023, 1, 2, 3, 4, 5))
        record = record_from_object(stored, "friends")
        self.assertEqual(record.id, "root_friends_z_2023-01-02T03:04:05Z")
        self.assertEqual(record.url, "https://example.test/media/root/friends/z")


class RepairCategoriesTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryMetadataStore()
        self.reconciler = Reconciler(InMemoryMediaStorage(), self.store)

    def test_restamps_mismatched_records_and_keeps_buckets(self):
        self.store.save(
            Catalog(
                {
                    "josh": [
                        _saved("1", "josh"),
                        _saved("2", "friends"),
                        _saved("3", None, url="https://cdn.test/josh-farewell/josh/3.jpg"),
                    ],
                    "family": [_saved("4", "bogus", url="https://cdn.test/josh-farewell/friends/4.jpg")],
                }
            )
        )

        report = self.reconciler.repair()

        self.assertEqual(report.fixed, 3)
        self.assertEqual(report.counts, {"josh": 3, "family": 1, "friends": 0})
        self.assertEqual(report.total, 4)
        self.assertIn(("2", "friends", "josh"), report.corrections)
        repaired = self.store.load()
        self.assertEqual(repaired.mismatches(), [])
        self.assertEqual([r.id for r in repaired.bucket("josh")], ["1", "2", "3"])

    def test_consistent_catalog_reports_no_fixes(self):
        self.store.save(Catalog({"friends": [_saved("1", "friends")]}))
        report = self.reconciler.repair()
        self.assertEqual(report.fixed, 0)
        self.assertEqual(report.corrections, [])

    def test_repair_needs_no_storage(self):
        reconciler = Reconciler(None, self.store)
        self.store.save(Catalog({"family": [_saved("1", "josh")]}))

        report = reconciler.repair()

        self.assertEqual(report.fixed, 1)
        self.assertEqual(self.store.load().bucket("family")[0].category, "family")

    def test_sync_without_storage_raises(self):
        self.store.save(Catalog({"family": [_saved("1", "family")]}))
        with self.assertRaises(StorageUnavailableError):
            Reconciler(None, self.store).reconcile()
        self.assertEqual(self.store.saves, 1)


if __name__ == "__main__":
    unittest.main()
