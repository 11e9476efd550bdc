from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from canvasdoc_core.compression import CompressionTier
from canvasdoc_core.config import StorageSettings
from canvasdoc_core.diagnostics import DiagnosticsCollector
from canvasdoc_core.document import CanvasSize, Document, DocumentMetadata
from canvasdoc_core.errors import StorageMissingError
from canvasdoc_core.records import CircleRecord, ImageRecord, LineRecord, RectRecord, TextRecord
from canvasdoc_core.storage import (
    ArtifactAck,
    ChunkedDocumentStorage,
    DirectoryArtifactStore,
    InMemoryArtifactStore,
    SQLiteArtifactStore,
    artifact_names,
    kind_artifact,
)


def _mixed_document() -> Document:
    return Document(
        id="mixed",
        editor_kind="poster",
        canvas_size=CanvasSize(800, 600),
        background_color="#101010",
        template_key="spring-sale",
        objects=(
            RectRecord(id="bg", width=800.0, height=600.0, is_background_layer=True),
            TextRecord(id="title", content="Spring Sale", font_size_px=64.0),
            ImageRecord(id="photo", source_uri="https://cdn.example.com/p.png", width=200.0, height=200.0),
            LineRecord(id="rule", x2=800.0, stroke_color="#ffffff", stroke_width=2.0),
            CircleRecord(id="dot", radius=12.0),
        ),
        metadata=DocumentMetadata(created_at="2026-02-01T00:00:00+00:00", updated_at="2026-02-02T00:00:00+00:00"),
    )


def _large_document(count: int) -> Document:
    return Document(
        id="large",
        editor_kind="poster",
        canvas_size=CanvasSize(1080, 1080),
        objects=tuple(RectRecord(id=f"r{i}", x=float(i), width=10.123456, height=10.123456) for i in range(count)),
    )


class _FailingObjectsStore(InMemoryArtifactStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_objects = False

    def save(self, name: str, payload: object) -> ArtifactAck:
        if self.fail_objects and name.endswith("-objects.json"):
            raise OSError(f"disk full writing {name}")
        return super().save(name, payload)


class ChunkedStorageTests(unittest.TestCase):
    def test_save_and_load_round_trip(self) -> None:
        storage = ChunkedDocumentStorage(InMemoryArtifactStore())
        document = _mixed_document()
        for tier in (CompressionTier.FULL, CompressionTier.MINIMAL):
            with self.subTest(tier=tier):
                receipt = storage.save(document, "mixed", tier=tier)
                self.assertEqual(storage.load("mixed"), document)
                self.assertEqual(receipt.tier, tier)
                self.assertEqual(receipt.total_bytes, sum(ack.size_bytes for ack in receipt.artifacts))

    def test_per_kind_artifacts_written_when_present(self) -> None:
        store = InMemoryArtifactStore()
        storage = ChunkedDocumentStorage(store)
        receipt = storage.save(_mixed_document(), "mixed")
        self.assertEqual(
            receipt.artifact_names,
            (
                "mixed-metadata.json",
                "mixed-objects.json",
                "mixed-text.json",
                "mixed-images.json",
                "mixed-shapes.json",
                "mixed-lines.json",
            ),
        )
        shapes = storage.load_kind("mixed", "shapes")
        self.assertEqual([record.id for record in shapes], ["bg", "dot"])
        self.assertEqual(store.load("mixed-metadata.json")["objectCount"], 5)

    def test_missing_kind_group_is_not_written(self) -> None:
        storage = ChunkedDocumentStorage(InMemoryArtifactStore())
        document = Document(id="d", editor_kind="card", canvas_size=CanvasSize(10, 10), objects=(RectRecord(id="r"),))
        receipt = storage.save(document, "d")
        self.assertNotIn(kind_artifact("d", "text"), receipt.artifact_names)
        self.assertIsNone(storage.load_kind("d", "text"))

    def test_large_objects_are_chunked(self) -> None:
        store = InMemoryArtifactStore()
        storage = ChunkedDocumentStorage(store)
        document = _large_document(3500)
        receipt = storage.save(document, "big")
        metadata = store.load("big-metadata.json")
        self.assertEqual(metadata["objectChunks"], 140)
        self.assertIn("big-objects-chunk-1.json", receipt.artifact_names)
        self.assertIn("big-objects-chunk-140.json", receipt.artifact_names)
        self.assertNotIn("big-objects.json", receipt.artifact_names)
        self.assertEqual(len(store.load("big-objects-chunk-140.json")), 25)
        self.assertIsNone(storage.load_kind("big", "shapes"))
        self.assertEqual(storage.load("big"), document)

    def test_custom_chunk_settings(self) -> None:
        store = InMemoryArtifactStore()
        settings = StorageSettings(objects_chunk_threshold_bytes=100, objects_chunk_size=4)
        storage = ChunkedDocumentStorage(store, settings)
        storage.save(_large_document(10), "small")
        self.assertEqual(store.load("small-metadata.json")["objectChunks"], 3)
        self.assertEqual(len(store.load("small-objects-chunk-3.json")), 2)
        self.assertEqual(len(storage.load("small").objects), 10)

    def test_missing_required_artifact_raises(self) -> None:
        store = InMemoryArtifactStore()
        storage = ChunkedDocumentStorage(store)
        with self.assertRaises(StorageMissingError) as ctx:
            storage.load("nothing")
        self.assertEqual(ctx.exception.artifact_name, "nothing-metadata.json")

        storage.save(_mixed_document(), "mixed")
        store.delete("mixed-objects.json")
        with self.assertRaises(StorageMissingError) as ctx:
            storage.load("mixed")
        self.assertEqual(ctx.exception.artifact_name, "mixed-objects.json")

    def test_resave_drops_stale_kind_groups(self) -> None:
        storage = ChunkedDocumentStorage(InMemoryArtifactStore())
        first = Document(id="v1", editor_kind="card", canvas_size=CanvasSize(10, 10), objects=(TextRecord(id="old-text"),))
        second = Document(id="v2", editor_kind="card", canvas_size=CanvasSize(10, 10), objects=(RectRecord(id="r"),))
        storage.save(first, "doc")
        self.assertEqual([record.id for record in storage.load_kind("doc", "text")], ["old-text"])
        storage.save(second, "doc")
        self.assertEqual([record.id for record in storage.load("doc").objects], ["r"])
        self.assertIsNone(storage.load_kind("doc", "text"))
        self.assertEqual([record.id for record in storage.load_kind("doc", "shapes")], ["r"])

    def test_failed_save_keeps_previous_snapshot(self) -> None:
        store = _FailingObjectsStore()
        storage = ChunkedDocumentStorage(store)
        first = Document(id="v1", editor_kind="card", canvas_size=CanvasSize(10, 10), objects=(RectRecord(id="v1-rect"),))
        second = Document(id="v2", editor_kind="card", canvas_size=CanvasSize(10, 10), objects=(RectRecord(id="v2-rect"),))
        storage.save(first, "doc")
        store.fail_objects = True
        with self.assertRaises(OSError):
            storage.save(second, "doc")
        loaded = storage.load("doc")
        self.assertEqual(loaded.id, "v1")
        self.assertEqual([record.id for record in loaded.objects], ["v1-rect"])

    def test_ultra_minimal_tier_is_rejected(self) -> None:
        storage = ChunkedDocumentStorage(InMemoryArtifactStore())
        with self.assertRaises(ValueError):
            storage.save(_mixed_document(), "mixed", tier=CompressionTier.ULTRA_MINIMAL)

    def test_non_object_entries_are_dropped_on_load(self) -> None:
        store = InMemoryArtifactStore()
        storage = ChunkedDocumentStorage(store)
        storage.save(_mixed_document(), "mixed")
        store.save("mixed-objects.json", store.load("mixed-objects.json") + [None, 7])
        store.save("mixed-text.json", [None] + store.load("mixed-text.json"))
        diagnostics = DiagnosticsCollector()
        document = storage.load("mixed", diagnostics=diagnostics)
        self.assertEqual(document.objects, _mixed_document().objects)
        texts = storage.load_kind("mixed", "text", diagnostics=diagnostics)
        self.assertEqual([record.id for record in texts], ["title"])
        self.assertEqual(len(diagnostics.of_kind("malformed_input")), 3)

    def test_artifact_names(self) -> None:
        self.assertEqual(
            artifact_names("x"),
            ("x-metadata.json", "x-objects.json", "x-text.json", "x-images.json", "x-shapes.json", "x-lines.json"),
        )
        self.assertEqual(artifact_names("x", object_chunks=2)[1:3], ("x-objects-chunk-1.json", "x-objects-chunk-2.json"))
        with self.assertRaises(ValueError):
            kind_artifact("x", "paths")


class BackingStoreTests(unittest.TestCase):
    def test_directory_store_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DirectoryArtifactStore(Path(tmp) / "artifacts")
            storage = ChunkedDocumentStorage(store)
            receipt = storage.save(_mixed_document(), "mixed")
            self.assertTrue(Path(receipt.artifacts[0].location).exists())
            self.assertEqual(storage.load("mixed"), _mixed_document())
            self.assertIsNone(store.load("absent.json"))
            self.assertEqual(store.path_for("a_b.json").name, "a_b.json")
            for unsafe in ("../evil/name.json", "a b.json", ".hidden", ""):
                with self.subTest(name=unsafe):
                    with self.assertRaises(ValueError):
                        store.path_for(unsafe)

    def test_sqlite_store_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = SQLiteArtifactStore(Path(tmp) / "artifacts.sqlite3")
            try:
                storage = ChunkedDocumentStorage(store)
                storage.save(_mixed_document(), "mixed", tier=CompressionTier.MINIMAL)
                self.assertIn("mixed-metadata.json", store.names())
                self.assertEqual(storage.load("mixed"), _mixed_document())
                store.save("mixed-metadata.json", {"overwritten": True})
                self.assertEqual(store.load("mixed-metadata.json"), {"overwritten": True})
            finally:
                store.close()
            with self.assertRaises(RuntimeError):
                store.load("mixed-objects.json")


if __name__ == "__main__":
    unittest.main()
