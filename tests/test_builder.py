from __future__ import annotations

from datetime import datetime, timezone
import unittest

from canvasdoc_core.builder import (
    build_canvas_settings,
    build_document,
    build_document_without_metadata,
    build_objects,
)
from canvasdoc_core.diagnostics import DiagnosticsCollector
from canvasdoc_core.document import CanvasSize
from canvasdoc_core.records import CircleRecord, RectRecord, TextRecord
from canvasdoc_core.scene import DictScene


def _fixed_clock(day: int):
    return lambda: datetime(2026, 3, day, 12, 0, tzinfo=timezone.utc)


class BuilderTests(unittest.TestCase):
    def _scene(self) -> DictScene:
        scene = DictScene()
        scene.add({"type": "rect", "id": "bg", "width": 100, "height": 100, "fill": "#eeeeee", "isBackground": True})
        scene.add({"type": "textbox", "id": "title", "left": 10, "top": 10, "text": "Hello"})
        scene.add({"type": "circle", "id": "dot", "radius": 5})
        return scene

    def test_build_document_preserves_scene_order(self) -> None:
        document = build_document(
            self._scene(),
            document_id="doc",
            editor_kind="poster",
            canvas_size="200x100",
            clock=_fixed_clock(1),
        )
        self.assertEqual([record.id for record in document.objects], ["bg", "title", "dot"])
        self.assertIsInstance(document.objects[0], RectRecord)
        self.assertIsInstance(document.objects[1], TextRecord)
        self.assertIsInstance(document.objects[2], CircleRecord)
        self.assertEqual(document.canvas_size, CanvasSize(200, 100))
        self.assertEqual(document.metadata.created_at, "2026-03-01T12:00:00+00:00")
        self.assertEqual(document.metadata.updated_at, "2026-03-01T12:00:00+00:00")

    def test_created_at_carries_over_from_previous_snapshot(self) -> None:
        first = build_document(
            self._scene(), document_id="doc", editor_kind="poster", canvas_size="200x100", clock=_fixed_clock(1)
        )
        second = build_document(
            self._scene(),
            document_id="doc",
            editor_kind="poster",
            canvas_size="200x100",
            previous=first,
            clock=_fixed_clock(5),
        )
        self.assertEqual(second.metadata.created_at, "2026-03-01T12:00:00+00:00")
        self.assertEqual(second.metadata.updated_at, "2026-03-05T12:00:00+00:00")

    def test_z_index_orders_objects_stably(self) -> None:
        scene = DictScene(
            objects=[
                {"type": "rect", "id": "a", "zIndex": 2},
                {"type": "rect", "id": "b", "zIndex": 1},
                {"type": "rect", "id": "c", "zIndex": 2},
                {"type": "rect", "id": "d", "zIndex": 0},
            ]
        )
        self.assertEqual([record.id for record in build_objects(scene)], ["d", "b", "a", "c"])

    def test_document_without_metadata(self) -> None:
        document = build_document_without_metadata(
            self._scene(), document_id="doc", editor_kind="poster", canvas_size=CanvasSize(200, 100)
        )
        self.assertIsNone(document.metadata)
        self.assertNotIn("metadata", document.to_dict(omit_defaults=True))

    def test_malformed_objects_are_reported_not_raised(self) -> None:
        diagnostics = DiagnosticsCollector()
        scene = DictScene(objects=[{"type": "rect", "id": "r", "left": "far"}])
        document = build_document(
            scene, document_id="doc", editor_kind="card", canvas_size="10x10", diagnostics=diagnostics
        )
        self.assertEqual(document.objects[0].x, 0.0)
        self.assertEqual(len(diagnostics), 1)

    def test_canvas_settings(self) -> None:
        settings = build_canvas_settings(editor_kind="story", canvas_size="1080x1920", background_color="#000000")
        self.assertEqual(
            settings,
            {
                "editorKind": "story",
                "canvasSize": {"width": 1080, "height": 1920},
                "backgroundColor": "#000000",
                "backgroundImageUri": None,
            },
        )

    def test_scene_from_editor_json_and_document(self) -> None:
        scene = DictScene.from_editor_json(
            {"background": "#123456", "objects": [{"type": "rect", "id": "r", "width": 4, "height": 4}]}
        )
        self.assertEqual(scene.background, "#123456")
        document = build_document(scene, document_id="d", editor_kind="card", canvas_size="10x10")
        rebuilt = build_document(
            DictScene.from_document(document), document_id="d", editor_kind="card", canvas_size="10x10"
        )
        self.assertEqual(rebuilt.objects, document.objects)
        with self.assertRaises(TypeError):
            DictScene.from_editor_json({"objects": "nope"})


if __name__ == "__main__":
    unittest.main()
