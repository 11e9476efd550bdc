from __future__ import annotations

import json
import unittest

from canvasdoc_core.diagnostics import DiagnosticsCollector
from canvasdoc_core.document import CanvasSize, Document, DocumentMetadata
from canvasdoc_core.records import (
    BaseRecord,
    GroupRecord,
    LineRecord,
    PathCommand,
    PathRecord,
    PolygonRecord,
    RectRecord,
    Shadow,
    TextRecord,
    canonical_defaults,
    record_from_dict,
    record_to_dict,
)


class DrawableRecordTests(unittest.TestCase):
    def test_omitted_fields_take_canonical_defaults(self) -> None:
        record = record_from_dict({"id": "t1", "kind": "text"})
        self.assertIsInstance(record, TextRecord)
        self.assertEqual(record.scale_x, 1.0)
        self.assertEqual(record.scale_y, 1.0)
        self.assertEqual(record.rotation_degrees, 0.0)
        self.assertEqual(record.opacity, 1.0)
        self.assertEqual(record.fill_color, "#000000")
        self.assertEqual(record.stroke_color, "transparent")
        self.assertEqual(record.font_size_px, 48.0)
        self.assertEqual(record.font_family, "Arial")
        self.assertEqual(record.line_height_multiplier, 1.16)
        self.assertEqual(record.anchor_x, "left")
        self.assertEqual(record.anchor_y, "top")

    def test_omit_defaults_keeps_id_and_kind_only_for_default_record(self) -> None:
        record = RectRecord(id="r1")
        self.assertEqual(record_to_dict(record, omit_defaults=True), {"id": "r1", "kind": "rect"})

    def test_full_serialization_uses_wire_names(self) -> None:
        payload = record_to_dict(TextRecord(id="t1", content="hi", char_spacing=2.0))
        self.assertEqual(payload["content"], "hi")
        self.assertEqual(payload["charSpacing"], 2.0)
        self.assertIn("lineHeightMultiplier", payload)
        self.assertIn("isBackgroundLayer", payload)
        self.assertNotIn("char_spacing", payload)

    def test_explicit_zero_is_not_a_missing_value(self) -> None:
        record = record_from_dict({"id": "r", "kind": "rect", "opacity": 0, "scaleX": 0})
        self.assertEqual(record.opacity, 0.0)
        self.assertEqual(record.scale_x, 0.0)

    def test_malformed_fields_fall_back_and_are_reported(self) -> None:
        diagnostics = DiagnosticsCollector()
        record = record_from_dict(
            {"id": "r", "kind": "rect", "x": "abc", "strokeCap": "zigzag", "fillColor": {"type": "linear"}},
            diagnostics=diagnostics,
        )
        self.assertEqual(record.x, 0.0)
        self.assertEqual(record.stroke_cap, "butt")
        self.assertEqual(record.fill_color, "#000000")
        self.assertEqual(len(diagnostics.of_kind("malformed_input")), 3)
        self.assertTrue(all(item.object_id == "r" for item in diagnostics))

    def test_unknown_kind_round_trips_as_base_record(self) -> None:
        record = record_from_dict({"id": "s", "kind": "sticker", "x": 4})
        self.assertIsInstance(record, BaseRecord)
        self.assertEqual(record.kind, "sticker")
        self.assertEqual(record_to_dict(record, omit_defaults=True), {"id": "s", "kind": "sticker", "x": 4.0})

    def test_nested_values_round_trip(self) -> None:
        group = GroupRecord(
            id="g",
            shadow=Shadow(color="#333333", blur=3.0, offset_x=1.0, offset_y=2.0),
            children=(
                PolygonRecord(id="p", points=((0.0, 0.0), (5.0, 0.0), (5.0, 5.0))),
                PathRecord(
                    id="path",
                    commands=(
                        PathCommand("moveTo", (0.0, 0.0)),
                        PathCommand("cubicBezierTo", (1.0, 2.0, 3.0, 4.0, 5.0, 6.0)),
                        PathCommand("close"),
                    ),
                ),
                LineRecord(id="l", x2=10.0, dash_pattern=(4.0, 2.0)),
            ),
        )
        for omit in (False, True):
            payload = json.loads(json.dumps(record_to_dict(group, omit_defaults=omit)))
            self.assertEqual(record_from_dict(payload), group)

    def test_canonical_defaults_table(self) -> None:
        defaults = canonical_defaults("line")
        self.assertEqual(defaults["dashPattern"], None)
        self.assertEqual(defaults["x2"], 0.0)
        self.assertEqual(defaults["strokeJoin"], "miter")
        self.assertNotIn("id", defaults)

    def test_invalid_construction_raises(self) -> None:
        with self.assertRaises(ValueError):
            RectRecord(id="")
        with self.assertRaises(ValueError):
            RectRecord(id="r", opacity=1.5)
        with self.assertRaises(ValueError):
            PathCommand("lineTo", (1.0,))
        with self.assertRaises(ValueError):
            RectRecord(id="r", kind="circle")


class DocumentTests(unittest.TestCase):
    def _document(self) -> Document:
        return Document(
            id="doc-1",
            editor_kind="poster",
            canvas_size=CanvasSize(1080, 1350),
            background_color="#fafafa",
            objects=(RectRecord(id="r", width=10.0, height=5.0), TextRecord(id="t", content="Sale\nToday")),
            metadata=DocumentMetadata(created_at="2026-01-01T00:00:00+00:00", updated_at="2026-01-02T00:00:00+00:00"),
        )

    def test_wire_shape(self) -> None:
        payload = self._document().to_dict()
        self.assertEqual(payload["editorKind"], "poster")
        self.assertEqual(payload["canvasSize"], {"width": 1080, "height": 1350})
        self.assertEqual(payload["metadata"]["formatVersion"], "1.0.0")
        self.assertIsNone(payload["backgroundImageUri"])
        self.assertEqual([item["id"] for item in payload["objects"]], ["r", "t"])

    def test_round_trip_both_forms(self) -> None:
        document = self._document()
        for omit in (False, True):
            payload = json.loads(document.canonical_json(omit_defaults=omit))
            self.assertEqual(Document.from_dict(payload), document)

    def test_canonical_json_is_sorted_and_compact(self) -> None:
        text = self._document().canonical_json().decode("utf-8")
        self.assertNotIn(", ", text)
        self.assertLess(text.index('"backgroundColor"'), text.index('"canvasSize"'))

    def test_canvas_size_parse(self) -> None:
        self.assertEqual(CanvasSize.parse("1080x1350"), CanvasSize(1080, 1350))
        self.assertEqual(CanvasSize.parse({"width": 20, "height": 30}), CanvasSize(20, 30))
        self.assertEqual(CanvasSize.parse((5, 6)), CanvasSize(5, 6))
        self.assertEqual(str(CanvasSize(5, 6)), "5x6")
        with self.assertRaises(ValueError):
            CanvasSize.parse("wide")
        with self.assertRaises(ValueError):
            CanvasSize(0, 10)

    def test_iter_records_walks_groups_depth_first(self) -> None:
        document = Document(
            id="d",
            editor_kind="card",
            canvas_size=CanvasSize(10, 10),
            objects=(
                GroupRecord(id="g", children=(RectRecord(id="a"), GroupRecord(id="inner", children=(RectRecord(id="b"),)))),
                TextRecord(id="t"),
            ),
        )
        self.assertEqual([record.id for record in document.iter_records()], ["g", "a", "inner", "b", "t"])

    def test_non_object_entries_are_dropped_and_reported(self) -> None:
        payload = self._document().to_dict()
        payload["objects"].insert(1, None)
        payload["objects"].append("rect")
        diagnostics = DiagnosticsCollector()
        document = Document.from_dict(payload, diagnostics=diagnostics)
        self.assertEqual([record.id for record in document.objects], ["r", "t"])
        malformed = diagnostics.of_kind("malformed_input")
        self.assertEqual(len(malformed), 2)
        self.assertIn("objects[1]", malformed[0].message)
        self.assertIsNone(malformed[0].object_id)

    def test_kind_dispatch_is_case_sensitive(self) -> None:
        record = record_from_dict({"id": "b", "kind": "Text"})
        self.assertIsInstance(record, BaseRecord)
        self.assertEqual(record.kind, "Text")

    def test_metadata_free_document_round_trips(self) -> None:
        document = Document(id="d", editor_kind="card", canvas_size=CanvasSize(10, 10))
        payload = document.to_dict(omit_defaults=True)
        self.assertNotIn("metadata", payload)
        self.assertEqual(Document.from_dict(payload), document)


if __name__ == "__main__":
    unittest.main()
