from __future__ import annotations

import unittest

from canvasdoc_core.diagnostics import DiagnosticsCollector
from canvasdoc_core.extractor import extract_record, live_object_from_record, parse_editor_path
from canvasdoc_core.records import (
    BaseRecord,
    CircleRecord,
    EllipseRecord,
    GroupRecord,
    ImageRecord,
    LineRecord,
    PathCommand,
    PathRecord,
    PolygonRecord,
    RectRecord,
    Shadow,
    TextRecord,
    TriangleRecord,
)


def _sample_records() -> list:
    return [
        TextRecord(
            id="headline",
            x=12.5,
            y=40.0,
            width=300.0,
            height=80.0,
            fill_color="#112233",
            stroke_color="#ffffff",
            stroke_width=2.0,
            font_size_px=36.0,
            font_family="Helvetica",
            font_weight="bold",
            text_align="center",
            content="Big\nSale",
            char_spacing=1.5,
            line_height_multiplier=1.3,
            anchor_x="center",
            anchor_y="center",
        ),
        ImageRecord(id="photo", width=200.0, height=150.0, source_uri="https://cdn.example.com/a.png", cross_origin_policy="anonymous"),
        RectRecord(id="box", x=5.0, width=50.0, height=20.0, rx=4.0, ry=4.0, rotation_degrees=30.0, opacity=0.5),
        CircleRecord(id="dot", width=20.0, height=20.0, radius=10.0, scale_x=2.0, scale_y=0.5),
        EllipseRecord(id="oval", rx=8.0, ry=3.0, stroke_cap="round", stroke_join="bevel"),
        TriangleRecord(id="tri", width=30.0, height=20.0, is_background_layer=True),
        PolygonRecord(id="poly", points=((0.0, 0.0), (10.0, 0.0), (5.0, 8.0))),
        PathRecord(
            id="curve",
            commands=(
                PathCommand("moveTo", (0.0, 0.0)),
                PathCommand("lineTo", (10.0, 0.0)),
                PathCommand("quadraticBezierTo", (15.0, 5.0, 10.0, 10.0)),
                PathCommand("cubicBezierTo", (8.0, 12.0, 2.0, 12.0, 0.0, 10.0)),
                PathCommand("close"),
            ),
        ),
        LineRecord(id="rule", x1=0.0, y1=1.0, x2=100.0, y2=1.0, stroke_color="#000000", dash_pattern=(6.0, 3.0)),
        GroupRecord(
            id="badge",
            x=100.0,
            y=100.0,
            shadow=Shadow(color="rgba(0,0,0,0.3)", blur=4.0, offset_x=2.0, offset_y=2.0),
            children=(RectRecord(id="badge-bg", width=40.0, height=40.0), TextRecord(id="badge-text", content="%")),
        ),
        BaseRecord(id="sticker", kind="sticker", x=3.0),
    ]


class ExtractorTests(unittest.TestCase):
    def test_round_trip_through_live_objects(self) -> None:
        for record in _sample_records():
            with self.subTest(record=record.id):
                self.assertEqual(extract_record(live_object_from_record(record)), record)

    def test_editor_type_aliases(self) -> None:
        for editor_type in ("text", "i-text", "textbox"):
            record = extract_record({"type": editor_type, "id": "t", "text": "hello"})
            self.assertIsInstance(record, TextRecord)
            self.assertEqual(record.content, "hello")

    def test_editor_field_names_are_mapped(self) -> None:
        record = extract_record(
            {
                "type": "rect",
                "id": "r",
                "left": 10,
                "top": 20,
                "width": 30,
                "height": 40,
                "fill": "#ff0000",
                "angle": 45,
                "originX": "center",
                "strokeLineCap": "square",
            }
        )
        self.assertEqual((record.x, record.y, record.width, record.height), (10.0, 20.0, 30.0, 40.0))
        self.assertEqual(record.fill_color, "#ff0000")
        self.assertEqual(record.rotation_degrees, 45.0)
        self.assertEqual(record.anchor_x, "center")
        self.assertEqual(record.stroke_cap, "square")

    def test_explicit_zero_preserved(self) -> None:
        record = extract_record({"type": "rect", "id": "r", "opacity": 0, "scaleX": 0, "left": 0})
        self.assertEqual(record.opacity, 0.0)
        self.assertEqual(record.scale_x, 0.0)

    def test_malformed_values_default_with_diagnostics(self) -> None:
        diagnostics = DiagnosticsCollector()
        record = extract_record(
            {
                "type": "text",
                "id": "t",
                "fontSize": -4,
                "fill": {"type": "linear", "colorStops": []},
                "opacity": "loud",
                "textAlign": "justify",
            },
            diagnostics=diagnostics,
        )
        self.assertEqual(record.font_size_px, 48.0)
        self.assertEqual(record.fill_color, "#000000")
        self.assertEqual(record.opacity, 1.0)
        self.assertEqual(record.text_align, "left")
        self.assertEqual(len(diagnostics.of_kind("malformed_input")), 4)

    def test_missing_id_is_generated(self) -> None:
        first = extract_record({"type": "rect"})
        second = extract_record({"type": "rect"})
        self.assertTrue(first.id.startswith("obj_"))
        self.assertNotEqual(first.id, second.id)

    def test_unknown_type_keeps_kind(self) -> None:
        record = extract_record({"type": "Sticker", "id": "s"})
        self.assertIsInstance(record, BaseRecord)
        self.assertEqual(record.kind, "Sticker")

    def test_kind_matching_is_case_sensitive(self) -> None:
        record = BaseRecord(id="b", kind="Text")
        self.assertEqual(extract_record(live_object_from_record(record)), record)
        self.assertIsInstance(extract_record({"type": "Rect", "id": "r"}), BaseRecord)

    def test_attribute_objects_are_read(self) -> None:
        class _LiveImage:
            type = "image"
            id = "img"
            left = 4
            width = 10

            def getSrc(self) -> str:
                return "data:image/png;base64,AAAA"

        record = extract_record(_LiveImage())
        self.assertIsInstance(record, ImageRecord)
        self.assertEqual(record.source_uri, "data:image/png;base64,AAAA")
        self.assertEqual(record.x, 4.0)

    def test_path_string_and_points_forms(self) -> None:
        commands = parse_editor_path("M 0 0 L 10 0 10 10 H 0 Z")
        self.assertEqual(
            [command.op for command in commands],
            ["moveTo", "lineTo", "lineTo", "lineTo", "close"],
        )
        self.assertEqual(commands[3].args, (0.0, 10.0))
        polygon = extract_record({"type": "polygon", "id": "p", "points": [[0, 0], {"x": 3, "y": 4}]})
        self.assertEqual(polygon.points, ((0.0, 0.0), (3.0, 4.0)))

    def test_relative_path_commands_are_dropped(self) -> None:
        diagnostics = DiagnosticsCollector()
        record = extract_record({"type": "path", "id": "p", "path": [["M", 0, 0], ["l", 5, 5]]}, diagnostics=diagnostics)
        self.assertEqual(record.commands, (PathCommand("moveTo", (0.0, 0.0)),))
        self.assertEqual(len(diagnostics), 1)


if __name__ == "__main__":
    unittest.main()
