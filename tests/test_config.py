from __future__ import annotations

from pathlib import Path
import tempfile
import unittest
from unittest import mock

from canvasdoc_core.config import (
    CONFIG_ENV_VAR,
    CanvasDocConfig,
    RenderSettings,
    config_from_mapping,
    load_config,
)


class ConfigTests(unittest.TestCase):
    def test_defaults_without_file(self) -> None:
        with mock.patch.dict("os.environ", {CONFIG_ENV_VAR: ""}):
            config = load_config()
        self.assertEqual(config, CanvasDocConfig())
        self.assertEqual(config.compression.default_budget_bytes, 500_000)
        self.assertEqual(config.storage.objects_chunk_size, 25)
        self.assertEqual(config.render.format, "png")

    def test_load_toml_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "canvasdoc.toml"
            path.write_text(
                "\n".join(
                    [
                        "[compression]",
                        "default_budget_bytes = 250000",
                        "",
                        "[storage]",
                        "objects_chunk_size = 50",
                        "",
                        "[render]",
                        'format = "jpeg"',
                        "quality = 0.8",
                        'font_dirs = ["/opt/fonts"]',
                    ]
                ),
                encoding="utf-8",
            )
            config = load_config(path)
        self.assertEqual(config.compression.default_budget_bytes, 250_000)
        self.assertEqual(config.compression.ultra_object_limit, 5)
        self.assertEqual(config.storage.objects_chunk_size, 50)
        self.assertEqual(config.render.format, "jpeg")
        self.assertEqual(config.render.quality, 0.8)
        self.assertEqual(config.render.font_dirs, ("/opt/fonts",))

    def test_env_var_points_at_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "env.toml"
            path.write_text("[render]\nscale_multiplier = 2\n", encoding="utf-8")
            with mock.patch.dict("os.environ", {CONFIG_ENV_VAR: str(path)}):
                config = load_config()
        self.assertEqual(config.render.scale_multiplier, 2.0)

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/canvasdoc.toml")

    def test_invalid_values_raise(self) -> None:
        with self.assertRaises(ValueError):
            config_from_mapping({"compression": {"default_budget_bytes": "big"}})
        with self.assertRaises(ValueError):
            config_from_mapping({"render": {"format": "gif"}})
        with self.assertRaises(ValueError):
            config_from_mapping({"storage": []})
        with self.assertRaises(ValueError):
            RenderSettings(quality=1.5)


if __name__ == "__main__":
    unittest.main()
