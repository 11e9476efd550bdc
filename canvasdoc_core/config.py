from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib
from typing import Mapping


CONFIG_ENV_VAR = "CANVASDOC_CONFIG"
RENDER_FORMATS: tuple[str, ...] = ("png", "jpeg", "webp")


@dataclass(frozen=True)
class CompressionSettings:
    default_budget_bytes: int = 500_000
    ultra_threshold_bytes: int = 100_000
    ultra_object_limit: int = 5
    large_budget_object_limit: int = 10
    ultra_text_limit: int = 50

    def __post_init__(self) -> None:
        if self.default_budget_bytes <= 0:
            raise ValueError("default_budget_bytes must be > 0")
        if self.ultra_threshold_bytes <= 0:
            raise ValueError("ultra_threshold_bytes must be > 0")
        if self.ultra_object_limit < 0 or self.large_budget_object_limit < 0:
            raise ValueError("object limits must be >= 0")
        if self.ultra_text_limit < 0:
            raise ValueError("ultra_text_limit must be >= 0")


@dataclass(frozen=True)
class StorageSettings:
    objects_chunk_threshold_bytes: int = 200_000
    objects_chunk_size: int = 25
    per_kind_limit_bytes: int = 100_000

    def __post_init__(self) -> None:
        if self.objects_chunk_threshold_bytes <= 0:
            raise ValueError("objects_chunk_threshold_bytes must be > 0")
        if self.objects_chunk_size <= 0:
            raise ValueError("objects_chunk_size must be > 0")
        if self.per_kind_limit_bytes <= 0:
            raise ValueError("per_kind_limit_bytes must be > 0")


@dataclass(frozen=True)
class RenderSettings:
    format: str = "png"
    quality: float = 1.0
    scale_multiplier: float = 1.0
    image_timeout_s: float = 10.0
    font_dirs: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.format not in RENDER_FORMATS:
            raise ValueError(f"unsupported render format: {self.format}")
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError("quality must be within [0, 1]")
        if self.scale_multiplier <= 0:
            raise ValueError("scale_multiplier must be > 0")
        if self.image_timeout_s <= 0:
            raise ValueError("image_timeout_s must be > 0")


@dataclass(frozen=True)
class CanvasDocConfig:
    compression: CompressionSettings = field(default_factory=CompressionSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    render: RenderSettings = field(default_factory=RenderSettings)


def load_config(path: str | Path | None = None) -> CanvasDocConfig:
    """Load settings from a TOML file.

    ``path`` defaults to ``$CANVASDOC_CONFIG``; with neither, every section
    takes its defaults. Sections absent from the file also take defaults.
    """
    if path is None:
        env_path = os.getenv(CONFIG_ENV_VAR, "").strip()
        if not env_path:
            return CanvasDocConfig()
        path = env_path
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")
    with config_path.open("rb") as f:
        raw = tomllib.load(f)
    return config_from_mapping(raw)


def config_from_mapping(raw: Mapping[str, object]) -> CanvasDocConfig:
    compression = _section(raw, "compression")
    storage = _section(raw, "storage")
    render = _section(raw, "render")
    defaults_c = CompressionSettings()
    defaults_s = StorageSettings()
    defaults_r = RenderSettings()
    return CanvasDocConfig(
        compression=CompressionSettings(
            default_budget_bytes=_int(compression, "default_budget_bytes", defaults_c.default_budget_bytes),
            ultra_threshold_bytes=_int(compression, "ultra_threshold_bytes", defaults_c.ultra_threshold_bytes),
            ultra_object_limit=_int(compression, "ultra_object_limit", defaults_c.ultra_object_limit),
            large_budget_object_limit=_int(
                compression, "large_budget_object_limit", defaults_c.large_budget_object_limit
            ),
            ultra_text_limit=_int(compression, "ultra_text_limit", defaults_c.ultra_text_limit),
        ),
        storage=StorageSettings(
            objects_chunk_threshold_bytes=_int(
                storage, "objects_chunk_threshold_bytes", defaults_s.objects_chunk_threshold_bytes
            ),
            objects_chunk_size=_int(storage, "objects_chunk_size", defaults_s.objects_chunk_size),
            per_kind_limit_bytes=_int(storage, "per_kind_limit_bytes", defaults_s.per_kind_limit_bytes),
        ),
        render=RenderSettings(
            format=_str(render, "format", defaults_r.format),
            quality=_float(render, "quality", defaults_r.quality),
            scale_multiplier=_float(render, "scale_multiplier", defaults_r.scale_multiplier),
            image_timeout_s=_float(render, "image_timeout_s", defaults_r.image_timeout_s),
            font_dirs=_str_tuple(render, "font_dirs"),
        ),
    )


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    section = raw.get(name, {})
    if not isinstance(section, Mapping):
        raise ValueError(f"config section `{name}` must be a table")
    return section


def _int(section: Mapping[str, object], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"config field `{key}` must be an integer")
    return value


def _float(section: Mapping[str, object], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"config field `{key}` must be a number")
    return float(value)


def _str(section: Mapping[str, object], key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"config field `{key}` must be a string")
    return value


def _str_tuple(section: Mapping[str, object], key: str) -> tuple[str, ...]:
    value = section.get(key, [])
    if not isinstance(value, list):
        raise ValueError(f"config field `{key}` must be a list")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"config field `{key}` entries must be strings")
        out.append(item)
    return tuple(out)
