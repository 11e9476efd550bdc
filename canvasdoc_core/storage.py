from __future__ import annotations

from dataclasses import dataclass
import atexit
import json
import logging
from pathlib import Path
import re
import sqlite3
import threading
import time
from typing import Mapping, Protocol

from .compression import CompressionTier, serialize
from .config import StorageSettings
from .diagnostics import DiagnosticsCollector
from .document import Document, canonical_json_bytes
from .errors import StorageMissingError
from .records import (
    SHAPE_RECORD_TYPES,
    DrawableRecord,
    ImageRecord,
    LineRecord,
    TextRecord,
    records_from_list,
)


LOGGER = logging.getLogger(__name__)

KIND_GROUPS: dict[str, tuple[type, ...]] = {
    "text": (TextRecord,),
    "images": (ImageRecord,),
    "shapes": SHAPE_RECORD_TYPES,
    "lines": (LineRecord,),
}

_SAFE_ARTIFACT_NAME = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9._-]*")
_STORAGE_KEYS = frozenset({"objectCount", "objectChunks", "kindArtifacts", "tier"})


@dataclass(frozen=True)
class ArtifactAck:
    name: str
    size_bytes: int
    location: str | None = None


@dataclass(frozen=True)
class SaveReceipt:
    base_name: str
    tier: CompressionTier
    artifacts: tuple[ArtifactAck, ...]

    @property
    def artifact_names(self) -> tuple[str, ...]:
        return tuple(ack.name for ack in self.artifacts)

    @property
    def total_bytes(self) -> int:
        return sum(ack.size_bytes for ack in self.artifacts)


class ArtifactStore(Protocol):
    def save(self, name: str, payload: object) -> ArtifactAck:
        ...

    def load(self, name: str) -> object | None:
        ...


def metadata_artifact(base_name: str) -> str:
    return f"{base_name}-metadata.json"


def objects_artifact(base_name: str) -> str:
    return f"{base_name}-objects.json"


def objects_chunk_artifact(base_name: str, number: int) -> str:
    """Chunk artifacts are numbered from 1."""
    if number < 1:
        raise ValueError("chunk numbers start at 1")
    return f"{base_name}-objects-chunk-{number}.json"


def kind_artifact(base_name: str, kind_group: str) -> str:
    if kind_group not in KIND_GROUPS:
        raise ValueError(f"unsupported kind group: {kind_group}")
    return f"{base_name}-{kind_group}.json"


def artifact_names(base_name: str, *, object_chunks: int = 0) -> tuple[str, ...]:
    """Every artifact a save of ``base_name`` may write."""
    names = [metadata_artifact(base_name)]
    if object_chunks > 0:
        names.extend(objects_chunk_artifact(base_name, number) for number in range(1, object_chunks + 1))
    else:
        names.append(objects_artifact(base_name))
    names.extend(kind_artifact(base_name, group) for group in KIND_GROUPS)
    return tuple(names)


class InMemoryArtifactStore:
    """Keeps artifacts as JSON text so callers cannot mutate stored payloads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: dict[str, str] = {}

    def save(self, name: str, payload: object) -> ArtifactAck:
        text = _encode(payload)
        with self._lock:
            self._artifacts[name] = text
        return ArtifactAck(name=name, size_bytes=len(text.encode("utf-8")))

    def load(self, name: str) -> object | None:
        with self._lock:
            text = self._artifacts.get(name)
        if text is None:
            return None
        return json.loads(text)

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._artifacts.pop(name, None) is not None

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._artifacts))


class DirectoryArtifactStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, name: str) -> Path:
        if not _SAFE_ARTIFACT_NAME.fullmatch(name):
            raise ValueError(f"artifact name `{name}` is not a plain file name")
        return self.root / name

    def save(self, name: str, payload: object) -> ArtifactAck:
        text = _encode(payload)
        path = self.path_for(name)
        tmp = path.with_name(path.name + ".tmp")
        with self._lock:
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(path)
        return ArtifactAck(name=name, size_bytes=len(text.encode("utf-8")), location=str(path))

    def load(self, name: str) -> object | None:
        path = self.path_for(name)
        with self._lock:
            if not path.exists():
                return None
            text = path.read_text(encoding="utf-8")
        return json.loads(text)


class SQLiteArtifactStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = sqlite3.connect(self.path, check_same_thread=False)
        self._init_db()
        atexit.register(self.close)

    def _init_db(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artifacts (
                name TEXT PRIMARY KEY,
                updated_ns INTEGER,
                size_bytes INTEGER,
                payload_json TEXT
            )
            """
        )
        self._conn.commit()

    def save(self, name: str, payload: object) -> ArtifactAck:
        text = _encode(payload)
        size = len(text.encode("utf-8"))
        with self._lock:
            if self._conn is None:
                raise RuntimeError("artifact store is closed")
            self._conn.execute(
                "INSERT OR REPLACE INTO artifacts (name, updated_ns, size_bytes, payload_json) VALUES (?, ?, ?, ?)",
                (name, time.time_ns(), size, text),
            )
            self._conn.commit()
        return ArtifactAck(name=name, size_bytes=size, location=f"{self.path}#{name}")

    def load(self, name: str) -> object | None:
        with self._lock:
            if self._conn is None:
                raise RuntimeError("artifact store is closed")
            row = self._conn.execute("SELECT payload_json FROM artifacts WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    def names(self) -> tuple[str, ...]:
        with self._lock:
            if self._conn is None:
                return ()
            return tuple(str(row[0]) for row in self._conn.execute("SELECT name FROM artifacts ORDER BY name"))

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None


class ChunkedDocumentStorage:
    """Persists a document as a set of named JSON artifacts.

    ``<base>-metadata.json`` and the objects (one artifact, or numbered
    chunks when large) are required on load; the per-kind artifacts are
    convenience copies and may be absent. The metadata artifact is written
    last and lists the per-kind artifacts of its own save, so a save that
    fails partway leaves the previous snapshot readable.
    """

    def __init__(self, store: ArtifactStore, settings: StorageSettings | None = None) -> None:
        self.store = store
        self.settings = settings or StorageSettings()

    def save(self, document: Document, base_name: str, *, tier: CompressionTier = CompressionTier.FULL) -> SaveReceipt:
        """Write ``document`` in the full or default-omitting form.

        ``ULTRA_MINIMAL`` drops content, so it is rejected here; run
        ``optimize`` first and save its result.
        """
        if not base_name.strip():
            raise ValueError("base_name must be non-empty")
        if tier is CompressionTier.ULTRA_MINIMAL:
            raise ValueError("storage writes full or minimal documents; optimize before saving an ultra-minimal one")
        payload = serialize(document, tier)
        objects = payload.pop("objects")
        objects_size = len(canonical_json_bytes(objects))
        chunk_count = 0
        if objects_size > self.settings.objects_chunk_threshold_bytes:
            size = self.settings.objects_chunk_size
            chunk_count = (len(objects) + size - 1) // size

        acks: list[ArtifactAck] = []
        if chunk_count:
            size = self.settings.objects_chunk_size
            for number in range(1, chunk_count + 1):
                chunk = objects[(number - 1) * size : number * size]
                acks.append(self.store.save(objects_chunk_artifact(base_name, number), chunk))
        else:
            acks.append(self.store.save(objects_artifact(base_name), objects))

        kind_groups: list[str] = []
        for group, types in KIND_GROUPS.items():
            grouped = [item for record, item in zip(document.objects, objects) if isinstance(record, types)]
            if not grouped:
                continue
            if len(canonical_json_bytes(grouped)) >= self.settings.per_kind_limit_bytes:
                LOGGER.debug("document %s: `%s` artifact over size limit, skipped", document.id, group)
                continue
            acks.append(self.store.save(kind_artifact(base_name, group), grouped))
            kind_groups.append(group)

        metadata = dict(payload)
        metadata["objectCount"] = len(objects)
        metadata["objectChunks"] = chunk_count
        metadata["kindArtifacts"] = kind_groups
        metadata["tier"] = tier.value
        acks.insert(0, self.store.save(metadata_artifact(base_name), metadata))

        receipt = SaveReceipt(base_name=base_name, tier=tier, artifacts=tuple(acks))
        LOGGER.info(
            "saved document %s as `%s`: %d artifacts, %d bytes, %d object chunks",
            document.id,
            base_name,
            len(receipt.artifacts),
            receipt.total_bytes,
            chunk_count,
        )
        return receipt

    def load(self, base_name: str, *, diagnostics: DiagnosticsCollector | None = None) -> Document:
        metadata = self._load_metadata(base_name)
        if metadata is None:
            raise StorageMissingError(metadata_artifact(base_name))
        chunk_count = metadata.get("objectChunks", 0)
        if isinstance(chunk_count, bool) or not isinstance(chunk_count, int) or chunk_count < 0:
            raise TypeError("objectChunks must be a non-negative integer")

        objects: list[object] = []
        names = (
            [objects_chunk_artifact(base_name, number) for number in range(1, chunk_count + 1)]
            if chunk_count
            else [objects_artifact(base_name)]
        )
        for name in names:
            part = self._require(name)
            if not isinstance(part, list):
                raise TypeError(f"{name} must hold a list of records")
            objects.extend(part)

        expected = metadata.get("objectCount")
        if isinstance(expected, int) and expected != len(objects):
            LOGGER.warning("document `%s`: expected %d objects, loaded %d", base_name, expected, len(objects))

        payload = {key: value for key, value in metadata.items() if key not in _STORAGE_KEYS}
        payload["objects"] = objects
        document = Document.from_dict(payload, diagnostics=diagnostics)
        LOGGER.info("loaded document %s from `%s` with %d objects", document.id, base_name, len(document.objects))
        return document

    def load_kind(
        self,
        base_name: str,
        kind_group: str,
        *,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> list[DrawableRecord] | None:
        name = kind_artifact(base_name, kind_group)
        metadata = self._load_metadata(base_name)
        if metadata is None:
            return None
        written = metadata.get("kindArtifacts")
        if isinstance(written, list) and kind_group not in written:
            return None
        raw = self.store.load(name)
        if raw is None:
            return None
        if not isinstance(raw, list):
            raise TypeError(f"{name} must hold a list of records")
        return list(records_from_list(raw, diagnostics=diagnostics, field_name=kind_group))

    def _load_metadata(self, base_name: str) -> Mapping[str, object] | None:
        metadata = self.store.load(metadata_artifact(base_name))
        if metadata is not None and not isinstance(metadata, Mapping):
            raise TypeError(f"{metadata_artifact(base_name)} must hold an object")
        return metadata

    def _require(self, name: str) -> object:
        payload = self.store.load(name)
        if payload is None:
            raise StorageMissingError(name)
        return payload


def _encode(payload: object) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
