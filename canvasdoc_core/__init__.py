"""Design-document model, extraction, compression and storage for canvasdoc."""

from .builder import build_canvas_settings, build_document, build_document_without_metadata, build_objects
from .compression import (
    CompressionTier,
    OptimizationResult,
    compress_full,
    compress_minimal,
    compress_ultra_minimal,
    optimize,
    serialize,
    serialized_size,
)
from .config import CanvasDocConfig, CompressionSettings, RenderSettings, StorageSettings, load_config
from .diagnostics import Diagnostic, DiagnosticsCollector
from .document import CanvasSize, Document, DocumentMetadata
from .errors import CanvasDocError, ImageLoadError, RenderCancelledError, StorageMissingError
from .extractor import extract_record, live_object_from_record
from .records import (
    BaseRecord,
    CircleRecord,
    DrawableRecord,
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
    canonical_defaults,
    record_from_dict,
    record_to_dict,
)
from .scene import DictScene, LiveScene
from .storage import (
    ChunkedDocumentStorage,
    DirectoryArtifactStore,
    InMemoryArtifactStore,
    SaveReceipt,
    SQLiteArtifactStore,
    artifact_names,
)

__all__ = [
    "BaseRecord",
    "CanvasDocConfig",
    "CanvasDocError",
    "CanvasSize",
    "ChunkedDocumentStorage",
    "CircleRecord",
    "CompressionSettings",
    "CompressionTier",
    "Diagnostic",
    "DiagnosticsCollector",
    "DictScene",
    "DirectoryArtifactStore",
    "Document",
    "DocumentMetadata",
    "DrawableRecord",
    "EllipseRecord",
    "GroupRecord",
    "ImageLoadError",
    "ImageRecord",
    "InMemoryArtifactStore",
    "LineRecord",
    "LiveScene",
    "OptimizationResult",
    "PathCommand",
    "PathRecord",
    "PolygonRecord",
    "RectRecord",
    "RenderCancelledError",
    "RenderSettings",
    "SQLiteArtifactStore",
    "SaveReceipt",
    "Shadow",
    "StorageMissingError",
    "StorageSettings",
    "TextRecord",
    "TriangleRecord",
    "artifact_names",
    "build_canvas_settings",
    "build_document",
    "build_document_without_metadata",
    "build_objects",
    "canonical_defaults",
    "compress_full",
    "compress_minimal",
    "compress_ultra_minimal",
    "extract_record",
    "live_object_from_record",
    "load_config",
    "optimize",
    "record_from_dict",
    "record_to_dict",
    "serialize",
    "serialized_size",
]
