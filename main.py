from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from canvasdoc_core import (
    ChunkedDocumentStorage,
    CompressionTier,
    DictScene,
    DirectoryArtifactStore,
    Document,
    SQLiteArtifactStore,
    build_document,
    load_config,
    optimize,
)
from canvasdoc_raster import DocumentRasterizer, RenderOptions


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="canvasdoc")
    parser.add_argument("--config", type=Path, default=None, help="TOML settings file. Default: $CANVASDOC_CONFIG.")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Rasterize a document JSON file.")
    render.add_argument("document", type=Path)
    render.add_argument("--out", type=Path, required=True)
    render.add_argument("--format", choices=["png", "jpeg", "webp"], default=None)
    render.add_argument("--quality", type=float, default=None)
    render.add_argument("--scale", type=float, default=None, help="Scale multiplier for the output size.")

    opt = sub.add_parser("optimize", help="Shrink a document to fit a byte budget.")
    opt.add_argument("document", type=Path)
    opt.add_argument("--max-bytes", type=int, default=None)
    opt.add_argument("--out", type=Path, default=None)

    save = sub.add_parser("save", help="Persist a document as chunked artifacts.")
    save.add_argument("document", type=Path)
    save.add_argument("--store", type=Path, default=None, help="Artifact directory.")
    save.add_argument("--sqlite", type=Path, default=None, help="SQLite artifact database.")
    save.add_argument("--name", required=True)
    save.add_argument(
        "--tier", choices=[CompressionTier.FULL.value, CompressionTier.MINIMAL.value], default=CompressionTier.FULL.value
    )

    load = sub.add_parser("load", help="Reassemble a document from chunked artifacts.")
    load.add_argument("--store", type=Path, default=None, help="Artifact directory.")
    load.add_argument("--sqlite", type=Path, default=None, help="SQLite artifact database.")
    load.add_argument("--name", required=True)
    load.add_argument("--out", type=Path, default=None)

    build = sub.add_parser("build", help="Build a document from an editor JSON export.")
    build.add_argument("export", type=Path)
    build.add_argument("--id", required=True)
    build.add_argument("--editor-kind", required=True)
    build.add_argument("--canvas", required=True, help="Canvas size as WIDTHxHEIGHT.")
    build.add_argument("--template-key", default=None)
    build.add_argument("--out", type=Path, default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    config = load_config(args.config)

    if args.command == "render":
        document = _read_document(args.document)
        settings = config.render
        options = RenderOptions(
            format=args.format or settings.format,
            quality=settings.quality if args.quality is None else args.quality,
            scale_multiplier=settings.scale_multiplier if args.scale is None else args.scale,
        )
        result = DocumentRasterizer(settings=settings).render_sync(document, options=options)
        args.out.write_bytes(result.data)
        print(f"rendered {result.width}x{result.height} {result.format} -> {args.out} diagnostics={len(result.diagnostics)}")
        for diagnostic in result.diagnostics:
            print(json.dumps(diagnostic.to_dict(), sort_keys=True))
        return 0

    if args.command == "optimize":
        document = _read_document(args.document)
        result = optimize(document, args.max_bytes, settings=config.compression)
        print(
            f"tier={result.tier_used.value} original={result.original_size} result={result.result_size} "
            f"budget_exceeded={result.budget_exceeded}"
        )
        if args.out is not None:
            _write_json(args.out, result.payload())
        return 0

    if args.command == "save":
        document = _read_document(args.document)
        store = _build_artifact_store(args.store, args.sqlite)
        try:
            receipt = ChunkedDocumentStorage(store, config.storage).save(
                document, args.name, tier=CompressionTier(args.tier)
            )
            for ack in receipt.artifacts:
                print(f"{ack.name} {ack.size_bytes}")
        finally:
            if hasattr(store, "close"):
                store.close()
        return 0

    if args.command == "load":
        store = _build_artifact_store(args.store, args.sqlite)
        try:
            document = ChunkedDocumentStorage(store, config.storage).load(args.name)
        finally:
            if hasattr(store, "close"):
                store.close()
        _emit_json(args.out, document.to_dict())
        return 0

    if args.command == "build":
        payload = json.loads(args.export.read_text(encoding="utf-8"))
        scene = DictScene.from_editor_json(payload)
        document = build_document(
            scene,
            document_id=args.id,
            editor_kind=args.editor_kind,
            canvas_size=args.canvas,
            background_color=scene.background or "#ffffff",
            template_key=args.template_key,
        )
        _emit_json(args.out, document.to_dict())
        return 0

    raise RuntimeError(f"unsupported command: {args.command}")


def _build_artifact_store(store_dir: Path | None, sqlite_path: Path | None):
    if sqlite_path is not None:
        return SQLiteArtifactStore(sqlite_path)
    if store_dir is not None:
        return DirectoryArtifactStore(store_dir)
    raise RuntimeError("one of --store/--sqlite is required")


def _read_document(path: Path) -> Document:
    return Document.from_dict(json.loads(path.read_text(encoding="utf-8")))


def _write_json(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False), encoding="utf-8")


def _emit_json(path: Path | None, payload: object) -> None:
    if path is None:
        print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))
        return
    _write_json(path, payload)


if __name__ == "__main__":
    raise SystemExit(main())
