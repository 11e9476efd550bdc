from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from http.client import HTTPException
import io
import logging
from pathlib import Path
from typing import Protocol
from urllib.error import URLError
from urllib.parse import unquote_to_bytes, urlparse
from urllib.request import Request, urlopen

from PIL import Image, UnidentifiedImageError

from canvasdoc_core.errors import ImageLoadError


LOGGER = logging.getLogger(__name__)

USER_AGENT = "canvasdoc-rasterizer/0.1"


class ImageLoader(Protocol):
    async def load(self, uri: str) -> Image.Image:
        ...


@dataclass
class DefaultImageLoader:
    """Loads ``data:`` URIs, http(s) URLs and local files into RGBA images.

    Network and disk reads run in worker threads so the event loop stays free
    for other renders.
    """

    timeout_s: float = 10.0
    base_dir: Path | None = None

    async def load(self, uri: str) -> Image.Image:
        if not uri or not uri.strip():
            raise ImageLoadError(uri, "empty source uri")
        uri = uri.strip()
        scheme = urlparse(uri).scheme.lower()
        if scheme == "data":
            data = _decode_data_uri(uri)
        elif scheme in ("http", "https"):
            data = await asyncio.to_thread(self._fetch, uri)
        else:
            data = await asyncio.to_thread(self._read_file, uri)
        return await asyncio.to_thread(_decode_image, uri, data)

    def _fetch(self, uri: str) -> bytes:
        request = Request(uri, headers={"User-Agent": USER_AGENT})
        try:
            with urlopen(request, timeout=self.timeout_s) as response:
                return response.read()
        except (URLError, HTTPException, OSError, ValueError) as exc:
            raise ImageLoadError(uri, str(exc)) from exc

    def _read_file(self, uri: str) -> bytes:
        parsed = urlparse(uri)
        raw_path = unquote_to_bytes(parsed.path).decode("utf-8") if parsed.scheme == "file" else uri
        path = Path(raw_path)
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ImageLoadError(uri, str(exc)) from exc


def cover_fit(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Resize to cover ``size`` without stretching, then center-crop."""
    tw, th = size
    iw, ih = image.size
    if tw <= 0 or th <= 0:
        raise ValueError("cover_fit target must be > 0")
    if iw <= 0 or ih <= 0:
        return image.resize(size, Image.Resampling.LANCZOS)
    scale = max(tw / iw, th / ih)
    nw, nh = max(tw, int(round(iw * scale))), max(th, int(round(ih * scale)))
    resized = image.resize((nw, nh), Image.Resampling.LANCZOS)
    left = max(0, (nw - tw) // 2)
    top = max(0, (nh - th) // 2)
    return resized.crop((left, top, left + tw, top + th))


def _decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ImageLoadError(uri, "data uri has no payload")
    try:
        if header.lower().endswith(";base64"):
            return base64.b64decode(payload, validate=True)
        return unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as exc:
        raise ImageLoadError(uri, f"bad data uri payload: {exc}") from exc


def _decode_image(uri: str, data: bytes) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageLoadError(uri, f"undecodable image: {exc}") from exc
