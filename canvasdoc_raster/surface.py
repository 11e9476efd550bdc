from __future__ import annotations

from dataclasses import dataclass, field
import io

import numpy as np
from PIL import Image
import torch

from .coverage import CoverageGrid, clip_box
from .paint import RGBA, Affine


ENCODER_FORMATS: dict[str, str] = {"png": "PNG", "jpeg": "JPEG", "webp": "WEBP"}


@dataclass
class RasterSurface:
    """RGBA8 pixel surface backed by a ``(height, width, 4)`` uint8 tensor."""

    width: int
    height: int
    background: RGBA | None = (255, 255, 255, 255)
    pixels: torch.Tensor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("surface width/height must be > 0")
        self.pixels = torch.zeros((self.height, self.width, 4), dtype=torch.uint8)
        if self.background is not None:
            self.pixels[:, :] = torch.tensor(self.background, dtype=torch.uint8)

    def blend_coverage(self, coverage: CoverageGrid, color: RGBA) -> None:
        if color[3] <= 0 or not bool(coverage.mask.any()):
            return
        alpha = coverage.mask.to(torch.float64) * (color[3] / 255.0)
        src_rgb = torch.tensor(color[:3], dtype=torch.float64).view(1, 1, 3)
        self._composite(coverage.box, src_rgb, alpha)

    def composite_layer(self, rgba: np.ndarray, layer_to_device: Affine) -> None:
        """Source-over an RGBA8 layer through an affine map, nearest sampling."""
        h, w = rgba.shape[:2]
        if h <= 0 or w <= 0:
            return
        corners = layer_to_device.apply_many([(0.0, 0.0), (float(w), 0.0), (float(w), float(h)), (0.0, float(h))])
        box = clip_box(corners, self.width, self.height)
        if box is None:
            return
        try:
            inverse = layer_to_device.inverse()
        except ValueError:
            return
        x0, y0, x1, y1 = box
        gx = (torch.arange(x0, x1, dtype=torch.float64) + 0.5).unsqueeze(0).expand(y1 - y0, x1 - x0)
        gy = (torch.arange(y0, y1, dtype=torch.float64) + 0.5).unsqueeze(1).expand(y1 - y0, x1 - x0)
        u = inverse.origin[0] + gx * inverse.basis_x[0] + gy * inverse.basis_y[0]
        v = inverse.origin[1] + gx * inverse.basis_x[1] + gy * inverse.basis_y[1]
        inside = (u >= 0) & (u < w) & (v >= 0) & (v < h)
        if not bool(inside.any()):
            return
        ui = u.floor().clamp(0, w - 1).to(torch.long)
        vi = v.floor().clamp(0, h - 1).to(torch.long)
        layer = torch.from_numpy(np.ascontiguousarray(rgba, dtype=np.uint8))
        sampled = layer[vi, ui].to(torch.float64)
        alpha = sampled[:, :, 3] / 255.0 * inside.to(torch.float64)
        self._composite(box, sampled[:, :, :3], alpha)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels.cpu().numpy())

    def encode(self, fmt: str = "png", quality: float = 1.0) -> bytes:
        encoder = ENCODER_FORMATS.get(fmt)
        if encoder is None:
            raise ValueError(f"unsupported image format: {fmt}")
        image = self.to_image()
        buffer = io.BytesIO()
        if fmt == "png":
            image.save(buffer, format=encoder, optimize=True)
        elif fmt == "jpeg":
            # No alpha in JPEG: flatten over white.
            flat = Image.new("RGB", image.size, (255, 255, 255))
            flat.paste(image, mask=image.getchannel("A"))
            flat.save(buffer, format=encoder, quality=_quality_percent(quality))
        else:
            image.save(buffer, format=encoder, quality=_quality_percent(quality))
        return buffer.getvalue()

    def _composite(self, box: tuple[int, int, int, int], src_rgb: torch.Tensor, src_alpha: torch.Tensor) -> None:
        x0, y0, x1, y1 = box
        patch = self.pixels[y0:y1, x0:x1]
        dst_rgb = patch[:, :, :3].to(torch.float64)
        dst_alpha = patch[:, :, 3].to(torch.float64) / 255.0
        out_alpha = src_alpha + dst_alpha * (1.0 - src_alpha)
        out_rgb_num = src_rgb * src_alpha.unsqueeze(-1) + dst_rgb * (dst_alpha * (1.0 - src_alpha)).unsqueeze(-1)
        safe = torch.where(out_alpha > 1e-9, out_alpha, torch.ones_like(out_alpha))
        out_rgb = out_rgb_num / safe.unsqueeze(-1)
        patch[:, :, :3] = torch.clamp(out_rgb.round(), 0, 255).to(torch.uint8)
        patch[:, :, 3] = torch.clamp((out_alpha * 255.0).round(), 0, 255).to(torch.uint8)


def _quality_percent(quality: float) -> int:
    return int(min(max(round(quality * 100.0), 1), 100))
