from .images import DefaultImageLoader, ImageLoader, cover_fit
from .paint import Affine, PaintStack, PaintState, parse_color
from .renderer import CancellationToken, DocumentRasterizer, RenderOptions, RenderResult
from .surface import RasterSurface

__all__ = [
    "Affine",
    "CancellationToken",
    "DefaultImageLoader",
    "DocumentRasterizer",
    "ImageLoader",
    "PaintStack",
    "PaintState",
    "RasterSurface",
    "RenderOptions",
    "RenderResult",
    "cover_fit",
    "parse_color",
]
