"""Still-image rendering of the scheduling grid."""

from .grid_image import GridRenderer, GridRendererConfig

__all__ = ["GridRenderer", "GridRendererConfig"]
