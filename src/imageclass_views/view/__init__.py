"""Layout-aware tensor views with cached conversions and gradient fan-in."""

from imageclass_views.view.layout import LAYOUT_BUILDERS, build_pipeline, find_axis
from imageclass_views.view.pipeline import (
    Cast,
    Permute,
    Reshape,
    Step,
    TransformPipeline,
)
from imageclass_views.view.view import View, ViewState

__all__ = [
    "LAYOUT_BUILDERS",
    "Cast",
    "Permute",
    "Reshape",
    "Step",
    "TransformPipeline",
    "View",
    "ViewState",
    "build_pipeline",
    "find_axis",
]
