"""Layout strings and the pipeline builders that convert between them.

A layout is a string with one character per tensor axis, e.g. ``bchw`` for
an image batch, ``bhwc`` for channels-last, ``bf`` for batch x features.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import Literal

from loguru import logger

from imageclass_views.errors import NoBatchAxisError, UnsupportedLayoutError
from imageclass_views.view.pipeline import Permute, Reshape, Step, TransformPipeline

BATCH_AXIS = "b"

CollapseOrder = Literal["declared", "swap"]


def find_axis(axis: str, layout: str) -> int:
    """Return the 0-based position of ``axis`` in ``layout``."""
    pos = layout.find(axis)
    if pos < 0:
        if axis == BATCH_AXIS:
            raise NoBatchAxisError(f"Layout '{layout}' has no batch axis 'b'")
        raise UnsupportedLayoutError(f"Layout '{layout}' has no axis '{axis}'")
    return pos


def sample_size(shape: Sequence[int], batch_pos: int) -> int:
    """Number of elements per sample: product of every non-batch dim."""
    return math.prod(size for i, size in enumerate(shape) if i != batch_pos)


def batch_feature(
    layout: str, shape: Sequence[int], collapse_order: CollapseOrder
) -> TransformPipeline:
    """Build the ``bf`` pipeline: batch axis first, all others collapsed.

    With ``collapse_order="declared"`` the non-batch axes are flattened in
    their declared order. ``"swap"`` exchanges the batch axis with axis 0
    and flattens in that post-swap order instead, which differs from the
    declared order whenever the batch axis is neither first nor last.
    """
    dim = len(layout)
    b_pos = find_axis(BATCH_AXIS, layout)
    if dim == 1:
        logger.debug("bf view of a 1-D tensor: assuming feature size 1")
        return TransformPipeline([Reshape((1,))])

    steps: list[Step] = []
    if b_pos != 0:
        if collapse_order == "swap":
            dims = list(range(dim))
            dims[0], dims[b_pos] = dims[b_pos], dims[0]
        else:
            dims = [b_pos] + [i for i in range(dim) if i != b_pos]
        steps.append(Permute(dims))
    if dim > 2:
        steps.append(Reshape((sample_size(shape, b_pos),)))
    return TransformPipeline(steps)


def transpose(source: str, target: str) -> TransformPipeline:
    """Permutation pipeline between two layouts over the same axes."""
    dims = [source.index(axis) for axis in target]
    return TransformPipeline([Permute(dims)])


LAYOUT_BUILDERS: dict[
    str, Callable[[str, Sequence[int], CollapseOrder], TransformPipeline]
] = {
    "bf": batch_feature,
}


def build_pipeline(
    source: str,
    target: str,
    shape: Sequence[int],
    collapse_order: CollapseOrder = "declared",
) -> TransformPipeline:
    """Build the pipeline deriving layout ``target`` from canonical ``source``.

    Resolution: identical layouts give the identity; named layouts
    (``LAYOUT_BUILDERS``) use their builder; any reordering of the source's
    axes becomes a single permutation.
    """
    if target == source:
        return TransformPipeline()
    builder = LAYOUT_BUILDERS.get(target)
    if builder is not None:
        return builder(source, shape, collapse_order)
    if len(set(target)) == len(target) and sorted(target) == sorted(source):
        return transpose(source, target)
    raise UnsupportedLayoutError(
        f"Cannot derive layout '{target}' from '{source}'"
    )
