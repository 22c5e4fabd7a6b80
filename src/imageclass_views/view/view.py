"""View: layout-aware tensor exchange between model stages.

One producer puts a canonical tensor with ``forward_put``. Any number of
consumers read it with ``forward_get`` in whichever layout and dtype they
need, and hand gradients back with ``backward_put``. The producer then
collects the accumulated gradient, in canonical layout, with
``backward_get``.

Derived tensors are cached per pass under ``(layout, dtype)``. Transform
pipelines are cached per layout across passes and only rebuilt when the
canonical layout or per-sample shape changes.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

import torch
from loguru import logger

from imageclass_views.errors import (
    IndexRangeError,
    LayoutRankMismatchError,
    ShapeMismatchError,
    TypeMismatchError,
    ViewStateError,
)
from imageclass_views.view.layout import (
    BATCH_AXIS,
    CollapseOrder,
    build_pipeline,
    find_axis,
    sample_size,
)
from imageclass_views.view.pipeline import Cast, TransformPipeline

__all__ = ["View", "ViewState", "owns_storage", "shares_storage"]


def owns_storage(tensor: torch.Tensor) -> bool:
    """True when ``tensor`` is the sole, dense user of its storage."""
    return (
        tensor.is_contiguous()
        and tensor.storage_offset() == 0
        and tensor.untyped_storage().nbytes() == tensor.numel() * tensor.element_size()
    )


def shares_storage(a: torch.Tensor, b: torch.Tensor) -> bool:
    return a.untyped_storage().data_ptr() == b.untyped_storage().data_ptr()


class ViewState(enum.Enum):
    """Per-pass lifecycle of a View."""

    EMPTY = "empty"
    LOADED = "loaded"
    GRADIENTS_PENDING = "gradients_pending"
    GRADIENT_RESOLVED = "gradient_resolved"


class View:
    """Caches layout/dtype conversions of one canonical tensor per pass.

    Args:
        collapse_order: Axis order used when the ``bf`` view flattens
            non-batch axes. ``"declared"`` keeps the canonical order,
            ``"swap"`` reproduces the swap-then-flatten order.
    """

    def __init__(self, collapse_order: CollapseOrder = "declared") -> None:
        self._collapse_order: CollapseOrder = collapse_order
        self._layout: str | None = None
        self._input: torch.Tensor | None = None
        self._signature: tuple[str, tuple[int, ...]] | None = None
        # per pass
        self._tensors: dict[tuple[str, torch.dtype], torch.Tensor] = {}
        self._grad_outputs: list[tuple[str, torch.Tensor]] = []
        # across passes
        self._pipelines: dict[str, TransformPipeline] = {}
        self._casts: dict[tuple[str, torch.dtype], Cast] = {}
        self._sub_view: View | None = None
        self._state = ViewState.EMPTY

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def layout(self) -> str | None:
        return self._layout

    @property
    def input(self) -> torch.Tensor | None:
        return self._input

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def collapse_order(self) -> CollapseOrder:
        return self._collapse_order

    def pipeline(self, layout: str) -> TransformPipeline | None:
        """Cached pipeline for ``layout``, if one was built."""
        return self._pipelines.get(layout)

    # ------------------------------------------------------------------
    # Forward
    # ------------------------------------------------------------------

    def forward(
        self, layout: str, tensor_or_dtype: torch.Tensor | torch.dtype
    ) -> torch.Tensor | None:
        """``forward_get`` when given a dtype, ``forward_put`` when given a tensor."""
        if isinstance(tensor_or_dtype, torch.dtype):
            return self.forward_get(layout, tensor_or_dtype)
        self.forward_put(layout, tensor_or_dtype)
        return None

    def forward_put(self, layout: str, tensor: torch.Tensor) -> None:
        """Set the canonical tensor for a new pass.

        Call once per pass, from the single producer. The tensor must be
        given in its most expanded form: one layout character per dim.
        """
        if tensor.dim() != len(layout):
            raise LayoutRankMismatchError(
                f"Layout '{layout}' has {len(layout)} axes but tensor has "
                f"{tensor.dim()} dims"
            )
        b_pos = layout.find(BATCH_AXIS)
        per_sample = tuple(s for i, s in enumerate(tensor.shape) if i != b_pos)
        signature = (layout, per_sample)
        if signature != self._signature:
            if self._signature is not None:
                logger.debug(
                    f"View signature changed {self._signature} -> {signature}: "
                    f"dropping {len(self._pipelines)} cached pipeline(s)"
                )
            self._pipelines = {layout: TransformPipeline()}
            self._casts = {}
            self._signature = signature

        self._layout = layout
        self._input = tensor
        self._tensors = {(layout, tensor.dtype): tensor}
        self._grad_outputs = []
        self._state = ViewState.LOADED

    def forward_get(self, layout: str, dtype: torch.dtype) -> torch.Tensor:
        """Return the canonical tensor viewed as ``layout`` and cast to ``dtype``."""
        canonical = self._require_input()
        cached = self._tensors.get((layout, dtype))
        if cached is not None:
            return cached

        pipeline = self._pipelines.get(layout)
        if pipeline is None:
            source = self._require_layout()
            pipeline = build_pipeline(
                source, layout, canonical.shape, self._collapse_order
            )
            self._pipelines[layout] = pipeline
            logger.debug(f"Built {pipeline} for '{source}' -> '{layout}'")

        cast = self._casts.get((layout, dtype))
        if cast is None:
            cast = Cast(dtype)
            self._casts[(layout, dtype)] = cast

        tensor = cast.forward(pipeline.forward(canonical))
        self._tensors[(layout, dtype)] = tensor
        return tensor

    # ------------------------------------------------------------------
    # Backward
    # ------------------------------------------------------------------

    def backward(
        self, layout: str, grad_or_dtype: torch.Tensor | torch.dtype
    ) -> torch.Tensor | None:
        """``backward_get`` when given a dtype, ``backward_put`` when given a tensor."""
        if isinstance(grad_or_dtype, torch.dtype):
            return self.backward_get(grad_or_dtype)
        self.backward_put(layout, grad_or_dtype)
        return None

    def backward_put(self, layout: str, grad: torch.Tensor) -> None:
        """Deposit the gradient of one consumer; resolved in ``backward_get``."""
        self._require_input()
        self._grad_outputs.append((layout, grad))
        self._state = ViewState.GRADIENTS_PENDING

    def backward_get(self, dtype: torch.dtype) -> torch.Tensor:
        """Gradient w.r.t. the canonical tensor, summed over all consumers."""
        canonical = self._require_input()
        if dtype != canonical.dtype:
            raise TypeMismatchError(
                f"backward_get must use the canonical dtype {canonical.dtype}, "
                f"got {dtype}"
            )
        if not self._grad_outputs:
            raise ViewStateError("backward_get called without any backward_put")

        if len(self._grad_outputs) == 1:
            grad_input = self._reverse(*self._grad_outputs[0])
        else:
            grad_input = torch.zeros_like(canonical)
            for layout, grad in self._grad_outputs:
                grad_input.add_(self._reverse(layout, grad))
        self._state = ViewState.GRADIENT_RESOLVED
        return grad_input

    def _reverse(self, layout: str, grad: torch.Tensor) -> torch.Tensor:
        canonical = self._require_input()
        pipeline = self._pipelines.get(layout)
        if pipeline is None:
            raise ViewStateError(
                f"backward for layout '{layout}' must follow a forward_get"
            )
        cast = self._casts.get((layout, grad.dtype))
        grad = cast.backward(grad) if cast is not None else grad.to(canonical.dtype)
        try:
            grad = pipeline.backward(grad)
        except ViewStateError:
            raise
        except RuntimeError as err:
            raise ShapeMismatchError(
                f"gradient for '{layout}' has incompatible shape {tuple(grad.shape)}"
            ) from err
        if grad.shape != canonical.shape:
            raise ShapeMismatchError(
                f"gradient for '{layout}' maps to shape {tuple(grad.shape)}, "
                f"expected {tuple(canonical.shape)}"
            )
        return grad

    # ------------------------------------------------------------------
    # Batch-axis narrowing
    # ------------------------------------------------------------------

    def find_axis(self, axis: str, layout: str | None = None) -> int:
        layout = layout or self._layout
        if layout is None:
            raise ViewStateError("View has no layout yet")
        return find_axis(axis, layout)

    def n_sample(self) -> int:
        """Number of samples along the batch axis."""
        canonical = self._require_input()
        return canonical.size(self.find_axis(BATCH_AXIS))

    def sample_size(self) -> int:
        """Number of elements per sample."""
        canonical = self._require_input()
        return sample_size(canonical.shape, self.find_axis(BATCH_AXIS))

    def index(
        self, indices: Sequence[int] | torch.Tensor, into: View | None = None
    ) -> View:
        """Gather samples along the batch axis, in the given order.

        When ``into`` is given its existing buffer is overwritten if it has a
        compatible shape and dtype and does not alias this View's storage,
        and ``into`` is returned.
        """
        canonical = self._require_input()
        layout = self._require_layout()
        b_pos = self.find_axis(BATCH_AXIS)
        index = torch.as_tensor(indices, dtype=torch.long)
        n = canonical.size(b_pos)
        if index.numel() and (int(index.min()) < 0 or int(index.max()) >= n):
            raise IndexRangeError(f"indices out of range [0, {n})")

        if into is None:
            view = View(collapse_order=self._collapse_order)
            view.forward_put(layout, canonical.index_select(b_pos, index))
            return view

        if into.layout is not None and into.layout != layout:
            raise ValueError(
                f"Expecting a View with layout '{layout}', "
                f"got '{into.layout}'"
            )
        expected = list(canonical.shape)
        expected[b_pos] = index.numel()
        buffer = into.input
        if (
            buffer is not None
            and owns_storage(buffer)
            and not shares_storage(buffer, canonical)
            and list(buffer.shape) == expected
            and buffer.dtype == canonical.dtype
        ):
            data = torch.index_select(canonical, b_pos, index, out=buffer)
        else:
            data = canonical.index_select(b_pos, index)
        into.forward_put(layout, data)
        return into

    def sub(self, start: int, stop: int, new: bool = False) -> View:
        """Narrow along the batch axis to samples ``start..stop`` inclusive.

        Returns a View sharing storage with the canonical tensor. Unless
        ``new`` is set, the same child View is reused across calls so its
        pipelines survive from one iteration to the next.
        """
        canonical = self._require_input()
        layout = self._require_layout()
        b_pos = self.find_axis(BATCH_AXIS)
        n = canonical.size(b_pos)
        if start > stop or start < 0 or stop >= n:
            raise IndexRangeError(f"invalid range [{start}, {stop}] for {n} samples")
        data = canonical.narrow(b_pos, start, stop - start + 1)
        if new:
            view = View(collapse_order=self._collapse_order)
        else:
            if self._sub_view is None:
                self._sub_view = View(collapse_order=self._collapse_order)
            view = self._sub_view
        view.forward_put(layout, data)
        return view

    def _require_input(self) -> torch.Tensor:
        if self._input is None:
            raise ViewStateError("View is empty: call forward_put first")
        return self._input

    def _require_layout(self) -> str:
        if self._layout is None:
            raise ViewStateError("View has no layout yet")
        return self._layout

    def __repr__(self) -> str:
        shape = None if self._input is None else tuple(self._input.shape)
        return (
            f"View(layout={self._layout!r}, shape={shape}, "
            f"state={self._state.value})"
        )
