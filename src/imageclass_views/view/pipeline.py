"""Transform pipelines: ordered tensor steps with a defined reverse.

A pipeline maps a canonical tensor to a derived layout (``forward``) and a
gradient in the derived layout back to the canonical layout (``backward``).
Steps record what they need for the reverse during ``forward``, so
``backward`` must follow a ``forward`` on the same pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import torch

from imageclass_views.errors import ViewStateError

__all__ = ["Cast", "Permute", "Reshape", "Step", "TransformPipeline"]


class Step(ABC):
    """One tensor transform and its gradient mapping."""

    @abstractmethod
    def forward(self, tensor: torch.Tensor) -> torch.Tensor: ...

    @abstractmethod
    def backward(self, grad: torch.Tensor) -> torch.Tensor: ...


class Permute(Step):
    """Reorder axes; the reverse applies the inverse permutation."""

    def __init__(self, dims: Sequence[int]) -> None:
        self.dims = tuple(dims)
        if sorted(self.dims) != list(range(len(self.dims))):
            raise ValueError(f"not a permutation: {self.dims}")
        inverse = [0] * len(self.dims)
        for i, d in enumerate(self.dims):
            inverse[d] = i
        self.inverse = tuple(inverse)

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:
        return tensor.permute(self.dims)

    def backward(self, grad: torch.Tensor) -> torch.Tensor:
        return grad.permute(self.inverse)

    def __repr__(self) -> str:
        return f"Permute{self.dims}"


class Reshape(Step):
    """Keep the leading (batch) axis and reshape the rest to ``feature_dims``."""

    def __init__(self, feature_dims: Sequence[int]) -> None:
        self.feature_dims = tuple(feature_dims)
        self._input_shape: torch.Size | None = None

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:
        self._input_shape = tensor.shape
        return tensor.reshape(tensor.size(0), *self.feature_dims)

    def backward(self, grad: torch.Tensor) -> torch.Tensor:
        if self._input_shape is None:
            raise ViewStateError("Reshape.backward called before forward")
        return grad.reshape(self._input_shape)

    def __repr__(self) -> str:
        return f"Reshape(b, {', '.join(map(str, self.feature_dims))})"


class Cast(Step):
    """Convert to ``dtype``; the reverse converts back to the input dtype."""

    def __init__(self, dtype: torch.dtype) -> None:
        self.dtype = dtype
        self._input_dtype: torch.dtype | None = None

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:
        self._input_dtype = tensor.dtype
        return tensor.to(self.dtype)

    def backward(self, grad: torch.Tensor) -> torch.Tensor:
        if self._input_dtype is None:
            raise ViewStateError("Cast.backward called before forward")
        return grad.to(self._input_dtype)

    def __repr__(self) -> str:
        return f"Cast({self.dtype})"


class TransformPipeline:
    """Ordered list of steps. An empty pipeline is the identity.

    ``calls`` counts forward runs and lets callers verify cache behaviour.
    """

    def __init__(self, steps: Sequence[Step] = ()) -> None:
        self.steps: list[Step] = list(steps)
        self.calls = 0

    @property
    def is_identity(self) -> bool:
        return not self.steps

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        for step in self.steps:
            tensor = step.forward(tensor)
        return tensor

    def backward(self, grad: torch.Tensor) -> torch.Tensor:
        for step in reversed(self.steps):
            grad = step.backward(grad)
        return grad

    def __repr__(self) -> str:
        if self.is_identity:
            return "TransformPipeline(Identity)"
        return f"TransformPipeline({' -> '.join(map(repr, self.steps))})"
