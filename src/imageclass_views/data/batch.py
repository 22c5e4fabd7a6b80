"""Batch: inputs, targets, multi-hot labels and carry for one iteration."""

from __future__ import annotations

from collections.abc import Sequence

import torch

from imageclass_views.data.carry import Carry, CarryLike
from imageclass_views.errors import ViewStateError
from imageclass_views.view import View
from imageclass_views.view.view import owns_storage, shares_storage

INPUT_LAYOUT = "bchw"
TARGET_LAYOUT = "b"


def _reuse(buffer: torch.Tensor | None, value: torch.Tensor) -> torch.Tensor:
    """Copy ``value`` into ``buffer`` when it is an owned, same-shaped tensor."""
    if (
        buffer is not None
        and owns_storage(buffer)
        and not shares_storage(buffer, value)
        and buffer.shape == value.shape
        and buffer.dtype == value.dtype
    ):
        buffer.copy_(value)
        return buffer
    return value


class Batch:
    """One batch of samples exchanged with the model.

    ``inputs`` is a View over a ``bchw`` image tensor and ``targets`` a View
    over the ``b`` vector of class ids, so model stages can ask either for
    whatever layout and dtype they need. ``multi_hot`` is a ``(B, K)`` long
    tensor holding -1 everywhere except 1 at the true class column.
    """

    def __init__(
        self,
        inputs: View,
        targets: View,
        multi_hot: torch.Tensor | None = None,
        carry: CarryLike | None = None,
        which_set: str = "train",
        epoch_size: int | None = None,
    ) -> None:
        self.inputs = inputs
        self.targets = targets
        self.multi_hot = multi_hot
        self.carry: CarryLike = carry if carry is not None else Carry()
        self.which_set = which_set
        self.epoch_size = epoch_size

    @classmethod
    def from_tensors(
        cls,
        images: torch.Tensor,
        labels: torch.Tensor,
        multi_hot: torch.Tensor | None = None,
        carry: CarryLike | None = None,
        which_set: str = "train",
        epoch_size: int | None = None,
    ) -> Batch:
        inputs = View()
        inputs.forward_put(INPUT_LAYOUT, images)
        targets = View()
        targets.forward_put(TARGET_LAYOUT, labels)
        return cls(inputs, targets, multi_hot, carry, which_set, epoch_size)

    @property
    def images(self) -> torch.Tensor:
        if self.inputs.input is None:
            raise ViewStateError("Batch has no images")
        return self.inputs.input

    @property
    def labels(self) -> torch.Tensor:
        if self.targets.input is None:
            raise ViewStateError("Batch has no labels")
        return self.targets.input

    def __len__(self) -> int:
        return self.inputs.n_sample()

    def fill(
        self,
        images: torch.Tensor,
        labels: torch.Tensor,
        multi_hot: torch.Tensor | None,
        carry: CarryLike | None = None,
    ) -> Batch:
        """Overwrite this batch in place, reusing buffers where shapes allow."""
        self.inputs.forward_put(INPUT_LAYOUT, _reuse(self.inputs.input, images))
        self.targets.forward_put(TARGET_LAYOUT, _reuse(self.targets.input, labels))
        if multi_hot is None:
            self.multi_hot = None
        else:
            self.multi_hot = _reuse(self.multi_hot, multi_hot)
        if carry is not None:
            self.carry = carry
        return self

    def sub(self, start: int, stop: int, into: Batch | None = None) -> Batch:
        """Samples ``start..stop`` inclusive, as a new batch or into ``into``."""
        inputs = self.inputs.sub(start, stop, new=True)
        targets = self.targets.sub(start, stop, new=True)
        multi_hot = (
            None
            if self.multi_hot is None
            else self.multi_hot.narrow(0, start, stop - start + 1)
        )
        carry = self.carry.slice(start, stop)
        if into is None:
            return Batch(
                inputs, targets, multi_hot, carry, self.which_set, self.epoch_size
            )
        return into.fill(
            inputs.forward_get(INPUT_LAYOUT, self.images.dtype),
            targets.forward_get(TARGET_LAYOUT, self.labels.dtype),
            multi_hot,
            carry,
        )

    def index(
        self, indices: Sequence[int] | torch.Tensor, into: Batch | None = None
    ) -> Batch:
        """Samples at ``indices``, in that order, as a new batch or into ``into``."""
        index = torch.as_tensor(indices, dtype=torch.long)
        multi_hot = (
            None if self.multi_hot is None else self.multi_hot.index_select(0, index)
        )
        carry = self.carry.gather(index)
        if into is None:
            return Batch(
                self.inputs.index(index),
                self.targets.index(index),
                multi_hot,
                carry,
                self.which_set,
                self.epoch_size,
            )
        self.inputs.index(index, into=into.inputs)
        self.targets.index(index, into=into.targets)
        into.multi_hot = (
            None if multi_hot is None else _reuse(into.multi_hot, multi_hot)
        )
        into.carry = carry
        return into
