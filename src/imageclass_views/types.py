"""Type aliases, TypedDicts and index selectors for imageclass_views."""

from __future__ import annotations

from typing import TypedDict

import torch
from pydantic import BaseModel


class ClassificationBatch(TypedDict):
    """A single batch from an image-classification DataLoader.

    images: Float tensor of shape (B, C, H, W).
    labels: Long tensor of shape (B,), integer class indices.
    multi_hot: Long tensor of shape (B, K), -1 everywhere except 1 at the
        true class column.
    """

    images: torch.Tensor
    labels: torch.Tensor
    multi_hot: torch.Tensor


# ---------------------------------------------------------------------------
# Index selectors for ImageClassSet.get
# ---------------------------------------------------------------------------


class SingleIndex(BaseModel, frozen=True):
    """One global sample index."""

    index: int


class IndexRange(BaseModel, frozen=True):
    """Contiguous range of global sample indices, ``stop`` inclusive."""

    start: int
    stop: int


class IndexList(BaseModel, frozen=True):
    """Explicit, ordered list of global sample indices."""

    indices: tuple[int, ...]


IndexSelector = SingleIndex | IndexRange | IndexList
