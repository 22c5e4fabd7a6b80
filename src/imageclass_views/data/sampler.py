"""Class-balanced and random index samplers for training DataLoaders."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Literal

import torch
from pydantic import BaseModel
from torch.utils.data import Sampler

from imageclass_views.data.dataset import ImageClassSet


class SamplerConfig(BaseModel, frozen=True):
    """Configuration for the training data sampler.

    Modes:
        disabled: No sampler; the DataLoader shuffles instead.
        balanced: Uniform over classes, then uniform within the class.
        random: Uniform over samples, with replacement.
    """

    mode: Literal["disabled", "balanced", "random"] = "balanced"
    num_samples: int | None = None
    seed: int | None = None


def build_sampler(
    config: SamplerConfig, image_set: ImageClassSet
) -> TrackingClassSampler | None:
    """Factory: build a sampler from config over an indexed dataset.

    Args:
        config: SamplerConfig specifying mode and epoch length.
        image_set: The training ImageClassSet.

    Returns:
        TrackingClassSampler for balanced/random, None for disabled.
    """
    if config.mode == "disabled":
        return None
    num_samples = (
        config.num_samples if config.num_samples is not None else len(image_set)
    )
    if num_samples < 1:
        raise ValueError(f"num_samples must be >= 1, got {num_samples}")
    generator = None
    if config.seed is not None:
        generator = torch.Generator().manual_seed(config.seed)
    return TrackingClassSampler(
        image_set, mode=config.mode, num_samples=num_samples, generator=generator
    )


class TrackingClassSampler(Sampler[int]):
    """Draws global sample indices from an ImageClassSet's class index lists.

    Each epoch yields ``num_samples`` indices, drawn with replacement. The
    indices of the last full epoch are kept in ``_last_indices`` so the draw
    distribution can be inspected without changing the sampling logic.
    """

    def __init__(
        self,
        image_set: ImageClassSet,
        mode: Literal["balanced", "random"] = "balanced",
        num_samples: int | None = None,
        generator: torch.Generator | None = None,
    ) -> None:
        self.image_set = image_set
        self.mode = mode
        self.num_samples = num_samples if num_samples is not None else len(image_set)
        self.generator = generator
        self._last_indices: list[int] = []

    def __len__(self) -> int:
        return self.num_samples

    def __iter__(self) -> Iterator[int]:
        """Yield sampled indices and record them in ``_last_indices``."""
        indices = self._draw().tolist()
        self._last_indices = indices
        yield from indices

    def _draw(self) -> torch.Tensor:
        class_lists = self.image_set.class_lists
        if self.mode == "random":
            return torch.randint(
                0, len(self.image_set), (self.num_samples,), generator=self.generator
            )
        # class lists are contiguous ranges, so a class draw plus an offset
        # from the class start is a uniform draw within that class
        sizes = torch.tensor([len(c) for c in class_lists], dtype=torch.long)
        starts = torch.tensor([int(c[0]) for c in class_lists], dtype=torch.long)
        classes = torch.randint(
            0, len(class_lists), (self.num_samples,), generator=self.generator
        )
        offsets = (
            torch.rand(self.num_samples, generator=self.generator) * sizes[classes]
        ).long()
        return starts[classes] + torch.minimum(offsets, sizes[classes] - 1)
