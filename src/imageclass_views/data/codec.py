"""Image decode and resize provider for ImageClassSet."""

from __future__ import annotations

from typing import Protocol

import torch
from PIL import Image
from torchvision.transforms import v2


class ImageCodec(Protocol):
    """Decodes one image file to a ``(C, H, W)`` tensor of the given size."""

    def decode(self, path: str, height: int, width: int) -> torch.Tensor: ...


class PILImageCodec:
    """Pillow decoder producing float32 RGB tensors in ``[0, 1]``, CHW order.

    The image is first resized to ``load_size`` (when given) and then to the
    requested ``(height, width)``, mirroring a load-then-sample pipeline.
    Decode errors are not caught: a broken file fails the whole batch.

    Args:
        load_size: Optional ``(height, width)`` the image is loaded at before
            the final resize.
    """

    def __init__(self, load_size: tuple[int, int] | None = None) -> None:
        self.load_size = load_size
        self._to_tensor = v2.Compose([
            v2.ToImage(),
            v2.ToDtype(torch.float32, scale=True),
        ])

    def decode(self, path: str, height: int, width: int) -> torch.Tensor:
        with Image.open(path) as img:
            rgb = img.convert("RGB")
        if self.load_size is not None and self.load_size != (height, width):
            rgb = rgb.resize(
                (self.load_size[1], self.load_size[0]), Image.Resampling.BILINEAR
            )
        if rgb.size != (width, height):
            rgb = rgb.resize((width, height), Image.Resampling.BILINEAR)
        return self._to_tensor(rgb).as_subclass(torch.Tensor)
