"""Tests for the Pillow image codec."""

from pathlib import Path

import torch
from PIL import Image

from imageclass_views.data.codec import PILImageCodec


class TestPILImageCodec:
    def test_decode_to_requested_size(self, tmp_path: Path) -> None:
        path = tmp_path / "red.png"
        Image.new("RGB", (20, 10), color=(255, 0, 0)).save(path)

        out = PILImageCodec().decode(str(path), 6, 8)
        assert out.shape == (3, 6, 8)
        assert out.dtype == torch.float32
        assert type(out) is torch.Tensor
        assert torch.allclose(out[0], torch.ones(6, 8), atol=0.02)
        assert torch.allclose(out[1], torch.zeros(6, 8), atol=0.02)

    def test_grayscale_is_converted_to_rgb(self, tmp_path: Path) -> None:
        path = tmp_path / "gray.png"
        Image.new("L", (4, 4), color=128).save(path)

        out = PILImageCodec(load_size=(8, 8)).decode(str(path), 4, 4)
        assert out.shape == (3, 4, 4)
        assert torch.allclose(out[0], out[2])
