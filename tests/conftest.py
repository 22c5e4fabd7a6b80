"""Shared pytest fixtures for imageclass_views tests."""

from pathlib import Path

import pytest
import torch
from PIL import Image

from imageclass_views.config import ImageClassSetConfig
from imageclass_views.data.dataset import ImageClassSet


def make_image(path: Path, color: tuple[int, int, int], size=(20, 16)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=color).save(path)
    return path


class ZeroCodec:
    """Codec stub: no file I/O, returns a constant tensor and counts calls."""

    def __init__(self) -> None:
        self.paths: list[str] = []

    def decode(self, path: str, height: int, width: int) -> torch.Tensor:
        self.paths.append(path)
        return torch.zeros(3, height, width)


@pytest.fixture()
def zero_codec() -> ZeroCodec:
    return ZeroCodec()


@pytest.fixture()
def class_tree(tmp_path: Path) -> Path:
    """Flat class-folder dataset.

    root/
      cat/  cat_0.jpg cat_1.jpg cat_2.jpg notes.txt sub/deep.jpeg
      dog/  dog_0.png dog_1.png
      eel/  eel_0.JPG

    3 classes, 7 images: cat=4, dog=2, eel=1 (notes.txt is not an image).
    """
    root = tmp_path / "root"
    for i in range(3):
        make_image(root / "cat" / f"cat_{i}.jpg", (200, 10 * i, 0))
    (root / "cat" / "notes.txt").write_text("not an image")
    make_image(root / "cat" / "sub" / "deep.jpeg", (150, 150, 150))
    for i in range(2):
        make_image(root / "dog" / f"dog_{i}.png", (0, 200, 10 * i))
    make_image(root / "eel" / "eel_0.JPG", (0, 0, 200))
    return root


@pytest.fixture()
def class_config(class_tree: Path) -> ImageClassSetConfig:
    return ImageClassSetConfig(
        data_path=str(class_tree),
        load_size=(3, 12, 12),
        sample_size=(3, 8, 8),
        verbose=False,
        seed=0,
    )


@pytest.fixture()
def image_set(class_config: ImageClassSetConfig) -> ImageClassSet:
    return ImageClassSet(class_config)


@pytest.fixture()
def skewed_set(tmp_path: Path) -> ImageClassSet:
    """200 images in ``big``, 1 in ``tiny``; files are empty, never decoded."""
    root = tmp_path / "skewed"
    (root / "big").mkdir(parents=True)
    (root / "tiny").mkdir()
    for i in range(200):
        (root / "big" / f"{i:03d}.jpg").touch()
    (root / "tiny" / "only.jpg").touch()
    config = ImageClassSetConfig(
        data_path=str(root), load_size=(3, 4, 4), verbose=False, seed=1234
    )
    return ImageClassSet(config, codec=ZeroCodec())


@pytest.fixture()
def split_root(tmp_path: Path) -> Path:
    """data_root/{train,valid,test}/{a,b,c}/ with 2 images per class."""
    root = tmp_path / "splits"
    for split in ("train", "valid", "test"):
        for c, cls in enumerate(("a", "b", "c")):
            for i in range(2):
                make_image(root / split / cls / f"{cls}_{i}.png", (80 * c, 40 * i, 90))
    return root
