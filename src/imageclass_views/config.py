"""Pydantic frozen configuration models for imageclass_views."""

from typing import Literal

from pydantic import BaseModel, field_validator, model_validator


class ImageClassSetConfig(BaseModel, frozen=True):
    """Configuration for ImageClassSet.

    ``load_size`` and ``sample_size`` are ``(channels, height, width)``.
    ``sample_size`` defaults to ``load_size``. Frozen: no mutation after
    creation.
    """

    data_path: tuple[str, ...]
    load_size: tuple[int, int, int]
    sample_size: tuple[int, int, int] | None = None
    sampling_mode: Literal["balanced", "random"] = "balanced"
    which_set: Literal["train", "valid", "test"] = "train"
    verbose: bool = True
    seed: int | None = None

    @field_validator("data_path", mode="before")
    @classmethod
    def _single_path_to_tuple(cls, value: object) -> object:
        """Accept a single path string as well as a sequence of paths."""
        if isinstance(value, str):
            return (value,)
        return value

    @model_validator(mode="after")
    def _resolve_sample_size(self) -> "ImageClassSetConfig":
        if not self.data_path:
            raise ValueError("data_path must name at least one directory")
        if any(dim <= 0 for dim in self.load_size):
            raise ValueError(f"load_size must be positive, got {self.load_size}")
        if self.sample_size is None:
            # Use object.__setattr__ because model is frozen
            object.__setattr__(self, "sample_size", self.load_size)
        return self


class DataModuleConfig(BaseModel, frozen=True):
    """Configuration for ImageClassDataModule.

    Expects ``data_root/{train,valid,test}/<class>/<images>``. All fields are
    validated at construction time.
    """

    data_root: str
    batch_size: int = 32
    num_workers: int = 4
    pin_memory: bool = True
    persistent_workers: bool = True
    image_size: int = 224
    load_size: int | None = None
    sampling_mode: Literal["balanced", "random"] = "balanced"

    @model_validator(mode="after")
    def _persistent_workers_requires_workers(self) -> "DataModuleConfig":
        """persistent_workers=True with num_workers=0 silently does nothing."""
        if self.persistent_workers and self.num_workers == 0:
            object.__setattr__(self, "persistent_workers", False)
        return self
