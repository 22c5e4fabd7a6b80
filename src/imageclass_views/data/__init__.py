"""Data pipeline for imageclass_views."""

from imageclass_views.data.batch import Batch
from imageclass_views.data.carry import Carry
from imageclass_views.data.codec import PILImageCodec
from imageclass_views.data.datamodule import ImageClassDataModule
from imageclass_views.data.dataset import ImageClassSet, ImageClassSetDataset
from imageclass_views.data.index import (
    ClassCatalog,
    PathTable,
    SampleIndex,
    build_index,
)
from imageclass_views.data.sampler import (
    SamplerConfig,
    TrackingClassSampler,
    build_sampler,
)
from imageclass_views.data.utils import IMAGE_EXTENSIONS, DirectoryEnumerator

__all__ = [
    "IMAGE_EXTENSIONS",
    "Batch",
    "Carry",
    "ClassCatalog",
    "DirectoryEnumerator",
    "ImageClassDataModule",
    "ImageClassSet",
    "ImageClassSetDataset",
    "PILImageCodec",
    "PathTable",
    "SampleIndex",
    "SamplerConfig",
    "TrackingClassSampler",
    "build_index",
    "build_sampler",
]
