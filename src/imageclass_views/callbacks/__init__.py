"""Lightning callbacks reporting on ImageClassSet data."""

from imageclass_views.callbacks.sampler import SamplerDistributionCallback
from imageclass_views.callbacks.statistics import DatasetStatisticsCallback

__all__ = [
    "DatasetStatisticsCallback",
    "SamplerDistributionCallback",
]
