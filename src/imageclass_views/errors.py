"""Exception taxonomy for imageclass_views.

Construction-time errors abort the whole dataset build. View errors are
contract violations raised immediately at the offending call.
"""


class ImageClassViewsError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# Dataset indexer
# ---------------------------------------------------------------------------


class EmptyClassError(ImageClassViewsError):
    """A class folder yielded zero matching image files."""


class EmptyDatasetError(ImageClassViewsError):
    """No image file was found under any of the data paths."""


class IndexRangeError(ImageClassViewsError, IndexError):
    """A gather or slice fell outside ``[0, N)`` or had ``start > stop``."""


class ShapeMismatchError(ImageClassViewsError, ValueError):
    """Decoded samples of one batch do not share the same shape."""


class UnsupportedModeError(ImageClassViewsError):
    """Sampling was requested in a mode the dataset cannot serve."""


# ---------------------------------------------------------------------------
# View engine
# ---------------------------------------------------------------------------


class LayoutRankMismatchError(ImageClassViewsError, ValueError):
    """Layout string length differs from the tensor's number of dims."""


class NoBatchAxisError(ImageClassViewsError, ValueError):
    """Layout string has no batch (``b``) axis."""


class TypeMismatchError(ImageClassViewsError, TypeError):
    """Gradient requested in a dtype other than the canonical tensor's."""


class UnsupportedLayoutError(ImageClassViewsError, ValueError):
    """No transform pipeline can derive the requested layout."""


class ViewStateError(ImageClassViewsError, RuntimeError):
    """View method called out of order (e.g. backward before forward)."""
