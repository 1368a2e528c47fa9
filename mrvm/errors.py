"""Exception hierarchy for MRVM."""

from typing import Any, Optional


class MRVMError(Exception):
    """Base class for all MRVM errors."""


class ConfigurationError(MRVMError, ValueError):
    """Invalid configuration value (kernel family, length scale, window size...)."""


class ShapeError(MRVMError, ValueError):
    """
    Row or column counts that do not line up.
    
    Parameters:
        message: Human readable description
        item: Name of the offending item (if any)
        expected: Expected count or shape
        actual: Count or shape that was found
    """
    
    def __init__(
        self,
        message: str,
        item: Optional[str] = None,
        expected: Any = None,
        actual: Any = None
    ):
        details = []
        if item is not None:
            details.append(f"item={item!r}")
        if expected is not None:
            details.append(f"expected={expected}")
        if actual is not None:
            details.append(f"actual={actual}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)
        self.item = item
        self.expected = expected
        self.actual = actual


class MissingBootstrapError(ShapeError):
    """A raster item has no sampling windows assigned."""


class DomainError(MRVMError, ValueError):
    """A value that cannot be used for a particular row."""
    
    def __init__(self, message: str, item: Optional[str] = None, row: Optional[int] = None):
        if item is not None or row is not None:
            message = f"{message} (item={item!r}, row={row})"
        super().__init__(message)
        self.item = item
        self.row = row


class UnresolvedCategoryError(DomainError):
    """Categorical label without a training-time class index."""


class NoDataError(DomainError):
    """No-data raster cell inside a requested sampling window."""


class ModelStateError(MRVMError, RuntimeError):
    """Operation requires a trained or loaded model."""
