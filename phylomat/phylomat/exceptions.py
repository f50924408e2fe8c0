"""Exception types raised by phylomat."""

from __future__ import annotations


class PhylomatError(Exception):
    """Base class for all phylomat errors."""


class MatrixFormatError(PhylomatError, ValueError):
    """Input text is not a readable PHYLIP distance matrix."""


class MatrixValidationError(PhylomatError, ValueError):
    """A matrix failed the distance-matrix validation checks."""


class TooFewTaxaError(PhylomatError, ValueError):
    """Tree building needs at least four names."""

    def __init__(self, size: int) -> None:
        super().__init__("expected at least four species")
        self.size = size
