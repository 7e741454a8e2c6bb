# python/vimscene/errors.py
# Error taxonomy for VIM decoding
# Exists so callers can tell structural byte-layout failures apart from geometry failures
# RELEVANT FILES: python/vimscene/bfast.py, python/vimscene/g3d.py, python/vimscene/vim.py
from __future__ import annotations


class VimFormatError(ValueError):
    """Base class for every unrecoverable decode failure."""


class MalformedContainer(VimFormatError):
    """BFast byte layout is invalid (reserved words, offsets, name count)."""


class UnknownColumnType(VimFormatError):
    """Entity column name carries a type tag that is not recognised."""

    def __init__(self, column_type: str, column: str = ""):
        self.column_type = column_type
        self.column = column
        super().__init__(f"Unrecognized column type '{column_type}' for column '{column}'")


class InvalidGeometry(VimFormatError):
    """G3D attributes failed descriptor parsing or the validation pass."""


class InsufficientBuffers(VimFormatError):
    """Fewer sections than required in a container or sub-container."""
