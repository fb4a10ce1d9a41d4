"""Exception types raised by the wordloop core."""


class WordloopError(Exception):
    """Base class for wordloop errors."""


class ValidationError(WordloopError, ValueError):
    """Raised when a caller passes a value outside its allowed domain."""


class StorageError(WordloopError):
    """Raised when the progress database cannot be read or written."""


class PackageFormatError(WordloopError):
    """Raised when a word package file is malformed."""
