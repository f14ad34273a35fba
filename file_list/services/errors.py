from __future__ import annotations


class ListingError(Exception):
    """Base class for failures that abort a listing; the message is shown to the visitor."""


class DirectoryAccessError(ListingError):
    """Raised when the requested path is outside the listing root."""


class DirectoryNotFoundError(ListingError):
    """Raised when the requested path does not exist or is not a directory."""


class MissingRootError(ListingError):
    """Raised when a listing is embedded without a root folder."""


class InvalidFilterError(ListingError):
    """Raised when the configured file filter is not a valid regular expression."""
