"""Fatal error conditions that abort a scrape run."""

from __future__ import annotations


class MergerScrapeError(Exception):
    """Base class for run-aborting failures."""


class ListingError(MergerScrapeError):
    """The listing source could not be fetched or understood."""


class StructureMismatchError(ListingError):
    """Non-empty listing content produced zero case records.

    Almost always means the page layout or API shape changed upstream.
    """


class DateFormatError(ListingError):
    """A closing date was present but matched no known format."""


class ListingFileError(MergerScrapeError):
    """The listing artifact consumed by the detail stage is missing or unreadable."""
