"""Merger case listing and detail scraping utilities."""

from .models import CaseDetail, CaseSummary, EnrichedCase
from .pipeline import MergerCaseScraper, ScrapeResult

__all__ = [
    "CaseDetail",
    "CaseSummary",
    "EnrichedCase",
    "MergerCaseScraper",
    "ScrapeResult",
]
