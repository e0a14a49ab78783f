from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

import requests

from .detail import parse_detail_html, validate_detail
from .errors import ListingError, ListingFileError
from .listing import parse_listing
from .models import CaseDetail, CaseSummary, EnrichedCase
from .session import build_http_session, fetch_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 16


@dataclass
class ScrapeResult:
    cases: list[EnrichedCase] = field(default_factory=list)
    failed_links: list[str] = field(default_factory=list)
    listing_path: Optional[Path] = None
    detailed_path: Optional[Path] = None


class MergerCaseScraper:
    """Scrape a merger case listing and enrich each case with its detail page."""

    def __init__(
        self,
        *,
        http_timeout: Optional[float] = None,
        retry_total: int = 3,
        retry_backoff: float = 0.5,
        user_agent: Optional[str] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        debug_dir: Path | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.max_workers = max(1, max_workers)
        self.session = session or build_http_session(
            timeout=http_timeout,
            retry_total=retry_total,
            retry_backoff=retry_backoff,
            user_agent=user_agent,
            pool_size=self.max_workers,
        )
        self.debug_dir = Path(debug_dir).resolve() if debug_dir else None
        if self.debug_dir:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
        self.failed_links: list[str] = []

    def scrape_listing(self, url: str, *, api: bool = False) -> list[CaseSummary]:
        """Fetch and parse the listing. Every failure here is fatal."""

        try:
            content = fetch_text(self.session, url, api=api)
        except requests.RequestException as exc:
            raise ListingError(f"Failed to download listing {url}: {exc}") from exc

        cases = parse_listing(content, url)
        logger.info("Parsed %d cases from %s", len(cases), url)
        return cases

    def fetch_detail(self, case: CaseSummary) -> CaseDetail:
        """Scrape one case page, degrading to an empty detail on any failure."""

        if not case.link:
            logger.warning("No link for case %r; details left empty", case.name)
            return CaseDetail.empty()

        logger.debug("Scraping details from %s", case.link)
        try:
            html = fetch_text(self.session, case.link)
        except requests.RequestException as exc:
            logger.warning("Failed to download %s: %s", case.link, exc)
            self.failed_links.append(case.link)
            return CaseDetail.empty()

        try:
            return validate_detail(parse_detail_html(html, case.link))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Invalid or empty details extracted for %s: %s", case.link, exc)
            self.failed_links.append(case.link)
            self._dump_debug(case.link, html)
            return CaseDetail.empty()

    def enrich(self, cases: Sequence[CaseSummary], *, max_workers: Optional[int] = None) -> list[EnrichedCase]:
        """Attach details to every case, preserving the input order."""

        workers = max(1, max_workers if max_workers is not None else self.max_workers)
        results: list[Optional[EnrichedCase]] = [None] * len(cases)

        def work(index: int) -> None:
            case = cases[index]
            results[index] = EnrichedCase(summary=case, details=self.fetch_detail(case))

        if workers == 1:
            for index in range(len(cases)):
                work(index)
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                # list() re-raises anything unexpected from a worker
                list(pool.map(work, range(len(cases))))

        return [item for item in results if item is not None]

    def run(
        self,
        url: str,
        *,
        listing_path: Path,
        detailed_path: Path,
        api: bool = False,
    ) -> ScrapeResult:
        """Listing stage then detail stage, writing both artifacts."""

        cases = self.scrape_listing(url, api=api)
        write_json_atomic(Path(listing_path), [case.as_dict() for case in cases])
        result = self.run_details(cases, detailed_path=detailed_path)
        result.listing_path = Path(listing_path)
        return result

    def run_details(self, cases: Sequence[CaseSummary], *, detailed_path: Path) -> ScrapeResult:
        self.failed_links = []
        enriched = self.enrich(cases)
        write_json_atomic(Path(detailed_path), [case.as_dict() for case in enriched])
        return ScrapeResult(cases=enriched, failed_links=list(self.failed_links), detailed_path=Path(detailed_path))

    def close(self) -> None:
        self.session.close()

    def _dump_debug(self, url: str, content: str) -> None:
        if not self.debug_dir:
            return
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        target = self.debug_dir / f"{digest}.html"
        target.write_text(f"<!-- {url} -->\n{content}", encoding="utf-8")
        logger.debug("Saved failing page for %s to %s", url, target)


def load_listing(path: Path) -> list[CaseSummary]:
    """Read a listing artifact written by the listing stage."""

    path = Path(path)
    if not path.is_file():
        raise ListingFileError(f"Input file '{path}' not found. Run the listing stage first.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ListingFileError(f"Could not read listing file '{path}': {exc}") from exc
    if not isinstance(payload, list):
        raise ListingFileError(f"Listing file '{path}' must contain a JSON array")
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ListingFileError(f"Listing file '{path}' has a non-object case at index {index}: {item!r}")
    return [CaseSummary.from_dict(item) for item in payload]


def write_json_atomic(path: Path, payload: Iterable[dict[str, object]]) -> Path:
    """Write JSON to a sibling temp file and rename it into place."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".tmp_{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(list(payload), handle, indent=2, ensure_ascii=False)
            handle.write("\n")
        # mkstemp creates 0600; publish with the usual umask-derived mode
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask
