from __future__ import annotations

import json
import re
from datetime import date
from typing import Any, Iterable, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from dateutil import parser as dateparser

from .errors import DateFormatError, ListingError, StructureMismatchError
from .models import CaseSummary

CARD_SELECTOR = "div.card.card--has-link"
OUTCOME_LABEL = "Outcome:"
DATE_CLOSED_LABEL = "Date Closed:"

MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
HUMAN_DATE_REGEX = re.compile(r"(\d{1,2})\s+(" + "|".join(MONTHS) + r")\s+(\d{4})", re.IGNORECASE)
MONTH_NUMBERS = {name.lower(): number for number, name in enumerate(MONTHS, start=1)}
ISO_DATE_REGEX = re.compile(r"\d{4}-\d{2}-\d{2}(?:[T ].*)?")

# Keys under which API responses have been seen to wrap the case array.
JSON_RESULT_KEYS = ("results", "Results", "items", "Items", "cases", "Cases", "data")

# CaseSummary attribute -> candidate keys in an API case object.
JSON_FIELD_MAP = {
    "name": ("Title", "title", "name"),
    "link": ("Link", "link", "url", "Url"),
    "status": ("Status", "status"),
    "tag": ("CaseCategory", "caseCategory", "case_category", "tag"),
    "outcome": ("Outcomes", "outcomes", "Outcome", "outcome"),
    "date": ("DateClosed", "dateClosed", "date_closed", "date"),
}


def parse_listing(content: str, source_url: str) -> list[CaseSummary]:
    """Parse a listing response of either shape and return sorted summaries.

    JSON bodies (starting with ``[`` or ``{``) go through
    :func:`parse_listing_json`, anything else is treated as server-rendered
    HTML. Zero records from non-empty content raises
    :class:`StructureMismatchError`.
    """

    # a UTF-8 BOM is not whitespace to str.strip
    stripped = (content or "").lstrip("\ufeff").strip()
    if not stripped:
        raise ListingError(f"Listing response from {source_url} was empty")

    if stripped[0] in "[{":
        try:
            payload = json.loads(stripped)
        except ValueError as exc:
            raise ListingError(f"Listing response from {source_url} is not valid JSON: {exc}") from exc
        cases = parse_listing_json(payload, source_url)
    else:
        cases = parse_listing_html(stripped, source_url)

    if not cases:
        raise StructureMismatchError(
            f"No cases found in listing from {source_url}; the page layout may have changed"
        )
    return sort_cases(cases)


def parse_listing_html(html: str, source_url: str) -> list[CaseSummary]:
    """Extract one summary per case card, in page order."""

    soup = BeautifulSoup(html, "html.parser")
    cases: list[CaseSummary] = []

    for card in soup.select(CARD_SELECTOR):
        anchor = card.select_one("a.card__link")
        name = anchor.get_text(" ", strip=True) if anchor else ""
        href = anchor.get("href", "") if anchor else ""

        info_details = [node.get_text(" ", strip=True) for node in card.select("div.card__info-detail")]

        cases.append(
            build_summary(
                name=name,
                link=absolute_link(href, source_url),
                status=_node_text(card, ".card__status"),
                tag=_node_text(card, ".card__tag"),
                outcome=_info_value(info_details, OUTCOME_LABEL),
                date=_info_value(info_details, DATE_CLOSED_LABEL),
            )
        )

    return cases


def parse_listing_json(payload: Any, source_url: str) -> list[CaseSummary]:
    """Map API case objects (``Title``, ``Link``, ``DateClosed``...) onto summaries."""

    records = _json_records(payload)
    if records is None:
        raise StructureMismatchError(f"Listing JSON from {source_url} does not contain a case array")

    cases: list[CaseSummary] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise StructureMismatchError(
                f"Listing JSON from {source_url} has a non-object case at index {index}: {record!r}"
            )

        outcome = _pick(record, "outcome")
        if isinstance(outcome, (list, tuple)):
            outcome = ", ".join(str(item).strip() for item in outcome if str(item).strip())

        cases.append(
            build_summary(
                name=_as_text(_pick(record, "name")),
                link=absolute_link(_as_text(_pick(record, "link")), source_url),
                status=_as_text(_pick(record, "status")),
                tag=_as_text(_pick(record, "tag")),
                outcome=_as_text(outcome),
                date=_humanise_date(_as_text(_pick(record, "date"))),
            )
        )

    return cases


def build_summary(
    *,
    name: str,
    link: str,
    status: str,
    tag: str,
    outcome: Optional[str],
    date: Optional[str],
) -> CaseSummary:
    """Apply the shared field cleanup rules and construct a summary."""

    return CaseSummary(
        name=re.sub(r"\s+", " ", name or "").strip(),
        link=(link or "").strip(),
        status=(status or "").strip(),
        tag=(tag or "").strip(),
        outcome=(outcome or "").strip() or None,
        date=(date or "").strip() or None,
    )


def site_root(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def absolute_link(href: str, source_url: str) -> str:
    """Prefix ``scheme://host`` of the source to relative links."""

    href = (href or "").strip()
    if not href:
        return ""
    if urlparse(href).scheme:
        return href
    return urljoin(site_root(source_url) + "/", href)


def canonical_date(text: Optional[str]) -> Optional[str]:
    """Convert "5 January 2024" to "2024-01-05".

    Blank input returns ``None``; anything else that is not a valid
    day/full-month/year date raises :class:`DateFormatError`.
    """

    if text is None or not text.strip():
        return None
    match = HUMAN_DATE_REGEX.fullmatch(text.strip())
    if not match:
        raise DateFormatError(f"Unrecognised closing date {text!r}")
    day, month, year = match.groups()
    try:
        value = date(int(year), MONTH_NUMBERS[month.lower()], int(day))
    except ValueError as exc:
        raise DateFormatError(f"Invalid closing date {text!r}: {exc}") from exc
    return value.isoformat()


def sort_key(case: CaseSummary) -> tuple[bool, str, str]:
    canonical = canonical_date(case.date)
    # Undated (still open) cases sort ahead of every closed case.
    return (canonical is not None, canonical or "", case.name)


def sort_cases(cases: Iterable[CaseSummary]) -> list[CaseSummary]:
    return sorted(cases, key=sort_key)


def _node_text(node, selector: str) -> str:
    found = node.select_one(selector)
    return found.get_text(" ", strip=True) if found else ""


def _info_value(lines: list[str], label: str) -> Optional[str]:
    for line in lines:
        if label in line:
            _, _, rest = line.partition(label)
            return rest.strip() or None
    return None


def _json_records(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in JSON_RESULT_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None


def _pick(record: dict, field_name: str) -> Any:
    for key in JSON_FIELD_MAP[field_name]:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _humanise_date(raw: str) -> Optional[str]:
    """Render ISO timestamps from the API in the listing's "D MMMM YYYY" form."""

    raw = raw.strip()
    if not raw:
        return None
    if not ISO_DATE_REGEX.fullmatch(raw):
        return raw
    try:
        value = dateparser.isoparse(raw)
    except ValueError as exc:
        raise DateFormatError(f"Invalid closing date {raw!r}: {exc}") from exc
    return f"{value.day} {MONTHS[value.month - 1]} {value.year}"


__all__ = [
    "absolute_link",
    "build_summary",
    "canonical_date",
    "parse_listing",
    "parse_listing_html",
    "parse_listing_json",
    "site_root",
    "sort_cases",
    "sort_key",
]
