"""Per-case detail page extraction.

A detail page carries three things we keep: a prose description, a block of
labelled case fields and a timeline of updates. Case pages have shipped more
than one markup for the fields and the timeline, so each is read by a short,
ordered list of strategies. A strategy returns ``None`` when its markup is not
on the page and the next one is tried.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from bs4 import BeautifulSoup

from .listing import absolute_link
from .models import CaseDetail

DESCRIPTION_SELECTORS = (".content-block__content", ".gem-c-govspeak")


def normalize_key(label: str) -> str:
    """``"Date Closed :"`` -> ``"date_closed"``."""

    key = (label or "").strip()
    if key.endswith(":"):
        key = key[:-1].strip()
    return key.replace(" ", "_").lower()


class DetailsStrategy:
    """Reads the labelled case fields from one known layout."""

    def extract(self, soup: BeautifulSoup) -> Optional[dict[str, str]]:
        raise NotImplementedError


class DefinitionListDetails(DetailsStrategy):
    """``<dl>`` where each ``<dt>`` owns every ``<dd>`` up to the next ``<dt>``."""

    selectors = ("dl.case-details__list", ".case-details dl", "dl.gem-c-metadata__list")

    def extract(self, soup: BeautifulSoup) -> Optional[dict[str, str]]:
        lists = []
        for selector in self.selectors:
            lists = soup.select(selector)
            if lists:
                break
        if not lists:
            return None

        # a <dl> nested inside a matched list's <dd> is part of that value
        matched = {id(dl) for dl in lists}
        lists = [dl for dl in lists if not any(id(parent) in matched for parent in dl.parents)]

        details: dict[str, str] = {}
        for dl in lists:
            label: Optional[str] = None
            values: list[str] = []
            for child in _label_value_nodes(dl):
                if child.name == "dt":
                    _store(details, label, values)
                    label = child.get_text(" ", strip=True)
                    values = []
                elif label is not None:
                    values.append(child.get_text(" ", strip=True))
            _store(details, label, values)
        return details


class RecordDetails(DetailsStrategy):
    """Flat ``.case-details__record`` nodes with one title and one value child."""

    def extract(self, soup: BeautifulSoup) -> Optional[dict[str, str]]:
        records = soup.select(".case-details__record")
        if not records:
            return None

        details: dict[str, str] = {}
        for record in records:
            title = record.find(class_="case-details__record-title", recursive=False)
            value = record.find(class_="case-details__record-value", recursive=False)
            key = normalize_key(title.get_text(" ", strip=True) if title else "")
            if key:
                details[key] = value.get_text(" ", strip=True) if value else ""
        return details


class TimelineStrategy:
    """Reads the ordered list of case updates from one known layout."""

    def extract(self, soup: BeautifulSoup, page_url: str) -> Optional[list[dict[str, Any]]]:
        raise NotImplementedError


class UpdateNodeTimeline(TimelineStrategy):
    """Repeated ``.case-updates__item`` nodes, kept in page order."""

    def extract(self, soup: BeautifulSoup, page_url: str) -> Optional[list[dict[str, Any]]]:
        items = soup.select(".case-updates__item")
        if not items:
            return None

        updates = []
        for item in items:
            date_node = item.find("time") or item.select_one(".case-updates__date")
            title_node = item.select_one(".case-updates__title")
            anchor = item.find("a", href=True)
            updates.append(
                {
                    "date": date_node.get_text(" ", strip=True) if date_node else None,
                    "title": title_node.get_text(" ", strip=True) if title_node else None,
                    "document_link": absolute_link(anchor["href"], page_url) if anchor else None,
                    "document_title": (anchor.get_text(" ", strip=True) or None) if anchor else None,
                }
            )
        return updates


class EmbeddedTimeline(TimelineStrategy):
    """Entity-encoded JSON in a ``project`` attribute with a ``timeline`` array."""

    attribute = "project"

    def extract(self, soup: BeautifulSoup, page_url: str) -> Optional[list[dict[str, Any]]]:
        node = soup.find(attrs={self.attribute: True})
        if node is None:
            return None
        return decode_timeline(node.get(self.attribute, ""))


def decode_timeline(raw: str) -> list[dict[str, Any]]:
    """Decode the embedded project payload; anything unreadable yields ``[]``."""

    text = (raw or "").replace("&#34;", '"').replace("&amp;", "&")
    try:
        payload = json.loads(text)
    except ValueError:
        return []
    timeline = payload.get("timeline") if isinstance(payload, dict) else None
    return timeline if isinstance(timeline, list) else []


DETAILS_STRATEGIES: Sequence[DetailsStrategy] = (DefinitionListDetails(), RecordDetails())
TIMELINE_STRATEGIES: Sequence[TimelineStrategy] = (UpdateNodeTimeline(), EmbeddedTimeline())


def parse_detail_html(
    html: str,
    page_url: str,
    *,
    details_strategies: Sequence[DetailsStrategy] = DETAILS_STRATEGIES,
    timeline_strategies: Sequence[TimelineStrategy] = TIMELINE_STRATEGIES,
) -> CaseDetail:
    soup = BeautifulSoup(html, "html.parser")

    case_details: dict[str, str] = {}
    for strategy in details_strategies:
        found = strategy.extract(soup)
        if found is not None:
            case_details = found
            break

    updates: list[dict[str, Any]] = []
    for strategy in timeline_strategies:
        found = strategy.extract(soup, page_url)
        if found is not None:
            updates = found
            break

    return CaseDetail(description=extract_description(soup), case_details=case_details, updates=updates)


def extract_description(soup: BeautifulSoup) -> str:
    for selector in DESCRIPTION_SELECTORS:
        block = soup.select_one(selector)
        if block is not None:
            return block.get_text("\n", strip=True)
    return ""


def validate_detail(detail: CaseDetail) -> CaseDetail:
    """Round-trip through JSON; raises ``ValueError`` if the detail is not serialisable."""

    try:
        encoded = json.dumps(detail.as_dict(), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Extracted details are not valid JSON: {exc}") from exc
    decoded = json.loads(encoded)
    return CaseDetail(
        description=decoded["description"],
        case_details=decoded["case_details"],
        updates=decoded["updates"],
    )


def _label_value_nodes(dl) -> list:
    """Direct ``dt``/``dd`` children, looking through HTML5 ``<div>`` groups."""

    nodes = []
    for child in dl.find_all(["dt", "dd", "div"], recursive=False):
        if child.name == "div":
            nodes.extend(child.find_all(["dt", "dd"], recursive=False))
        else:
            nodes.append(child)
    return nodes


def _store(details: dict[str, str], label: Optional[str], values: list[str]) -> None:
    if label is None:
        return
    key = normalize_key(label)
    if key:
        details[key] = "\n".join(values)


__all__ = [
    "DefinitionListDetails",
    "DetailsStrategy",
    "EmbeddedTimeline",
    "RecordDetails",
    "TimelineStrategy",
    "UpdateNodeTimeline",
    "decode_timeline",
    "extract_description",
    "normalize_key",
    "parse_detail_html",
    "validate_detail",
]
