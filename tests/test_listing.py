from __future__ import annotations

import json

import pytest

from mergers.errors import DateFormatError, ListingError, StructureMismatchError
from mergers.listing import (
    absolute_link,
    canonical_date,
    parse_listing,
    parse_listing_html,
    site_root,
    sort_cases,
)
from mergers.models import CaseSummary

LISTING_URL = "https://example.org/cases"


def _card(name: str, href: str, status: str, tag: str, outcome: str | None, date: str | None) -> str:
    details = ""
    if outcome is not None:
        details += f'<div class="card__info-detail"><span>Outcome:</span> {outcome}</div>'
    if date is not None:
        details += f'<div class="card__info-detail"><span>Date Closed:</span> {date}</div>'
    return f"""
    <div class="card card--has-link">
      <div class="card__tag">{tag}</div>
      <h3><a class="card__link" href="{href}">{name}</a></h3>
      <div class="card__status"> {status} </div>
      <div class="card__info">{details}</div>
    </div>
    """


SAMPLE_HTML = (
    '<html><body><div class="cards">'
    + _card("  Beta Holdings   /\n  Gamma Ltd ", "/case/2", "Closed", "Mergers", "Cleared", "17 October 2025")
    + _card("Ongoing Co / Target plc", "/case/3", "Open", "Mergers", None, None)
    + _card("Alpha Ltd / Delta", "/case/1", "Closed", "Mergers", "Remedies accepted", "17 October 2025")
    + _card("Early Corp / Late Inc", "https://other.example/case/4", "Closed", "Markets", "", "5 January 2024")
    + "</div></body></html>"
)


def test_parse_listing_html_extracts_cards_in_page_order():
    cases = parse_listing_html(SAMPLE_HTML, LISTING_URL)

    assert [case.name for case in cases] == [
        "Beta Holdings / Gamma Ltd",
        "Ongoing Co / Target plc",
        "Alpha Ltd / Delta",
        "Early Corp / Late Inc",
    ]
    first = cases[0]
    assert first.link == "https://example.org/case/2"
    assert first.status == "Closed"
    assert first.tag == "Mergers"
    assert first.outcome == "Cleared"
    assert first.date == "17 October 2025"

    assert cases[1].outcome is None
    assert cases[1].date is None
    # empty outcome text is treated as missing
    assert cases[3].outcome is None


def test_parse_listing_sorts_undated_first_then_date_then_name():
    cases = parse_listing(SAMPLE_HTML, LISTING_URL)

    assert len(cases) == 4
    assert [case.name for case in cases] == [
        "Ongoing Co / Target plc",
        "Early Corp / Late Inc",
        "Alpha Ltd / Delta",
        "Beta Holdings / Gamma Ltd",
    ]


def test_date_is_kept_human_readable_in_output():
    cases = parse_listing(SAMPLE_HTML, LISTING_URL)
    early = next(case for case in cases if case.name.startswith("Early"))

    assert canonical_date(early.date) == "2024-01-05"
    assert early.as_dict()["date"] == "5 January 2024"


def test_links_are_made_absolute_against_site_root():
    assert site_root("https://example.org/cases?page=1") == "https://example.org"
    assert absolute_link("/case/42", "https://example.org/cases") == "https://example.org/case/42"
    assert absolute_link("https://other.example/x", "https://example.org/cases") == "https://other.example/x"


def test_canonical_date():
    assert canonical_date("5 January 2024") == "2024-01-05"
    assert canonical_date(" 17 October 2025 ") == "2025-10-17"
    assert canonical_date(None) is None
    assert canonical_date("   ") is None


@pytest.mark.parametrize("raw", ["2024-01-05", "Jan 5 2024", "31 February 2024", "5 Janvier 2024"])
def test_canonical_date_rejects_malformed_dates(raw):
    with pytest.raises(DateFormatError):
        canonical_date(raw)


def test_malformed_listing_date_aborts_parse():
    html = _card("Broken / Case", "/case/9", "Closed", "Mergers", "Cleared", "sometime in 2024")

    with pytest.raises(DateFormatError):
        parse_listing(html, LISTING_URL)


def test_zero_cards_is_a_structure_mismatch():
    with pytest.raises(StructureMismatchError):
        parse_listing("<html><body><p>Redesigned page</p></body></html>", LISTING_URL)


def test_empty_listing_is_fatal():
    with pytest.raises(ListingError):
        parse_listing("  \n", LISTING_URL)


def test_parse_listing_accepts_api_json():
    payload = {
        "Results": [
            {
                "Title": "Zed plc  /  Why Ltd",
                "Link": "/cma-cases/zed-why",
                "Status": "Closed ",
                "Outcomes": ["Phase 1 clearance"],
                "DateClosed": "2025-10-17T00:00:00",
                "CaseCategory": "Mergers",
            },
            {
                "Title": "Open Case",
                "Link": "/cma-cases/open",
                "Status": "Live",
                "Outcomes": [],
                "DateClosed": None,
                "CaseCategory": "Mergers",
            },
        ]
    }

    cases = parse_listing(json.dumps(payload), "https://api.example.org/search/cases")

    assert [case.as_dict() for case in cases] == [
        {
            "name": "Open Case",
            "link": "https://api.example.org/cma-cases/open",
            "status": "Live",
            "tag": "Mergers",
            "outcome": None,
            "date": None,
        },
        {
            "name": "Zed plc / Why Ltd",
            "link": "https://api.example.org/cma-cases/zed-why",
            "status": "Closed",
            "tag": "Mergers",
            "outcome": "Phase 1 clearance",
            "date": "17 October 2025",
        },
    ]


def test_api_json_without_case_array_is_a_structure_mismatch():
    with pytest.raises(StructureMismatchError):
        parse_listing(json.dumps({"message": "moved"}), LISTING_URL)


def test_sort_cases_uses_codepoint_order_for_names():
    cases = [
        CaseSummary(name="beta", link="https://example.org/b", date="1 May 2024"),
        CaseSummary(name="Beta", link="https://example.org/B", date="1 May 2024"),
        CaseSummary(name="alpha", link="https://example.org/a", date="2 May 2024"),
    ]

    assert [case.name for case in sort_cases(cases)] == ["Beta", "beta", "alpha"]


def test_non_object_api_case_is_a_structure_mismatch():
    body = json.dumps([{"Title": "A", "Link": "/a"}, None, "B"])

    with pytest.raises(StructureMismatchError, match="index 1"):
        parse_listing(body, LISTING_URL)


def test_bom_prefixed_api_json_is_parsed_as_json():
    body = "\ufeff" + json.dumps([{"Title": "Only", "Link": "/case/1", "Status": "Live"}])

    cases = parse_listing(body, LISTING_URL)

    assert [case.link for case in cases] == ["https://example.org/case/1"]


def test_invalid_json_listing_body_is_fatal():
    with pytest.raises(ListingError, match="not valid JSON"):
        parse_listing('{"Results": [', LISTING_URL)


def test_canonical_date_month_name_is_case_insensitive():
    assert canonical_date("5 january 2024") == "2024-01-05"
    assert canonical_date("17 OCTOBER 2025") == "2025-10-17"


def test_lower_case_month_keeps_original_text_in_output():
    html = _card("Lower / Case", "/case/7", "Closed", "Mergers", "Cleared", "5 january 2024")

    cases = parse_listing(html, LISTING_URL)

    assert cases[0].date == "5 january 2024"
