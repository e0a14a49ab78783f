from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(slots=True)
class CaseSummary:
    """Represents a single merger case as it appears on the listing page."""

    name: str
    link: str
    status: str = ""
    tag: str = ""
    outcome: Optional[str] = None
    date: Optional[str] = None

    def as_dict(self) -> dict[str, object]:
        """Return a serialisable representation in artifact key order."""

        return {
            "name": self.name,
            "link": self.link,
            "status": self.status,
            "tag": self.tag,
            "outcome": self.outcome,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CaseSummary":
        return cls(
            name=payload.get("name") or "",
            link=payload.get("link") or "",
            status=payload.get("status") or "",
            tag=payload.get("tag") or "",
            outcome=payload.get("outcome") or None,
            date=payload.get("date") or None,
        )


@dataclass(slots=True)
class CaseDetail:
    """Extended information scraped from a case's own page."""

    description: str = ""
    case_details: dict[str, str] = field(default_factory=dict)
    updates: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "CaseDetail":
        return cls()

    def is_empty(self) -> bool:
        return not (self.description or self.case_details or self.updates)

    def as_dict(self) -> dict[str, object]:
        return {
            "description": self.description,
            "case_details": dict(self.case_details),
            "updates": list(self.updates),
        }


@dataclass(slots=True)
class EnrichedCase:
    """A listing record with its detail page attached."""

    summary: CaseSummary
    details: CaseDetail

    def as_dict(self) -> dict[str, object]:
        payload = self.summary.as_dict()
        payload["details"] = self.details.as_dict()
        return payload
