"""Flat-inclusion knowledge sources: company profile and playbooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, Field


class CompanyProfile(BaseModel):
    """Structured company knowledge maintained outside the document pipeline."""

    company_id: str
    company_name: str = ""
    overview: str = ""
    mission: str = ""
    vision: str = ""
    core_values: list[str] = Field(default_factory=list)
    positioning: str = ""
    business_model: str = ""
    ideal_customer: str = ""
    pain_points: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    brand_voice: str = ""

    def sections(self) -> list[tuple[str, str]]:
        """Return `(title, body)` pairs for every non-empty section."""
        mission_vision = "\n".join(
            part
            for part in (
                f"Mission: {self.mission}" if self.mission else "",
                f"Vision: {self.vision}" if self.vision else "",
            )
            if part
        )
        candidates = [
            ("Company Overview", _join_name(self.company_name, self.overview)),
            ("Mission & Vision", mission_vision),
            ("Core Values", _bullets(self.core_values)),
            ("Positioning", self.positioning),
            ("Business Model", self.business_model),
            ("Ideal Customer Profile", self.ideal_customer),
            ("Customer Pain Points", _bullets(self.pain_points)),
            ("Competitors", _bullets(self.competitors)),
            ("Brand Voice", self.brand_voice),
        ]
        return [(title, body.strip()) for title, body in candidates if body.strip()]


@dataclass(slots=True)
class Playbook:
    playbook_id: str
    company_id: str
    title: str
    content: str
    status: str = "complete"


class CompanyProfileStore(Protocol):
    def get_profile(self, company_id: str) -> CompanyProfile | None:
        """Return the profile, or None when the company has none."""


class PlaybookStore(Protocol):
    def list_playbooks(self, company_id: str, limit: int) -> list[Playbook]:
        """Return up to `limit` completed playbooks in insertion order."""


class InMemoryCompanyProfileStore:
    def __init__(self) -> None:
        self._profiles: dict[str, CompanyProfile] = {}

    def save(self, profile: CompanyProfile) -> None:
        self._profiles[profile.company_id] = profile

    def get_profile(self, company_id: str) -> CompanyProfile | None:
        return self._profiles.get(company_id)


class InMemoryPlaybookStore:
    def __init__(self) -> None:
        self._playbooks: list[Playbook] = []

    def add(self, playbook: Playbook) -> None:
        self._playbooks.append(playbook)

    def list_playbooks(self, company_id: str, limit: int) -> list[Playbook]:
        matches = [
            playbook
            for playbook in self._playbooks
            if playbook.company_id == company_id and playbook.status == "complete"
        ]
        return matches[:limit]


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items if item.strip())


def _join_name(name: str, overview: str) -> str:
    if name and overview:
        return f"{name}: {overview}"
    return name or overview
