"""Participant and pseudonym domain models.

This module defines:
- Participant: a registered user as seen by the identity core
- PseudonymCounter: the highest nagrik number issued so far
- Display helpers for nagrik numbers

Constraints:
- A pseudonym is assigned at most once and never changes afterwards.
- Pseudonyms start at the base value (1001 by default).
- The counter only moves forward.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_PSEUDONYM_BASE = 1001


class DisplayLanguage(Enum):
    """Language used to render a nagrik number."""

    ENGLISH = "en"
    HINDI = "hi"


def format_pseudonym(
    pseudonym: int, language: DisplayLanguage = DisplayLanguage.HINDI
) -> str:
    """Render a nagrik number for display, e.g. "Nagrik_1001"."""
    if language == DisplayLanguage.ENGLISH:
        return f"Nagrik_{pseudonym}"
    return f"नागरिक_{pseudonym}"


def format_pseudonym_bilingual(pseudonym: int) -> str:
    """Render both forms: "Nagrik_1001 (नागरिक_1001)"."""
    return (
        f"{format_pseudonym(pseudonym, DisplayLanguage.ENGLISH)} "
        f"({format_pseudonym(pseudonym, DisplayLanguage.HINDI)})"
    )


@dataclass(frozen=True)
class Participant:
    """A registered participant.

    Profile attributes (display name, tier, ...) are owned by other
    collaborators and carried through untouched in `profile`.

    Attributes:
        participant_key: Opaque identity key from the authentication layer.
        pseudonym: Assigned nagrik number, None until allocated.
        profile: Passthrough profile fields.
    """

    participant_key: str
    pseudonym: int | None = None
    profile: dict[str, Any] = field(default_factory=dict)

    @property
    def has_pseudonym(self) -> bool:
        return self.pseudonym is not None

    def to_dict(self) -> dict:
        data = dict(self.profile)
        data["participant_key"] = self.participant_key
        data["nagrik_number"] = self.pseudonym
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Participant:
        profile = {
            k: v
            for k, v in data.items()
            if k not in ("participant_key", "nagrik_number")
        }
        pseudonym = data.get("nagrik_number")
        return cls(
            participant_key=data["participant_key"],
            pseudonym=int(pseudonym) if pseudonym else None,
            profile=profile,
        )


@dataclass(frozen=True)
class PseudonymCounter:
    """Highest pseudonym issued so far.

    Attributes:
        highest_issued: Last value handed out, 0 if none yet.
    """

    highest_issued: int = 0

    def next_candidate(
        self,
        base_value: int = DEFAULT_PSEUDONYM_BASE,
        excluded: Iterable[int] = (),
    ) -> int:
        """Smallest value above the counter and base that is not excluded."""
        candidate = max(base_value, self.highest_issued + 1)
        skip = set(excluded)
        while candidate in skip:
            candidate += 1
        return candidate
