"""Calendar routing and migration eligibility rules.

Two independent, pure classifiers:

- :func:`classify` decides which remote calendar an event belongs on.
  The bias is toward visibility: anything ambiguous goes to the shared
  family calendar.
- :class:`EligibilityRules` decides whether an event may be pushed at all,
  using an allow-list of activity keywords, a deny-list of personal/school
  sources, and an override that re-admits a denied source when the summary
  names an activity.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from famcal.config import Settings
from famcal.models.event import LocalEvent

# "Algot: Handbollsträning" -> "Algot"
_NAME_PREFIX = re.compile(r"^\s*([^\W\d_]+)\s*:")


class CalendarTarget(str, enum.Enum):
    """The three remote calendars an event can be routed to."""

    FAMILY = "family"
    PERSON_A = "person_a"
    PERSON_B = "person_b"


@dataclass(frozen=True)
class Household:
    """Names of the household members.

    Attributes:
        person_a: Adult owning the first private calendar.
        person_b: Adult owning the second private calendar.
        children: Children; they have no private calendar.
    """

    person_a: str
    person_b: str
    children: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> Household:
        return cls(settings.person_a_name, settings.person_b_name, tuple(settings.children))

    @property
    def members(self) -> tuple[str, ...]:
        return (self.person_a, self.person_b, *self.children)

    def private_target(self, name: str) -> CalendarTarget | None:
        """The private calendar owned by *name*, if any (case-insensitive)."""
        lowered = name.strip().lower()
        if lowered == self.person_a.lower():
            return CalendarTarget.PERSON_A
        if lowered == self.person_b.lower():
            return CalendarTarget.PERSON_B
        return None

    def member(self, name: str) -> str | None:
        """Canonical spelling of *name* if it is a household member."""
        lowered = name.strip().lower()
        for member in self.members:
            if member.lower() == lowered:
                return member
        return None

    def is_child(self, name: str) -> bool:
        lowered = name.strip().lower()
        return any(child.lower() == lowered for child in self.children)


def summary_prefix_name(summary: str) -> str | None:
    """Return the ``"Name:"`` prefix of a summary, if it has one."""
    match = _NAME_PREFIX.match(summary or "")
    return match.group(1) if match else None


def relevant_persons(event: LocalEvent, household: Household) -> list[str]:
    """People an event concerns.

    Structured assignees win.  Legacy events without assignees fall back to
    a ``"Name:"`` prefix in the summary when it names a household member.
    """
    persons = [name.strip() for name in event.assignees if name and name.strip()]
    if persons:
        return persons
    prefixed = summary_prefix_name(event.summary)
    if prefixed is not None:
        member = household.member(prefixed)
        if member is not None:
            return [member]
    return []


def classify(event: LocalEvent, household: Household) -> CalendarTarget:
    """Choose the remote calendar for *event*.

    - Nobody in particular -> family calendar.
    - Exactly one person who owns a private calendar, and no *other*
      household member mentioned anywhere in the summary -> that person's
      calendar.
    - Everything else (several people, a child, a child mentioned in a
      parent's event, unknown names) -> family calendar.

    Args:
        event: The local event to route.
        household: Household member names.

    Returns:
        The routing target.  Never raises; ambiguity is not an error.
    """
    persons = relevant_persons(event, household)
    if len(persons) != 1:
        return CalendarTarget.FAMILY

    person = persons[0]
    target = household.private_target(person)
    if target is None:
        return CalendarTarget.FAMILY

    summary = event.summary.lower()
    for other in household.members:
        if other.lower() == person.lower():
            continue
        if other.lower() in summary:
            return CalendarTarget.FAMILY
    return target


# ---------------------------------------------------------------------------
# Migration eligibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EligibilityRules:
    """Keyword rules deciding which events may be pushed.

    All comparisons are case-insensitive substring matches.

    Attributes:
        keywords: Allow-list of sport/club terms, matched against source
            and summary.
        excluded_sources: Calendar names that cannot qualify an event
            through a source match. The summary still can.
        override_keywords: Activity terms that, when present in the
            summary, re-admit an event from a personal source.
        blocked_sources: Sources excluded with no override.
        personal_sources: Private calendars. Their events are ineligible
            unless the summary holds an override keyword.
    """

    keywords: tuple[str, ...]
    excluded_sources: tuple[str, ...]
    override_keywords: tuple[str, ...]
    blocked_sources: tuple[str, ...] = ()
    personal_sources: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> EligibilityRules:
        return cls(
            keywords=tuple(settings.eligible_keywords),
            excluded_sources=tuple(settings.excluded_sources),
            override_keywords=tuple(settings.override_keywords),
            blocked_sources=tuple(settings.blocked_sources),
            personal_sources=tuple(settings.personal_sources),
        )

    def explain(self, event: LocalEvent) -> str | None:
        """Return why *event* is ineligible, or ``None`` if it is eligible."""
        source = (event.source or "").lower()
        summary = (event.summary or "").lower()

        if _matches(source, self.blocked_sources):
            return f"source {event.source!r} is blocked"

        personal = _matches(source, self.personal_sources)
        if personal and not _matches(summary, self.override_keywords):
            return f"source {event.source!r} is a personal calendar"

        excluded = personal or _matches(source, self.excluded_sources)
        by_source = _matches(source, self.keywords) and not excluded
        by_summary = _matches(summary, self.keywords)
        if by_source or by_summary:
            return None
        return "no activity keyword in source or summary"

    def is_eligible(self, event: LocalEvent) -> bool:
        return self.explain(event) is None


def _matches(text: str, terms: tuple[str, ...]) -> bool:
    return any(term.lower() in text for term in terms if term)
