"""
Issue matchers — pluggable free-text rules for the priority scorer.

A matcher answers one question: does this complaint text describe the
issue? Rule sets are built from matchers and can be swapped or tested
without touching the scoring algorithm.
"""

import re
from typing import Iterable, List, Protocol

from jalsetu_kernel.models.config import ScoringConfig


class IssueMatcher(Protocol):
    def matches(self, text: str) -> bool: ...


class PhraseMatcher:
    """Case-insensitive substring match against any of a set of phrases."""

    def __init__(self, phrases: Iterable[str]):
        self.phrases = tuple(p.lower() for p in phrases if p)

    def matches(self, text: str) -> bool:
        if not text:
            return False
        lowered = text.lower()
        return any(phrase in lowered for phrase in self.phrases)

    def __repr__(self) -> str:
        return f"PhraseMatcher({list(self.phrases)!r})"


class RegexMatcher:
    """Case-insensitive regular expression match."""

    def __init__(self, pattern: str):
        self.pattern = re.compile(pattern, re.IGNORECASE)

    def matches(self, text: str) -> bool:
        if not text:
            return False
        return self.pattern.search(text) is not None

    def __repr__(self) -> str:
        return f"RegexMatcher({self.pattern.pattern!r})"


class IssueRule:
    """A named keyword factor: if ``matcher`` fires, add ``weight``."""

    def __init__(self, name: str, weight: int, matcher: IssueMatcher, description: str):
        if weight < 0:
            raise ValueError(f"Rule {name} has negative weight {weight}")
        self.name = name
        self.weight = weight
        self.matcher = matcher
        self.description = description

    def applies(self, text: str) -> bool:
        return self.matcher.matches(text)


def default_issue_rules(config: ScoringConfig) -> List[IssueRule]:
    """The standard keyword rule set, in evaluation order."""
    return [
        IssueRule(
            "no_water",
            config.no_water_weight,
            PhraseMatcher(config.no_water_phrases),
            "No water situation",
        ),
        IssueRule(
            "low_pressure",
            config.low_pressure_weight,
            PhraseMatcher(config.low_pressure_phrases),
            "Low pressure complaint",
        ),
        IssueRule(
            "leak_report",
            config.leak_report_weight,
            PhraseMatcher(config.leak_report_phrases),
            "Leak reported",
        ),
    ]
