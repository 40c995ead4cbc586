"""Readiness scoring: answer aggregation, 1-9 level normalization, calculator tiers.

Rubric (URAT) flow
------------------
Each readiness dimension is assessed by three rubric questions. Raw answer
scores are summed per dimension, averaged onto a 1-5 scale, and rescaled onto
the 1-9 catalog scale::

    normalized = ceil(raw / 3)
    scaled     = ceil(((normalized - 1) * 8) / 4 + 1)

The catalog entry whose ``level`` equals ``scaled`` is selected. When nothing
matches (a dimension with no answers scales to -1, anything above 15 scales
past 9) the entry at ordinal index ``FALLBACK_LEVEL_INDEX`` of the
dimension's level-ordered list is used instead.

Calculator flow
---------------
Calculator answers are summed over seven categories and mapped onto two
tiered levels, ``technology_level`` and ``commercialization_level``. Rules
are evaluated loosest first; a later matching rule overwrites an earlier one.
These levels only feed the startup ranking and never touch the catalog.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from accelerator.models import ReadinessLevel, ReadinessType

log = logging.getLogger(__name__)

READINESS_TYPES: tuple[ReadinessType, ...] = tuple(ReadinessType)

ANSWERS_PER_DIMENSION = 3
SOURCE_SCALE = (1, 5)
TARGET_SCALE = (1, 9)
FALLBACK_LEVEL_INDEX = 5

# Calculator categories, in the order they are reported
TECHNOLOGY = "Technology"
PRODUCT_DEVELOPMENT = "Product Development"
PRODUCT_DEFINITION = "Product Definition/Design"
COMPETITIVE_LANDSCAPE = "Competitive Landscape"
TEAM = "Team"
GO_TO_MARKET = "Go-To-Market"
SUPPLY_CHAIN = "Manufacturing/Supply Chain"

CALCULATOR_CATEGORIES: tuple[str, ...] = (
    TECHNOLOGY, PRODUCT_DEVELOPMENT, PRODUCT_DEFINITION, COMPETITIVE_LANDSCAPE,
    TEAM, GO_TO_MARKET, SUPPLY_CHAIN,
)
_CATEGORY_LOOKUP = {c.lower(): c for c in CALCULATOR_CATEGORIES}


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_scores(answers: Iterable[tuple[str, int]], keys: Iterable[str]) -> dict[str, int]:
    """Sum ``(key, score)`` pairs per key.

    Every key in *keys* is present in the result, with 0 when it has no
    answers. Pairs whose key is not in *keys* are ignored.
    """
    totals = {key: 0 for key in keys}
    for key, score in answers:
        if key not in totals:
            log.debug("Ignoring answer for unknown category %r", key)
            continue
        totals[key] += score or 0
    return totals


def canonical_category(category: str) -> str | None:
    """Map a free-form calculator category onto its canonical name (case-insensitive)."""
    return _CATEGORY_LOOKUP.get(category.strip().lower())


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


@dataclass
class NormalizedLevel:
    """Outcome of normalizing one dimension's raw score against the catalog."""
    readiness_type: str
    raw_score: int
    scaled: int
    entry: ReadinessLevel
    used_fallback: bool


def scale_raw_score(raw_score: int) -> int:
    """Rescale a raw dimension sum onto the 1-9 catalog scale (may fall outside it)."""
    normalized = math.ceil(raw_score / ANSWERS_PER_DIMENSION)
    old_min, old_max = SOURCE_SCALE
    new_min, new_max = TARGET_SCALE
    return math.ceil(((normalized - old_min) * (new_max - new_min)) / (old_max - old_min) + new_min)


def fallback_level(levels: Sequence[ReadinessLevel]) -> ReadinessLevel:
    """Entry used when the scaled score matches no catalog level."""
    return levels[FALLBACK_LEVEL_INDEX]


def select_level(scaled: int, levels: Sequence[ReadinessLevel]) -> tuple[ReadinessLevel, bool]:
    """Return ``(entry, used_fallback)`` for a scaled score.

    *levels* must be one dimension's catalog entries ordered by level.
    """
    for entry in levels:
        if entry.level == scaled:
            return entry, False
    return fallback_level(levels), True


def normalize_dimension(
    readiness_type: str, raw_score: int, levels: Sequence[ReadinessLevel],
) -> NormalizedLevel:
    scaled = scale_raw_score(raw_score)
    entry, used_fallback = select_level(scaled, levels)
    if used_fallback:
        log.info(
            "No %s catalog level for scaled score %d (raw %d); using fallback level %d",
            readiness_type, scaled, raw_score, entry.level,
        )
    return NormalizedLevel(
        readiness_type=readiness_type, raw_score=raw_score, scaled=scaled,
        entry=entry, used_fallback=used_fallback,
    )


# ---------------------------------------------------------------------------
# Calculator tiers
# ---------------------------------------------------------------------------


def compute_technology_level(sums: dict[str, int]) -> int:
    tech = sums.get(TECHNOLOGY, 0)
    development = sums.get(PRODUCT_DEVELOPMENT, 0)
    definition = sums.get(PRODUCT_DEFINITION, 0)

    level = 1
    if tech >= 4:
        level = 4
    if tech >= 5:
        level = 5
    if development >= 2 and definition >= 3:
        level = 6
    if development >= 3:
        level = 7
    if development >= 4:
        level = 8
    if development >= 5:
        level = 9
    return level


def compute_commercialization_level(sums: dict[str, int]) -> int:
    development = sums.get(PRODUCT_DEVELOPMENT, 0)
    definition = sums.get(PRODUCT_DEFINITION, 0)
    landscape = sums.get(COMPETITIVE_LANDSCAPE, 0)
    team = sums.get(TEAM, 0)
    gtm = sums.get(GO_TO_MARKET, 0)
    supply = sums.get(SUPPLY_CHAIN, 0)

    level = 1
    # Tier 2 requires a team score of exactly 2.
    if landscape >= 2 and team == 2:
        level = 2
    if development >= 1 and definition >= 1 and landscape >= 3 and team >= 2 and gtm >= 1:
        level = 3
    if definition >= 2 and landscape >= 4 and team >= 2 and gtm >= 2 and supply >= 1:
        level = 4
    if definition >= 4 and landscape >= 5 and team >= 3 and gtm >= 3 and supply >= 2:
        level = 5
    if definition >= 5 and team >= 4 and gtm >= 4:
        level = 6
    if team >= 4 and supply >= 3:
        level = 7
    if team >= 5 and supply >= 4:
        level = 8
    if team >= 5 and supply >= 5:
        level = 9
    return level


@dataclass
class CalculatorReport:
    category_scores: dict[str, int]
    technology_level: int
    commercialization_level: int

    def as_dict(self) -> dict[str, int]:
        return {
            **self.category_scores,
            "Technology Level": self.technology_level,
            "Commercialization Level": self.commercialization_level,
        }


def build_calculator_report(answers: Iterable[tuple[str, int]]) -> CalculatorReport:
    """Aggregate raw ``(category, score)`` calculator answers into a report."""
    canonical = []
    for category, score in answers:
        name = canonical_category(category)
        if name is None:
            log.debug("Ignoring calculator answer with unknown category %r", category)
            continue
        canonical.append((name, score))
    sums = aggregate_scores(canonical, CALCULATOR_CATEGORIES)
    return CalculatorReport(
        category_scores=sums,
        technology_level=compute_technology_level(sums),
        commercialization_level=compute_commercialization_level(sums),
    )
