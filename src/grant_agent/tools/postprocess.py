"""Deterministic score corrections for eligibility analyses.

The model is not trusted with arithmetic or with resisting keyword-overlap
bias. Five rules run in order; every correction appends an ``[ADJUSTED: ...]``
note to the justification. Rules are re-applied until nothing changes, so the
output is always a fixed point of the rule set.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from grant_agent.config import ValidationConfig
from grant_agent.types import Criterion, ValidationAnalysis

logger = logging.getLogger(__name__)

MISMATCH_PHRASES = (
    "domain mismatch",
    "desajuste de dominio",
    "different domain",
    "dominio diferente",
    "no match",
    "no coincide",
    "diferente dominio",
    "dominios diferentes",
    "desalineación",
    "desalineacion",
    "no encaja",
    "incompatible domain",
    "dominio incompatible",
    "mismatch",
    "desajuste",
    "no alineado",
    "no alineada",
    "no se ajusta",
)

_MAX_PASSES = 5


def mentions_mismatch(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in MISMATCH_PHRASES)


def find_domain_criterion(criteria: list[Criterion]) -> Criterion | None:
    for criterion in criteria:
        name = criterion.name.lower()
        if "domain" in name or "sector" in name or "dominio" in name:
            return criterion
    return None


def weighted_overall(criteria: list[Criterion]) -> float | None:
    """Weight-normalised overall score, rounded to one decimal.

    Weights are expected to sum to 100; when they are off by more than one
    point the sum is normalised by the actual total weight.
    """
    total_weight = sum(criterion.weight for criterion in criteria)
    if total_weight <= 0:
        return None
    weighted = sum(criterion.score * criterion.weight for criterion in criteria)
    divisor = total_weight if abs(total_weight - 100) > 1 else 100
    return round(weighted / divisor, 1)


def postprocess_validation(
    analysis: ValidationAnalysis, config: ValidationConfig | None = None
) -> ValidationAnalysis:
    settings = config or ValidationConfig()
    current = analysis
    for _ in range(_MAX_PASSES):
        updated = _apply_rules(current, settings)
        if updated == current:
            return updated
        current = updated
    return current


def _apply_rules(analysis: ValidationAnalysis, config: ValidationConfig) -> ValidationAnalysis:
    criteria = [replace(criterion) for criterion in analysis.criteria]
    overall = analysis.overall_score
    notes: list[str] = []
    domain = find_domain_criterion(criteria)

    if (
        domain is not None
        and domain.score > config.domain_ceiling
        and (mentions_mismatch(domain.reasoning) or mentions_mismatch(analysis.justification))
    ):
        notes.append(
            f"domain alignment lowered from {_fmt(domain.score)} to {_fmt(config.domain_ceiling)} "
            "because the reasoning describes unrelated fields"
        )
        logger.info("Clamped domain alignment %s -> %s", domain.score, config.domain_ceiling)
        domain.score = config.domain_ceiling

    computed = weighted_overall(criteria)
    if (
        computed is not None
        and abs(computed - overall) > config.recompute_tolerance
        and _capped(computed, domain, criteria, config) != overall
    ):
        notes.append(f"overall score recomputed from {_fmt(overall)} to {_fmt(computed)}")
        logger.info("Recomputed overall score %s -> %s", overall, computed)
        overall = computed

    capped, cap_notes = _apply_caps(overall, domain, criteria, config)
    notes.extend(cap_notes)
    if capped != overall:
        logger.info("Capped overall score %s -> %s", overall, capped)
    overall = capped

    if not notes:
        return replace(analysis, criteria=criteria)
    justification = analysis.justification.rstrip()
    suffix = " ".join(f"[ADJUSTED: {note}]" for note in notes)
    return replace(
        analysis,
        overall_score=overall,
        criteria=criteria,
        justification=f"{justification} {suffix}".strip(),
    )


def _apply_caps(
    overall: float,
    domain: Criterion | None,
    criteria: list[Criterion],
    config: ValidationConfig,
) -> tuple[float, list[str]]:
    notes: list[str] = []
    if domain is not None and domain.score <= config.domain_ceiling and overall > config.domain_overall_ceiling:
        notes.append(
            f"overall score capped at {_fmt(config.domain_overall_ceiling)} because domain "
            f"alignment scored {_fmt(domain.score)}"
        )
        overall = config.domain_overall_ceiling

    if (
        domain is not None
        and domain.score < config.domain_mid_threshold
        and overall > config.overall_mid_threshold
    ):
        cap = domain.score + config.domain_margin
        if cap < overall:
            notes.append(
                f"overall score capped at {_fmt(cap)} because domain alignment scored "
                f"{_fmt(domain.score)}"
            )
            overall = cap

    if overall > config.high_overall_threshold and any(
        mentions_mismatch(criterion.reasoning) for criterion in criteria
    ):
        notes.append(
            f"overall score capped at {_fmt(config.mismatch_overall_ceiling)} because the "
            "criteria reasoning describes unrelated fields"
        )
        overall = config.mismatch_overall_ceiling
    return overall, notes


def _capped(
    value: float,
    domain: Criterion | None,
    criteria: list[Criterion],
    config: ValidationConfig,
) -> float:
    return _apply_caps(value, domain, criteria, config)[0]


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"
