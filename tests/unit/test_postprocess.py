from grant_agent.tools.postprocess import (
    mentions_mismatch,
    postprocess_validation,
    weighted_overall,
)
from grant_agent.types import Criterion, ValidationAnalysis


def _analysis(overall: float, criteria: list[Criterion], justification: str = "Good fit") -> ValidationAnalysis:
    return ValidationAnalysis(
        overall_score=overall,
        justification=justification,
        suggested_role="Partner",
        criteria=criteria,
    )


def test_domain_mismatch_clamps_domain_and_overall() -> None:
    analysis = _analysis(
        90,
        [
            Criterion("Domain alignment", 40, 95, "Domain mismatch: fintech project, health call"),
            Criterion("Innovation", 60, 80, "Novel approach"),
        ],
    )

    result = postprocess_validation(analysis)

    assert result.criteria[0].score == 30
    assert result.overall_score == 25
    assert "[ADJUSTED:" in result.justification
    assert result.justification.startswith("Good fit")


def test_inconsistent_overall_is_recomputed() -> None:
    analysis = _analysis(
        95,
        [
            Criterion("Technical quality", 50, 80, "Solid"),
            Criterion("Budget", 50, 40, "Weak"),
        ],
    )

    result = postprocess_validation(analysis)

    assert result.overall_score == 60
    assert "recomputed from 95 to 60" in result.justification


def test_low_domain_caps_overall_with_margin() -> None:
    analysis = _analysis(
        79,
        [
            Criterion("Sector fit", 20, 35, "Partial overlap"),
            Criterion("Team", 80, 90, "Experienced"),
        ],
    )

    result = postprocess_validation(analysis)

    assert result.overall_score == 50


def test_mismatch_language_caps_high_overall() -> None:
    analysis = _analysis(
        90,
        [
            Criterion("Innovation", 50, 90, "Excellent"),
            Criterion("Impact", 50, 90, "Targets a different domain than the call"),
        ],
    )

    result = postprocess_validation(analysis)

    assert result.overall_score == 40


def test_consistent_analysis_is_untouched() -> None:
    analysis = _analysis(
        72,
        [
            Criterion("Domain alignment", 50, 70, "Aligned"),
            Criterion("Capacity", 50, 74, "Adequate"),
        ],
    )

    result = postprocess_validation(analysis)

    assert result == analysis


def test_postprocess_is_idempotent() -> None:
    samples = [
        _analysis(
            90,
            [
                Criterion("Domain alignment", 40, 95, "domain mismatch"),
                Criterion("Innovation", 60, 80, "Novel"),
            ],
        ),
        _analysis(95, [Criterion("A", 50, 80), Criterion("B", 50, 40)]),
        _analysis(79, [Criterion("Sector fit", 20, 35), Criterion("Team", 80, 90)]),
        _analysis(90, [Criterion("X", 50, 90), Criterion("Y", 50, 90, "no match with the call")]),
    ]

    for sample in samples:
        once = postprocess_validation(sample)
        assert postprocess_validation(once) == once


def test_weighted_overall_normalises_off_weights() -> None:
    assert weighted_overall([Criterion("A", 1, 80), Criterion("B", 1, 40)]) == 60
    assert weighted_overall([]) is None


def test_adjustment_notes_do_not_trigger_mismatch_rules() -> None:
    result = postprocess_validation(
        _analysis(
            90,
            [
                Criterion("Domain alignment", 40, 95, "domain mismatch"),
                Criterion("Innovation", 60, 80, "Novel"),
            ],
        )
    )

    notes = result.justification[len("Good fit"):]
    assert not mentions_mismatch(notes)
