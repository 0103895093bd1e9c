import pytest

from grant_agent.obs.tracing import CostModel, TraceStore, estimate_token_count
from grant_agent.types import ToolTrace


def _record(store: TraceStore, latency_ms: float, error: str | None = None) -> str:
    record = store.create_record(
        user_text="busca convocatorias",
        response="ok",
        state="done",
        tool_traces=[ToolTrace(name="searchOpportunities", input_payload={}, output_preview="{}", latency_ms=5.0)],
        input_tokens=100,
        output_tokens=50,
        latency_ms=latency_ms,
        error=error,
    )
    return record.trace_id


def test_summary_aggregates_turns() -> None:
    store = TraceStore(cost_model=CostModel(input_per_1k=1.0, output_per_1k=2.0))
    _record(store, 10.0)
    _record(store, 30.0, error="timeout")

    summary = store.summary()

    assert summary["total_turns"] == 2
    assert summary["failed_turns"] == 1
    assert summary["total_tool_calls"] == 2
    assert summary["avg_latency_ms"] == 20.0
    assert summary["total_estimated_cost_usd"] == pytest.approx(0.4)


def test_unknown_trace_raises_key_error() -> None:
    with pytest.raises(KeyError):
        TraceStore().get("missing")


def test_empty_summary() -> None:
    assert TraceStore().summary()["total_turns"] == 0


def test_token_estimate_counts_words_and_punctuation() -> None:
    assert estimate_token_count("Hola, DrWin!") == 4


def test_summary_breaks_down_states_and_tools() -> None:
    store = TraceStore()
    _record(store, 10.0)
    store.create_record(
        user_text="valida",
        response="apology",
        state="awaiting_synthesis",
        tool_traces=[
            ToolTrace(name="validateGrant", input_payload={}, output_preview="{}", latency_ms=4.0, success=False)
        ],
        input_tokens=1,
        output_tokens=1,
        latency_ms=20.0,
        error="rate limited",
    )

    summary = store.summary()

    assert summary["turns_by_state"] == {"done": 1, "awaiting_synthesis": 1}
    assert summary["tools"]["validateGrant"] == {"calls": 1, "failures": 1, "avg_latency_ms": 4.0}
    assert summary["tools"]["searchOpportunities"]["failures"] == 0


def test_oldest_records_are_evicted() -> None:
    store = TraceStore(max_records=2)
    first = _record(store, 1.0)
    _record(store, 2.0)
    _record(store, 3.0)

    assert len(store) == 2
    with pytest.raises(KeyError):
        store.get(first)
