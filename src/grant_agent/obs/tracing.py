"""Per-turn trace records, tool usage statistics and cost estimates."""

from __future__ import annotations

import re
import time
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from grant_agent.types import ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TurnRecord:
    trace_id: str
    user_text: str
    response: str
    state: str
    tool_traces: list[ToolTrace]
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float
    error: str | None = None
    timestamp_utc: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(slots=True)
class CostModel:
    """USD per 1K tokens, priced like a small hosted chat model."""

    input_per_1k: float = 0.00015
    output_per_1k: float = 0.0006

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.input_per_1k + output_tokens * self.output_per_1k) / 1000.0


class TraceStore:
    """Keeps the most recent turns in memory; the oldest are evicted first."""

    def __init__(self, *, cost_model: CostModel | None = None, max_records: int = 1000) -> None:
        self._records: OrderedDict[str, TurnRecord] = OrderedDict()
        self._cost_model = cost_model or CostModel()
        self._max_records = max_records

    def __len__(self) -> int:
        return len(self._records)

    def create_record(
        self,
        *,
        user_text: str,
        response: str,
        state: str,
        tool_traces: list[ToolTrace],
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        error: str | None = None,
    ) -> TurnRecord:
        record = TurnRecord(
            trace_id=uuid.uuid4().hex,
            user_text=user_text,
            response=response,
            state=state,
            tool_traces=list(tool_traces),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
            error=error,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self._max_records:
            self._records.popitem(last=False)
        return record

    def get(self, trace_id: str) -> TurnRecord:
        try:
            return self._records[trace_id]
        except KeyError:
            raise KeyError(f"Trace not found: {trace_id}") from None

    def list_recent(self, limit: int = 20) -> list[TurnRecord]:
        return list(self._records.values())[-limit:]

    def tool_usage(self) -> dict[str, dict[str, float | int]]:
        """Calls, failures and mean latency per tool name."""
        calls: Counter[str] = Counter()
        failures: Counter[str] = Counter()
        latency: Counter[str] = Counter()
        for record in self._records.values():
            for trace in record.tool_traces:
                calls[trace.name] += 1
                latency[trace.name] += trace.latency_ms
                if not trace.success:
                    failures[trace.name] += 1
        return {
            name: {
                "calls": count,
                "failures": failures[name],
                "avg_latency_ms": latency[name] / count,
            }
            for name, count in calls.most_common()
        }

    def summary(self) -> dict[str, Any]:
        records = list(self._records.values())
        total = len(records)
        latencies = sorted(record.latency_ms for record in records)
        return {
            "total_turns": total,
            "failed_turns": sum(1 for record in records if record.failed),
            "turns_by_state": dict(Counter(record.state for record in records)),
            "total_tool_calls": sum(len(record.tool_traces) for record in records),
            "avg_latency_ms": sum(latencies) / total if total else 0.0,
            "p95_latency_ms": latencies[max(0, int(total * 0.95) - 1)] if total else 0.0,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
            "tools": self.tool_usage(),
        }


class Timer:
    """Context manager measuring wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
