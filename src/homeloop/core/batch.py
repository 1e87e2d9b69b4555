# src/homeloop/core/batch.py

"""
Per-record outcomes and batch summaries.

Runners never let a per-record exception cross the loop boundary; instead each
record yields a RecordResult and the caller gets a typed summary it can assert on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class RecordOutcome(StrEnum):
    CREATED = "created"
    SKIPPED_EXISTS = "skipped_exists"
    SKIPPED_NOT_DUE = "skipped_not_due"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class RecordResult:
    record_id: int
    outcome: RecordOutcome
    owner_id: str | None = None
    error: BaseException | None = None
    points_awarded: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome != RecordOutcome.FAILED


@dataclass(slots=True)
class BatchSummary:
    results: list[RecordResult] = field(default_factory=list)

    def add(self, result: RecordResult) -> None:
        self.results.append(result)

    def extend(self, other: BatchSummary) -> None:
        self.results.extend(other.results)

    def count(self, outcome: RecordOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def error_count(self) -> int:
        return self.count(RecordOutcome.FAILED)

    @property
    def failed_ids(self) -> list[int]:
        return [r.record_id for r in self.results if not r.ok]


@dataclass(slots=True)
class GenerationSummary(BatchSummary):
    @property
    def created_count(self) -> int:
        return self.count(RecordOutcome.CREATED)

    @property
    def skipped_count(self) -> int:
        return self.count(RecordOutcome.SKIPPED_EXISTS) + self.count(RecordOutcome.SKIPPED_NOT_DUE)

    def as_log_dict(self) -> dict[str, int]:
        return {
            "schedulesProcessed": self.total,
            "tasksCreated": self.created_count,
            "tasksSkipped": self.skipped_count,
            "errorCount": self.error_count,
        }


@dataclass(slots=True)
class SettlementSummary(BatchSummary):
    @property
    def points_awarded(self) -> int:
        return sum(r.points_awarded for r in self.results if r.ok)

    def as_log_dict(self) -> dict[str, int]:
        return {
            "totalGoals": self.total,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }
