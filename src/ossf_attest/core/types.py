"""
Shared result types for ossf-attest.

ExecutionResult: outcome of one tool execution.
Summary / AttestationReport: the aggregated record of one run.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional


@dataclass
class ExecutionResult:
    """Outcome of running one configured tool."""

    tool: str
    output_file: str
    version: str = ""
    success: bool = False
    output: str = ""
    error: Optional[str] = None
    duration: float = 0.0
    persistence_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data["error"] is None:
            del data["error"]
        if data["persistence_error"] is None:
            del data["persistence_error"]
        return data


@dataclass(frozen=True)
class Summary:
    total_tools: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration: float = 0.0

    @classmethod
    def from_results(cls, results: Mapping[str, ExecutionResult]) -> "Summary":
        # Sum of per-tool durations, not the wall clock of the run.
        successes = sum(1 for r in results.values() if r.success)
        return cls(
            total_tools=len(results),
            success_count=successes,
            failure_count=len(results) - successes,
            total_duration=sum(r.duration for r in results.values()),
        )


@dataclass
class AttestationReport:
    project_name: str
    project_version: str
    timestamp: datetime
    python_version: str
    os: str
    arch: str
    results: dict[str, ExecutionResult] = field(default_factory=dict)
    summary: Summary = field(default_factory=Summary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_name": self.project_name,
            "project_version": self.project_version,
            "timestamp": self.timestamp.isoformat(),
            "python_version": self.python_version,
            "os": self.os,
            "arch": self.arch,
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "summary": asdict(self.summary),
        }
