"""
Assignment coverage and juror workload checks.
"""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from app.jury.constants import JURORS_PER_STARTUP

if TYPE_CHECKING:
    from app.jury.modules.assignments.models import Assignment
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup

DEFAULT_LIMIT_WITHOUT_JURORS = 4
SUMMARY_LIST_LIMIT = 5


@dataclass(frozen=True)
class StartupCoverage:
    startup_id: int
    startup_name: str
    assigned_count: int

    @property
    def is_under_assigned(self) -> bool:
        return self.assigned_count < JURORS_PER_STARTUP

    @property
    def severity(self) -> str:
        if self.assigned_count == 0:
            return "critical"
        if self.assigned_count < JURORS_PER_STARTUP:
            return "warning"
        return "none"


@dataclass(frozen=True)
class JurorWorkload:
    juror_id: int
    juror_name: str
    current_assignments: int
    limit: int
    is_custom_limit: bool

    @property
    def is_over_limit(self) -> bool:
        return self.current_assignments > self.limit

    @property
    def is_at_limit(self) -> bool:
        return self.current_assignments == self.limit


def dynamic_limit(total_startups: int, total_jurors: int) -> int:
    if total_jurors == 0:
        return DEFAULT_LIMIT_WITHOUT_JURORS
    return math.ceil(total_startups * JURORS_PER_STARTUP / total_jurors)


def effective_limit(juror: "Juror", total_startups: int, total_jurors: int) -> int:
    if juror.evaluation_limit is not None:
        return juror.evaluation_limit
    return dynamic_limit(total_startups, total_jurors)


def startup_coverage(startups: Iterable["Startup"], assignments: Iterable["Assignment"]) -> list[StartupCoverage]:
    counts = Counter(a.startup_id for a in assignments)
    return [StartupCoverage(st.id, st.name, counts.get(st.id, 0)) for st in startups]


def juror_workloads(jurors: list["Juror"], assignments: Iterable["Assignment"], total_startups: int) -> list[JurorWorkload]:
    counts = Counter(a.juror_id for a in assignments)
    return [
        JurorWorkload(
            juror_id=j.id,
            juror_name=j.name,
            current_assignments=counts.get(j.id, 0),
            limit=effective_limit(j, total_startups, len(jurors)),
            is_custom_limit=j.evaluation_limit is not None,
        )
        for j in jurors
    ]


def _summarize(items: list[str]) -> str:
    listed = ", ".join(items[:SUMMARY_LIST_LIMIT])
    more = f" and {len(items) - SUMMARY_LIST_LIMIT} more" if len(items) > SUMMARY_LIST_LIMIT else ""
    return f"{listed}{more}"


def under_assigned_summary(coverage: list[StartupCoverage]) -> str:
    under = [c for c in coverage if c.is_under_assigned]
    if not under:
        return ""
    names = [f"{c.startup_name} ({c.assigned_count}/{JURORS_PER_STARTUP})" for c in under]
    return f"{len(under)} startup(s) below minimum: {_summarize(names)}"


def over_limit_summary(workloads: list[JurorWorkload]) -> str:
    over = [w for w in workloads if w.is_over_limit]
    if not over:
        return ""
    names = [f"{w.juror_name} ({w.current_assignments}/{w.limit})" for w in over]
    return f"{len(over)} juror(s) over limit: {_summarize(names)}"
