"""Health score shared by the monitor and the status endpoint."""

from collections.abc import Iterable, Mapping
from typing import Any, Final

HEALTHY_STATUS: Final[str] = "healthy"
DEGRADED_STATUS: Final[str] = "degraded"
UNHEALTHY_STATUS: Final[str] = "unhealthy"


def score_checks(checks: Iterable[Mapping[str, Any]]) -> int:
    """Share of passing checks as an integer percentage (3 checks: 100/66/33/0)."""
    results = [bool(check.get("healthy")) for check in checks]
    if not results:
        return 0
    return int(100 * sum(results) / len(results))


def status_for_score(score: int, alert_threshold: int = 50) -> str:
    """Map a score to a coarse status label."""
    if score >= 100:
        return HEALTHY_STATUS
    if score >= alert_threshold:
        return DEGRADED_STATUS
    return UNHEALTHY_STATUS
