"""Append-only QC report."""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

CATEGORIES = ("structure", "narration", "scenes", "render", "assembly")
SEVERITIES = ("info", "warn", "error")


class QCHardViolation(RuntimeError):
    """Raised when a hard QC gate fails and the caller asked for strict handling."""

    def __init__(self, message: str, failures: Optional[List[str]] = None, report: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.failures = list(failures or [])
        self.report = report


class QCReport:
    def __init__(self, stage: str) -> None:
        self.run_id = f"qc_{int(time.time() * 1000)}"
        self.stage = stage
        self.created_at = datetime.now(timezone.utc).isoformat()
        self.checks: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []
        self.fixes_applied: List[Dict[str, Any]] = []
        self.summary = {"total": 0, "passed": 0, "failed": 0, "warnings": 0}
        self._final = False

    def add_check(
        self,
        check_id: str,
        category: str,
        severity: str,
        passed: bool,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        self._ensure_open()
        check = {
            "id": check_id,
            "category": category,
            "severity": severity,
            "passed": bool(passed),
            "message": message,
        }
        if details is not None:
            check["details"] = details
        self.checks.append(check)
        if not check["passed"] and severity == "warn":
            self.warnings.append(check)
        return check["passed"]

    def add_fix(self, fix_id: str, description: str, before: Any, after: Any) -> None:
        self._ensure_open()
        self.fixes_applied.append({"id": fix_id, "description": description, "before": before, "after": after})

    def failed(self, severity: Optional[str] = None) -> List[Dict[str, Any]]:
        return [c for c in self.checks if not c["passed"] and (severity is None or c["severity"] == severity)]

    def finalize(self) -> Dict[str, Any]:
        total = len(self.checks)
        passed = sum(1 for c in self.checks if c["passed"])
        self.summary = {"total": total, "passed": passed, "failed": total - passed, "warnings": len(self.warnings)}
        self._final = True
        return self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "stage": self.stage,
            "created_at": self.created_at,
            "checks": [dict(c) for c in self.checks],
            "warnings": [dict(c) for c in self.warnings],
            "fixes_applied": [dict(f) for f in self.fixes_applied],
            "summary": dict(self.summary),
        }

    def _ensure_open(self) -> None:
        if self._final:
            raise RuntimeError(f"QC report {self.run_id} is finalized")
