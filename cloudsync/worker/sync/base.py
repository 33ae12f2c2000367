"""Result records produced by the sync routines.

These are the summaries written into a task's ``result`` field and returned
to callers of the synchronous entry points.
"""

# flake8: noqa: E501


from dataclasses import dataclass, field
from typing import Any, Dict, List

from cloudsync.shared.errors import PartialFailure


@dataclass
class StepResult:
    """Outcome of reconciling one (region, kind) pair.

    Attributes:
        region: Region reconciled
        kind: Resource kind value (``ecs``, ``rds``...)
        synced: Records upserted successfully
        status: ``success``, ``failed`` or ``skipped``
        error: Error text when the step failed or was skipped
    """

    region: str
    kind: str
    synced: int = 0
    status: str = "success"
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "region": self.region,
            "kind": self.kind,
            "synced": self.synced,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class AccountSyncResult:
    """Aggregate of one account sync.

    Attributes:
        account_id: Account synced
        regions: Regions covered
        steps: Per (region, kind) outcomes
        users: User reconciliation summary, if it ran
    """

    account_id: int
    regions: List[str] = field(default_factory=list)
    steps: List[StepResult] = field(default_factory=list)
    users: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_synced(self) -> int:
        return sum(s.synced for s in self.steps)

    @property
    def failed_steps(self) -> List[StepResult]:
        return [s for s in self.steps if s.status == "failed"]

    @property
    def attempted_steps(self) -> List[StepResult]:
        return [s for s in self.steps if s.status != "skipped"]

    @property
    def all_failed(self) -> bool:
        """True when at least one step ran and none of them succeeded."""
        attempted = self.attempted_steps
        return bool(attempted) and len(self.failed_steps) == len(attempted)

    def to_dict(self) -> Dict[str, Any]:
        errors = [f"{s.region}/{s.kind}: {s.error}" for s in self.failed_steps]
        summary = PartialFailure(
            "account sync finished with errors" if errors else "account sync finished",
            errors=errors,
            succeeded=len(self.attempted_steps) - len(errors),
        ).to_dict()
        summary.update(
            account_id=self.account_id,
            regions=self.regions,
            total_synced=self.total_synced,
            skipped=len(self.steps) - len(self.attempted_steps),
            steps=[s.to_dict() for s in self.steps],
            users=self.users,
        )
        return summary


@dataclass
class UserSyncResult:
    """Counts from reconciling an account's users."""

    total: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "added": self.added,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "errors": list(self.errors),
        }
