"""Accumulation of per-addon outcomes into change and failure reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from addon_sync.models import (
    AddonCreated,
    AddonDeleted,
    AddonUpdated,
    CreateFailure,
    DeleteFailure,
    UpdateFailure,
)


if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass
class ChangeSet:
    """Successful changes of a run, partitioned by action."""

    create: list[AddonCreated] = field(default_factory=list)
    update: list[AddonUpdated] = field(default_factory=list)
    delete: list[AddonDeleted] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.create) + len(self.update) + len(self.delete)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "create": [c.model_dump(mode="json") for c in self.create],
            "update": [c.model_dump(mode="json") for c in self.update],
            "delete": [c.model_dump(mode="json") for c in self.delete],
        }


@dataclass
class FailureSet:
    """Failed actions of a run, partitioned by action."""

    create: list[CreateFailure] = field(default_factory=list)
    update: list[UpdateFailure] = field(default_factory=list)
    delete: list[DeleteFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.create) + len(self.update) + len(self.delete)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "create": [f.model_dump(mode="json") for f in self.create],
            "update": [f.model_dump(mode="json") for f in self.update],
            "delete": [f.model_dump(mode="json") for f in self.delete],
        }


type Outcome = (
    AddonCreated | AddonUpdated | AddonDeleted | CreateFailure | UpdateFailure | DeleteFailure
)


@dataclass
class RunReport:
    """Changes and failures of one reconciliation run.

    Each phase returns its outcomes and the manager records them here, so
    nothing is shared between concurrently running items.
    """

    changes: ChangeSet = field(default_factory=ChangeSet)
    failures: FailureSet = field(default_factory=FailureSet)

    def record(self, outcome: Outcome) -> None:
        match outcome:
            case AddonCreated():
                self.changes.create.append(outcome)
            case AddonUpdated():
                self.changes.update.append(outcome)
            case AddonDeleted():
                self.changes.delete.append(outcome)
            case CreateFailure():
                self.failures.create.append(outcome)
            case UpdateFailure():
                self.failures.update.append(outcome)
            case DeleteFailure():
                self.failures.delete.append(outcome)

    def record_all(self, outcomes: Iterable[Outcome | None]) -> None:
        """Record outcomes, skipping items that produced none (no-op pulls)."""
        for outcome in outcomes:
            if outcome is not None:
                self.record(outcome)

    @property
    def ok(self) -> bool:
        return not self.failures
