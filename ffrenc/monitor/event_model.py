"""
Lifecycle event model.

Events are the only way job runners talk to the UI aggregator. Each event
is an immutable envelope (job id + payload) and the payload is a closed
tagged union discriminated on `kind`.

Per-job order, as emitted by the runner:

    Created -> Started -> Progress* -> Finished | Failed

No ordering holds across job ids.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..execution.base import ExitStatus


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Created(_Payload):
    """Job announced; it is queued for the gate."""

    kind: Literal["created"] = "created"
    input: Path
    output: Path
    total: float


class Started(_Payload):
    """Job holds a permit and the backend is being launched."""

    kind: Literal["started"] = "started"


class Progress(_Payload):
    kind: Literal["progress"] = "progress"
    total: float
    current: float


class Finished(_Payload):
    """Backend exited; success is the backend's judgment."""

    kind: Literal["finished"] = "finished"
    exit: ExitStatus


class Failed(_Payload):
    """Backend could not run or complete the job."""

    kind: Literal["failed"] = "failed"
    error: str


EventPayload = Annotated[
    Union[Created, Started, Progress, Finished, Failed],
    Field(discriminator="kind"),
]

TERMINAL_KINDS = frozenset({"finished", "failed"})


class LifecycleEvent(BaseModel):
    """Immutable envelope addressed to one job."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    job_id: int
    payload: EventPayload
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> str:
        return self.payload.kind

    @property
    def is_terminal(self) -> bool:
        return self.payload.kind in TERMINAL_KINDS

    def __str__(self) -> str:
        return f"[job {self.job_id}] {self.payload.kind}"
