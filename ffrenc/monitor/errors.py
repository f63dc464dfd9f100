"""
Monitor-specific errors.

These are programming-error class failures: they mean the per-job event
order was broken upstream. They abort the aggregator and the run. Do not
catch them to keep rendering.
"""


class MonitorError(Exception):
    """Base exception for UI aggregator failures."""
    pass


class ProtocolViolationError(MonitorError):
    """Raised when an event does not fit the job's lifecycle."""

    def __init__(self, job_id: int, kind: str, reason: str):
        self.job_id = job_id
        self.kind = kind
        self.reason = reason
        super().__init__(f"Received {kind} for job id={job_id}: {reason}")
