"""Error taxonomy shared by the ingestion layer and the outbound collaborators.

A device silently timing out is not an error: it is an online -> offline
transition performed by the presence sweep. An unmatched Morse pattern is not
an error either: it decodes to ``?``.
"""

from __future__ import annotations


class BlinkLinkError(Exception):
    """Base class for all blinklink errors."""


class ValidationError(BlinkLinkError):
    """Malformed ingestion payload. Rejected synchronously, never retried."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UpstreamDeliveryError(BlinkLinkError):
    """Outbound call (actuator publish, webhook) failed.

    Raised after local state has already been applied; callers log or report
    it and never roll that state back.
    """

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"{target}: {reason}")
        self.target = target
        self.reason = reason
