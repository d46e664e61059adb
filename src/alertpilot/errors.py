"""Exception hierarchy shared by the evaluation, dispatch and report layers."""
from __future__ import annotations


class AlertPilotError(Exception):
    """Base class for every error raised by alertpilot."""


class MalformedRuleError(AlertPilotError, ValueError):
    """A rule is missing required fields or carries invalid values.

    ``problems`` lists every individual validation failure so the caller can
    surface all of them at once instead of one per round-trip.
    """

    def __init__(self, rule_id: str, problems: list[str]) -> None:
        self.rule_id = rule_id
        self.problems = list(problems)
        super().__init__(f"rule {rule_id!r} is malformed: {'; '.join(self.problems)}")


class LogSourceError(AlertPilotError):
    """The external log/event source failed to answer a search."""


class DeliveryError(AlertPilotError):
    """A notification transport could not deliver a payload."""


class ReportExecutionError(AlertPilotError):
    """A step of a scheduled report execution failed."""


class InvalidTransitionError(AlertPilotError):
    """An execution was moved to a status its current status does not allow."""


class NotFoundError(AlertPilotError, KeyError):
    """Lookup of an entity by id failed."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__


class AlertNotFoundError(NotFoundError):
    pass


class ScheduleNotFoundError(NotFoundError):
    pass
