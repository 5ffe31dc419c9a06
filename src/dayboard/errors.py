"""Exceptions raised by the dayboard engine."""


class DayboardError(Exception):
    """Base class for engine errors surfaced to callers."""

    pass


class TaskNotFoundError(DayboardError):
    """Raised when a referenced task id is absent from the store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TemplateNotFoundError(DayboardError):
    """Raised when a referenced recurring template id is absent from the store."""

    def __init__(self, template_id: str):
        super().__init__(f"Recurring template {template_id} not found")
        self.template_id = template_id


class InvalidTemplateError(DayboardError):
    """Raised when a recurring template's frequency configuration is unusable."""

    def __init__(self, template_id: str, reason: str):
        super().__init__(f"Recurring template {template_id} is invalid: {reason}")
        self.template_id = template_id
        self.reason = reason


class HolidayDataError(DayboardError):
    """Raised when holiday calendar data cannot be downloaded or parsed."""

    pass
