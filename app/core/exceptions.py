"""
Domain exceptions for the License Eligibility Engine

ConfigurationError and its subclasses mean the rule table itself is defective and
must reach the operator, never the applicant. ExternalLookupError is recoverable:
it carries the fail-closed prerequisite result so callers can keep going and retry.
"""

from typing import Any, Optional


class LicenseEligibilityError(Exception):
    """Base class for all eligibility engine errors"""


class ConfigurationError(LicenseEligibilityError):
    """Defective rule table: unknown category, cyclic graph, missing field or mapping"""


class UnknownCategory(ConfigurationError):
    """A category was referenced that has no rule in the registry"""

    def __init__(self, category: Any):
        self.category = category
        value = getattr(category, "value", category)
        super().__init__(f"No license category rule registered for '{value}'")


class ExternalLookupError(LicenseEligibilityError):
    """
    The applications-by-person lookup failed.

    `check_result` and `verification_state` hold the fail-closed outcome
    (can_proceed=False, requires_external=True) computed before raising. A failed
    held-license lookup carries only `verification_state`, with requires_verification=True.
    """

    def __init__(
        self,
        message: str,
        *,
        person_id: Any = None,
        check_result: Optional[Any] = None,
        verification_state: Optional[Any] = None,
    ):
        super().__init__(message)
        self.person_id = person_id
        self.check_result = check_result
        self.verification_state = verification_state


class WorkflowStateError(LicenseEligibilityError):
    """An invalid transition was requested on a workflow (e.g. mutating after submit)"""

    def __init__(self, message: str, *, outcome: Optional[Any] = None):
        super().__init__(message)
        self.outcome = outcome
