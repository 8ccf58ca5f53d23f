"""Promoto — Error Taxonomy.

Every error raised across a service boundary is a PromotoError carrying the
HTTP status the routers answer with, and (for pipeline failures) the step
that failed so an operator can reconcile what was left behind in Meta.
"""

from typing import Optional


class PromotoError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str, step: Optional[str] = None):
        self.message = message
        self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class PromotionValidationError(PromotoError):
    """Caller input or precondition failure. Never retried automatically."""

    status_code = 400


class DuplicatePromotionError(PromotionValidationError):
    """The external post already backs an ACTIVE ad."""

    status_code = 409


class NotFoundError(PromotoError):
    status_code = 404


class ConfigurationError(PromotoError):
    """Requires admin action (unknown category, bad restaurant setup)."""

    status_code = 422


class PlatformRejectionError(PromotoError):
    """Meta refused the request for a reason the user can act on."""

    status_code = 422


class PipelineStepError(PromotoError):
    """Transient or unknown external failure inside a named pipeline step."""

    status_code = 502


class AdSetPersistError(PromotoError):
    """The ad set exists in Meta but its local row could not be written."""

    status_code = 500

    def __init__(self, message: str, meta_ad_set_id: str):
        self.meta_ad_set_id = meta_ad_set_id
        super().__init__(message, step="ad_set")
