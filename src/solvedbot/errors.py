from __future__ import annotations


class SolvedBotError(Exception):
    """Base class for errors raised by the solved-post core."""


class TransientStoreError(SolvedBotError):
    """A store read or write failed. Not retried internally."""


class NotFoundError(SolvedBotError):
    """The item or comment does not exist on the platform."""


class ExternalActionFailure(SolvedBotError):
    """The platform rejected a remove/comment/label call."""


class MalformedPayloadError(SolvedBotError):
    """A deferred job payload failed validation."""


class PermissionDeniedError(SolvedBotError):
    """The actor may not perform this operation."""


class NotAuthenticatedError(SolvedBotError):
    """There is no current actor."""
