"""Queue error taxonomy.

Admission errors are returned (not raised) by ``QueueManager.enqueue`` so the
caller decides how to surface them; they are still ``Exception`` subclasses so
the HTTP layer can raise them into the registered error handlers.
"""
from __future__ import annotations


class AdmissionError(Exception):
    """A submission was rejected before any job was created."""


class DuplicateSubmissionError(AdmissionError):
    """The submitter already has a queued or processing job."""


class QueueFullError(AdmissionError):
    """The queue holds the maximum number of active jobs."""


class UnknownProviderError(AdmissionError):
    """The provider resolved for a model has no registered queue."""


class ProviderUnavailableError(Exception):
    """No processor could be built for a provider (e.g. missing API key)."""


class TemplateError(Exception):
    """The shared prompt template cannot be rendered."""
