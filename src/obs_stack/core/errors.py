"""Error taxonomy for rollout and detection."""

from __future__ import annotations


class ObsStackError(Exception):
    """Base error. ``fatal`` errors abort the run, others are reported as warnings."""

    fatal = True

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.message = message
        self.hint = hint


class PreconditionError(ObsStackError):
    """A required external tool or credential is missing."""


class ConnectivityError(ObsStackError):
    """The cluster could not be reached."""


class ConfigurationError(ObsStackError):
    """Invalid or partial operator input."""


class ClassificationAmbiguity(ObsStackError):
    fatal = False


class ApplyError(ObsStackError):
    """A release or manifest failed to apply."""


class ReadinessTimeout(ObsStackError):
    fatal = False
