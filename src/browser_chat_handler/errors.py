"""Errors raised by the browser chat handler.

Each failure names the phase it happened in. The underlying error is always
chained as ``__cause__``.
"""

from __future__ import annotations


class HandlerError(RuntimeError):
    """Base class for failures surfaced to handler callers."""

    phase = "handler"


class InitializationFailure(HandlerError):
    """Connecting, navigating or waiting for the page to become ready failed."""

    phase = "initialization"


class DiscoveryFailure(InitializationFailure):
    """No debuggable browser endpoint answered on the configured port."""

    phase = "discovery"


class InteractionFailure(HandlerError):
    """Submitting a prompt or reading the generated response failed."""

    phase = "interaction"


class DisposalWarning(RuntimeWarning):
    """Non-fatal problem while releasing browser resources. Logged, never raised."""
