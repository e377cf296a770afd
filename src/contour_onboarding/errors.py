"""Exception hierarchy for the onboarding agent.

The HTTP layer maps these to status codes: ``SessionNotFoundError`` to 404,
``InvalidRequestError`` to 400 and ``ModelGatewayError`` to 502.
"""

from __future__ import annotations


class OnboardingError(Exception):
    """Base class for all onboarding errors."""


class SessionNotFoundError(OnboardingError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidRequestError(OnboardingError):
    """Client input rejected before any state was touched."""


class ModelGatewayError(OnboardingError):
    """The generative backend failed on the primary turn call."""
