"""Rendering sessions: the interface and the patchright backend."""

from wicket.session._base import (
    Action,
    CertificateError,
    Decision,
    InterceptedRequest,
    RenderingSession,
)
from wicket.session._patchright import PatchrightSession

__all__ = [
    "Action",
    "CertificateError",
    "Decision",
    "InterceptedRequest",
    "PatchrightSession",
    "RenderingSession",
]
