"""Dependency policy subsystem: cheap pre-sandbox capability screening."""

from runbox.runtime.policy.models import CapabilitySignature, PolicyConfig, PolicyViolation
from runbox.runtime.policy.policy import DEFAULT_SIGNATURES, DependencyPolicy

__all__ = [
    "DEFAULT_SIGNATURES",
    "CapabilitySignature",
    "DependencyPolicy",
    "PolicyConfig",
    "PolicyViolation",
]
