"""
Per-tenant admission control.

Holds the token-bucket budgets, the registry that owns them and the
middleware that turns rejections into 429 responses.
"""

from .admission import (
    AdmissionBudget,
    AdmissionDecision,
    AdmissionPolicy,
    AdmissionRegistry,
    DEFAULT_TENANT,
    TenantAdmissionController,
)
from .middleware import AdmissionMiddleware

__all__ = [
    "AdmissionBudget",
    "AdmissionDecision",
    "AdmissionMiddleware",
    "AdmissionPolicy",
    "AdmissionRegistry",
    "DEFAULT_TENANT",
    "TenantAdmissionController",
]
