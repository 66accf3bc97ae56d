"""
Domain models — Pydantic types for the applier.

All models are re-exported here for convenient access:

    from infraplane.core.models import Stack, ResourceDeclaration, ApplyPlan, Receipt
"""

from infraplane.core.models.plan import ApplyPlan, ChangeAction, PlannedChange
from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import (
    ProviderConfig,
    ResourceDeclaration,
    ResourceState,
)
from infraplane.core.models.stack import Stack, VariableSpec
from infraplane.core.models.state import OperationRecord, StackState

__all__ = [
    # plan.py
    "ApplyPlan",
    "ChangeAction",
    "OperationRecord",
    "PlannedChange",
    # resource.py
    "ProviderConfig",
    "Receipt",
    "ResourceDeclaration",
    "ResourceState",
    # stack.py
    "Stack",
    # state.py
    "StackState",
    "VariableSpec",
]
