"""Typed action vocabulary."""

from .models import ActionBase, ActionKind, UnknownAction
from .registry import ActionRegistry, ActionSpec, RunPlan, registry
from .results import BodyContent, ElementInfo, ResolvedElement

__all__ = [
    "ActionBase",
    "ActionKind",
    "ActionRegistry",
    "ActionSpec",
    "BodyContent",
    "ElementInfo",
    "ResolvedElement",
    "RunPlan",
    "UnknownAction",
    "registry",
]
