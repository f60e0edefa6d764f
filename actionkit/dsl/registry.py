"""Typed action registry built on top of pydantic models."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import (
    ActionBase,
    ActionKind,
    BringToFrontAction,
    ClearInputAction,
    ClickAction,
    DeleteCookiesAction,
    EvaluateAction,
    FocusAction,
    GetAttributeAction,
    GetBodyContentAction,
    GetClickableElementsAction,
    GetCookiesAction,
    GetHtmlAction,
    GetTextAction,
    GetValueAction,
    GetWriteableElementsAction,
    GoAction,
    GoBackAction,
    GoForwardAction,
    HoverAction,
    PdfAction,
    PressAction,
    ReloadAction,
    ScreenshotAction,
    SelectAction,
    SetCookiesAction,
    SetUserAgentAction,
    SetViewportAction,
    SleepAction,
    UnknownAction,
    UploadFileAction,
    WaitForDomUpdateAction,
    WaitForFunctionAction,
    WaitForNavigationAction,
    WaitForSelectorAction,
    WriteAction,
)

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionSpec:
    name: str
    model: Type[ActionBase]
    kind: ActionKind
    aliases: tuple[str, ...] = ()
    description: str | None = None

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "aliases": list(self.aliases),
            "description": self.description or "",
        }


A = TypeVar("A", bound=ActionBase)


class ActionRegistry:
    """Central registry holding strongly typed action definitions."""

    def __init__(self) -> None:
        self._actions: Dict[str, ActionSpec] = {}
        self._aliases: Dict[str, str] = {}

    def register(
        self,
        model: Type[A],
        *,
        aliases: tuple[str, ...] = (),
        description: str | None = None,
    ) -> Type[A]:
        if not issubclass(model, ActionBase):
            raise TypeError("model must subclass ActionBase")
        action_name = model.__action_name__
        spec = ActionSpec(
            name=action_name,
            model=model,
            kind=model.__action_kind__,
            aliases=aliases,
            description=description or (model.__doc__ or "").strip() or None,
        )
        self._actions[action_name] = spec
        for alias in aliases:
            self._aliases[alias] = action_name
        return model

    def canonical_name(self, name: str) -> Optional[str]:
        if name in self._actions:
            return name
        return self._aliases.get(name)

    def get(self, name: str) -> ActionSpec:
        canonical = self.canonical_name(name)
        if canonical is None:
            raise KeyError(f"Unknown action '{name}'")
        return self._actions[canonical]

    def __contains__(self, name: str) -> bool:  # pragma: no cover - trivial
        return self.canonical_name(name) is not None

    def __iter__(self) -> Iterator[ActionSpec]:  # pragma: no cover - trivial
        return iter(self._actions.values())

    def parse_action(self, data: Any) -> ActionBase:
        """Validate one wire descriptor; unregistered names become :class:`UnknownAction`."""

        if isinstance(data, ActionBase):
            return data
        if not isinstance(data, Mapping):
            raise TypeError(f"Action descriptor must be a mapping, got {type(data).__name__}")
        name = data.get("action") or data.get("type")
        if not isinstance(name, str) or not name:
            raise ValueError("Action descriptor requires an 'action' or 'type' field")
        body = {k: v for k, v in data.items() if k not in ("action", "type")}
        canonical = self.canonical_name(name)
        if canonical is None:
            log.debug("Unregistered action '%s' kept as placeholder", name)
            return UnknownAction(name=name, raw=dict(data), category=data.get("category") or data.get("enum"))
        spec = self._actions[canonical]
        return spec.model.model_validate({**body, "type": canonical})

    def schema(self) -> Dict[str, Any]:
        return {name: spec.to_metadata() for name, spec in self._actions.items()}


registry = ActionRegistry()

registry.register(GoAction, aliases=("navigate",))
registry.register(ReloadAction)
registry.register(GoBackAction)
registry.register(GoForwardAction)
registry.register(ClickAction)
registry.register(WriteAction, aliases=("type",))
registry.register(PressAction)
registry.register(HoverAction)
registry.register(FocusAction)
registry.register(SelectAction)
registry.register(ClearInputAction)
registry.register(UploadFileAction)
registry.register(SleepAction)
registry.register(WaitForSelectorAction)
registry.register(WaitForNavigationAction)
registry.register(WaitForFunctionAction)
registry.register(WaitForDomUpdateAction)
registry.register(ScreenshotAction)
registry.register(PdfAction)
registry.register(SetViewportAction)
registry.register(SetUserAgentAction)
registry.register(SetCookiesAction)
registry.register(DeleteCookiesAction)
registry.register(BringToFrontAction)
registry.register(EvaluateAction)
registry.register(GetBodyContentAction)
registry.register(GetHtmlAction)
registry.register(GetTextAction)
registry.register(GetAttributeAction)
registry.register(GetValueAction)
registry.register(GetCookiesAction)
registry.register(GetClickableElementsAction)
registry.register(GetWriteableElementsAction)


class RunPlan(BaseModel):
    """Ordered batch of actions validated via the registry."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    actions: List[ActionBase] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            value = {"actions": list(value)}
        if isinstance(value, dict) and "actions" in value:
            new_value = dict(value)
            new_value["actions"] = [registry.parse_action(act) for act in value["actions"] or []]
            return new_value
        return value

    def payload(self) -> List[Dict[str, Any]]:
        return [action.payload() for action in self.actions]
