"""Typed action descriptors accepted by the runner."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class ActionKind(str, Enum):
    NAVIGATION = "navigation"
    INTERACTION = "interaction"
    WAIT = "wait"
    BROWSER = "browser"
    EXTRACTION = "extraction"


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _decode_json(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        return json.loads(stripped)
    return value


class ActionBase(BaseModel):
    """Base class for all actions. Instances are immutable."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    __action_name__: ClassVar[str]
    __action_kind__: ClassVar[ActionKind]

    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "enum"))

    def payload(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        data["type"] = self.action_name
        return data

    @property
    def action_name(self) -> str:
        return self.__action_name__

    @property
    def kind(self) -> Optional[ActionKind]:
        return getattr(self, "__action_kind__", None)


class SelectorActionBase(ActionBase):
    """Action whose target is resolved through the selector resolver."""

    selector: str = Field(validation_alias=AliasChoices("selector", "target"))

    @field_validator("selector")
    @classmethod
    def _non_empty_selector(cls, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Selector must be a non-empty string.")
        return value.strip()


class OptionsActionBase(ActionBase):
    """Action carrying pass-through browser options."""

    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if value is None:
            return {}
        return _decode_json(value) or {}


# ---------------------------------------------------------------------------
# Navigation


class GoAction(OptionsActionBase):
    __action_name__ = "go"
    __action_kind__ = ActionKind.NAVIGATION

    type: Literal["go"] = "go"
    url: str = Field(validation_alias=AliasChoices("url", "value", "target"))

    @field_validator("url")
    @classmethod
    def _non_empty_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("go requires a url")
        return value.strip()


class ReloadAction(OptionsActionBase):
    __action_name__ = "reload"
    __action_kind__ = ActionKind.NAVIGATION

    type: Literal["reload"] = "reload"


class GoBackAction(OptionsActionBase):
    __action_name__ = "goBack"
    __action_kind__ = ActionKind.NAVIGATION

    type: Literal["goBack"] = "goBack"


class GoForwardAction(OptionsActionBase):
    __action_name__ = "goForward"
    __action_kind__ = ActionKind.NAVIGATION

    type: Literal["goForward"] = "goForward"


# ---------------------------------------------------------------------------
# Interaction


class ClickAction(OptionsActionBase, SelectorActionBase):
    __action_name__ = "click"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["click"] = "click"


class WriteAction(OptionsActionBase, SelectorActionBase):
    __action_name__ = "write"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["write"] = "write"
    value: str = Field(validation_alias=AliasChoices("value", "text"))

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class PressAction(OptionsActionBase):
    __action_name__ = "press"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["press"] = "press"
    key: str = Field(validation_alias=AliasChoices("key", "value"))


class HoverAction(SelectorActionBase):
    __action_name__ = "hover"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["hover"] = "hover"


class FocusAction(SelectorActionBase):
    __action_name__ = "focus"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["focus"] = "focus"


class ClearInputAction(SelectorActionBase):
    __action_name__ = "clearInput"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["clearInput"] = "clearInput"


class SelectAction(SelectorActionBase):
    __action_name__ = "select"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["select"] = "select"
    values: List[str] = Field(validation_alias=AliasChoices("values", "value"))

    @field_validator("values", mode="before")
    @classmethod
    def _split_values(cls, value: Any) -> Any:
        return _split_csv(value)


class UploadFileAction(SelectorActionBase):
    __action_name__ = "uploadFile"
    __action_kind__ = ActionKind.INTERACTION

    type: Literal["uploadFile"] = "uploadFile"
    file_paths: List[str] = Field(validation_alias=AliasChoices("filePaths", "file_paths", "value"))

    @field_validator("file_paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> Any:
        return _split_csv(value)


# ---------------------------------------------------------------------------
# Waiting


class SleepAction(ActionBase):
    __action_name__ = "sleep"
    __action_kind__ = ActionKind.WAIT

    type: Literal["sleep"] = "sleep"
    duration: int = Field(ge=0, validation_alias=AliasChoices("duration", "value"))


class WaitForSelectorAction(OptionsActionBase, SelectorActionBase):
    __action_name__ = "waitForSelector"
    __action_kind__ = ActionKind.WAIT

    type: Literal["waitForSelector"] = "waitForSelector"


class WaitForNavigationAction(ActionBase):
    __action_name__ = "waitForNavigation"
    __action_kind__ = ActionKind.WAIT

    type: Literal["waitForNavigation"] = "waitForNavigation"
    options: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("options", "value"))

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if value is None:
            return {}
        return _decode_json(value) or {}


class WaitForFunctionAction(OptionsActionBase):
    __action_name__ = "waitForFunction"
    __action_kind__ = ActionKind.WAIT

    type: Literal["waitForFunction"] = "waitForFunction"
    fn: str = Field(validation_alias=AliasChoices("fn", "function", "pageFunction", "value"))
    args: List[Any] = Field(default_factory=list)


class WaitForDomUpdateAction(ActionBase):
    __action_name__ = "waitForDomUpdate"
    __action_kind__ = ActionKind.WAIT

    type: Literal["waitForDomUpdate"] = "waitForDomUpdate"
    timeout: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("timeout", "value"))


# ---------------------------------------------------------------------------
# Browser manipulation


class _CaptureBase(ActionBase):
    options: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _path_from_value(cls, value: Any) -> Any:
        if isinstance(value, dict) and not value.get("options") and isinstance(value.get("value"), str):
            value = dict(value)
            value["options"] = {"path": value.pop("value")}
        return value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        return value or {}


class ScreenshotAction(_CaptureBase):
    __action_name__ = "screenshot"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["screenshot"] = "screenshot"


class PdfAction(_CaptureBase):
    __action_name__ = "pdf"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["pdf"] = "pdf"


class SetViewportAction(ActionBase):
    __action_name__ = "setViewport"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["setViewport"] = "setViewport"
    viewport: Dict[str, Any] = Field(validation_alias=AliasChoices("viewport", "value"))

    @field_validator("viewport", mode="before")
    @classmethod
    def _decode_viewport(cls, value: Any) -> Any:
        return _decode_json(value)


class SetUserAgentAction(ActionBase):
    __action_name__ = "setUserAgent"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["setUserAgent"] = "setUserAgent"
    user_agent: str = Field(validation_alias=AliasChoices("userAgent", "user_agent", "value"))


class _CookiesBase(ActionBase):
    cookies: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("cookies", "value"))

    @field_validator("cookies", mode="before")
    @classmethod
    def _decode_cookies(cls, value: Any) -> Any:
        decoded = _decode_json(value)
        if decoded is None:
            return []
        if isinstance(decoded, dict):
            return [decoded]
        return decoded


class SetCookiesAction(_CookiesBase):
    __action_name__ = "setCookies"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["setCookies"] = "setCookies"


class DeleteCookiesAction(_CookiesBase):
    __action_name__ = "deleteCookies"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["deleteCookies"] = "deleteCookies"


class BringToFrontAction(ActionBase):
    __action_name__ = "bringToFront"
    __action_kind__ = ActionKind.BROWSER

    type: Literal["bringToFront"] = "bringToFront"


# ---------------------------------------------------------------------------
# Extraction


class EvaluateAction(ActionBase):
    __action_name__ = "evaluate"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["evaluate"] = "evaluate"
    fn: str = Field(validation_alias=AliasChoices("fn", "function", "pageFunction", "value"))
    args: List[Any] = Field(default_factory=list)


class GetBodyContentAction(ActionBase):
    __action_name__ = "getBodyContent"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getBodyContent"] = "getBodyContent"


class GetHtmlAction(SelectorActionBase):
    __action_name__ = "getHtml"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getHtml"] = "getHtml"


class GetTextAction(SelectorActionBase):
    __action_name__ = "getText"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getText"] = "getText"


class GetAttributeAction(SelectorActionBase):
    __action_name__ = "getAttribute"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getAttribute"] = "getAttribute"
    attribute: str = Field(validation_alias=AliasChoices("attribute", "value"))


class GetValueAction(SelectorActionBase):
    __action_name__ = "getValue"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getValue"] = "getValue"


class GetCookiesAction(ActionBase):
    __action_name__ = "getCookies"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getCookies"] = "getCookies"
    urls: List[str] = Field(default_factory=list, validation_alias=AliasChoices("urls", "value"))

    @field_validator("urls", mode="before")
    @classmethod
    def _split_urls(cls, value: Any) -> Any:
        if value is None:
            return []
        return _split_csv(value)


class GetClickableElementsAction(ActionBase):
    __action_name__ = "getClickableElements"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getClickableElements"] = "getClickableElements"


class GetWriteableElementsAction(ActionBase):
    __action_name__ = "getWriteableElements"
    __action_kind__ = ActionKind.EXTRACTION

    type: Literal["getWriteableElements"] = "getWriteableElements"


class UnknownAction(ActionBase):
    """Placeholder for a descriptor whose name is not registered."""

    __action_name__ = "unknown"

    name: str
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def action_name(self) -> str:
        return self.name

    def payload(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data.setdefault("type", self.name)
        return data
