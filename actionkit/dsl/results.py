"""Data structures produced by extraction actions and selector resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ELEMENT_TYPES = ("clickable", "writeable", "uploadable", "other")


@dataclass(slots=True)
class ElementInfo:
    """One interactive element reported by the DOM classifier."""

    selector: str
    type: str
    tag: str
    id: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ElementInfo":
        element_type = str(data.get("type") or "other")
        if element_type not in ELEMENT_TYPES:
            element_type = "other"
        return cls(
            selector=str(data.get("selector", "")),
            type=element_type,
            tag=str(data.get("tag", "")).lower(),
            id=str(data["id"]) if data.get("id") else None,
            text=str(data["text"]) if data.get("text") else None,
        )

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"selector": self.selector, "type": self.type, "tag": self.tag}
        if self.id:
            payload["id"] = self.id
        if self.text:
            payload["text"] = self.text
        return payload


@dataclass(slots=True)
class BodyContent:
    """Result of ``getBodyContent``: stabilised markup plus the element list."""

    content: str
    elements: List[ElementInfo] = field(default_factory=list)
    stabilized: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "elements": [element.as_dict() for element in self.elements],
            "stabilizedHTML": self.stabilized,
        }


@dataclass(slots=True)
class ResolvedElement:
    """Result of resolving a selector string to a single live element."""

    selector: str
    dialect: str
    match_count: int
    element: Any | None = field(default=None, repr=False)
