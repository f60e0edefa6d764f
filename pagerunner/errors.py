"""Error taxonomy shared by the resolver, runner and instance registry."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExecutionError(Exception):
    def __init__(self, message: str, *, code: str = "EXECUTION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class SelectorNotFound(ExecutionError):
    def __init__(self, selector: str, dialect: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"{dialect} selector \"{selector}\" did not resolve to an element",
            code="SELECTOR_NOT_FOUND",
            details={"selector": selector, "dialect": dialect},
        )
        self.selector = selector
        self.dialect = dialect


class SelectorAmbiguous(ExecutionError):
    def __init__(self, selector: str, dialect: str, count: int) -> None:
        super().__init__(
            f"{dialect} selector \"{selector}\" matched {count} elements; refine it to a single element",
            code="SELECTOR_AMBIGUOUS",
            details={"selector": selector, "dialect": dialect, "count": count},
        )
        self.selector = selector
        self.dialect = dialect
        self.count = count


class PipelineTimeout(ExecutionError):
    def __init__(self, message: str, *, timeout_ms: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        if timeout_ms is not None:
            payload["timeout_ms"] = timeout_ms
        super().__init__(message, code="TIMEOUT", details=payload)
        self.timeout_ms = timeout_ms


class SelectorTimeout(PipelineTimeout):
    def __init__(self, selector: str, dialect: str, timeout_ms: int, reason: str = "") -> None:
        message = f"Waiting for {dialect} selector \"{selector}\" failed after {timeout_ms} ms"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, timeout_ms=timeout_ms, details={"selector": selector, "dialect": dialect})
        self.code = "SELECTOR_TIMEOUT"
        self.selector = selector
        self.dialect = dialect


class InvalidSelector(ExecutionError):
    """Selector depends on locale specific attributes or text predicates."""

    def __init__(self, selector: str, marker: str) -> None:
        super().__init__(
            f"Selector \"{selector}\" embeds locale dependent \"{marker}\"; use a technical selector",
            code="INVALID_SELECTOR",
            details={"selector": selector, "marker": marker},
        )
        self.selector = selector
        self.marker = marker


class UnknownActionKind(ExecutionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown action type: {name}", code="UNKNOWN_ACTION")
        self.name = name


class InstanceNotFound(ExecutionError):
    def __init__(self, instance_id: str, available: Optional[list[str]] = None) -> None:
        super().__init__(
            f"Instance with ID {instance_id} not found. Make sure the instance is still active.",
            code="INSTANCE_NOT_FOUND",
            details={"instance_id": instance_id, "available": list(available or [])},
        )
        self.instance_id = instance_id


class ActionFailed(ExecutionError):
    """Hard failure that aborted a submission; the original error is ``__cause__``."""

    def __init__(self, action: Any, url: str, error: BaseException) -> None:
        name = getattr(action, "action_name", None) or type(action).__name__
        super().__init__(
            f"Action '{name}' failed at {url}: {error}",
            code=getattr(error, "code", "ACTION_FAILED"),
            details={"action": name, "url": url},
        )
        self.action = action
        self.url = url
        self.error = error
