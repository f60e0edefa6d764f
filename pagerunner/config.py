"""Configuration loader for the action runner."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


DEFAULTS: Dict[str, Any] = {
    "interactive_selector_timeout_ms": 600_000,
    "read_selector_timeout_ms": 15_000,
    "navigation_timeout_ms": 30_000,
    "wait_for_navigation_timeout_ms": 10_000,
    "dom_update_idle_ms": 1_000,
    "dom_update_timeout_ms": 30_000,
    "body_idle_ms": 2_000,
    "body_idle_timeout_ms": 5_000,
    "body_settle_ms": 1_500,
    "click_settle_ms": 1_000,
    "write_settle_ms": 500,
    "hover_settle_ms": 300,
    "clear_settle_ms": 300,
    "blank_page_settle_ms": 1_000,
    "max_elements": 100,
    "strict_selectors": False,
    "language_independent": True,
    "permissions": ["microphone", "camera", "notifications"],
    "headless": True,
    "launch_args": ["--no-sandbox", "--disable-setuid-sandbox"],
    "log_root": "runs",
    "event_log": False,
}

_TRUTHY = {"true", "1", "yes", "on"}


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in _TRUTHY


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


@dataclass(slots=True)
class RunConfig:
    interactive_selector_timeout_ms: int = DEFAULTS["interactive_selector_timeout_ms"]
    read_selector_timeout_ms: int = DEFAULTS["read_selector_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    wait_for_navigation_timeout_ms: int = DEFAULTS["wait_for_navigation_timeout_ms"]
    dom_update_idle_ms: int = DEFAULTS["dom_update_idle_ms"]
    dom_update_timeout_ms: int = DEFAULTS["dom_update_timeout_ms"]
    body_idle_ms: int = DEFAULTS["body_idle_ms"]
    body_idle_timeout_ms: int = DEFAULTS["body_idle_timeout_ms"]
    body_settle_ms: int = DEFAULTS["body_settle_ms"]
    click_settle_ms: int = DEFAULTS["click_settle_ms"]
    write_settle_ms: int = DEFAULTS["write_settle_ms"]
    hover_settle_ms: int = DEFAULTS["hover_settle_ms"]
    clear_settle_ms: int = DEFAULTS["clear_settle_ms"]
    blank_page_settle_ms: int = DEFAULTS["blank_page_settle_ms"]
    max_elements: int = DEFAULTS["max_elements"]
    strict_selectors: bool = DEFAULTS["strict_selectors"]
    language_independent: bool = DEFAULTS["language_independent"]
    permissions: List[str] = field(default_factory=lambda: list(DEFAULTS["permissions"]))
    headless: bool = DEFAULTS["headless"]
    launch_args: List[str] = field(default_factory=lambda: list(DEFAULTS["launch_args"]))
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    event_log: bool = DEFAULTS["event_log"]

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update(mapping)
        return cls(
            interactive_selector_timeout_ms=int(data["interactive_selector_timeout_ms"]),
            read_selector_timeout_ms=int(data["read_selector_timeout_ms"]),
            navigation_timeout_ms=int(data["navigation_timeout_ms"]),
            wait_for_navigation_timeout_ms=int(data["wait_for_navigation_timeout_ms"]),
            dom_update_idle_ms=int(data["dom_update_idle_ms"]),
            dom_update_timeout_ms=int(data["dom_update_timeout_ms"]),
            body_idle_ms=int(data["body_idle_ms"]),
            body_idle_timeout_ms=int(data["body_idle_timeout_ms"]),
            body_settle_ms=int(data["body_settle_ms"]),
            click_settle_ms=int(data["click_settle_ms"]),
            write_settle_ms=int(data["write_settle_ms"]),
            hover_settle_ms=int(data["hover_settle_ms"]),
            clear_settle_ms=int(data["clear_settle_ms"]),
            blank_page_settle_ms=int(data["blank_page_settle_ms"]),
            max_elements=int(data["max_elements"]),
            strict_selectors=_as_bool(data["strict_selectors"]),
            language_independent=_as_bool(data["language_independent"]),
            permissions=_as_list(data["permissions"]),
            headless=_as_bool(data["headless"]),
            launch_args=_as_list(data["launch_args"]),
            log_root=Path(data["log_root"]),
            event_log=_as_bool(data["event_log"]),
        )


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith("PAGERUNNER_"):
            env_map[key[len("PAGERUNNER_"):].lower()] = value

    file_map: Dict[str, Any] = {}
    path = config_path or Path("config.toml")
    if path.exists():
        file_map = _load_toml(path).get("runner", {})

    merged = {**file_map, **env_map}
    return RunConfig.from_mapping({k: v for k, v in merged.items() if k in DEFAULTS})


def ensure_log_directory(instance_id: str, config: RunConfig) -> Path:
    base = config.log_root / instance_id
    base.mkdir(parents=True, exist_ok=True)
    return base
