from __future__ import annotations

import asyncio
import atexit
import base64
import logging
import os
import uuid
from dataclasses import is_dataclass
from typing import Any, Dict

from flask import Flask, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from actionkit.service import PipelineService
from actionkit.dsl.results import BodyContent, ElementInfo

from .errors import ActionFailed, InstanceNotFound

app = Flask(__name__)
logging.basicConfig(level=logging.INFO)
log = logging.getLogger("pagerunner")

_service: PipelineService | None = None


def _get_service() -> PipelineService:
    global _service
    if _service is None:
        _service = PipelineService()
    return _service


LOOP = asyncio.new_event_loop()
asyncio.set_event_loop(LOOP)


def _run(coro):
    return LOOP.run_until_complete(coro)


@atexit.register
def _shutdown_service() -> None:  # pragma: no cover - shutdown path
    service = _service
    if service is None or LOOP.is_closed():
        return
    try:
        _run(service.close_all())
    except Exception as exc:
        log.debug("Service shutdown failed: %s", exc)


@app.errorhandler(Exception)
def handle_exception(error):  # pragma: no cover - defensive handler
    if isinstance(error, HTTPException):
        return error
    correlation_id = str(uuid.uuid4())[:8]
    log.exception("[%s] Uncaught exception: %s", correlation_id, error)
    return jsonify({"error": f"Internal failure - {error}", "correlation_id": correlation_id}), 500


# ---------------------------------------------------------------------------
# Serialisation helpers


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, (BodyContent, ElementInfo)):
        return value.as_dict()
    if is_dataclass(value) and not isinstance(value, type) and hasattr(value, "as_dict"):
        return value.as_dict()
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _outcome_payload(outcome) -> Dict[str, Any]:
    return {
        "instance_id": outcome.instance_id,
        "result": _jsonable(outcome.result),
        "history_length": outcome.history_length,
    }


def _failure_response(exc: ActionFailed):
    payload = {
        "error": str(exc.error),
        "code": exc.code,
        "action": exc.details.get("action"),
        "url": exc.url,
    }
    return jsonify(payload), 422


# ---------------------------------------------------------------------------
# Instance API


@app.post("/instances")
def create_instance():
    data = _json_body()
    actions = data.get("actions") or []
    if not isinstance(actions, list):
        return jsonify({"error": "actions must be a list"}), 400
    service = _get_service()
    try:
        outcome = _run(
            service.execute_steps(
                actions,
                params=data.get("params"),
                launch_options=data.get("launch_options"),
                force_new_instance=True,
                categories=data.get("categories"),
            )
        )
    except (ValidationError, ValueError, TypeError) as exc:
        return jsonify({"error": str(exc)}), 400
    except ActionFailed as exc:
        log.warning("Submission on new instance aborted: %s", exc)
        return _failure_response(exc)
    return jsonify(_outcome_payload(outcome)), 201


@app.post("/instances/<instance_id>/actions")
def run_actions(instance_id: str):
    data = _json_body()
    actions = data.get("actions")
    if not isinstance(actions, list):
        return jsonify({"error": "actions must be a list"}), 400
    service = _get_service()
    try:
        outcome = _run(service.execute_more_steps(instance_id, actions, params=data.get("params")))
    except InstanceNotFound as exc:
        return jsonify({"error": str(exc), "code": exc.code}), 404
    except (ValidationError, ValueError, TypeError) as exc:
        return jsonify({"error": str(exc)}), 400
    except ActionFailed as exc:
        log.warning("Submission on %s aborted: %s", instance_id, exc)
        return _failure_response(exc)
    return jsonify(_outcome_payload(outcome))


@app.get("/instances")
def list_instances():
    service = _get_service()
    described = []
    for instance_id in service.instance_ids():
        instance = _run(service.get_instance(instance_id))
        if instance is not None:
            described.append(instance.describe())
    return jsonify({"instances": described})


@app.delete("/instances/<instance_id>")
def delete_instance(instance_id: str):
    service = _get_service()
    closed = _run(service.close_instance(instance_id))
    if not closed:
        return jsonify({"error": f"Instance with ID {instance_id} not found", "code": "INSTANCE_NOT_FOUND"}), 404
    return jsonify({"instance_id": instance_id, "closed": True})


@app.get("/healthz")
def health():  # pragma: no cover - trivial endpoint
    return "ok", 200


if __name__ == "__main__":  # pragma: no cover - manual run helper
    app.run("0.0.0.0", int(os.getenv("PAGERUNNER_PORT", "7000")), threaded=False)
