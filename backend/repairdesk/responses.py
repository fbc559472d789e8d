# Overview: Rendering of operation results as JSON responses.

from __future__ import annotations

from typing import Any, Callable

from flask import jsonify, request

from .errors import OperationResult, ValidationError


def render_result(
    result: OperationResult,
    serializer: Callable[[Any], Any] | None = None,
    success_status: int = 200,
):
    if not result.ok:
        return jsonify(result.error_body()), result.http_status
    body = serializer(result.value) if serializer else result.value
    return jsonify(body), success_status


def json_body() -> dict:
    """Request JSON as a dict; a missing or non-object body is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
