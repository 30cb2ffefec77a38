"""Shared helpers for the JSON blueprints"""

from datetime import datetime

from flask import request

from pickpool.errors import ValidationError


def json_body():
    """Request JSON as a dict; a missing or non-object body is a ValidationError"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def int_value(source, name, required=False):
    """Read an integer from a dict or request.args"""
    value = source.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer", {name: value}) from e


def datetime_value(source, name):
    """Parse an optional ISO-8601 timestamp"""
    value = source.get(name)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an ISO-8601 timestamp", {name: value}) from e


def batch_summary(batch):
    return batch.summary() if batch is not None else None
