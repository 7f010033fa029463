# Overview: Shared JSON response helpers for API routes.

from flask import jsonify, request

from ..errors import DomainError, ValidationError


def error_response(exc: DomainError):
    """Discriminated failure envelope: {"error", "code", "details"} with the error's status."""
    return jsonify(exc.to_dict()), exc.status_code


def internal_error():
    return jsonify({"error": "Internal server error", "code": "InternalError", "details": {}}), 500


def json_body() -> dict:
    """Request JSON object; an absent body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data(cache=True):
            raise ValidationError("Invalid JSON payload")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def page_args() -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
        per_page = int(request.args.get("per_page", 20))
    except ValueError:
        raise ValidationError("page and per_page must be integers")
    return page, per_page
