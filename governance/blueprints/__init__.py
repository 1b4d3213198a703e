"""
Governance Central
Blueprint registry.
"""

from flask import request


def json_body() -> dict:
    """Return the request JSON object, or {} for a missing/non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def flag_arg(name: str) -> bool:
    """Read a boolean query flag (?resolve=true / 1 / yes)."""
    return str(request.args.get(name, "")).lower() in ("1", "true", "yes")
