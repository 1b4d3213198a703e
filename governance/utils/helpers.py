"""Shared service-layer helpers.

parse_datetime:   ISO date/datetime parsing for filter bounds (raises ValidationError)
parse_int:        bounded integer parsing for pagination and ids
clean_str:        trim optional text input, empty → None, over-length rejected
commit_or_raise:  commit the session, mapping driver errors onto the core taxonomy
"""

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy.exc import IntegrityError, OperationalError

from governance.core.exceptions import ConflictError, UpstreamUnavailableError, ValidationError
from governance.models import db

logger = logging.getLogger(__name__)


def parse_datetime(value, field: str, *, end_of_day: bool = False):
    """Parse an ISO date or datetime string to an aware datetime.

    Plain dates expand to the start of the day (or the end of the day when
    ``end_of_day`` is set, so ``to_date=2026-01-31`` includes that day).
    Returns None for empty input.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    else:
        text = str(value).strip()
        try:
            if len(text) == 10:
                parsed = datetime.combine(
                    date.fromisoformat(text), time.max if end_of_day else time.min
                )
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"{field} must be an ISO date or datetime",
                details={field: f"invalid value {value!r}"},
            )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_int(value, field: str, *, default=None, minimum=None, maximum=None):
    """Parse an integer, clamping to maximum and rejecting values below minimum."""
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "not an integer"})
    if minimum is not None and number < minimum:
        raise ValidationError(
            f"{field} must be >= {minimum}", details={field: f"below minimum {minimum}"}
        )
    if maximum is not None and number > maximum:
        number = maximum
    return number


def clean_str(value, max_length: int | None = None, field: str = "value"):
    """Return a stripped string, or None when empty.

    Text longer than max_length raises ValidationError; it is never cut.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters", details={field: "too long"}
        )
    return text


def commit_or_raise(resource: str, field: str, value=None):
    """Commit the current session.

    IntegrityError   → ConflictError(resource, field, value)
    OperationalError → UpstreamUnavailableError("relational")
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit resource=%s: %s", resource, exc.orig)
        raise ConflictError(resource, field, value)
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Database operational error on commit resource=%s", resource)
        raise UpstreamUnavailableError("relational", detail=str(exc.orig))
