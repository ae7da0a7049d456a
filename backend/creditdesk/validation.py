"""
Input validation and the error types the routes translate into HTTP codes.

ValidationError -> 400, ConflictError -> 409, NotFoundError -> 404. Every
error carries a short machine-readable code ("overpayment", "no-op", ...)
next to the human message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text


# 9,999,999.99 in cents; anything larger is a typo, not a credit sale
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, code: str = "invalid", details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., insufficient stock)."""

    def __init__(self, message: str, code: str = "conflict", details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class NotFoundError(LookupError):
    """404-level missing resource."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may send, and which a create must include."""
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def coerce_int(value: Any, field_name: str) -> int:
    """
    Strict integer parsing for money and quantities.

    Accepts ints and plain digit strings ("-12", " 300 "). Floats, bools,
    decimals and exponents are refused so "12.5" never turns into 12 cents.
    """
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field_name} must be an integer", code="invalid-amount", details={"field": field_name})
    if isinstance(value, int):
        return value

    text = value.strip()
    digits = text[1:] if text[:1] in "+-" else text
    if not digits.isdecimal():
        raise ValidationError(
            f"{field_name} must be a plain integer (no decimals or exponents)",
            code="invalid-amount",
            details={"field": field_name},
        )
    return int(text)


def _normalize(column, value: Any):
    if isinstance(column.type, Integer):
        return coerce_int(value, column.key)
    if isinstance(column.type, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{column.key} must be true or false", details={"field": column.key})
        return value
    if isinstance(column.type, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank", code="missing-field", details={"field": column.key})
        length = getattr(column.type, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{column.key} exceeds max length {length}", details={"field": column.key})
        return text
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn request JSON into a clean attribute patch for `model`.

    Only policy.writable_fields are accepted; values are checked against
    the column metadata (type, nullability, String length). partial=False
    is create semantics and also enforces policy.required_on_create.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                code="missing-field",
                details={"fields": missing},
            )

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}", details={"field": key})
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null", code="missing-field", details={"field": key})
            patch[key] = None
        else:
            patch[key] = _normalize(column, raw)
    return patch


def enforce_amount_range(value: int, field_name: str, *, allow_negative: bool = False) -> None:
    if value < 0 and not allow_negative:
        raise ValidationError(f"{field_name} must be >= 0", code="invalid-amount", details={"field": field_name})
    if abs(value) > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"{field_name} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})",
            code="invalid-amount",
            details={"field": field_name},
        )


def enforce_rules_technical_service(patch: dict) -> None:
    """Account rules the column metadata cannot express."""
    if patch.get("credit_limit_cents") is not None:
        enforce_amount_range(patch["credit_limit_cents"], "credit_limit_cents")

    email = patch.get("email")
    if email and "@" not in email:
        raise ValidationError("email must be a valid address", details={"field": "email"})
