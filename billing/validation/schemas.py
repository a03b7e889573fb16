"""
Domain-Specific Validation Schemas

Centralized validation rules per domain object. Raw payloads (API bodies,
JSON snapshots) are validated here and turned into typed values before they
reach the service layer.

Each schema provides:
- Field constraints (min/max length, format, required)
- Business rules
- Validation methods that return standardized errors
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import FieldError, ValidationError, ErrorCode

MONEY_PLACES = Decimal("0.01")
# Largest amount a max_digits=15, decimal_places=2 column can store.
MAX_MONEY = Decimal("9999999999999.99")
MAX_PAYMENT_TERMS_DAYS = 3650


@dataclass
class FieldConstraints:
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None
    max_decimal_places: Optional[int] = None
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None


class BaseSchema:
    FIELDS: Dict[str, FieldConstraints] = {}

    @classmethod
    def validate(cls, data: Dict[str, Any], prefix: str = "") -> Tuple[bool, List[FieldError]]:
        errors = []

        for field_name, constraints in cls.FIELDS.items():
            value = data.get(field_name)
            if isinstance(value, str):
                value = value.strip()
            errors.extend(cls._validate_field(field_name, value, constraints, prefix))

        errors.extend(cls.validate_business_rules(data, prefix))

        return len(errors) == 0, errors

    @classmethod
    def _validate_field(
        cls,
        field_name: str,
        value: Any,
        constraints: FieldConstraints,
        prefix: str = "",
    ) -> List[FieldError]:
        errors = []
        full_field = f"{prefix}{field_name}"

        if constraints.required and (value is None or value == ""):
            errors.append(FieldError(
                field=full_field,
                code=ErrorCode.FIELD_REQUIRED.value,
                message=f"{cls._humanize(field_name)} is required.",
            ))
            return errors

        if value is None or value == "":
            return errors

        if isinstance(value, str):
            if constraints.min_length and len(value) < constraints.min_length:
                errors.append(FieldError(
                    field=full_field,
                    code=ErrorCode.FIELD_TOO_SHORT.value,
                    message=f"{cls._humanize(field_name)} must be at least {constraints.min_length} characters.",
                ))

            if constraints.max_length and len(value) > constraints.max_length:
                errors.append(FieldError(
                    field=full_field,
                    code=ErrorCode.FIELD_TOO_LONG.value,
                    message=f"{cls._humanize(field_name)} must be at most {constraints.max_length} characters.",
                ))

            if constraints.pattern and not re.match(constraints.pattern, value):
                errors.append(FieldError(
                    field=full_field,
                    code=ErrorCode.FIELD_INVALID_FORMAT.value,
                    message=constraints.pattern_message or f"{cls._humanize(field_name)} format is invalid.",
                ))

        if constraints.min_value is not None or constraints.max_value is not None:
            try:
                decimal_value = to_decimal(value)

                if constraints.min_value is not None and decimal_value < constraints.min_value:
                    errors.append(FieldError(
                        field=full_field,
                        code=ErrorCode.FIELD_OUT_OF_RANGE.value,
                        message=f"{cls._humanize(field_name)} must be at least {constraints.min_value}.",
                    ))

                if constraints.max_value is not None and decimal_value > constraints.max_value:
                    errors.append(FieldError(
                        field=full_field,
                        code=ErrorCode.FIELD_OUT_OF_RANGE.value,
                        message=f"{cls._humanize(field_name)} must be at most {constraints.max_value}.",
                    ))

                places = constraints.max_decimal_places
                if places is not None and decimal_value.as_tuple().exponent < -places:
                    errors.append(FieldError(
                        field=full_field,
                        code=ErrorCode.FIELD_INVALID_FORMAT.value,
                        message=f"{cls._humanize(field_name)} must have at most {places} decimal places.",
                    ))
            except (InvalidOperation, ValueError, TypeError):
                errors.append(FieldError(
                    field=full_field,
                    code=ErrorCode.FIELD_INVALID.value,
                    message=f"{cls._humanize(field_name)} must be a valid number.",
                ))

        return errors

    @classmethod
    def validate_business_rules(cls, data: Dict[str, Any], prefix: str = "") -> List[FieldError]:
        return []

    @staticmethod
    def _humanize(field_name: str) -> str:
        return field_name.replace("_", " ").title()

    @classmethod
    def raise_if_invalid(cls, data: Dict[str, Any]) -> None:
        is_valid, errors = cls.validate(data)
        if not is_valid:
            raise ValidationError(
                message="Validation failed. Please check your input.",
                fields=errors,
            )


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers")
    result = Decimal(str(value))
    if not result.is_finite():
        raise InvalidOperation(f"{value!r} is not a finite number")
    return result


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return (quantity * unit_price).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItemData:
    """A validated line item, detached from any invoice row."""

    item_name: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)

    def to_dict(self) -> Dict[str, str]:
        return {
            "item_name": self.item_name,
            "quantity": str(self.quantity.quantize(MONEY_PLACES)),
            "unit_price": str(self.unit_price.quantize(MONEY_PLACES)),
            "total_price": str(self.total_price),
        }


class LineItemSchema(BaseSchema):
    FIELDS = {
        "item_name": FieldConstraints(
            required=True,
            min_length=1,
            max_length=255,
        ),
        "quantity": FieldConstraints(
            required=True,
            min_value=Decimal("0"),
            max_value=Decimal("999999999.99"),
            max_decimal_places=2,
        ),
        "unit_price": FieldConstraints(
            required=True,
            min_value=Decimal("0"),
            max_value=Decimal("999999999.99"),
            max_decimal_places=2,
        ),
    }


class CustomerSchema(BaseSchema):
    FIELDS = {
        "customer_name": FieldConstraints(
            required=True,
            min_length=1,
            max_length=255,
        ),
        "phone_number": FieldConstraints(
            required=True,
            max_length=20,
            pattern=r"^\+?[\d\s\-\(\)]{6,}$",
            pattern_message="Please enter a valid phone number.",
        ),
        "email": FieldConstraints(
            required=False,
            max_length=254,
            pattern=r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
            pattern_message="Please enter a valid email address.",
        ),
        "address": FieldConstraints(
            required=False,
            max_length=500,
        ),
        "credit_limit": FieldConstraints(
            required=False,
            min_value=Decimal("0"),
            max_value=MAX_MONEY,
            max_decimal_places=2,
        ),
    }

    @classmethod
    def validate_business_rules(cls, data: Dict[str, Any], prefix: str = "") -> List[FieldError]:
        terms = data.get("payment_terms_days")
        if terms is None:
            return []
        if isinstance(terms, bool) or not isinstance(terms, int) or not 0 < terms <= MAX_PAYMENT_TERMS_DAYS:
            return [FieldError(
                field=f"{prefix}payment_terms_days",
                code=ErrorCode.FIELD_OUT_OF_RANGE.value,
                message=f"Payment Terms Days must be a whole number of days between 1 and {MAX_PAYMENT_TERMS_DAYS}.",
            )]
        return []


class BusinessSchema(BaseSchema):
    FIELDS = {
        "business_name": FieldConstraints(
            required=True,
            min_length=1,
            max_length=255,
        ),
        "phone_number": FieldConstraints(
            required=False,
            max_length=20,
            pattern=CustomerSchema.FIELDS["phone_number"].pattern,
            pattern_message="Please enter a valid phone number.",
        ),
        "email": CustomerSchema.FIELDS["email"],
        "gst_number": FieldConstraints(
            required=False,
            max_length=20,
        ),
    }


def parse_line_items(items: Optional[Iterable[Any]], field_name: str = "items") -> List[LineItemData]:
    """Validate a raw list of line items and return typed copies.

    Accepts dicts (API payloads, JSON snapshots) or ``LineItemData`` values.
    All problems across all items are collected into one ``ValidationError``.
    """
    items = list(items or [])
    if not items:
        raise ValidationError(
            message="At least one line item is required.",
            fields=[FieldError(
                field=field_name,
                code=ErrorCode.FIELD_REQUIRED.value,
                message="At least one line item is required.",
            )],
        )

    errors: List[FieldError] = []
    parsed: List[LineItemData] = []
    for index, raw in enumerate(items):
        if isinstance(raw, LineItemData):
            raw = {"item_name": raw.item_name, "quantity": raw.quantity, "unit_price": raw.unit_price}
        if not isinstance(raw, dict):
            errors.append(FieldError(
                field=f"{field_name}.{index}",
                code=ErrorCode.FIELD_INVALID.value,
                message="Line item must be an object.",
            ))
            continue

        is_valid, item_errors = LineItemSchema.validate(raw, prefix=f"{field_name}.{index}.")
        if not is_valid:
            errors.extend(item_errors)
            continue

        item = LineItemData(
            item_name=str(raw["item_name"]).strip(),
            quantity=to_decimal(raw["quantity"]),
            unit_price=to_decimal(raw["unit_price"]),
        )
        if item.total_price > MAX_MONEY:
            errors.append(FieldError(
                field=f"{field_name}.{index}",
                code=ErrorCode.FIELD_OUT_OF_RANGE.value,
                message=f"Line total must be at most {MAX_MONEY}.",
            ))
            continue
        parsed.append(item)

    if not errors and sum(item.total_price for item in parsed) > MAX_MONEY:
        errors.append(FieldError(
            field=field_name,
            code=ErrorCode.FIELD_OUT_OF_RANGE.value,
            message=f"Invoice total must be at most {MAX_MONEY}.",
        ))

    if errors:
        raise ValidationError(
            message="Validation failed. Please check your line items.",
            fields=errors,
        )
    return parsed
