from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, FieldType
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import BusinessRuleViolation

from .base import EntityAdapter, PrepareContext

logger = logging.getLogger(__name__)


def normalize_status(text: str) -> str:
    """"Division 5-1 In" -> "IN", "gate out" -> "OUT"; anything else unchanged."""
    tokens = set(re.findall(r"[a-z]+", text.lower()))
    if "out" in tokens:
        return "OUT"
    if "in" in tokens:
        return "IN"
    return text


CHECK_IN_OUT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("first_name", "First Name", required=True),
    FieldSpec("last_name", "Last Name", required=True),
    FieldSpec("card_number", "Card Number",
              description="Matched against employee card numbers before names."),
    FieldSpec("date_time", "Date/Time", required=True, type=FieldType.DATETIME),
    FieldSpec("status", "Status", required=True, type=FieldType.ENUM, choices=("IN", "OUT"),
              normalizer=normalize_status),
)


def check_in_out_key(record: Mapping[str, Any]) -> str:
    # 同一従業員・同一分のイベントは重複扱い
    return f"{record['employee_id']}|{record['date_time']:%Y-%m-%dT%H:%M}"


def match_key(record: Mapping[str, Any]) -> str:
    """``First|Last|Card`` (``First|Last`` without a card), as shown to operators."""
    key = f"{record['first_name'].strip()}|{record['last_name'].strip()}"
    card = (record.get("card_number") or "").strip()
    return f"{key}|{card}" if card else key


def _manual_match(record: Mapping[str, Any], matches: Mapping[str, str]) -> str | None:
    if not matches:
        return None
    card = (record.get("card_number") or "").strip()
    full_name = f"{record['first_name'].strip()} {record['last_name'].strip()}"
    for candidate in (match_key(record), full_name, card):
        if candidate and matches.get(candidate):
            return matches[candidate]
    return None


def resolve_employee(record: Mapping[str, Any], context: PrepareContext) -> str | None:
    """Manual match first, then card number, then first + last name."""
    employees = context.store(EntityType.EMPLOYEE)
    manual = _manual_match(record, context.manual_matches)
    if manual is not None:
        if employees.exists(manual):
            return manual
        logger.warning("manual match %s -> %s is not an existing employee", match_key(record), manual)
    if record.get("card_number"):
        employee_id = employees.find_by_fields({"card_number": record["card_number"]})
        if employee_id is not None:
            return employee_id
    return employees.find_by_fields(
        {"first_name": record["first_name"], "last_name": record["last_name"]}
    )


def prepare_check_in_out(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    employee_id = resolve_employee(record, context)
    if employee_id is None:
        raise BusinessRuleViolation(
            f"no employee matches {record['first_name']} {record['last_name']}"
        )
    record["employee_id"] = employee_id
    return record


CHECK_IN_OUTS = EntityAdapter(
    entity_type=EntityType.CHECK_IN_OUT,
    field_schema=CHECK_IN_OUT_FIELDS,
    natural_key=check_in_out_key,
    prepare=prepare_check_in_out,
    requires=(EntityType.EMPLOYEE,),
)
