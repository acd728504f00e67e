from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, FieldType
from backoffice_import.models.session import EntityType

from .base import EntityAdapter, PrepareContext, require, split_full_name

LEAD_STATUSES = ("NEW", "CONTACTED", "QUALIFIED", "PROPOSAL", "WON", "LOST")

LEAD_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("title", "Lead Title", required=True),
    FieldSpec("description", "Description"),
    FieldSpec("status", "Status", type=FieldType.ENUM, choices=LEAD_STATUSES,
              description="Defaults to NEW when blank."),
    FieldSpec("value", "Deal Value", type=FieldType.NUMBER),
    FieldSpec("probability", "Probability (%)", type=FieldType.NUMBER,
              description="Clamped to 0-100."),
    FieldSpec("source", "Lead Source"),
    FieldSpec("expected_close_date", "Expected Close Date", type=FieldType.DATE),
    FieldSpec("customer_name", "Customer Name"),
    FieldSpec("owner_email", "Owner Email", type=FieldType.EMAIL),
    FieldSpec("contact_email", "Contact Email", required=True, type=FieldType.EMAIL),
    FieldSpec("contact_first_name", "Contact First Name"),
    FieldSpec("contact_last_name", "Contact Last Name"),
    FieldSpec("contact_full_name", "Contact Full Name",
              description="Split into first/last name when those are not mapped."),
    FieldSpec("contact_phone", "Contact Phone"),
    FieldSpec("contact_role", "Contact Role"),
    FieldSpec("contact_company", "Contact Company"),
)


def lead_key(record: Mapping[str, Any]) -> str:
    # 同一連絡先 + 同一タイトルを重複とみなす
    return f"{record['contact_email'].lower()}|{record['title'].strip().lower()}"


def prepare_lead(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    split_full_name(record, "contact_full_name", "contact_first_name", "contact_last_name")
    require(record, "contact_first_name", "contact_last_name", label="lead contact")
    if record.get("probability") is not None:
        record["probability"] = min(100.0, max(0.0, record["probability"]))
    record.setdefault("status", "NEW")
    return record


LEADS = EntityAdapter(
    entity_type=EntityType.LEAD,
    field_schema=LEAD_FIELDS,
    natural_key=lead_key,
    prepare=prepare_lead,
)
