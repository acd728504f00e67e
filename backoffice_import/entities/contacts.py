from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, FieldType
from backoffice_import.models.session import EntityType

from .base import EntityAdapter, PrepareContext, require, split_full_name

CONTACT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("email", "Email", required=True, type=FieldType.EMAIL),
    FieldSpec("first_name", "First Name"),
    FieldSpec("last_name", "Last Name"),
    FieldSpec("full_name", "Full Name"),
    FieldSpec("phone", "Phone"),
    FieldSpec("role", "Role / Title"),
    FieldSpec("company_name", "Company Name"),
    FieldSpec("linkedin_url", "LinkedIn URL"),
    FieldSpec("notes", "Notes"),
    FieldSpec("customer_name", "Customer Name"),
)


def contact_key(record: Mapping[str, Any]) -> str:
    return record["email"].lower()


def prepare_contact(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    split_full_name(record, "full_name", "first_name", "last_name")
    require(record, "first_name", "last_name", label="contact")
    return record


CONTACTS = EntityAdapter(
    entity_type=EntityType.CONTACT,
    field_schema=CONTACT_FIELDS,
    natural_key=contact_key,
    prepare=prepare_contact,
)
