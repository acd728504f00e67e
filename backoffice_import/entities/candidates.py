from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, FieldType
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import BusinessRuleViolation

from .base import EntityAdapter, PrepareContext, require, split_full_name

CANDIDATE_STAGES = (
    "VALIDATION",
    "CULTURAL_INTERVIEW",
    "TECHNICAL_INTERVIEW",
    "CUSTOMER_INTERVIEW",
    "CONTRACT_SIGNING",
    "HIRED",
    "REJECTED",
)

CANDIDATE_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("email", "Email", required=True, type=FieldType.EMAIL),
    FieldSpec("first_name", "First Name"),
    FieldSpec("last_name", "Last Name"),
    FieldSpec("full_name", "Full Name"),
    FieldSpec("phone", "Phone"),
    FieldSpec("city", "City"),
    FieldSpec("country", "Country"),
    FieldSpec("current_title", "Current Title"),
    FieldSpec("years_of_experience", "Years of Experience", type=FieldType.NUMBER),
    FieldSpec("skills", "Skills", description="Comma, semicolon or pipe separated."),
    FieldSpec("resume_url", "Resume URL"),
    FieldSpec("linkedin_url", "LinkedIn URL"),
    FieldSpec("github_url", "GitHub URL"),
    FieldSpec("portfolio_url", "Portfolio URL"),
    FieldSpec("stage", "Stage", type=FieldType.ENUM, choices=CANDIDATE_STAGES),
    FieldSpec("rating", "Rating", type=FieldType.NUMBER, description="1 to 5."),
    FieldSpec("notes", "Notes"),
)

_SKILL_SEP = re.compile(r"[,;|]")


def candidate_key(record: Mapping[str, Any]) -> str:
    return record["email"].lower()


def prepare_candidate(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    split_full_name(record, "full_name", "first_name", "last_name")
    require(record, "first_name", "last_name", label="candidate")
    if record.get("skills"):
        record["skills"] = [s.strip() for s in _SKILL_SEP.split(record["skills"]) if s.strip()]
    rating = record.get("rating")
    if rating is not None and not 1 <= rating <= 5:
        raise BusinessRuleViolation(f"rating must be between 1 and 5 (got {rating:g})")
    if record.get("years_of_experience") is not None and record["years_of_experience"] < 0:
        raise BusinessRuleViolation("years_of_experience must not be negative")
    record.setdefault("stage", "VALIDATION")
    return record


CANDIDATES = EntityAdapter(
    entity_type=EntityType.CANDIDATE,
    field_schema=CANDIDATE_FIELDS,
    natural_key=candidate_key,
    prepare=prepare_candidate,
)
