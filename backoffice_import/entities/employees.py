from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from backoffice_import.models.field_schema import FieldSpec, FieldType
from backoffice_import.models.session import EntityType
from backoffice_import.services.errors import BusinessRuleViolation

from .base import EntityAdapter, PrepareContext

EMPLOYMENT_STATUSES = ("ACTIVE", "ON_LEAVE", "TERMINATED", "RESIGNED")
CONTRACT_TYPES = ("FULL_TIME", "PART_TIME", "CONTRACT", "INTERNSHIP")
USER_ROLES = ("ADMIN", "SALESPERSON", "ACCOUNT_MANAGER", "RECRUITER", "HR", "EMPLOYEE")

EMPLOYEE_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("email", "Email", required=True, type=FieldType.EMAIL),
    FieldSpec("first_name", "First Name", required=True),
    FieldSpec("last_name", "Last Name", required=True),
    FieldSpec("employee_number", "Employee Number", required=True,
              description="Unique business identifier."),
    FieldSpec("job_title", "Job Title", required=True),
    FieldSpec("department", "Department"),
    FieldSpec("status", "Employment Status", type=FieldType.ENUM, choices=EMPLOYMENT_STATUSES),
    FieldSpec("contract_type", "Contract Type", type=FieldType.ENUM, choices=CONTRACT_TYPES),
    FieldSpec("hire_date", "Hire Date", required=True, type=FieldType.DATE),
    FieldSpec("termination_date", "Termination Date", type=FieldType.DATE),
    FieldSpec("salary", "Salary", type=FieldType.NUMBER),
    FieldSpec("salary_currency", "Salary Currency"),
    FieldSpec("phone", "Phone"),
    FieldSpec("role", "User Role", type=FieldType.ENUM, choices=USER_ROLES),
    FieldSpec("manager_email", "Manager Email", type=FieldType.EMAIL,
              description="Email of an existing employee."),
    FieldSpec("emergency_contact_name", "Emergency Contact Name"),
    FieldSpec("emergency_contact_phone", "Emergency Contact Phone"),
    FieldSpec("card_number", "Card Number", description="Badge id used by check-in/out exports."),
)


def employee_key(record: Mapping[str, Any]) -> str:
    return record["email"].lower()


def prepare_employee(record: dict[str, Any], context: PrepareContext) -> dict[str, Any]:
    hire = record.get("hire_date")
    termination = record.get("termination_date")
    if hire is not None and termination is not None and termination < hire:
        raise BusinessRuleViolation("termination_date is before hire_date")
    if record.get("salary") is not None and record["salary"] < 0:
        raise BusinessRuleViolation("salary must not be negative")
    if record.get("salary_currency"):
        record["salary_currency"] = record["salary_currency"].upper()

    manager_email = record.pop("manager_email", None)
    if manager_email:
        if manager_email == record["email"].lower():
            raise BusinessRuleViolation("an employee cannot be their own manager")
        manager_id = context.store(EntityType.EMPLOYEE).find_by_fields({"email": manager_email})
        if manager_id is None:
            raise BusinessRuleViolation(f"manager {manager_email!r} is not an existing employee")
        record["manager_id"] = manager_id
    return record


EMPLOYEES = EntityAdapter(
    entity_type=EntityType.EMPLOYEE,
    field_schema=EMPLOYEE_FIELDS,
    natural_key=employee_key,
    prepare=prepare_employee,
    unique_fields=("employee_number",),
    requires=(EntityType.EMPLOYEE,),
)
