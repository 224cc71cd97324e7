# ==== BUSINESS RULE NUMBERS ==== #

"""
Rule numbers and catalog metadata for the business rule engine.

Each number selects exactly one native validator. Tenants opt in or out of a
rule by storing a catalog row for the number; they cannot define new policies.
"""

from enum import Enum, IntEnum
from typing import Any, Dict


# ==== ENUMERATION DEFINITIONS ==== #


class RuleNumber(IntEnum):
    """Closed set of rule numbers understood by the engine."""

    BACKDATE_ALLOWED_TILL = 101
    BACKDATE_ALLOWED_AFTER_LOCK = 102

    START_DATE_CANNOT_BE_IN_FUTURE = 201
    WBS_DATE_RANGE_VALID = 202
    ALLOCATION_DATE_RANGE_VALID = 203
    ATTENDANCE_NOT_IN_FUTURE = 204
    MATERIAL_USAGE_VALID = 205
    PROJECT_DATE_RANGE_VALID = 206
    TASK_WITHIN_WBS_DATES = 207

    CONFIRMATION_CANNOT_BE_OVERWRITTEN = 301

    DAILY_UPDATE_CANNOT_EXCEED_PLANNED_QTY = 401
    QUANTITY_CANNOT_BE_NEGATIVE = 402

    ALLOCATION_DATES_REQUIRED = 501

    ALLOCATION_WITHIN_WBS_DATES = 601
    ALLOCATION_CANNOT_OVERLAP = 602
    CONFIRMATION_UNDO_WINDOW_DAYS = 603

    CONFIRMATION_NOT_BEFORE_BASELINE = 701
    CONFIRMATION_QTY_REQUIRED = 702


class ControlPoint(str, Enum):
    """Functional area a rule is attached to in the admin screens."""

    TASK_UPDATE = "TASK_UPDATE"
    WBS = "WBS"
    TASK = "TASK"
    PROJECT = "PROJECT"
    ALLOCATION = "ALLOCATION"
    ATTENDANCE = "ATTENDANCE"
    MATERIAL = "MATERIAL"
    CONFIRMATION = "CONFIRMATION"


# ==== RULE METADATA ==== #


RULE_METADATA: Dict[RuleNumber, Dict[str, Any]] = {
    RuleNumber.BACKDATE_ALLOWED_TILL: {
        "control_point": ControlPoint.TASK_UPDATE,
        "description": "Backdated entries are allowed up to N days before today",
        "value_hint": "number of days",
    },
    RuleNumber.BACKDATE_ALLOWED_AFTER_LOCK: {
        "control_point": ControlPoint.TASK_UPDATE,
        "description": "Entries dated before the lock date are rejected unless Y",
        "value_hint": "Y or N",
    },
    RuleNumber.START_DATE_CANNOT_BE_IN_FUTURE: {
        "control_point": ControlPoint.TASK,
        "description": "Start and confirmation dates cannot be in the future",
        "value_hint": None,
    },
    RuleNumber.WBS_DATE_RANGE_VALID: {
        "control_point": ControlPoint.WBS,
        "description": "WBS end date cannot be before its start date",
        "value_hint": None,
    },
    RuleNumber.ALLOCATION_DATE_RANGE_VALID: {
        "control_point": ControlPoint.ALLOCATION,
        "description": "Allocation end date cannot be before its start date",
        "value_hint": None,
    },
    RuleNumber.ATTENDANCE_NOT_IN_FUTURE: {
        "control_point": ControlPoint.ATTENDANCE,
        "description": "Attendance cannot be recorded for a future date",
        "value_hint": None,
    },
    RuleNumber.MATERIAL_USAGE_VALID: {
        "control_point": ControlPoint.MATERIAL,
        "description": "Material usage cannot be future dated or negative",
        "value_hint": None,
    },
    RuleNumber.PROJECT_DATE_RANGE_VALID: {
        "control_point": ControlPoint.PROJECT,
        "description": "Project end date cannot be before its start date",
        "value_hint": None,
    },
    RuleNumber.TASK_WITHIN_WBS_DATES: {
        "control_point": ControlPoint.TASK,
        "description": "Task dates must fall within the WBS dates",
        "value_hint": None,
    },
    RuleNumber.CONFIRMATION_CANNOT_BE_OVERWRITTEN: {
        "control_point": ControlPoint.CONFIRMATION,
        "description": "Confirmed or locked entries cannot be modified",
        "value_hint": None,
    },
    RuleNumber.DAILY_UPDATE_CANNOT_EXCEED_PLANNED_QTY: {
        "control_point": ControlPoint.TASK_UPDATE,
        "description": "Actual quantity cannot exceed planned quantity",
        "value_hint": None,
    },
    RuleNumber.QUANTITY_CANNOT_BE_NEGATIVE: {
        "control_point": ControlPoint.TASK_UPDATE,
        "description": "Quantities cannot be negative",
        "value_hint": None,
    },
    RuleNumber.ALLOCATION_DATES_REQUIRED: {
        "control_point": ControlPoint.ALLOCATION,
        "description": "Allocations require a start and end date",
        "value_hint": None,
    },
    RuleNumber.ALLOCATION_WITHIN_WBS_DATES: {
        "control_point": ControlPoint.ALLOCATION,
        "description": "Allocation dates must fall within the WBS dates",
        "value_hint": None,
    },
    RuleNumber.ALLOCATION_CANNOT_OVERLAP: {
        "control_point": ControlPoint.ALLOCATION,
        "description": "A resource cannot be allocated twice for overlapping dates",
        "value_hint": None,
    },
    RuleNumber.CONFIRMATION_UNDO_WINDOW_DAYS: {
        "control_point": ControlPoint.CONFIRMATION,
        "description": "Confirmations can be undone within N days",
        "value_hint": "number of days",
    },
    RuleNumber.CONFIRMATION_NOT_BEFORE_BASELINE: {
        "control_point": ControlPoint.CONFIRMATION,
        "description": "Confirmation date cannot precede the baseline start",
        "value_hint": None,
    },
    RuleNumber.CONFIRMATION_QTY_REQUIRED: {
        "control_point": ControlPoint.CONFIRMATION,
        "description": "An actual quantity must exist for the confirmation date",
        "value_hint": None,
    },
}


def describe_rule(rule_number: int) -> str:
    """Human readable description for a rule number, or an empty string."""
    try:
        return RULE_METADATA[RuleNumber(rule_number)]["description"]
    except ValueError:
        return ""
