"""Employee directory enums."""

from enum import Enum


class EmploymentStatus(str, Enum):
    """Employment status of an employee."""

    ACTIVE = "Active"
    DEPARTED = "Departed"
