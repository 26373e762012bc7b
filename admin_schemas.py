from pydantic import BaseModel
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


class LoanStatusFilter(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"


class TransactionSort(str, Enum):
    RECENT = "recent"
    DUE = "due"


class RoleUpdate(BaseModel):
    role: UserRole
