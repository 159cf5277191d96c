from pydantic import BaseModel
from enum import Enum


class SequencePurpose(str, Enum):
    INVOICE = "invoice"
    EMPLOYEE = "employee"


class AllocatedNumber(BaseModel):
    key: str
    sequence: int
    number: str
