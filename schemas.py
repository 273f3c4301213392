from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import ObligationKind


class ObligationIn(BaseModel):
    kind: ObligationKind
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=9)
    day_of_month: int = Field(default=0, ge=0, le=31)
    cycle_months: int = Field(default=1, ge=0, le=120)
    fixed_amount: Optional[str] = Field(default=None, max_length=32)
    stopped: bool = False


class RecordIn(BaseModel):
    obligation_id: int
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    amount: str = Field(..., min_length=1, max_length=32)
    note: Optional[str] = Field(default=None, max_length=500)
    bill_record_id: Optional[int] = None


class RecordUpdateIn(BaseModel):
    amount: str = Field(..., min_length=1, max_length=32)
    note: Optional[str] = Field(default=None, max_length=500)
    bill_record_id: Optional[int] = None


class QuickAddIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: ObligationKind
    name: str = Field(..., min_length=1, max_length=100)
    amount: Optional[str] = Field(default=None, max_length=32)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    note: Optional[str] = Field(default=None, max_length=500)


class ReminderPreferenceIn(BaseModel):
    push_url: str = Field(default="", max_length=500)
    enabled: bool = False
    remind_hour: int = Field(default=9, ge=0, le=23)
    remind_days_before: int = Field(default=3, ge=0, le=30)
