"""
Database Schemas for the community fire-management API

Each Pydantic model represents a MongoDB collection.
Collection name = lowercase of class name (CommunityPlan -> "communityplan",
SupportPledge -> "supportpledge").
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator, model_validator

PlanStatus = Literal['pending', 'approved', 'rejected', 'under_review']
ActivityTiming = Literal['pre_incident', 'during_incident', 'post_incident']

ACTIVITY_TIMINGS = ('pre_incident', 'during_incident', 'post_incident')


def _utcnow():
    return datetime.now(timezone.utc)


def _blank_to_none(value):
    # the submission form sends "" for numeric inputs left empty
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalFloat = Annotated[Optional[float], BeforeValidator(_blank_to_none)]
OptionalInt = Annotated[Optional[int], BeforeValidator(_blank_to_none)]


# ---------- Plan building blocks ----------

class BudgetItem(BaseModel):
    description: str = Field(..., description="What the money is spent on")
    amount: float = Field(0, description="Amount in baht")


class Activity(BaseModel):
    name: str = Field(..., description="Activity name")
    description: str = Field(..., description="What the activity involves")
    period: Optional[str] = Field(None, description="Free-form period, e.g. 'ม.ค.-มี.ค.'")
    budget: float = Field(0, description="Activity budget in baht")
    budget_items: List[BudgetItem] = Field(default_factory=list)
    timing: ActivityTiming = Field(..., description="Phase the activity belongs to")


class FireManagement(BaseModel):
    pre_incident: List[Activity] = Field(default_factory=list)
    during_incident: List[Activity] = Field(default_factory=list)
    post_incident: List[Activity] = Field(default_factory=list)


class EquipmentLine(BaseModel):
    name: str = Field(..., description="Equipment name")
    available: float = Field(0, description="Units the village already has")
    needed: float = Field(0, description="Units the village needs")


class BudgetSource(BaseModel):
    name: str
    amount: float


class Budget(BaseModel):
    allocated: float = Field(0, description="Budget already secured")
    shortage: float = Field(0, description="Budget still missing")
    sources: List[BudgetSource] = Field(default_factory=list)

    @field_validator('allocated', 'shortage', mode='before')
    @classmethod
    def blank_amount_is_zero(cls, value):
        value = _blank_to_none(value)
        return 0 if value is None else value


class Coordinates(BaseModel):
    lat: OptionalFloat = None
    lng: OptionalFloat = None


class ManagedArea(BaseModel):
    forest_managed_rai: OptionalFloat = None


class Problems(BaseModel):
    causes: Optional[str] = None
    risk_area: Optional[str] = None
    limitations: Optional[str] = None


class VillageInfo(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, populate_by_name=True)

    uid: Optional[str] = Field(None, alias="new-uid", description="Unique village identifier shared with the GIS data")
    name: str = Field(..., min_length=1, description="Village name")
    moo: str = Field(..., min_length=1, description="Sub-village (moo) number")
    subdistrict: str = Field(..., min_length=1)
    district: str = Field(..., min_length=1)
    province: str = Field('เชียงใหม่')
    coordinates: Optional[Coordinates] = None
    population: OptionalInt = None
    households: OptionalInt = None
    area: Optional[ManagedArea] = None
    forest_types: List[str] = Field(default_factory=list)
    problems: Optional[Problems] = None
    main_occupations: List[str] = Field(default_factory=list)


# ---------- Collections ----------

class CommunityPlanSubmission(BaseModel):
    """What a village sends: a plan without review metadata."""
    village_info: VillageInfo
    fire_management: FireManagement = Field(default_factory=FireManagement)
    equipment: List[EquipmentLine] = Field(default_factory=list)
    budget: Budget = Field(default_factory=Budget)


class CommunityPlan(CommunityPlanSubmission):
    submitted_at: datetime = Field(default_factory=_utcnow)
    status: PlanStatus = Field('pending')
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def total_budget(self) -> float:
        return sum(
            activity.budget
            for timing in ACTIVITY_TIMINGS
            for activity in getattr(self.fire_management, timing)
        )

    @property
    def equipment_shortage(self) -> List[dict]:
        return [
            {"name": item.name, "shortage": item.needed - item.available}
            for item in self.equipment
            if item.needed > item.available
        ]


class DonorInfo(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class SupportDetails(BaseModel):
    amount: Optional[float] = None
    equipment: Optional[str] = None
    quantity: Optional[float] = None
    message: Optional[str] = None


class SupportPledge(BaseModel):
    villageId: Union[int, str]
    villageName: str = Field(..., min_length=1)
    supportType: Literal['money', 'equipment']
    donorInfo: DonorInfo
    support: SupportDetails
    submittedAt: datetime = Field(default_factory=_utcnow)
    status: Literal['pending', 'confirmed', 'completed'] = Field('pending')

    @model_validator(mode='after')
    def check_support_for_type(self):
        if self.supportType == 'money' and (not self.support.amount or self.support.amount <= 0):
            raise ValueError("Amount must be greater than 0")
        if self.supportType == 'equipment' and (
            not self.support.equipment or not self.support.quantity or self.support.quantity <= 0
        ):
            raise ValueError("Equipment name and quantity (> 0) are required")
        return self


# ---------- Request bodies ----------

class PlanStatusUpdate(BaseModel):
    status: PlanStatus
    notes: Optional[str] = None
    reviewed_by: Optional[str] = None


class BatchRequest(BaseModel):
    datasets: List[str] = Field(..., min_length=1, description="Dataset keys to return")
