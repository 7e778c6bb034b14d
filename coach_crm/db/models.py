from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Row(BaseModel):
    # Columns not declared on a model are kept so cached rows round-trip intact
    model_config = ConfigDict(extra="allow")


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    TRAINEE = "trainee"


class Profile(Row):
    # In the Supabase schema this is auth.users.id
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    customer_id: Optional[str] = None
    telegram_user_id: Optional[int] = None
    created_at: Optional[datetime] = None


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # Unix timestamp, seconds
    user_id: str
    email: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class Lead(Row):
    id: str
    customer_id: Optional[str] = None
    assigned_to: Optional[str] = None
    status_main: Optional[str] = None
    status_sub: Optional[str] = None
    source: Optional[str] = None
    fitness_goal: Optional[str] = None
    activity_level: Optional[str] = None
    preferred_time: Optional[str] = None
    notes: Optional[str] = None
    height: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    bmi: Optional[Decimal] = None
    join_date: Optional[datetime] = None
    subscription_data: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Customer(Row):
    id: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    user_id: Optional[str] = None
    leads: list[Lead] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SavedView(Row):
    id: str
    resource_key: str
    view_name: str
    filter_config: dict[str, Any] = Field(default_factory=dict)
    icon_name: Optional[str] = None
    is_default: bool = False
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Meeting(Row):
    id: str
    lead_id: Optional[str] = None
    customer_id: Optional[str] = None
    fillout_submission_id: Optional[str] = None
    meeting_data: dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Notification(Row):
    # Virtual subscription alerts use synthetic ids, so this is not a UUID
    id: str
    user_id: str
    customer_id: Optional[str] = None
    lead_id: Optional[str] = None
    type: str
    title: str
    message: str
    action_url: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationFeed(BaseModel):
    notifications: list[Notification] = Field(default_factory=list)
    unread_count: int = 0


class PlanKind(str, Enum):
    WORKOUT = "workout"
    NUTRITION = "nutrition"
    SUPPLEMENT = "supplement"

    @property
    def table(self) -> str:
        return f"{self.value}_plans"


class Plan(Row):
    id: str
    user_id: Optional[str] = None
    lead_id: Optional[str] = None
    customer_id: Optional[str] = None
    template_id: Optional[str] = None
    budget_id: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkoutPlan(Plan):
    strength: int = 0
    cardio: int = 0
    intervals: int = 0
    custom_attributes: dict[str, Any] = Field(default_factory=dict)


class NutritionPlan(Plan):
    # { calories, protein, carbs, fat, fiber }
    targets: dict[str, Any] = Field(default_factory=dict)


class SupplementPlan(Plan):
    # [{ name, dosage, timing }]
    supplements: list[dict[str, Any]] = Field(default_factory=list)


PLAN_MODELS: dict[PlanKind, type[Plan]] = {
    PlanKind.WORKOUT: WorkoutPlan,
    PlanKind.NUTRITION: NutritionPlan,
    PlanKind.SUPPLEMENT: SupplementPlan,
}
