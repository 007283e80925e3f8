"""
What-if cost simulation schemas.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class SimulationType(str, Enum):
    SKU_CHANGE = "SKU_CHANGE"
    RESERVATION = "RESERVATION"
    SPOT = "SPOT"
    SCHEDULING = "SCHEDULING"
    REGION_CHANGE = "REGION_CHANGE"


class ReservationTerm(str, Enum):
    ONE_YEAR = "ONE_YEAR"
    THREE_YEAR = "THREE_YEAR"

    @property
    def display_name(self) -> str:
        return "1-Year" if self == ReservationTerm.ONE_YEAR else "3-Year"


class ScheduleType(str, Enum):
    BUSINESS_HOURS = "BUSINESS_HOURS"
    DEV_HOURS = "DEV_HOURS"
    WEEKDAYS_ONLY = "WEEKDAYS_ONLY"

    @property
    def display_name(self) -> str:
        return _SCHEDULE_TEXT[self][0]

    @property
    def description(self) -> str:
        return _SCHEDULE_TEXT[self][1]

    @property
    def running_hours_ratio(self) -> float:
        return _SCHEDULE_TEXT[self][2]


# name, window, share of the 168-hour week the resource stays up
_SCHEDULE_TEXT = {
    ScheduleType.BUSINESS_HOURS: ("Business Hours", "9 AM - 7 PM, Mon-Fri", 0.298),
    ScheduleType.DEV_HOURS: ("Dev Hours", "8 AM - 8 PM, Mon-Fri", 0.357),
    ScheduleType.WEEKDAYS_ONLY: ("Weekdays Only", "24/7, Mon-Fri only", 0.714),
}


class SimulationResult(BaseModel):
    resource_id: Optional[str] = None
    current_monthly_cost: float = 0.0
    projected_monthly_cost: float = 0.0
    savings_amount: float = 0.0
    savings_percentage: float = 0.0
    confidence: float = 0.0
    simulation_type: Optional[SimulationType] = None
    description: str = ""

    @classmethod
    def error(cls, message: str) -> "SimulationResult":
        return cls(description=message)

    @property
    def is_success(self) -> bool:
        return self.resource_id is not None and self.simulation_type is not None
