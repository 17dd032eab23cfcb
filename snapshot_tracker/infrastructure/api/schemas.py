from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DateRangeSchema(_WireModel):
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")


class JobSummarySchema(_WireModel):
    total_snapshots: int = Field(alias="totalSnapshots")
    successful_dates: int = Field(alias="successfulDates")
    failed_dates: Optional[int] = Field(default=None, alias="failedDates")
    total_dates: Optional[int] = Field(default=None, alias="totalDates")


class SubmissionResponseSchema(_WireModel):
    tracking_id: str = Field(alias="trackingId", min_length=1)
    status: Optional[str] = None
    estimated_duration: Optional[str] = Field(default=None, alias="estimatedDuration")
    date_range: Optional[DateRangeSchema] = Field(default=None, alias="dateRange")


class JobStatusResponseSchema(_WireModel):
    """Loose envelope: status and summary are interpreted separately"""
    status: Any = None
    summary: Any = None
    message: Any = None
