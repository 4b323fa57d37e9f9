"""Job posting payloads."""

from datetime import datetime
from typing import Optional, Literal, Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


JobType = Literal["full-time", "part-time", "contract", "freelance"]
JobStatus = Literal["draft", "published", "closed"]
Experience = Literal["entry", "mid", "senior", "lead"]


class Salary(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    period: Literal["hourly", "monthly", "yearly"] = "yearly"

    @field_validator("max")
    def validate_range(cls, v, info):
        low = info.data.get("min")
        if v is not None and low is not None and v < low:
            raise ValueError("Maximum salary must be greater than or equal to minimum salary")
        return v


class JobCreate(BaseModel):
    """Job form submission."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=5, max_length=100)
    company: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=50, max_length=5000)
    type: JobType
    location: str = Field(..., min_length=2, max_length=120)
    remote: bool = False
    salary: Optional[Salary] = None
    requirements: list[str] = Field(default_factory=list, max_length=25)
    skills: list[str] = Field(default_factory=list, max_length=30)
    experience: Optional[Experience] = None
    status: JobStatus = "draft"


class Job(BaseModel):
    """Stored job posting."""

    id: str
    owner_id: str
    title: str
    company: str
    description: str
    type: str
    location: str
    remote: bool
    salary: Optional[Dict[str, Any]] = None
    requirements: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    experience: Optional[str] = None
    status: str
    view_count: int = 0
    application_count: int = 0
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None
