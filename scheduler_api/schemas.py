from typing import Literal, Optional

from pydantic import BaseModel, Field


class Interview(BaseModel):
    student: str = Field(min_length=1)
    interviewer: int


class Appointment(BaseModel):
    id: int
    time: Optional[str] = None
    interview: Optional[Interview] = None


class Interviewer(BaseModel):
    id: int
    name: str
    avatar: str


class DayRecord(BaseModel):
    """A day as the store keeps it. Free spots are never stored."""

    id: int
    name: str
    appointments: list[int] = Field(default_factory=list)
    interviewers: list[int] = Field(default_factory=list)


class Day(DayRecord):
    spots: int


class AppointmentUpdate(BaseModel):
    interview: Optional[Interview]


class SetInterviewEvent(BaseModel):
    type: Literal["SET_INTERVIEW"] = "SET_INTERVIEW"
    id: int
    interview: Optional[Interview] = None


class SeedData(BaseModel):
    days: list[DayRecord]
    appointments: list[Appointment]
    interviewers: list[Interviewer]
