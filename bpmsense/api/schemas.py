"""Pydantic response models for API."""

from pydantic import BaseModel


class TempoResponse(BaseModel):
    bpm: float
    confidence: int
    beat_type_auto: str
    breakbeat_score: float
    beat_mode: str


class HealthResponse(BaseModel):
    status: str = "ok"


# WebSocket message types

class ProgressMessage(BaseModel):
    type: str = "progress"
    bpm: float
    confidence: int
    windows_processed: int
    beat_type_auto: str
    breakbeat_score: float
    preliminary: bool = True


class ResultMessage(BaseModel):
    type: str = "result"
    data: TempoResponse | None


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str
