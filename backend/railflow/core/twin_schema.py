from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    # Recommenders speak camelCase; accept both spellings.
    model_config = ConfigDict(populate_by_name=True)


class _ActionBase(_CamelModel):
    train_id: str = Field(..., alias="trainId", description="Train to modify")
    new_path: Optional[List[str]] = Field(None, alias="newPath")
    hold_duration: Optional[float] = Field(None, alias="holdDuration", description="Minutes")
    new_speed: Optional[float] = Field(None, alias="newSpeed", description="km/h")
    reason: str = ""


class RerouteAction(_ActionBase):
    action: Literal["reroute"] = "reroute"


class HoldAction(_ActionBase):
    action: Literal["hold"] = "hold"


class ResumeAction(_ActionBase):
    action: Literal["resume"] = "resume"


class AdjustSpeedAction(_ActionBase):
    action: Literal["adjust_speed"] = "adjust_speed"


TrainAction = Annotated[
    Union[RerouteAction, HoldAction, ResumeAction, AdjustSpeedAction],
    Field(discriminator="action"),
]


class RecommendationPlan(_CamelModel):
    summary: str = ""
    actions: List[TrainAction] = []


DisruptionType = Literal["delay", "track_closure"]


class RecommendationRequest(_CamelModel):
    delayed_train: Dict[str, Any] = Field(..., alias="delayedTrain")
    other_trains: List[Dict[str, Any]] = Field(default_factory=list, alias="otherTrains")
    delay_duration: float = Field(0.0, alias="delayDuration", description="Minutes; 0 for track closures")
    disruption_type: DisruptionType = Field(..., alias="disruptionType")
    stations: List[Dict[str, Any]] = []
    tracks: List[Dict[str, Any]] = []


class RecommendationResult(BaseModel):
    success: bool
    data: Optional[RecommendationPlan] = None
    error: Optional[str] = None


class ActionOutcome(BaseModel):
    train_id: str
    action: str
    applied: bool
    detail: str = ""


# ------------------------------------------------------------------ API bodies

class SpeedRequest(BaseModel):
    multiplier: float = Field(..., ge=0)


class TickRequest(BaseModel):
    elapsed_seconds: float = Field(..., ge=0, le=3600)


class StatusRequest(BaseModel):
    status: Literal["scheduled", "moving", "stopped", "finished"]


class DelayRequest(BaseModel):
    delay_minutes: Optional[float] = Field(None, ge=0)
    reason: Optional[str] = None
