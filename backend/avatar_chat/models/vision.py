# vision models: detected objects and the per-capture scene snapshot

from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

DepthTier = Literal["very close/foreground", "close", "middle distance", "far/background"]


class DetectedObject(BaseModel):
    label: str
    score: float = Field(..., ge=0.0, le=1.0)
    # x, y, width, height in frame pixels
    bbox: list[float] = Field(..., min_length=4, max_length=4)
    depth: DepthTier = "far/background"

    @property
    def area(self) -> float:
        return self.bbox[2] * self.bbox[3]


class VisionContext(BaseModel):
    """what the camera saw at one capture, plus a natural-language summary"""
    timestamp: datetime
    objects: list[DetectedObject] = Field(default_factory=list)
    text: str = ""
    description: str
