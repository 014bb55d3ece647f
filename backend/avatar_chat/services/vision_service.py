# vision service: camera frame -> detected objects + on-frame text + scene description
# depth is inferred from relative bounding-box size, larger means closer
#
# capture pipeline:
#   1. detect objects (label, confidence, pixel bbox)
#   2. extract visible text
#   3. tier each object by bbox area and synthesize a description
#   4. keep the last 10 snapshots as short-term visual memory

import base64
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.messages import HumanMessage

from avatar_chat.config import settings
from avatar_chat.models.vision import DetectedObject, VisionContext

logger = logging.getLogger(__name__)

VISION_MEMORY_SIZE = 10

# bbox area thresholds in square pixels
VERY_CLOSE_AREA = 50000
CLOSE_AREA = 30000
MIDDLE_AREA = 10000

POSITION_PHRASES = {
    "very close/foreground": "very close in front of the camera",
    "close": "close to the camera",
    "middle distance": "at medium distance",
    "far/background": "in the background",
}

# visible text shorter than this is treated as ocr noise
MIN_TEXT_LENGTH = 4
MAX_QUOTED_TEXT = 100

# camera capture size requested from the browser; used when a frame arrives without dimensions
DEFAULT_FRAME_WIDTH = 1280
DEFAULT_FRAME_HEIGHT = 720


@dataclass
class CapturedFrame:
    """one still image grabbed from the camera stream"""
    data: bytes
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0

    def size(self) -> tuple[int, int]:
        if self.width > 0 and self.height > 0:
            return self.width, self.height
        return DEFAULT_FRAME_WIDTH, DEFAULT_FRAME_HEIGHT


def depth_tier(area: float) -> str:
    if area > VERY_CLOSE_AREA:
        return "very close/foreground"
    if area > CLOSE_AREA:
        return "close"
    if area > MIDDLE_AREA:
        return "middle distance"
    return "far/background"


def annotate_depth(objects: list[DetectedObject]) -> list[DetectedObject]:
    """assign depth tiers; only the single largest object can be foreground"""
    ranked = sorted(objects, key=lambda o: o.area, reverse=True)
    annotated = []
    for index, obj in enumerate(ranked):
        tier = depth_tier(obj.area)
        if tier == "very close/foreground" and index > 0:
            tier = "close"
        annotated.append(obj.model_copy(update={"depth": tier}))
    return annotated


def summarize_depth(objects: list[DetectedObject]) -> str:
    if not objects:
        return "No objects detected for depth analysis."
    return ", ".join(f"{obj.label} ({obj.depth})" for obj in annotate_depth(objects))


def describe_scene(objects: list[DetectedObject], text: str) -> str:
    visible_text = text.strip()
    has_text = len(visible_text) >= MIN_TEXT_LENGTH

    if objects:
        listed = ", ".join(
            f"a {obj.label} ({round(obj.score * 100)}% confidence, {POSITION_PHRASES[depth_tier(obj.area)]})"
            for obj in objects
        )
        description = f"I can see {listed}"
        if has_text:
            description += f'. There is also visible text that reads: "{visible_text[:MAX_QUOTED_TEXT]}"'
        return description

    description = "I cannot detect any recognizable objects in the current camera view"
    if has_text:
        description += f', but I can see some text: "{visible_text[:MAX_QUOTED_TEXT]}"'
    return description


def build_vision_context(
    objects: list[DetectedObject],
    text: str = "",
    timestamp: Optional[datetime] = None,
) -> VisionContext:
    annotated = annotate_depth(objects)
    return VisionContext(
        timestamp=timestamp or datetime.now(timezone.utc),
        objects=annotated,
        text=text.strip(),
        description=describe_scene(objects, text),
    )


class VisionMemory:
    """rolling window of recent captures, oldest evicted first"""

    def __init__(self, size: int = VISION_MEMORY_SIZE):
        self._entries: deque[VisionContext] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[VisionContext]:
        return list(self._entries)

    def add(self, context: VisionContext) -> None:
        self._entries.append(context)

    def clear(self) -> None:
        self._entries.clear()

    def context_window(self, current: Optional[VisionContext] = None) -> str:
        """earlier captures as timestamped lines, then the current view"""
        lines = [f"[{vc.timestamp.strftime('%H:%M:%S')}] {vc.description}" for vc in self._entries]
        if current is not None:
            lines.append(f"[Current view - {current.timestamp.strftime('%H:%M:%S')}] {current.description}")
        return "\n".join(lines)


class ObjectDetector(ABC):
    @abstractmethod
    async def detect(self, frame: CapturedFrame) -> list[DetectedObject]:
        pass


class TextExtractor(ABC):
    @abstractmethod
    async def extract(self, frame: CapturedFrame) -> str:
        pass


class _Detection(BaseModel):
    label: str = Field(..., description="common object class name, e.g. person, cup, cell phone")
    score: float = Field(..., ge=0.0, le=1.0, description="detection confidence")
    box_2d: list[int] = Field(..., min_length=4, max_length=4, description="[ymin, xmin, ymax, xmax] scaled 0-1000")


class _DetectionList(BaseModel):
    objects: list[_Detection] = Field(default_factory=list)


def _image_message(frame: CapturedFrame, instruction: str) -> HumanMessage:
    encoded = base64.b64encode(frame.data).decode("ascii")
    return HumanMessage(content=[
        {"type": "text", "text": instruction},
        {"type": "image_url", "image_url": f"data:{frame.mime_type};base64,{encoded}"},
    ])


def _get_vision_llm(max_output_tokens: int) -> ChatGoogleGenerativeAI:
    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=0.0,
        max_output_tokens=max_output_tokens,
    )


def box_to_bbox(box_2d: list[int], width: int, height: int) -> list[float]:
    """gemini [ymin, xmin, ymax, xmax] on a 0-1000 grid -> pixel [x, y, w, h]"""
    ymin, xmin, ymax, xmax = box_2d
    x = xmin / 1000 * width
    y = ymin / 1000 * height
    return [x, y, (xmax - xmin) / 1000 * width, (ymax - ymin) / 1000 * height]


class GeminiObjectDetector(ObjectDetector):
    INSTRUCTION = (
        "Detect the distinct physical objects in this camera frame. "
        "Return each object's label, a confidence score and its bounding box."
    )

    async def detect(self, frame: CapturedFrame) -> list[DetectedObject]:
        if not settings.GEMINI_API_KEY:
            logger.warning("Gemini key missing, object detection disabled")
            return []
        llm = _get_vision_llm(1024).with_structured_output(_DetectionList)
        result = await llm.ainvoke([_image_message(frame, self.INSTRUCTION)])
        detections = result.objects if result else []
        width, height = frame.size()
        return [
            DetectedObject(label=d.label, score=d.score, bbox=box_to_bbox(d.box_2d, width, height))
            for d in detections
        ]


class GeminiTextExtractor(TextExtractor):
    INSTRUCTION = (
        "Transcribe any readable text visible in this camera frame exactly as written. "
        "If there is no readable text, reply with nothing."
    )

    async def extract(self, frame: CapturedFrame) -> str:
        if not settings.GEMINI_API_KEY:
            return ""
        llm = _get_vision_llm(512)
        result = await llm.ainvoke([_image_message(frame, self.INSTRUCTION)])
        return result.content.strip() if isinstance(result.content, str) else ""


class VisionService:
    """runs detection and text extraction on a frame and builds the scene snapshot"""

    def __init__(self, detector: Optional[ObjectDetector] = None, extractor: Optional[TextExtractor] = None):
        self.detector = detector or GeminiObjectDetector()
        self.extractor = extractor or GeminiTextExtractor()

    async def process_frame(self, frame: CapturedFrame) -> VisionContext:
        timestamp = datetime.now(timezone.utc)
        objects = await self.detector.detect(frame)
        logger.info(f"Objects detected: {len(objects)}")

        try:
            text = await self.extractor.extract(frame)
        except Exception as e:
            logger.error(f"Error extracting text: {e}")
            text = ""

        context = build_vision_context(objects, text, timestamp)
        logger.info(f"Vision description: {context.description[:120]}")
        return context
