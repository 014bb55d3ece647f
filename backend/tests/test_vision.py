# tests for the vision service: depth tiers, scene descriptions, rolling memory
# gemini detection and ocr are replaced with in-memory fakes

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from avatar_chat.config import settings
from avatar_chat.models.vision import DetectedObject
from avatar_chat.services.vision_service import (
    CapturedFrame,
    GeminiObjectDetector,
    ObjectDetector,
    TextExtractor,
    VisionMemory,
    VisionService,
    _Detection,
    _DetectionList,
    annotate_depth,
    box_to_bbox,
    build_vision_context,
    depth_tier,
    describe_scene,
    summarize_depth,
)


def _obj(label, width, height, score=0.9):
    return DetectedObject(label=label, score=score, bbox=[0, 0, width, height])


def _context(i):
    ts = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc) + timedelta(seconds=i)
    return build_vision_context([_obj(f"thing{i}", 10, 10)], "", ts)


class TestDepth:

    def test_tiers_by_area(self):
        assert depth_tier(60000) == "very close/foreground"
        assert depth_tier(40000) == "close"
        assert depth_tier(20000) == "middle distance"
        assert depth_tier(5000) == "far/background"

    def test_threshold_boundaries_are_exclusive(self):
        assert depth_tier(50000) == "close"
        assert depth_tier(30000) == "middle distance"
        assert depth_tier(10000) == "far/background"

    def test_only_largest_object_is_foreground(self):
        annotated = annotate_depth([_obj("book", 250, 250), _obj("phone", 300, 300)])
        assert [(o.label, o.depth) for o in annotated] == [
            ("phone", "very close/foreground"),
            ("book", "close"),
        ]

    def test_depth_summary(self):
        assert summarize_depth([]) == "No objects detected for depth analysis."
        assert summarize_depth([_obj("cup", 50, 50)]) == "cup (far/background)"


class TestDescription:

    def test_objects_with_confidence_and_position(self):
        text = describe_scene([_obj("cup", 200, 200, score=0.87)], "")
        assert text == "I can see a cup (87% confidence, close to the camera)"

    def test_visible_text_appended(self):
        text = describe_scene([_obj("sign", 50, 50)], "EMERGENCY EXIT")
        assert text.endswith('There is also visible text that reads: "EMERGENCY EXIT"')

    def test_short_text_ignored(self):
        assert "text" not in describe_scene([_obj("sign", 50, 50)], "ab")

    def test_text_truncated(self):
        text = describe_scene([], "x" * 150)
        assert f'"{"x" * 100}"' in text

    def test_nothing_detected(self):
        assert describe_scene([], "") == "I cannot detect any recognizable objects in the current camera view"

    def test_text_without_objects(self):
        text = describe_scene([], "OPEN 24 HOURS")
        assert text.endswith(', but I can see some text: "OPEN 24 HOURS"')


class TestVisionMemory:

    def test_capped_at_ten(self):
        memory = VisionMemory()
        contexts = [_context(i) for i in range(11)]
        for context in contexts:
            memory.add(context)
        assert len(memory) == 10
        # the 11th capture evicted the first
        assert memory.entries[0] is contexts[1]
        assert memory.entries[-1] is contexts[10]

    def test_context_window_format(self):
        memory = VisionMemory()
        memory.add(_context(0))
        window = memory.context_window(_context(5))
        lines = window.split("\n")
        assert lines[0].startswith("[12:00:00] I can see a thing0")
        assert lines[1].startswith("[Current view - 12:00:05] I can see a thing5")

    def test_clear(self):
        memory = VisionMemory()
        memory.add(_context(0))
        memory.clear()
        assert memory.context_window() == ""


class TestBoxConversion:

    def test_normalized_box_to_pixels(self):
        assert box_to_bbox([100, 200, 600, 700], 1000, 500) == [200.0, 50.0, 500.0, 250.0]


class FakeDetector(ObjectDetector):
    async def detect(self, frame):
        return [_obj("laptop", 400, 300)]


class FakeExtractor(TextExtractor):
    async def extract(self, frame):
        return "  Quarterly report  "


class TestVisionService:

    async def test_process_frame(self):
        service = VisionService(detector=FakeDetector(), extractor=FakeExtractor())
        context = await service.process_frame(CapturedFrame(data=b"img", width=640, height=480))
        assert context.objects[0].depth == "very close/foreground"
        assert context.text == "Quarterly report"
        assert "laptop" in context.description
        assert "Quarterly report" in context.description

    async def test_ocr_failure_is_not_fatal(self):
        extractor = FakeExtractor()
        extractor.extract = AsyncMock(side_effect=RuntimeError("ocr down"))
        service = VisionService(detector=FakeDetector(), extractor=extractor)
        context = await service.process_frame(CapturedFrame(data=b"img"))
        assert context.text == ""
        assert "laptop" in context.description

    async def test_without_gemini_key_describes_empty_view(self):
        with patch.object(settings, "GEMINI_API_KEY", ""):
            context = await VisionService().process_frame(CapturedFrame(data=b"img", width=640, height=480))
        assert context.objects == []
        assert context.description == "I cannot detect any recognizable objects in the current camera view"


class TestGeminiDetector:

    async def test_frame_without_dimensions_uses_capture_size(self):
        detections = _DetectionList(objects=[_Detection(label="cup", score=0.9, box_2d=[0, 0, 500, 500])])
        llm = MagicMock()
        llm.with_structured_output.return_value.ainvoke = AsyncMock(return_value=detections)
        with patch.object(settings, "GEMINI_API_KEY", "test-key"), \
                patch("avatar_chat.services.vision_service._get_vision_llm", return_value=llm):
            objects = await GeminiObjectDetector().detect(CapturedFrame(data=b"img"))

        assert objects[0].bbox == [0.0, 0.0, 640.0, 360.0]
        assert depth_tier(objects[0].area) == "very close/foreground"

    def test_frame_size(self):
        assert CapturedFrame(data=b"img", width=640, height=480).size() == (640, 480)
        assert CapturedFrame(data=b"img", width=640).size() == (1280, 720)
