# shared fixtures for backend tests
# provides mock db, snapshot hub, store, httpx test client and fake turn adapters

import asyncio
from datetime import datetime, timezone, timedelta
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import AsyncClient, ASGITransport

from avatar_chat.main import app
from avatar_chat.dependencies import TurnServices, get_turn_services
from avatar_chat.orchestrator.adapters import CameraHandle, CaptureBusyError, SpeechCapture, SpeechSynthesizer, TurnView
from avatar_chat.orchestrator.turn_orchestrator import TurnOrchestrator
from avatar_chat.models.vision import DetectedObject
from avatar_chat.services.avatar_video_service import AvatarVideoResult
from avatar_chat.services.conversation_store import ConversationStore
from avatar_chat.services.db import get_db
from avatar_chat.services.subscriptions import SnapshotHub, get_hub
from avatar_chat.services.vision_service import CapturedFrame, build_vision_context


# test ids
USER_ID = "user_001"
CONVERSATION_OID = ObjectId("665f1c2e8a1b2c3d4e5f6a01")
CONVERSATION_2_OID = ObjectId("665f1c2e8a1b2c3d4e5f6a02")
CONVERSATION_ID = str(CONVERSATION_OID)
CONVERSATION_2_ID = str(CONVERSATION_2_OID)
COMPANY_ID = "acme"

BASE_TIME = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


# sample documents (as they'd appear from mongodb)

SAMPLE_CONVERSATION = {
    "_id": CONVERSATION_OID,
    "user_id": USER_ID,
    "title": "Trip planning",
    "created_at": BASE_TIME,
    "settings": {
        "description": "A travel guide",
        "personality": "Curious and upbeat",
        "tone": "Friendly",
        "responseLength": "Short",
        "avatarVoiceGender": "male",
        "language": "en",
        "avatarId": "einstein",
        "selectedGeminiModel": "gemini-2.0-flash",
    },
}

# written by an older client: missing and null settings fields
SAMPLE_CONVERSATION_2 = {
    "_id": CONVERSATION_2_OID,
    "user_id": USER_ID,
    "title": "Old chat",
    "created_at": BASE_TIME - timedelta(days=3),
    "settings": {"tone": None, "language": ""},
}

SAMPLE_MESSAGES = [
    {
        "_id": ObjectId(),
        "conversation_id": CONVERSATION_ID,
        "sender": "user",
        "text": "Where should I go in June?",
        "video_urls": None,
        "created_at": BASE_TIME + timedelta(minutes=1),
    },
    {
        "_id": ObjectId(),
        "conversation_id": CONVERSATION_ID,
        "sender": "ai",
        "text": "Lisbon is lovely in June.",
        # legacy single-url field
        "video_url": "https://cdn.example.com/legacy.mp4",
        "created_at": BASE_TIME + timedelta(minutes=2),
    },
]


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor, supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = list(data or [])
        self._index = 0

    def sort(self, key, direction=1):
        self._data = sorted(
            self._data,
            key=lambda d: (d.get(key) is None, d.get(key)),
            reverse=direction == -1,
        )
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


class MockCollection:
    """mock for a motor collection with async methods"""

    def __init__(self, data=None):
        self._data = data or []
        self.inserted = []

    def find(self, query=None, projection=None):
        results = self._data
        if query:
            results = [d for d in results if self._matches(d, query)]
        return AsyncCursorMock(results)

    async def find_one(self, query=None, projection=None):
        if not query:
            return self._data[0] if self._data else None
        for doc in self._data:
            if self._matches(doc, query):
                return doc
        return None

    async def insert_one(self, doc):
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def count_documents(self, query=None):
        if not query:
            return len(self._data)
        return len([d for d in self._data if self._matches(d, query)])

    async def update_one(self, query, update, upsert=False):
        result = MagicMock()
        result.modified_count = 0
        for doc in self._data:
            if self._matches(doc, query):
                if "$set" in update:
                    doc.update(update["$set"])
                if "$addToSet" in update:
                    for key, val in update["$addToSet"].items():
                        if key not in doc:
                            doc[key] = []
                        if val not in doc[key]:
                            doc[key].append(val)
                result.modified_count = 1
                break
        return result

    async def delete_one(self, query):
        result = MagicMock()
        result.deleted_count = 0
        for doc in self._data:
            if self._matches(doc, query):
                self._data.remove(doc)
                result.deleted_count = 1
                break
        return result

    async def delete_many(self, query):
        keep = [d for d in self._data if not self._matches(d, query)]
        result = MagicMock()
        result.deleted_count = len(self._data) - len(keep)
        self._data[:] = keep
        return result

    async def create_index(self, *args, **kwargs):
        return "mock_index"

    def _matches(self, doc, query):
        """basic mongodb query matching for tests"""
        for key, value in query.items():
            doc_val = doc.get(key)
            if isinstance(value, dict) and "$in" in value:
                if doc_val not in value["$in"]:
                    return False
            elif doc_val != value:
                return False
        return True


class MockDatabase:
    """mock database that mimics the Database class"""

    def __init__(self):
        self.conversations = MockCollection([
            {**SAMPLE_CONVERSATION, "settings": dict(SAMPLE_CONVERSATION["settings"])},
            {**SAMPLE_CONVERSATION_2, "settings": dict(SAMPLE_CONVERSATION_2["settings"])},
        ])
        self.messages = MockCollection([dict(m) for m in SAMPLE_MESSAGES])
        self.companies = MockCollection([])
        self.company_documents = MockCollection([])

    async def connect(self):
        pass

    async def close(self):
        pass


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture
def hub():
    return SnapshotHub()


@pytest.fixture
def store(mock_db, hub):
    return ConversationStore(mock_db, hub)


@pytest_asyncio.fixture
async def client(mock_db, hub):
    """httpx async test client with mocked dependencies"""

    async def override_get_db():
        return mock_db

    async def override_get_hub():
        return hub

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hub] = override_get_hub

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# fake turn adapters

class RecordingView(TurnView):
    """collects everything the orchestrator emits"""

    def __init__(self):
        self.events = []

    async def emit(self, event_type, payload=None):
        self.events.append((event_type, payload))

    def of(self, event_type):
        return [payload for kind, payload in self.events if kind == event_type]

    @property
    def states(self):
        return [payload["state"] for payload in self.of("state")]

    @property
    def notices(self):
        return [payload["message"] for payload in self.of("notice")]


class FakeResponder:
    def __init__(self, reply="Lisbon is lovely in June. Take the tram up to the castle."):
        self.reply = reply
        self.calls = []
        self.started = asyncio.Event()
        self.gate = None

    async def generate(self, user_message, settings, history=None):
        self.calls.append({"query": user_message, "settings": settings, "history": history or []})
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        return self.reply


class FakeVideo:
    def __init__(self, result=None):
        self.result = result or AvatarVideoResult(success=True, video_urls=["https://cdn.example.com/a.mp4"])
        self.calls = []

    async def generate(self, text, language, gender, face_url):
        self.calls.append({"text": text, "language": language, "gender": gender, "face_url": face_url})
        return self.result


class FakeSynthesizer(SpeechSynthesizer):
    def __init__(self, available=True):
        self.available = available
        self.spoken = []
        self.cancelled = 0

    def is_available(self):
        return self.available

    async def speak(self, text, tone, language):
        self.spoken.append((text, tone, language))

    async def cancel(self):
        self.cancelled += 1


class FakeCapture(SpeechCapture):
    def __init__(self, supported=True):
        self.supported = supported
        self._active = False
        self.started = []
        self.stopped = 0
        self.aborted = 0

    def is_supported(self):
        return self.supported

    @property
    def active(self):
        return self._active

    async def start(self, language):
        if self._active:
            raise CaptureBusyError("busy")
        self._active = True
        self.started.append(language)

    async def stop(self):
        self.stopped += 1

    async def abort(self):
        self._active = False
        self.aborted += 1

    def session_ended(self):
        self._active = False


class FakeCamera(CameraHandle):
    def __init__(self):
        self._active = False

    @property
    def active(self):
        return self._active

    async def start(self):
        self._active = True

    async def stop(self):
        self._active = False

    async def capture_frame(self):
        if not self._active:
            return None
        return CapturedFrame(data=b"jpeg-bytes", width=640, height=480)


class FakeVision:
    def __init__(self):
        self.frames = 0

    async def process_frame(self, frame):
        self.frames += 1
        cup = DetectedObject(label="cup", score=0.87, bbox=[100, 100, 200, 200])
        return build_vision_context([cup], "EXIT")


class FakeAttachments:
    async def extract(self, filename, mime_type, data):
        return f"summary of {filename}"


@pytest.fixture
def make_orchestrator(store):
    """factory for orchestrators wired to fakes with zero settle/caption delays"""

    def make(**kwargs):
        view = kwargs.pop("view", None) or RecordingView()
        options = {
            "responder": FakeResponder(),
            "video": FakeVideo(),
            "synthesizer": FakeSynthesizer(),
            "capture": FakeCapture(),
            "settle_delay": 0,
            "caption_line_delay": 0,
        }
        options.update(kwargs)
        return TurnOrchestrator(view, store, **options)

    return make


@pytest.fixture
def turn_services():
    return TurnServices(
        responder=FakeResponder(),
        video=FakeVideo(),
        vision=FakeVision(),
        attachments=FakeAttachments(),
    )


@pytest.fixture
def ws_app(mock_db, hub, turn_services):
    """app with db, hub and turn services overridden for websocket tests"""

    async def override_get_db():
        return mock_db

    async def override_get_hub():
        return hub

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hub] = override_get_hub
    app.dependency_overrides[get_turn_services] = lambda: turn_services
    yield app
    app.dependency_overrides.clear()
