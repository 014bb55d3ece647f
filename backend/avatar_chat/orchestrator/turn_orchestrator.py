# turn orchestrator: one instance per connected chat view
# drives capture -> reply -> avatar video or speech fallback -> playback -> settle
#
# turn lifecycle:
#   idle -> (listening ->) thinking -> speaking -> idle
#   thinking: persist user message, build prompt, generate reply, persist ai reply, request video
#   speaking: exactly one channel per turn, chunked avatar video or synthesized speech
#   every failure path and every conversation switch lands back in idle
#
# a turn remembers the conversation id and switch epoch it started under;
# after each await the turn stops applying side effects if either changed

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from avatar_chat.config import settings as app_settings
from avatar_chat.models.company import company_conversation_id
from avatar_chat.models.settings import ConversationSettings, apply_avatar_preset, default_settings
from avatar_chat.models.vision import VisionContext
from avatar_chat.orchestrator.adapters import (
    CAPTURE_UNSUPPORTED,
    CameraHandle,
    CaptureBusyError,
    SpeechCapture,
    SpeechSynthesizer,
    TurnView,
    classify_capture_error,
    recognition_language,
)
from avatar_chat.orchestrator.events import (
    AttachmentAdded,
    AttachmentsCleared,
    AvatarSelected,
    CameraToggled,
    CaptureEnded,
    CaptureFailed,
    ConversationSwitched,
    ListenRequested,
    ListenStopped,
    SettingsChanged,
    TextSubmitted,
    TranscriptReceived,
    VideoChunkEnded,
    VideoChunkFailed,
)
from avatar_chat.orchestrator.playback import ChunkPlayback, caption_lines
from avatar_chat.orchestrator.state import BUSY_STATES, Capabilities, TurnState
from avatar_chat.services.attachment_service import AttachmentRejected, AttachmentService, check_attachment
from avatar_chat.services.avatar_video_service import AvatarVideoGenerator
from avatar_chat.services.conversation_store import ConversationStore
from avatar_chat.services.prompting import compose_user_query, compose_vision_query, format_company_documents
from avatar_chat.services.response_service import ResponseGenerator
from avatar_chat.services.vision_service import VisionMemory, VisionService

logger = logging.getLogger(__name__)

TURN_FAILED_NOTICE = "Something went wrong. Please try again."


@dataclass(frozen=True)
class TurnToken:
    """the conversation and switch epoch a turn started under"""
    conversation_id: str
    epoch: int


@dataclass
class PendingAttachment:
    filename: str
    context: str


class TurnOrchestrator:
    """
    Owns the busy/idle state machine of one chat view.

    All client and adapter events enter through dispatch(). The capability
    set selects the chat-view variant (voice input, attachments, camera
    vision, shared company conversation).
    """

    def __init__(
        self,
        view: TurnView,
        store: ConversationStore,
        responder: Optional[ResponseGenerator] = None,
        video: Optional[AvatarVideoGenerator] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        capture: Optional[SpeechCapture] = None,
        camera: Optional[CameraHandle] = None,
        vision: Optional[VisionService] = None,
        attachments: Optional[AttachmentService] = None,
        capabilities: Optional[Capabilities] = None,
        settle_delay: Optional[float] = None,
        caption_line_delay: Optional[float] = None,
    ):
        self.view = view
        self.store = store
        self.responder = responder or ResponseGenerator()
        self.video = video or AvatarVideoGenerator()
        self.synthesizer = synthesizer
        self.capture = capture
        self.camera = camera
        self.vision = vision
        self.attachment_service = attachments
        self.capabilities = capabilities or Capabilities()
        self.settle_delay = app_settings.SETTLE_DELAY_MS / 1000 if settle_delay is None else settle_delay
        self.caption_line_delay = (
            app_settings.CAPTION_LINE_MS / 1000 if caption_line_delay is None else caption_line_delay
        )

        self.state = TurnState.IDLE
        self.conversation_id: Optional[str] = None
        self.company_id: Optional[str] = None
        self.settings: ConversationSettings = default_settings()
        self.pending_attachments: list[PendingAttachment] = []
        self.vision_memory = VisionMemory()

        self._epoch = 0
        self._final_transcript = ""
        self._playback: Optional[ChunkPlayback] = None
        self._playback_turn: Optional[TurnToken] = None
        self._reply_text = ""
        self._company_documents = []
        self._extracting = 0
        self._unsubscribers = []
        self._turn_task: Optional[asyncio.Task] = None
        self._media_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

        self._handlers = {
            TextSubmitted: lambda e: self.submit(e.text),
            ListenRequested: lambda e: self._on_listen_requested(),
            ListenStopped: lambda e: self._on_listen_stopped(),
            TranscriptReceived: self._on_transcript,
            CaptureFailed: self._on_capture_failed,
            CaptureEnded: lambda e: self._on_capture_ended(),
            VideoChunkEnded: self._on_chunk_ended,
            VideoChunkFailed: self._on_chunk_failed,
            ConversationSwitched: lambda e: self.switch_conversation(e.conversation_id),
            AttachmentAdded: self._on_attachment,
            AttachmentsCleared: lambda e: self._clear_attachments(),
            CameraToggled: self._on_camera_toggled,
            SettingsChanged: self._on_settings_changed,
            AvatarSelected: self._on_avatar_selected,
        }

    @property
    def current_turn(self) -> Optional[asyncio.Task]:
        return self._turn_task

    @property
    def media_task(self) -> Optional[asyncio.Task]:
        """pending settle delay or running caption, if any"""
        return self._media_task

    # ---- lifecycle ----

    async def open(self, conversation_id: str) -> None:
        """bind to a single-user conversation and start its live subscriptions"""
        self.conversation_id = conversation_id
        self._unsubscribers.append(
            await self.store.subscribe_conversation(conversation_id, self._conversation_listener(conversation_id))
        )
        self._unsubscribers.append(
            await self.store.subscribe_messages(conversation_id, self._message_listener(conversation_id))
        )
        await self._emit("state", {"state": self.state.value})
        logger.info(f"Chat view opened on conversation {conversation_id}")

    async def open_company(self, company_id: str) -> None:
        """bind to a company's shared conversation, settings and documents"""
        await self.store.ensure_company(company_id)
        self.company_id = company_id
        self.conversation_id = company_conversation_id(company_id)

        async def on_company(company):
            if company is not None and company_id == self.company_id:
                self.settings = company.settings
                await self._emit("settings", company.settings.model_dump(by_alias=True))

        async def on_documents(documents):
            if company_id == self.company_id:
                self._company_documents = documents

        self._unsubscribers.append(await self.store.subscribe_company(company_id, on_company))
        self._unsubscribers.append(await self.store.subscribe_company_documents(company_id, on_documents))
        self._unsubscribers.append(
            await self.store.subscribe_messages(self.conversation_id, self._message_listener(self.conversation_id))
        )
        await self._emit("state", {"state": self.state.value})
        logger.info(f"Chat view opened on company {company_id}")

    async def switch_conversation(self, conversation_id: str) -> None:
        """cancel capture and speech, drop transient state and follow the new conversation"""
        if self.capabilities.multi_user:
            logger.warning("Conversation switch ignored in company view")
            return
        if conversation_id == self.conversation_id:
            return
        if await self.store.get_conversation(conversation_id) is None:
            logger.warning(f"Switch to unknown conversation {conversation_id} rejected")
            await self._notice("Conversation not found")
            return

        logger.info(f"Switching conversation {self.conversation_id} -> {conversation_id}")
        self._epoch += 1
        await self._cancel_activity()
        self._release_subscriptions()
        self.settings = default_settings()
        self.pending_attachments.clear()
        await self._emit_attachments()
        await self.open(conversation_id)

    async def close(self) -> None:
        """teardown: release microphone, camera and subscriptions"""
        self._epoch += 1
        self.conversation_id = None
        self._cancel_media_task()

        if self.capture is not None and self.capture.active:
            await self._release("speech capture", self.capture.abort())
        if self.synthesizer is not None:
            await self._release("speech synthesizer", self.synthesizer.cancel())
        if self.camera is not None and self.camera.active:
            await self._release("camera", self.camera.stop())

        for task in [self._turn_task, *self._tasks]:
            if task is not None and not task.done():
                task.cancel()
        self._release_subscriptions()
        logger.info("Chat view closed")

    async def _release(self, name: str, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning(f"Failed to release {name}: {e}")

    def _release_subscriptions(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _message_listener(self, conversation_id: str):
        async def on_messages(messages):
            if conversation_id == self.conversation_id:
                await self._emit("messages", [m.model_dump(mode="json", by_alias=True) for m in messages])
        return on_messages

    def _conversation_listener(self, conversation_id: str):
        async def on_conversation(conversation):
            if conversation_id != self.conversation_id:
                return
            if conversation is None:
                await self._notice("This conversation no longer exists.")
                return
            self.settings = conversation.settings
            await self._emit("settings", conversation.settings.model_dump(by_alias=True))
        return on_conversation

    # ---- dispatch ----

    async def dispatch(self, event) -> None:
        """single entry point for client and adapter events"""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"Unhandled event: {event!r}")
            return
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Error handling {type(event).__name__}: {e}")
            await self._notice(TURN_FAILED_NOTICE)

    # ---- turn pipeline ----

    async def submit(self, text: str) -> bool:
        """start a turn from typed or captured text; no-op while a turn is in flight"""
        text = (text or "").strip()
        if not text or self.conversation_id is None:
            return False
        if self.state in BUSY_STATES:
            logger.info(f"Submission ignored while {self.state.value}")
            return False

        if self.capture is not None and self.capture.active:
            await self.capture.abort()
        self._final_transcript = ""

        turn = TurnToken(self.conversation_id, self._epoch)
        await self._set_state(TurnState.THINKING)
        self._turn_task = asyncio.create_task(self._run_turn(turn, text))
        return True

    def _is_stale(self, turn: TurnToken) -> bool:
        return turn.conversation_id != self.conversation_id or turn.epoch != self._epoch

    async def _run_turn(self, turn: TurnToken, text: str) -> None:
        try:
            await self._process_turn(turn, text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Turn failed in conversation {turn.conversation_id}: {e}")
            if self._is_stale(turn):
                return
            self._playback = None
            await self._clear_display()
            await self._set_state(TurnState.IDLE)
            await self._notice(TURN_FAILED_NOTICE)

    async def _process_turn(self, turn: TurnToken, text: str) -> None:
        settings = self.settings
        attachments = list(self.pending_attachments)

        vision_context, vision_window = await self._look()
        if self._is_stale(turn):
            return

        user_message = await self.store.add_message(turn.conversation_id, "user", text, vision_context=vision_context)
        if self._is_stale(turn):
            return

        history = [m for m in await self.store.list_messages(turn.conversation_id) if m.id != user_message.id]
        if self._is_stale(turn):
            return

        query = self._compose_query(text, vision_window, attachments)
        reply = await self.responder.generate(query, settings, history)
        if self._is_stale(turn):
            return

        await self.store.add_message(turn.conversation_id, "ai", reply)
        if self._is_stale(turn):
            return

        if attachments:
            consumed = {id(a) for a in attachments}
            self.pending_attachments = [a for a in self.pending_attachments if id(a) not in consumed]
            await self._emit_attachments()
        await self._emit("caption", {"text": reply})

        result = await self.video.generate(
            reply,
            settings.language,
            settings.avatar_voice_gender,
            settings.avatar_media_url,
        )
        if self._is_stale(turn):
            return

        if result.playable:
            await self._start_video(turn, reply, result.video_urls)
        else:
            logger.warning(f"Avatar video unavailable ({result.error}), falling back to speech")
            await self._speak_fallback(turn, reply)

    async def _look(self) -> tuple[Optional[VisionContext], str]:
        """grab and analyze a camera frame when the vision capability is live"""
        if not self.capabilities.vision or self.camera is None or self.vision is None or not self.camera.active:
            return None, ""
        try:
            frame = await self.camera.capture_frame()
            if frame is None:
                return None, ""
            context = await self.vision.process_frame(frame)
        except Exception as e:
            logger.error(f"Vision capture failed: {e}")
            return None, ""

        window = self.vision_memory.context_window(context)
        self.vision_memory.add(context)
        return context, window

    def _compose_query(self, text: str, vision_window: str, attachments: list[PendingAttachment]) -> str:
        query = compose_vision_query(text, vision_window)
        attachment_context = "\n\n".join(f"{a.filename}:\n{a.context}" for a in attachments)
        document_context = ""
        if self.capabilities.multi_user and self._company_documents:
            document_context = format_company_documents(self._company_documents)
        return compose_user_query(query, attachment_context, document_context)

    # ---- presentation ----

    async def _start_video(self, turn: TurnToken, reply: str, video_urls: list[str]) -> None:
        self._playback = ChunkPlayback(video_urls)
        self._playback_turn = turn
        self._reply_text = reply
        await self._set_state(TurnState.SPEAKING)
        await self._emit("play_chunk", self._playback.begin())

    async def _speak_fallback(self, turn: TurnToken, reply: str) -> None:
        await self._set_state(TurnState.SPEAKING)
        await self._emit("avatar_fallback", {"imageUrl": self.settings.avatar_image_url, "reason": "speech"})

        if self.synthesizer is None or not self.synthesizer.is_available():
            logger.warning("Speech synthesis unavailable, showing caption only")
            await self._run_caption(turn, reply)
            return

        try:
            await self.synthesizer.speak(reply, self.settings.tone, self.settings.language)
        except Exception as e:
            logger.error(f"Speech synthesis failed: {e}")
        if self._is_stale(turn):
            return
        await self._clear_display()
        await self._set_state(TurnState.IDLE)

    async def _on_chunk_ended(self, event: VideoChunkEnded) -> None:
        playback = self._playback
        if playback is None or self.state != TurnState.SPEAKING:
            return
        next_chunk = playback.chunk_ended(event.index)
        if next_chunk is not None:
            await self._emit("play_chunk", next_chunk)
        elif playback.finished:
            self._playback = None
            self._start_media_task(self._settle(self._playback_turn))

    async def _on_chunk_failed(self, event: VideoChunkFailed) -> None:
        playback = self._playback
        if playback is None or not playback.chunk_failed(event.index):
            return
        logger.warning(f"Video chunk {event.index} failed to load, showing image avatar")
        self._playback = None
        await self._emit("avatar_fallback", {"imageUrl": self.settings.avatar_image_url, "reason": "video_error"})
        self._start_media_task(self._run_caption(self._playback_turn, self._reply_text))

    async def _settle(self, turn: TurnToken) -> None:
        await asyncio.sleep(self.settle_delay)
        if self._is_stale(turn):
            return
        await self._clear_display()
        await self._set_state(TurnState.IDLE)

    async def _run_caption(self, turn: TurnToken, text: str) -> None:
        """show the reply one sentence at a time, then settle"""
        for line in caption_lines(text):
            if self._is_stale(turn):
                return
            await self._emit("caption", {"text": line})
            await asyncio.sleep(self.caption_line_delay)
        if self._is_stale(turn):
            return
        await self._clear_display()
        await self._set_state(TurnState.IDLE)

    def _start_media_task(self, coro) -> None:
        self._cancel_media_task()
        self._media_task = asyncio.create_task(coro)

    def _cancel_media_task(self) -> None:
        if self._media_task is not None and not self._media_task.done():
            self._media_task.cancel()
        self._media_task = None

    async def _cancel_activity(self) -> None:
        if self.capture is not None and self.capture.active:
            await self.capture.abort()
        self._final_transcript = ""
        if self.synthesizer is not None:
            await self.synthesizer.cancel()
        self._cancel_media_task()
        self._playback = None
        self._reply_text = ""
        await self._clear_display()
        await self._set_state(TurnState.IDLE)

    # ---- speech capture ----

    async def _on_listen_requested(self) -> None:
        if not self.capabilities.voice_input or self.capture is None or not self.capture.is_supported():
            await self._notice(CAPTURE_UNSUPPORTED)
            return
        if self.state != TurnState.IDLE:
            return
        try:
            await self.capture.start(recognition_language(self.settings.language))
        except CaptureBusyError:
            logger.warning("Speech capture already running")
            return
        self._final_transcript = ""
        await self._set_state(TurnState.LISTENING)

    async def _on_listen_stopped(self) -> None:
        # the session end event decides whether a transcript gets submitted
        if self.state == TurnState.LISTENING and self.capture is not None and self.capture.active:
            await self.capture.stop()

    async def _on_transcript(self, event: TranscriptReceived) -> None:
        if self.state != TurnState.LISTENING:
            return
        if event.is_final:
            self._final_transcript = f"{self._final_transcript} {event.text}".strip()
            await self._emit("transcript", {"text": self._final_transcript, "isFinal": True})
        else:
            interim = f"{self._final_transcript} {event.text}".strip()
            await self._emit("transcript", {"text": interim, "isFinal": False})

    async def _on_capture_failed(self, event: CaptureFailed) -> None:
        if self.capture is not None:
            self.capture.session_ended()
        if self.state != TurnState.LISTENING:
            return
        logger.warning(f"Speech recognition error: {event.error}")
        self._final_transcript = ""
        await self._set_state(TurnState.IDLE)
        await self._notice(classify_capture_error(event.error))

    async def _on_capture_ended(self) -> None:
        if self.capture is not None:
            self.capture.session_ended()
        if self.state != TurnState.LISTENING:
            return
        transcript, self._final_transcript = self._final_transcript, ""
        if transcript:
            await self.submit(transcript)
        else:
            await self._set_state(TurnState.IDLE)

    # ---- attachments ----

    async def _on_attachment(self, event: AttachmentAdded) -> None:
        if not self.capabilities.attachments or self.attachment_service is None:
            await self._notice("Attachments are not enabled for this conversation.")
            return
        try:
            check_attachment(event.filename, len(event.data), len(self.pending_attachments) + self._extracting)
        except AttachmentRejected as e:
            await self._notice(str(e))
            return

        self._extracting += 1
        self._spawn(self._extract_attachment(TurnToken(self.conversation_id, self._epoch), event))

    async def _extract_attachment(self, token: TurnToken, event: AttachmentAdded) -> None:
        try:
            context = await self.attachment_service.extract(event.filename, event.mime_type, event.data)
        except Exception as e:
            logger.error(f"Attachment extraction failed for {event.filename}: {e}")
            if not self._is_stale(token):
                await self._notice(f"Could not read {event.filename}")
            return
        finally:
            self._extracting -= 1

        if self._is_stale(token):
            return
        self.pending_attachments.append(PendingAttachment(event.filename, context))
        await self._emit_attachments()

    async def _clear_attachments(self) -> None:
        self.pending_attachments.clear()
        await self._emit_attachments()

    async def _emit_attachments(self) -> None:
        await self._emit("attachments", [a.filename for a in self.pending_attachments])

    # ---- camera ----

    async def _on_camera_toggled(self, event: CameraToggled) -> None:
        if not self.capabilities.vision or self.camera is None:
            await self._notice("Camera is not enabled for this conversation.")
            return
        if event.active and not self.camera.active:
            await self.camera.start()
        elif not event.active and self.camera.active:
            await self.camera.stop()

    # ---- settings ----

    async def _on_settings_changed(self, event: SettingsChanged) -> None:
        await self._save_settings({**self.settings.model_dump(), **event.settings})

    async def _on_avatar_selected(self, event: AvatarSelected) -> None:
        await self._save_settings(apply_avatar_preset(self.settings, event.avatar_id).model_dump())

    async def _save_settings(self, raw: dict) -> None:
        if self.capabilities.multi_user:
            clean = await self.store.update_company_settings(self.company_id, raw)
        else:
            clean = await self.store.update_settings(self.conversation_id, raw)
        if clean is None:
            await self._notice("This conversation no longer exists.")
            return
        self.settings = clean

    # ---- view output ----

    async def _emit(self, event_type: str, payload=None) -> None:
        await self.view.emit(event_type, payload)

    async def _notice(self, message: str) -> None:
        await self._emit("notice", {"message": message})

    async def _set_state(self, state: TurnState) -> None:
        if state == self.state:
            return
        logger.info(f"Turn state {self.state.value} -> {state.value}")
        self.state = state
        await self._emit("state", {"state": state.value})

    async def _clear_display(self) -> None:
        await self._emit("caption", {"text": ""})
        await self._emit("clear_media")

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
