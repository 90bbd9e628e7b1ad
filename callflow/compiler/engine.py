"""
Flow Compiler.

Turns a block graph into TwiML for one inbound call. The compiler is a pure
function of the blocks, the entry point, the voice and the settings: it
keeps no state between calls and never raises on bad graph data, degrading
to a spoken message plus hangup instead.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set
from urllib.parse import urlencode

import structlog
from twilio.twiml.voice_response import VoiceResponse

from ..canvas.graph import FlowGraph
from ..config import BlockType, MusicType, Settings, SpeechRate, get_settings
from ..exceptions import FlowFormatError
from ..models import Block, GatherConfig
from ..persistence.document import deserialize, document_voice
from .forwarding import VOICEMAIL_GOODBYE, MultiForwardRenderer

logger = structlog.get_logger()

DEFAULT_GREETING = "Hello! Thank you for calling."
DEFAULT_GREETING_HINT = "Please configure your call flow in the dashboard to customize this experience."
DEFAULT_ACKNOWLEDGEMENT = "Thank you for your selection."


def speech_rate(speed: float) -> SpeechRate:
    """Map a numeric speaking speed to a prosody rate."""
    if speed <= 0.6:
        return SpeechRate.X_SLOW
    if speed <= 0.8:
        return SpeechRate.SLOW
    if speed <= 1.2:
        return SpeechRate.MEDIUM
    if speed <= 1.5:
        return SpeechRate.FAST
    return SpeechRate.X_FAST


@dataclass
class CompileContext:
    """Per-compile state."""

    graph: FlowGraph
    voice: str


# A renderer appends a block's verbs and reports whether the path ends there
Renderer = Callable[[VoiceResponse, Block, CompileContext], bool]


class FlowCompiler:
    """
    Compiles call flows into TwiML.

    Walks the graph from the entry block, following the first fall-through
    connection of each block. Gather, multi_forward and hangup end a path;
    any other path end gets the default close-out. Each block is emitted at
    most once per document, so cycles end at the back edge.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.config = self.settings.compiler
        self.base_url = self.settings.webhook_base_url
        self.logger = logger.bind(component="flow_compiler")

        self._renderers: Dict[BlockType, Renderer] = {
            BlockType.SAY: self._render_say,
            BlockType.GATHER: self._render_gather,
            BlockType.FORWARD: self._render_forward,
            BlockType.MULTI_FORWARD: self._render_multi_forward,
            BlockType.RECORD: self._render_record,
            BlockType.PAUSE: self._render_pause,
            BlockType.PLAY: self._render_play,
            BlockType.HANGUP: self._render_hangup,
            BlockType.SMS: self._render_sms,
            BlockType.HOLD: self._render_hold,
        }

    # =========================================================================
    # Public API
    # =========================================================================

    def compile(
        self,
        blocks: Iterable[Block],
        entry_id: Optional[str] = None,
        voice: Optional[str] = None,
    ) -> str:
        """
        Compile a block graph.

        Args:
            blocks: Flow blocks; the first one is the default entry
            entry_id: Block to start from
            voice: Voice for every spoken verb

        Returns:
            TwiML string
        """
        voice = voice or self.config.default_voice
        ctx = CompileContext(graph=FlowGraph(blocks), voice=voice)

        if len(ctx.graph) == 0:
            return self.default_greeting(voice)

        entry = ctx.graph.get(entry_id or ctx.graph.entry_id)
        response = VoiceResponse()

        if entry is None:
            self.logger.warning("Entry block not found", entry_id=entry_id)
            self._close_out(response, voice)
            return str(response)

        self._walk(response, ctx, entry)
        return str(response)

    def compile_document(self, document: Optional[Dict[str, Any]], entry_id: Optional[str] = None) -> str:
        """Compile a stored flow document, upgrading legacy shapes first."""
        try:
            blocks = deserialize(document)
        except FlowFormatError as e:
            self.logger.error("Unreadable flow document", error=str(e))
            return self.error_response()
        return self.compile(blocks, entry_id=entry_id, voice=document_voice(document))

    def compile_gather_input(
        self,
        blocks: Iterable[Block],
        block_id: str,
        digits: Optional[str],
        attempt: int = 0,
        voice: Optional[str] = None,
    ) -> str:
        """
        Compile the response to digits collected by a gather block.

        Args:
            blocks: Flow blocks
            block_id: The gather block that collected the input
            digits: Digits pressed, empty when the caller pressed nothing
            attempt: Which prompt of the gather produced the input
            voice: Voice for every spoken verb

        Returns:
            TwiML string
        """
        voice = voice or self.config.default_voice
        ctx = CompileContext(graph=FlowGraph(blocks), voice=voice)
        block = ctx.graph.get(block_id)

        if block is None or not isinstance(block.config, GatherConfig):
            self.logger.warning("Gather block not found", block_id=block_id)
            return self.error_response(voice)

        response = VoiceResponse()
        digits = (digits or "").strip()
        option = block.config.option_for(digits) if digits else None

        if option is None:
            self.logger.info("Invalid menu input", block_id=block_id, digits=digits, attempt=attempt)
            self._append_menu(response, block, ctx, first_attempt=attempt + 1)
            return str(response)

        if not option.block_id:
            response.say(option.text or f"Thank you for selecting option {option.digit}.", voice=voice)
            response.hangup()
            return str(response)

        target = ctx.graph.get(option.block_id)
        if target is None:
            self.logger.warning(
                "Menu option target missing",
                block_id=block_id,
                digit=option.digit,
                target_id=option.block_id,
            )
            response.say(DEFAULT_ACKNOWLEDGEMENT, voice=voice)
            response.hangup()
            return str(response)

        self._walk(response, ctx, target)
        return str(response)

    def compile_after(self, blocks: Iterable[Block], block_id: str, voice: Optional[str] = None) -> str:
        """
        Compile the rest of a path once a block has handed control back.

        Used as the continuation of a record block: the provider posts the
        recording to the action URL and plays whatever comes next from here.
        """
        voice = voice or self.config.default_voice
        ctx = CompileContext(graph=FlowGraph(blocks), voice=voice)
        if ctx.graph.get(block_id) is None:
            self.logger.warning("Continuation block not found", block_id=block_id)
            return self.error_response(voice)

        response = VoiceResponse()
        next_block = ctx.graph.next_block(block_id)
        if next_block is None:
            self._close_out(response, voice)
        else:
            self._walk(response, ctx, next_block, visited={block_id})
        return str(response)

    def voicemail_complete(self, voice: Optional[str] = None) -> str:
        """Response after a voicemail left through the forwarding fallback."""
        response = VoiceResponse()
        response.say(VOICEMAIL_GOODBYE, voice=voice or self.config.default_voice)
        response.hangup()
        return str(response)

    def default_greeting(self, voice: Optional[str] = None) -> str:
        """Response for a number with no flow configured."""
        voice = voice or self.config.default_voice
        response = VoiceResponse()
        response.say(DEFAULT_GREETING, voice=voice)
        response.pause(length=1)
        response.say(DEFAULT_GREETING_HINT, voice=voice)
        response.hangup()
        return str(response)

    def error_response(self, voice: Optional[str] = None, message: Optional[str] = None) -> str:
        """Safe terminal response for configuration and service errors."""
        response = VoiceResponse()
        self._append_error(response, voice or self.config.default_voice, message)
        return str(response)

    # =========================================================================
    # Traversal
    # =========================================================================

    def _walk(
        self,
        response: VoiceResponse,
        ctx: CompileContext,
        start: Block,
        visited: Optional[Set[str]] = None,
    ) -> None:
        visited = set(visited or ())
        block: Optional[Block] = start

        while block is not None:
            if block.id in visited:
                self.logger.warning("Loop cut while compiling", block_id=block.id)
                break
            visited.add(block.id)

            if self._renderers[block.type](response, block, ctx):
                return

            next_block = ctx.graph.next_block(block.id)
            if next_block is None and block.connections:
                self.logger.warning(
                    "Connection target missing",
                    block_id=block.id,
                    targets=block.connections,
                )
            block = next_block

        self._close_out(response, ctx.voice)

    def _close_out(self, response: VoiceResponse, voice: str) -> None:
        response.say(self.config.goodbye_message, voice=voice)
        response.hangup()

    def _append_error(self, response: VoiceResponse, voice: str, message: Optional[str] = None) -> None:
        response.say(message or self.config.error_message, voice=voice)
        response.hangup()

    def _url(self, path: str, **params: Any) -> str:
        url = f"{self.base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    def _say(self, parent: Any, text: str, voice: str, speed: Optional[float] = None) -> None:
        rate = speech_rate(speed) if speed is not None else SpeechRate.MEDIUM
        if rate == SpeechRate.MEDIUM:
            parent.say(text, voice=voice)
        else:
            say = parent.say(voice=voice)
            say.prosody(text, rate=rate.value)

    # =========================================================================
    # Renderers
    # =========================================================================

    def _render_say(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        if block.config.text.strip():
            self._say(response, block.config.text, ctx.voice, block.config.speed)
        return False

    def _render_gather(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        self._append_menu(response, block, ctx, first_attempt=0)
        return True

    def _append_menu(self, response: VoiceResponse, block: Block, ctx: CompileContext, first_attempt: int) -> None:
        """
        Emit the prompt once per remaining attempt, then goodbye.

        Digits go to the gather webhook. When the caller presses nothing the
        provider falls through to the next verb, which is the retry message
        and the next prompt.
        """
        config: GatherConfig = block.config
        finish_on_key = "" if any(o.digit == "#" for o in config.options) else None

        for attempt in range(first_attempt, config.max_retries + 1):
            if attempt > 0:
                response.say(config.retry_message, voice=ctx.voice)
            gather = response.gather(
                input="dtmf",
                num_digits=1,
                timeout=self.config.gather_timeout,
                action=self._url("/voice/gather", blockId=block.id, attempt=attempt),
                method="POST",
                finish_on_key=finish_on_key,
            )
            if config.prompt.strip():
                gather.say(config.prompt, voice=ctx.voice)

        response.say(config.goodbye_message or self.config.goodbye_message, voice=ctx.voice)
        response.hangup()

    def _render_forward(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        config = block.config
        number = config.number.strip()
        if not number:
            self.logger.warning("Forward block has no number", block_id=block.id)
            self._append_error(response, ctx.voice)
            return True

        if config.hold_music_url:
            response.play(config.hold_music_url, loop=max(config.hold_music_loop, 1))
        dial = response.dial(timeout=config.timeout)
        dial.number(number)
        return False

    def _render_multi_forward(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        if not block.config.dialable_numbers:
            self.logger.warning("Multi-forward block has no numbers", block_id=block.id)
            self._append_error(response, ctx.voice)
            return True

        renderer = MultiForwardRenderer(
            self.config,
            voice=ctx.voice,
            recording_callback=self._url("/voice/recording"),
            transcription_callback=self._url("/voice/transcription"),
            voicemail_action=self._url("/voice/voicemail"),
        )
        renderer.render(response, block.config)
        return True

    def _render_record(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        config = block.config
        if config.prompt.strip():
            response.say(config.prompt, voice=ctx.voice)
        response.record(
            action=self._url("/voice/record", blockId=block.id),
            method="POST",
            max_length=config.max_length,
            finish_on_key=config.finish_on_key or None,
            transcribe="true" if config.transcribe else "false",
            transcribe_callback=self._url("/voice/transcription") if config.transcribe else None,
            recording_status_callback=self._url("/voice/recording"),
        )
        return False

    def _render_pause(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        if block.config.duration > 0:
            response.pause(length=block.config.duration)
        return False

    def _render_play(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        if block.config.url.strip():
            response.play(block.config.url, loop=max(block.config.loop, 1))
        else:
            self.logger.info("Skipping play block without URL", block_id=block.id)
        return False

    def _render_hangup(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        response.hangup()
        return True

    def _render_sms(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        if block.config.message.strip():
            response.sms(block.config.message, to=block.config.to or None)
        return False

    def _render_hold(self, response: VoiceResponse, block: Block, ctx: CompileContext) -> bool:
        config = block.config
        if config.message.strip():
            response.say(config.message, voice=ctx.voice)

        if config.music_type == MusicType.CUSTOM:
            music_url = config.music_url.strip()
        else:
            music_url = self.config.hold_music_presets.get(config.preset_music, "")

        if music_url:
            response.play(music_url, loop=max(config.hold_music_loop, 1))
        return False
