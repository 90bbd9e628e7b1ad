"""
Multi-forward dial strategies.

Ringing itself happens at the provider; each strategy only lays out the
Dial verbs and announcements. All strategies end in the same voicemail
fallback, emitted by ``append_voicemail_fallback``.
"""

from typing import Callable, Dict, List

from twilio.twiml.voice_response import Dial, VoiceResponse

from ..config import CompilerConfig, ForwardStrategy
from ..models import MultiForwardConfig

CONNECTING_TEAM = "Connecting your call to our team. Please hold."
CONNECTING = "Connecting your call. Please hold."
TRYING_ANOTHER = "Trying another number. Please continue to hold."
CONNECTING_PRIMARY = "Connecting you to our primary contact. Please hold."
TRYING_BACKUP = "Trying our backup contacts. Please continue to hold."

VOICEMAIL_APOLOGY = (
    "Sorry, no one is available to take your call right now. "
    "Please leave a message after the beep."
)
VOICEMAIL_GOODBYE = "Thank you for your message. We'll get back to you soon. Goodbye."


class MultiForwardRenderer:
    """
    Lays out the dial plan of a multi_forward block.

    Args:
        config: Compiler settings (priority grace, voicemail length)
        voice: Voice for announcements
        recording_callback: URL notified when a dial recording is ready
        transcription_callback: URL notified when a voicemail transcript is ready
        voicemail_action: URL the provider posts to once the voicemail is recorded
    """

    def __init__(
        self,
        config: CompilerConfig,
        voice: str,
        recording_callback: str,
        transcription_callback: str,
        voicemail_action: str,
    ):
        self.config = config
        self.voice = voice
        self.recording_callback = recording_callback
        self.transcription_callback = transcription_callback
        self.voicemail_action = voicemail_action

        self._strategies: Dict[ForwardStrategy, Callable[[VoiceResponse, List[str], int], None]] = {
            ForwardStrategy.SIMULTANEOUS: self._simultaneous,
            ForwardStrategy.SEQUENTIAL: self._sequential,
            ForwardStrategy.PRIORITY: self._priority,
        }

    def render(self, response: VoiceResponse, block_config: MultiForwardConfig) -> None:
        """Emit the dial plan followed by the voicemail fallback."""
        numbers = block_config.dialable_numbers
        strategy = self._strategies[block_config.forward_strategy]
        strategy(response, numbers, block_config.ring_timeout)
        append_voicemail_fallback(
            response,
            voice=self.voice,
            max_length=self.config.voicemail_max_length,
            transcription_callback=self.transcription_callback,
            action=self.voicemail_action,
        )

    # =========================================================================
    # Strategies
    # =========================================================================

    def _simultaneous(self, response: VoiceResponse, numbers: List[str], timeout: int) -> None:
        """Ring everyone at once; first answer wins."""
        response.say(CONNECTING_TEAM, voice=self.voice)
        self._dial(response, numbers, timeout)

    def _sequential(self, response: VoiceResponse, numbers: List[str], timeout: int) -> None:
        """Ring one number at a time in list order."""
        response.say(CONNECTING, voice=self.voice)
        for index, number in enumerate(numbers):
            if index > 0:
                response.say(TRYING_ANOTHER, voice=self.voice)
            self._dial(response, [number], timeout)

    def _priority(self, response: VoiceResponse, numbers: List[str], timeout: int) -> None:
        """Ring the primary alone with extra time, then the rest together."""
        primary, backups = numbers[0], numbers[1:]

        response.say(CONNECTING_PRIMARY, voice=self.voice)
        self._dial(response, [primary], timeout + self.config.priority_grace_seconds)

        if backups:
            response.say(TRYING_BACKUP, voice=self.voice)
            self._dial(response, backups, timeout)

    def _dial(self, response: VoiceResponse, numbers: List[str], timeout: int) -> Dial:
        dial = response.dial(
            timeout=timeout,
            record="record-from-ringing-dual",
            recording_status_callback=self.recording_callback,
        )
        for number in numbers:
            dial.number(number)
        return dial


def append_voicemail_fallback(
    response: VoiceResponse,
    voice: str,
    max_length: int,
    transcription_callback: str,
    action: str,
) -> None:
    """
    Apologize, take a message, say goodbye and hang up.

    The goodbye after Record only plays when nothing was recorded; a real
    message ends at the action URL, which answers with the same goodbye.
    """
    response.say(VOICEMAIL_APOLOGY, voice=voice)
    response.record(
        action=action,
        method="POST",
        max_length=max_length,
        transcribe="true",
        transcribe_callback=transcription_callback,
    )
    response.say(VOICEMAIL_GOODBYE, voice=voice)
    response.hangup()
