"""
Configuration for the Call Flow service.
"""

from enum import Enum
from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BlockType(str, Enum):
    """Block types available in the flow editor."""

    SAY = "say"
    GATHER = "gather"
    FORWARD = "forward"
    MULTI_FORWARD = "multi_forward"
    RECORD = "record"
    PAUSE = "pause"
    PLAY = "play"
    HANGUP = "hangup"
    SMS = "sms"
    HOLD = "hold"


class ForwardStrategy(str, Enum):
    """How a multi-forward block dials its numbers."""

    SIMULTANEOUS = "simultaneous"
    SEQUENTIAL = "sequential"
    PRIORITY = "priority"


class SpeechRate(str, Enum):
    """Qualitative SSML prosody rates."""

    X_SLOW = "x-slow"
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"
    X_FAST = "x-fast"


class MusicType(str, Enum):
    """Hold music source."""

    PRESET = "preset"
    CUSTOM = "custom"


class EdgeKind(str, Enum):
    """Edge types in the flow graph."""

    NEXT = "next"
    OPTION = "option"


class PlanType(str, Enum):
    """Subscription plans."""

    STARTER = "starter"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"


class NumberStatus(str, Enum):
    """Phone number lifecycle status."""

    ACTIVE = "active"
    RELEASED = "released"


class StorageBackend(str, Enum):
    """Repository backends."""

    MEMORY = "memory"
    DATABASE = "database"


VOICE_OPTIONS = [
    {"value": "alice", "label": "Alice (Default)"},
    {"value": "man", "label": "Man"},
    {"value": "woman", "label": "Woman"},
    {"value": "Polly.Joanna", "label": "Joanna (US English)"},
    {"value": "Polly.Matthew", "label": "Matthew (US English)"},
    {"value": "Polly.Amy", "label": "Amy (British English)"},
    {"value": "Polly.Brian", "label": "Brian (British English)"},
    {"value": "Polly.Emma", "label": "Emma (British English)"},
    {"value": "Polly.Olivia", "label": "Olivia (Australian English)"},
]


class CanvasConfig(BaseSettings):
    """Editor canvas configuration."""

    model_config = SettingsConfigDict(env_prefix="CANVAS_")

    # Auto-placement grid
    grid_origin_x: int = Field(default=100, description="Left edge of the placement grid")
    grid_origin_y: int = Field(default=100, description="Top edge of the placement grid")
    column_spacing: int = Field(default=300, description="Horizontal distance between columns")
    row_spacing: int = Field(default=150, description="Vertical distance between rows")
    max_columns: int = Field(default=4, description="Columns before wrapping to a new row")

    # Overlap box used when testing a grid slot
    block_width: int = Field(default=250, description="Horizontal overlap threshold")
    block_height: int = Field(default=100, description="Vertical overlap threshold")

    # Validation
    max_blocks_per_flow: int = Field(default=200, description="Max blocks per flow")
    max_connections_per_block: int = Field(default=20, description="Max connections per block")

    # Editor sessions
    session_idle_ttl_s: int = Field(default=3600, ge=1, description="Idle editor sessions expire after this")
    max_sessions_per_user: int = Field(default=10, ge=1, description="Open editor sessions per user")


class CompilerConfig(BaseSettings):
    """TwiML compiler configuration."""

    model_config = SettingsConfigDict(env_prefix="COMPILER_")

    default_voice: str = Field(default="alice", description="Voice when the flow has none")
    priority_grace_seconds: int = Field(
        default=10, description="Extra ring time given to the primary number"
    )
    gather_timeout: int = Field(default=5, description="Seconds to wait for a digit")
    voicemail_max_length: int = Field(default=60, description="Fallback voicemail length")

    goodbye_message: str = Field(default="Thank you for calling. Goodbye!")
    error_message: str = Field(
        default="We're sorry, this service is currently unavailable. Please contact support."
    )

    hold_music_presets: Dict[str, str] = Field(
        default={
            "classical": "http://com.twilio.sounds.music.s3.amazonaws.com/MARKOVICHAMP-Borghestral.mp3",
            "ambient": "http://com.twilio.music.ambient.s3.amazonaws.com/aerosolspray_-_Living_Taciturn.mp3",
            "guitars": "http://com.twilio.music.guitars.s3.amazonaws.com/Pitx_-_A_Thought.mp3",
            "soft-rock": "http://com.twilio.music.soft-rock.s3.amazonaws.com/_ghost_-_promo_2_sample_pack.mp3",
        },
        description="Preset hold music catalog",
    )


class TwilioConfig(BaseSettings):
    """Twilio account configuration."""

    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    account_sid: str = Field(default="", description="Twilio account SID")
    auth_token: str = Field(default="", description="Twilio auth token")
    purchase_attempts: int = Field(default=3, ge=1, description="Purchase attempts")
    retry_backoff_s: float = Field(default=1.0, description="Linear backoff step")


class StorageConfig(BaseSettings):
    """Storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: StorageBackend = Field(default=StorageBackend.MEMORY, description="Repository backend")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./callflow.db",
        description="Database connection URL",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="callflow", description="Service name")
    host: str = Field(default="0.0.0.0", description="Host to bind")
    port: int = Field(default=8092, ge=1024, le=65535, description="Port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="info", description="Log level")

    # API settings
    api_prefix: str = Field(default="/api/v1", description="API prefix")
    enable_docs: bool = Field(default=True, description="Enable API docs")
    public_base_url: str = Field(
        default="",
        description="Externally reachable base URL used in webhook callbacks",
    )

    # Sub-configurations
    canvas: CanvasConfig = Field(default_factory=CanvasConfig)
    compiler: CompilerConfig = Field(default_factory=CompilerConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @property
    def webhook_base_url(self) -> str:
        """Base URL for the voice webhooks, relative when no public URL is set."""
        return f"{self.public_base_url.rstrip('/')}{self.api_prefix}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
