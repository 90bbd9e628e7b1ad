"""
Flow Validator.

Validates flow structure, references, and per-block configuration.
"""

from datetime import datetime
from typing import Iterable, List, Optional

import structlog

from ..config import BlockType, MusicType, get_settings
from ..exceptions import FlowValidationError
from ..models import (
    Block,
    ForwardConfig,
    GatherConfig,
    HoldConfig,
    MultiForwardConfig,
    PauseConfig,
    PlayConfig,
    RecordConfig,
    SayConfig,
    SmsConfig,
    ValidationIssue,
    ValidationResult,
)
from ..telephony.formatting import validate_e164
from .graph import FlowGraph

logger = structlog.get_logger()

VALID_DIGITS = set("0123456789*#")

# Blocks whose fall-through connections are never followed
TERMINAL_TYPES = {BlockType.HANGUP, BlockType.GATHER, BlockType.MULTI_FORWARD}

MISSING_NAME_OR_NUMBER = "Please provide a flow name and select a phone number."
MISSING_BLOCKS = "Please add at least one block to your flow."


class FlowValidator:
    """
    Validates a flow before it is saved or compiled.

    Checks:
    - Save metadata (name, phone number, non-empty block list)
    - Structural integrity (duplicate ids, dangling references)
    - Block configuration (required fields, ranges)
    - Logic (unreachable blocks, cycles)
    - Resource limits
    """

    def __init__(self, settings=None):
        """Initialize validator."""
        self.settings = settings or get_settings()

    def validate(self, blocks: Iterable[Block]) -> ValidationResult:
        """
        Validate a block graph.

        Args:
            blocks: Blocks of the flow, entry block first

        Returns:
            ValidationResult with issues found
        """
        blocks = list(blocks)
        issues: List[ValidationIssue] = []

        issues.extend(self._validate_structure(blocks))
        issues.extend(self._validate_blocks(blocks))
        issues.extend(self._validate_logic(blocks))
        issues.extend(self._validate_limits(blocks))

        valid = all(i.severity != "error" for i in issues)

        return ValidationResult(
            valid=valid,
            issues=issues,
            checked_at=datetime.utcnow(),
        )

    def validate_for_save(
        self,
        flow_name: Optional[str],
        twilio_number_id: Optional[str],
        blocks: Iterable[Block],
    ) -> ValidationResult:
        """Validate save metadata on top of the graph checks."""
        blocks = list(blocks)
        issues: List[ValidationIssue] = []

        if not (flow_name or "").strip() or not twilio_number_id:
            issues.append(ValidationIssue(severity="error", message=MISSING_NAME_OR_NUMBER))
        if not blocks:
            issues.append(ValidationIssue(severity="error", message=MISSING_BLOCKS))

        result = self.validate(blocks)
        issues.extend(result.issues)

        return ValidationResult(
            valid=all(i.severity != "error" for i in issues),
            issues=issues,
            checked_at=result.checked_at,
        )

    def ensure_valid(
        self,
        flow_name: Optional[str],
        twilio_number_id: Optional[str],
        blocks: Iterable[Block],
    ) -> ValidationResult:
        """
        Validate for save and raise on errors.

        Raises:
            FlowValidationError: With the first error as message and all
                errors attached
        """
        result = self.validate_for_save(flow_name, twilio_number_id, blocks)
        if not result.valid:
            errors = result.errors
            logger.info("Flow rejected", errors=len(errors), first=errors[0].message)
            raise FlowValidationError(
                errors[0].message,
                issues=[i.to_dict() for i in errors],
            )
        return result

    # =========================================================================
    # Checks
    # =========================================================================

    def _validate_structure(self, blocks: List[Block]) -> List[ValidationIssue]:
        """Validate ids and references."""
        issues = []

        seen = set()
        for block in blocks:
            if block.id in seen:
                issues.append(
                    ValidationIssue(
                        severity="error",
                        message="Duplicate block id",
                        block_id=block.id,
                    )
                )
            seen.add(block.id)

        for edge in FlowGraph(blocks).dangling_edges():
            where = f"option {edge.digit}" if edge.digit is not None else "connection"
            issues.append(
                ValidationIssue(
                    severity="error",
                    message=f"{where.capitalize()} points to missing block '{edge.target_id}'",
                    block_id=edge.source_id,
                )
            )

        return issues

    def _validate_blocks(self, blocks: List[Block]) -> List[ValidationIssue]:
        """Validate per-type configuration."""
        issues = []

        for block in blocks:
            config = block.config

            def issue(severity: str, message: str, prop: Optional[str] = None):
                issues.append(
                    ValidationIssue(
                        severity=severity,
                        message=message,
                        block_id=block.id,
                        property_name=prop,
                    )
                )

            if isinstance(config, SayConfig):
                if not config.text.strip():
                    issue("warning", "Say block has no text", "text")
                if config.speed <= 0:
                    issue("error", "Speech speed must be positive", "speed")

            elif isinstance(config, GatherConfig):
                if not config.prompt.strip():
                    issue("warning", "Menu has no prompt", "prompt")
                if not config.options:
                    issue("warning", "Menu has no options", "options")
                if config.max_retries < 0:
                    issue("error", "Retries cannot be negative", "maxRetries")
                digits = [o.digit for o in config.options]
                for digit in digits:
                    if len(digit) != 1 or digit not in VALID_DIGITS:
                        issue("error", f"Invalid menu digit '{digit}'", "options")
                for digit in {d for d in digits if digits.count(d) > 1}:
                    issue("error", f"Digit '{digit}' is used by more than one option", "options")

            elif isinstance(config, ForwardConfig):
                if not config.number.strip():
                    issue("error", "Forward number is required", "number")
                elif not validate_e164(config.number.strip()):
                    issue("warning", "Forward number is not in E.164 format", "number")
                if config.timeout <= 0:
                    issue("error", "Ring timeout must be positive", "timeout")

            elif isinstance(config, MultiForwardConfig):
                numbers = config.dialable_numbers
                if not numbers:
                    issue("error", "At least one forwarding number is required", "numbers")
                for number in numbers:
                    if not validate_e164(number):
                        issue("warning", f"Number {number} is not in E.164 format", "numbers")
                if config.ring_timeout <= 0:
                    issue("error", "Ring timeout must be positive", "ringTimeout")

            elif isinstance(config, RecordConfig):
                if config.max_length <= 0:
                    issue("error", "Recording length must be positive", "maxLength")

            elif isinstance(config, PauseConfig):
                if config.duration < 0:
                    issue("error", "Pause duration cannot be negative", "duration")

            elif isinstance(config, PlayConfig):
                if not config.url.strip():
                    issue("warning", "Play block has no audio URL and will be skipped", "url")

            elif isinstance(config, HoldConfig):
                if config.music_type == MusicType.CUSTOM and not config.music_url.strip():
                    issue("warning", "Custom hold music has no URL", "musicUrl")
                presets = self.settings.compiler.hold_music_presets
                if config.music_type == MusicType.PRESET and config.preset_music not in presets:
                    issue("warning", f"Unknown hold music preset '{config.preset_music}'", "presetMusic")

            elif isinstance(config, SmsConfig):
                if not config.message.strip():
                    issue("warning", "SMS block has no message", "message")

            if block.type in TERMINAL_TYPES and block.connections:
                issue("info", f"Connections after a {block.type.value} block are not followed")

        return issues

    def _validate_logic(self, blocks: List[Block]) -> List[ValidationIssue]:
        """Validate reachability and loops."""
        issues = []
        graph = FlowGraph(blocks)

        reachable = graph.reachable_from()
        for block in graph:
            if block.id not in reachable:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message="Block is not reachable from the entry block",
                        block_id=block.id,
                    )
                )

        for cycle in graph.find_cycles():
            issues.append(
                ValidationIssue(
                    severity="warning",
                    message="Loop detected: " + " -> ".join(cycle),
                    block_id=cycle[0],
                )
            )

        return issues

    def _validate_limits(self, blocks: List[Block]) -> List[ValidationIssue]:
        """Validate resource limits."""
        issues = []
        canvas = self.settings.canvas

        if len(blocks) > canvas.max_blocks_per_flow:
            issues.append(
                ValidationIssue(
                    severity="error",
                    message=f"Flow exceeds max blocks ({canvas.max_blocks_per_flow})",
                )
            )

        for block in blocks:
            if len(block.connections) > canvas.max_connections_per_block:
                issues.append(
                    ValidationIssue(
                        severity="warning",
                        message=f"Block has more than {canvas.max_connections_per_block} connections",
                        block_id=block.id,
                    )
                )

        return issues
