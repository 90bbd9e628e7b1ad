"""Unit tests for flow validation."""

import pytest

from callflow.canvas.validator import MISSING_BLOCKS, MISSING_NAME_OR_NUMBER, FlowValidator
from callflow.config import BlockType, CanvasConfig, Settings
from callflow.exceptions import FlowValidationError
from callflow.models import Block


@pytest.fixture
def validator(settings) -> FlowValidator:
    return FlowValidator(settings)


def block(block_id, block_type, config=None, connections=None):
    return Block(id=block_id, type=block_type, config=config or {}, connections=connections or [])


def messages(issues):
    return [i.message for i in issues]


class TestSaveRules:
    """Tests for the checks that gate a save."""

    def test_valid_flow(self, validator):
        """Test a simple greeting plus hangup passes."""
        result = validator.validate_for_save(
            "Main",
            "num_1",
            [block("1", BlockType.SAY, {"text": "Hi"}, ["2"]), block("2", BlockType.HANGUP)],
        )

        assert result.valid is True
        assert result.errors == []

    @pytest.mark.parametrize("name,number", [("", "num_1"), ("   ", "num_1"), ("Main", None), ("Main", "")])
    def test_missing_name_or_number(self, validator, name, number):
        """Test name and number are both required."""
        result = validator.validate_for_save(name, number, [block("1", BlockType.HANGUP)])

        assert result.valid is False
        assert MISSING_NAME_OR_NUMBER in messages(result.errors)

    def test_empty_block_list(self, validator):
        result = validator.validate_for_save("Main", "num_1", [])

        assert messages(result.errors) == [MISSING_BLOCKS]

    def test_empty_forward_list(self, validator):
        """Test a multi-forward block needs at least one number."""
        result = validator.validate_for_save(
            "Main",
            "num_1",
            [block("1", BlockType.MULTI_FORWARD, {"numbers": ["", "  "]})],
        )

        assert result.valid is False
        assert "At least one forwarding number is required" in messages(result.errors)

    def test_ensure_valid_raises_first_error(self, validator):
        """Test ensure_valid raises with the first error as message."""
        with pytest.raises(FlowValidationError) as exc_info:
            validator.ensure_valid("", None, [])

        error = exc_info.value
        assert error.message == MISSING_NAME_OR_NUMBER
        assert error.status_code == 422
        assert len(error.issues) == 2


class TestBlockRules:
    """Tests for per-type configuration checks."""

    def test_forward_requires_number(self, validator):
        result = validator.validate([block("1", BlockType.FORWARD, {"number": ""})])

        assert "Forward number is required" in messages(result.errors)

    def test_non_e164_forward_is_warning(self, validator):
        result = validator.validate([block("1", BlockType.FORWARD, {"number": "555-1234"})])

        assert result.valid is True
        assert "Forward number is not in E.164 format" in messages(result.warnings)

    def test_duplicate_and_invalid_digits(self, validator):
        result = validator.validate([
            block(
                "1",
                BlockType.GATHER,
                {"prompt": "Pick", "options": [{"digit": "1"}, {"digit": "1"}, {"digit": "12"}]},
            )
        ])

        assert "Digit '1' is used by more than one option" in messages(result.errors)
        assert "Invalid menu digit '12'" in messages(result.errors)

    def test_unknown_hold_preset_is_warning(self, validator):
        result = validator.validate([block("1", BlockType.HOLD, {"presetMusic": "polka"})])

        assert result.valid is True
        assert "Unknown hold music preset 'polka'" in messages(result.warnings)

    def test_connection_after_terminal_is_info(self, validator):
        """Test fall-through after a hangup is flagged but allowed."""
        result = validator.validate([
            block("1", BlockType.HANGUP, connections=["2"]),
            block("2", BlockType.SAY, {"text": "never"}),
        ])

        assert result.valid is True
        assert any(i.severity == "info" and i.block_id == "1" for i in result.issues)


class TestGraphRules:
    """Tests for structural and logic checks."""

    def test_dangling_connection_is_error(self, validator):
        result = validator.validate([block("1", BlockType.SAY, {"text": "Hi"}, ["ghost"])])

        assert result.valid is False
        assert "Connection points to missing block 'ghost'" in messages(result.errors)

    def test_dangling_option_is_error(self, validator):
        result = validator.validate([
            block("1", BlockType.GATHER, {"prompt": "Pick", "options": [{"digit": "1", "blockId": "ghost"}]})
        ])

        assert "Option 1 points to missing block 'ghost'" in messages(result.errors)

    def test_duplicate_ids(self, validator):
        result = validator.validate([block("1", BlockType.SAY), block("1", BlockType.HANGUP)])

        assert "Duplicate block id" in messages(result.errors)

    def test_unreachable_block_is_warning(self, validator):
        result = validator.validate([
            block("1", BlockType.SAY, {"text": "Hi"}),
            block("2", BlockType.SAY, {"text": "Orphan"}),
        ])

        assert result.valid is True
        assert [i.block_id for i in result.warnings if "not reachable" in i.message] == ["2"]

    def test_loop_is_warning_not_error(self, validator):
        """Test cycles are reported but do not block a save."""
        result = validator.validate([
            block("1", BlockType.SAY, {"text": "A"}, ["2"]),
            block("2", BlockType.PAUSE, {"duration": 1}, ["1"]),
        ])

        assert result.valid is True
        assert "Loop detected: 1 -> 2 -> 1" in messages(result.warnings)

    def test_block_limit(self):
        settings = Settings(canvas=CanvasConfig(max_blocks_per_flow=2))
        validator = FlowValidator(settings)

        result = validator.validate([block(str(i), BlockType.PAUSE) for i in range(3)])

        assert "Flow exceeds max blocks (2)" in messages(result.errors)
