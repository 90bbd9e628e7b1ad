"""Unit tests for flow document serialization and upgrades."""

import copy

import pytest

from callflow.config import BlockType, ForwardStrategy
from callflow.exceptions import FlowFormatError
from callflow.flows.catalog import PRESETS, preset_blocks
from callflow.models import (
    Block,
    ForwardConfig,
    GatherConfig,
    MenuOption,
    MultiForwardConfig,
    Position,
    RecordConfig,
    SayConfig,
)
from callflow.persistence.document import (
    CURRENT_VERSION,
    deserialize,
    detect_version,
    document_voice,
    serialize,
    upgrade_document,
)


def sample_blocks():
    return [
        Block(
            id="1",
            type=BlockType.SAY,
            config=SayConfig(text="Welcome", speed=0.7),
            position=Position(x=100, y=100),
            connections=["2"],
        ),
        Block(
            id="2",
            type=BlockType.GATHER,
            config=GatherConfig(
                prompt="Press 1 for sales",
                max_retries=2,
                options=[
                    MenuOption(digit="1", text="Sales", action="multi_forward", block_id="3"),
                    MenuOption(digit="#", text="Repeat"),
                ],
            ),
            position=Position(x=400, y=100),
        ),
        Block(
            id="3",
            type=BlockType.MULTI_FORWARD,
            config=MultiForwardConfig(
                numbers=["+15550001111", "+15550002222"],
                forward_strategy=ForwardStrategy.PRIORITY,
                ring_timeout=15,
            ),
            position=Position(x=700, y=100),
        ),
        Block(
            id="4",
            type=BlockType.FORWARD,
            config=ForwardConfig(number="+15550003333", hold_music_url="https://example.com/hold.mp3"),
            position=Position(x=100, y=250),
        ),
    ]


class TestSerialize:
    """Tests for the current document format."""

    def test_document_shape(self):
        """Test serialize produces voice, blocks and the current version."""
        document = serialize("Main line", "Polly.Amy", sample_blocks())

        assert set(document) == {"voice", "blocks", "version"}
        assert document["version"] == CURRENT_VERSION == "2.0"
        assert document["voice"] == "Polly.Amy"
        assert document["blocks"][0]["config"] == {"text": "Welcome", "speed": 0.7}
        assert document["blocks"][1]["config"]["options"][0]["blockId"] == "3"
        assert document["blocks"][2]["config"]["forwardStrategy"] == "priority"

    def test_round_trip(self):
        """Test deserialize(serialize(blocks)) returns equal blocks."""
        blocks = sample_blocks()

        assert deserialize(serialize("Main", "alice", blocks)) == blocks

    def test_round_trip_empty(self):
        """Test an empty graph survives the round trip."""
        assert deserialize(serialize("Empty", "alice", [])) == []

    @pytest.mark.parametrize("preset", [p["id"] for p in PRESETS])
    def test_round_trip_presets(self, preset):
        """Test every preset survives the round trip."""
        blocks = preset_blocks(preset)

        assert deserialize(serialize(preset, "alice", blocks)) == blocks

    def test_missing_voice_defaults(self):
        """Test a document without a voice reads as the default voice."""
        assert serialize("x", None, [])["voice"] == "alice"
        assert document_voice({"blocks": []}) == "alice"
        assert document_voice(None) == "alice"


class TestVersionDetection:
    """Tests for explicit and inferred versions."""

    def test_explicit_version(self):
        assert detect_version({"version": "2.0", "blocks": []}) == "2.0"

    def test_untagged_graph_is_current(self):
        assert detect_version({"blocks": []}) == CURRENT_VERSION

    def test_untagged_without_blocks_is_legacy(self):
        assert detect_version({"greeting": "Hi"}) == "1.0"
        assert detect_version({}) == "1.0"

    def test_unknown_version_rejected(self):
        """Test a version with no upgrade path raises FlowFormatError."""
        with pytest.raises(FlowFormatError) as exc_info:
            deserialize({"version": "3.7", "blocks": []})

        assert exc_info.value.version == "3.7"

    def test_non_mapping_rejected(self):
        with pytest.raises(FlowFormatError):
            upgrade_document(["not", "a", "document"])

    def test_malformed_block_rejected(self):
        with pytest.raises(FlowFormatError):
            deserialize({"version": "2.0", "blocks": [{"id": "1", "type": "teleport"}]})


class TestLegacyUpgrade:
    """Tests for upgrading pre-graph documents."""

    def test_greeting_and_forward(self):
        """Test a greeting plus forward becomes two stacked, unconnected blocks."""
        blocks = deserialize({"greeting": "Hi", "forward": {"number": "+15551234567"}})

        assert [b.type for b in blocks] == [BlockType.SAY, BlockType.FORWARD]
        assert blocks[0].config.text == "Hi"
        assert blocks[1].config.number == "+15551234567"
        assert all(b.connections == [] for b in blocks)
        assert blocks[0].position.x == blocks[1].position.x
        assert blocks[0].position.y < blocks[1].position.y

    def test_full_legacy_document(self):
        """Test every legacy section maps to its block with a fixed id."""
        legacy = {
            "voice": "man",
            "greeting": "Thanks for calling",
            "menu": {
                "prompt": "Press 1 for hours",
                "options": [{"digit": "1", "text": "Hours", "action": "say"}],
            },
            "forward": {"number": "+15551234567"},
            "voicemail": {"prompt": "Leave a message"},
        }

        blocks = deserialize(legacy)

        assert [(b.id, b.type) for b in blocks] == [
            ("1", BlockType.SAY),
            ("2", BlockType.GATHER),
            ("3", BlockType.FORWARD),
            ("4", BlockType.RECORD),
        ]
        assert blocks[1].config.options[0].text == "Hours"
        assert blocks[1].config.options[0].block_id == ""
        assert isinstance(blocks[3].config, RecordConfig)
        assert blocks[3].config.prompt == "Leave a message"
        assert document_voice(upgrade_document(legacy)) == "man"

    def test_forward_without_number_is_skipped(self):
        blocks = deserialize({"greeting": "Hi", "forward": {}})

        assert [b.type for b in blocks] == [BlockType.SAY]

    def test_upgrade_is_idempotent(self):
        """Test upgrading an upgraded document changes nothing."""
        legacy = {"greeting": "Hi", "voicemail": {"prompt": "Beep"}}

        once = upgrade_document(legacy)
        twice = upgrade_document(once)

        assert once == twice
        assert deserialize(once) == deserialize(legacy)

    def test_upgrade_does_not_mutate_input(self):
        legacy = {"greeting": "Hi", "menu": {"prompt": "Press 1", "options": [{"digit": "1"}]}}
        snapshot = copy.deepcopy(legacy)

        upgrade_document(legacy)

        assert legacy == snapshot

    def test_empty_legacy_document(self):
        assert deserialize({}) == []
        assert deserialize(None) == []


class TestConfigDecoding:
    """Tests for coercing loosely-typed wire values into block configs."""

    def test_single_number_string_is_one_number(self):
        block = Block.from_dict({"id": "1", "type": "multi_forward", "config": {"numbers": "+15551234567"}})

        assert block.config.numbers == ["+15551234567"]

    def test_comma_separated_numbers_are_split(self):
        block = Block.from_dict({
            "id": "1",
            "type": "multi_forward",
            "config": {"numbers": "+15550001111, +15550002222,"},
        })

        assert block.config.numbers == ["+15550001111", "+15550002222"]

    @pytest.mark.parametrize("numbers", [5, {"primary": "+15550001111"}])
    def test_non_list_numbers_rejected(self, numbers):
        with pytest.raises(FlowFormatError):
            Block.from_dict({"id": "1", "type": "multi_forward", "config": {"numbers": numbers}})

    def test_string_connection_is_one_target(self):
        block = Block.from_dict({"id": "1", "type": "say", "connections": "2"})

        assert block.connections == ["2"]

    def test_non_list_connections_rejected(self):
        with pytest.raises(FlowFormatError):
            Block.from_dict({"id": "1", "type": "say", "connections": {"next": "2"}})

    def test_non_mapping_position_rejected(self):
        with pytest.raises(FlowFormatError):
            Block.from_dict({"id": "1", "type": "say", "position": [10, 20]})

    def test_non_mapping_config_rejected(self):
        with pytest.raises(FlowFormatError):
            Block.from_dict({"id": "1", "type": "say", "config": "Hello"})

    @pytest.mark.parametrize("options", [["1"], [None], {"digit": "1"}, "1"])
    def test_malformed_menu_options_rejected(self, options):
        """Test menu options that are not mappings raise a format error."""
        with pytest.raises(FlowFormatError):
            Block.from_dict({"id": "1", "type": "gather", "config": {"options": options}})

    def test_malformed_menu_option_in_document(self):
        document = {"version": CURRENT_VERSION, "blocks": [{"id": "1", "type": "gather", "config": {"options": ["1"]}}]}

        with pytest.raises(FlowFormatError):
            deserialize(document)
