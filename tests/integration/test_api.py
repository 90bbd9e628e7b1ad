"""Integration tests for the HTTP API and the voice webhooks."""

import pytest

from callflow.plans import Entitlement


def say_hangup_payload(number_id, name="Main", text="Welcome to Acme"):
    return {
        "flow_name": name,
        "twilio_number_id": number_id,
        "voice": "Polly.Joanna",
        "blocks": [
            {"id": "1", "type": "say", "config": {"text": text}, "connections": ["2"]},
            {"id": "2", "type": "hangup"},
        ],
    }


class TestHealthAndCatalog:
    """Tests for the health check and static catalog."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_block_catalog(self, client):
        response = await client.get("/api/v1/catalog/blocks")

        assert response.status_code == 200
        types = {d["type"] for d in response.json()}
        assert {"say", "gather", "forward", "multi_forward", "hangup"} <= types

    @pytest.mark.asyncio
    async def test_voices_and_presets(self, client):
        voices = (await client.get("/api/v1/catalog/voices")).json()
        presets = (await client.get("/api/v1/catalog/presets")).json()

        assert voices[0]["value"] == "alice"
        assert {p["id"] for p in presets} == {"business-hours", "customer-support", "test-call-flow"}

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        """Test requests without an authenticated user are rejected."""
        del client.headers["X-User-ID"]

        response = await client.get("/api/v1/flows")

        assert response.status_code == 422


class TestFlowRoutes:
    """Tests for flow CRUD routes."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, client, phone_number):
        created = await client.post("/api/v1/flows", json=say_hangup_payload(phone_number.id))

        assert created.status_code == 201
        flow = created.json()
        assert flow["flow_config"]["version"] == "2.0"
        assert flow["is_active"] is True

        fetched = await client.get(f"/api/v1/flows/{flow['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["flow_name"] == "Main"

        listed = (await client.get("/api/v1/flows")).json()
        assert listed["total"] == 1

    @pytest.mark.asyncio
    async def test_validation_error(self, client, phone_number):
        payload = say_hangup_payload(phone_number.id, name="")

        response = await client.post("/api/v1/flows", json=payload)

        assert response.status_code == 422
        assert response.json()["message"] == "Please provide a flow name and select a phone number."

    @pytest.mark.asyncio
    async def test_foreign_number_forbidden(self, client, services):
        from callflow.models import PhoneNumber

        await services.number_store.add(
            PhoneNumber(id="num_other", user_id="usr_other", phone_number="+15559990000", twilio_sid="PN9")
        )

        response = await client.post("/api/v1/flows", json=say_hangup_payload("num_other"))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_malformed_menu_option(self, client, phone_number):
        """Test a menu option that is not an object is a client error."""
        payload = say_hangup_payload(phone_number.id)
        payload["blocks"].append({"id": "3", "type": "gather", "config": {"options": ["1"]}})

        response = await client.post("/api/v1/flows", json=payload)

        assert response.status_code == 400
        assert response.json()["code"] == "flow_format"

    @pytest.mark.asyncio
    async def test_numbers_as_text_stored_as_list(self, client, phone_number):
        payload = say_hangup_payload(phone_number.id)
        payload["blocks"] = [
            {"id": "1", "type": "multi_forward", "config": {"numbers": "+15550002222, +15550003333"}},
        ]

        response = await client.post("/api/v1/flows", json=payload)

        assert response.status_code == 201
        config = response.json()["flow_config"]["blocks"][0]["config"]
        assert config["numbers"] == ["+15550002222", "+15550003333"]

    @pytest.mark.asyncio
    async def test_missing_flow(self, client):
        response = await client.get("/api/v1/flows/nope")

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client, phone_number):
        flow = (await client.post("/api/v1/flows", json=say_hangup_payload(phone_number.id))).json()

        updated = await client.put(f"/api/v1/flows/{flow['id']}", json={"flow_name": "Renamed"})
        assert updated.status_code == 200
        assert updated.json()["flow_name"] == "Renamed"

        deleted = await client.delete(f"/api/v1/flows/{flow['id']}")
        assert deleted.status_code == 204
        assert (await client.get(f"/api/v1/flows/{flow['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_twiml_preview(self, client, phone_number):
        flow = (await client.post("/api/v1/flows", json=say_hangup_payload(phone_number.id))).json()

        response = await client.get(f"/api/v1/flows/{flow['id']}/twiml")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert '<Say voice="Polly.Joanna">Welcome to Acme</Say><Hangup />' in response.text

    @pytest.mark.asyncio
    async def test_validate_route(self, client, phone_number):
        flow = (await client.post("/api/v1/flows", json=say_hangup_payload(phone_number.id))).json()

        response = await client.post(f"/api/v1/flows/{flow['id']}/validate")

        assert response.status_code == 200
        assert response.json()["valid"] is True


class TestEditorRoutes:
    """Tests for editor session routes."""

    @pytest.mark.asyncio
    async def test_build_and_save(self, client, phone_number):
        """Test building a flow block by block and saving it."""
        session = (await client.post("/api/v1/editor/sessions", json={})).json()
        sid = session["session_id"]
        assert session["mode"] == "idle"

        first = await client.post(
            f"/api/v1/editor/sessions/{sid}/blocks",
            json={"type": "say", "id": "greet", "config": {"text": "Hi there"}},
        )
        assert first.status_code == 201
        assert first.json()["blocks"][0]["position"] == {"x": 100, "y": 100}

        connecting = await client.put(
            f"/api/v1/editor/sessions/{sid}/connecting-from", json={"block_id": "greet"}
        )
        assert connecting.json()["mode"] == "connecting"

        second = (
            await client.post(f"/api/v1/editor/sessions/{sid}/blocks", json={"type": "hangup", "id": "bye"})
        ).json()
        assert second["mode"] == "idle"
        greet = next(b for b in second["blocks"] if b["id"] == "greet")
        assert greet["connections"] == ["bye"]

        saved = await client.post(
            f"/api/v1/editor/sessions/{sid}/save",
            json={"flow_name": "Built", "twilio_number_id": phone_number.id},
        )
        assert saved.status_code == 200
        assert [b["id"] for b in saved.json()["flow_config"]["blocks"]] == ["greet", "bye"]

        snapshot = (await client.get(f"/api/v1/editor/sessions/{sid}")).json()
        assert snapshot["flow_id"] == saved.json()["id"]

    @pytest.mark.asyncio
    async def test_palette_defaults_applied(self, client):
        sid = (await client.post("/api/v1/editor/sessions", json={})).json()["session_id"]

        response = await client.post(f"/api/v1/editor/sessions/{sid}/blocks", json={"type": "gather"})

        config = response.json()["blocks"][0]["config"]
        assert config["prompt"]
        assert config["options"]

    @pytest.mark.asyncio
    async def test_connect_and_delete(self, client):
        sid = (await client.post("/api/v1/editor/sessions", json={})).json()["session_id"]
        await client.post(f"/api/v1/editor/sessions/{sid}/blocks", json={"type": "say", "id": "a"})
        await client.post(f"/api/v1/editor/sessions/{sid}/blocks", json={"type": "hangup", "id": "b"})

        connected = (
            await client.post(
                f"/api/v1/editor/sessions/{sid}/connections", json={"source_id": "a", "target_id": "b"}
            )
        ).json()
        assert connected["blocks"][0]["connections"] == ["b"]

        after_delete = (await client.delete(f"/api/v1/editor/sessions/{sid}/blocks/b")).json()
        assert [b["id"] for b in after_delete["blocks"]] == ["a"]
        assert after_delete["blocks"][0]["connections"] == []

    @pytest.mark.asyncio
    async def test_move_block(self, client):
        sid = (await client.post("/api/v1/editor/sessions", json={})).json()["session_id"]
        await client.post(f"/api/v1/editor/sessions/{sid}/blocks", json={"type": "pause", "id": "p"})

        moved = await client.put(f"/api/v1/editor/sessions/{sid}/blocks/p/position", json={"x": 640, "y": 420})
        unknown = await client.put(f"/api/v1/editor/sessions/{sid}/blocks/nope/position", json={"x": 1, "y": 1})

        assert moved.json()["blocks"][0]["position"] == {"x": 640, "y": 420}
        assert unknown.status_code == 200

    @pytest.mark.asyncio
    async def test_open_from_preset(self, client):
        response = await client.post("/api/v1/editor/sessions", json={"preset_id": "business-hours"})

        assert response.status_code == 201
        assert [b["id"] for b in response.json()["blocks"]] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_unknown_preset(self, client):
        response = await client.post("/api/v1/editor/sessions", json={"preset_id": "nope"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_session_belongs_to_owner(self, client):
        sid = (await client.post("/api/v1/editor/sessions", json={})).json()["session_id"]

        response = await client.get(f"/api/v1/editor/sessions/{sid}", headers={"X-User-ID": "usr_other"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_close_session(self, client):
        sid = (await client.post("/api/v1/editor/sessions", json={})).json()["session_id"]

        assert (await client.delete(f"/api/v1/editor/sessions/{sid}")).status_code == 204
        assert (await client.get(f"/api/v1/editor/sessions/{sid}")).status_code == 404


class TestNumberRoutes:
    """Tests for phone number routes."""

    @pytest.mark.asyncio
    async def test_list(self, client, phone_number):
        response = await client.get("/api/v1/numbers")

        assert response.status_code == 200
        assert [n["phone_number"] for n in response.json()] == ["+15550001111"]

    @pytest.mark.asyncio
    async def test_search_available(self, client, provider):
        response = await client.get("/api/v1/numbers/available", params={"area_code": "415"})

        assert response.status_code == 200
        assert response.json()["total"] == 1
        criteria = provider.search_numbers.await_args.args[0]
        assert criteria.area_code == "415"

    @pytest.mark.asyncio
    async def test_search_rejects_bad_area_code(self, client):
        response = await client.get("/api/v1/numbers/available", params={"area_code": "41"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_purchase(self, client):
        response = await client.post("/api/v1/numbers/purchase", json={"phone_number": "+14155550100"})

        assert response.status_code == 201
        assert response.json()["twilio_sid"] == "PN_test_purchased"

    @pytest.mark.asyncio
    async def test_purchase_over_plan_limit(self, client, phone_number):
        response = await client.post("/api/v1/numbers/purchase", json={"phone_number": "+14155550100"})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_release(self, client, provider, phone_number):
        response = await client.delete(f"/api/v1/numbers/{phone_number.id}")

        assert response.status_code == 204
        provider.release_number.assert_awaited_once_with("PN_test_owned")


class TestVoiceWebhooks:
    """Tests for the Twilio voice webhooks."""

    @pytest.mark.asyncio
    async def test_unknown_number(self, client):
        response = await client.post(
            "/api/v1/voice/incoming", data={"CallSid": "CA1", "From": "+15557654321", "To": "+15550009999"}
        )

        assert response.status_code == 200
        assert "This number is not configured." in response.text
        assert "<Hangup />" in response.text

    @pytest.mark.asyncio
    async def test_number_without_flow(self, client, phone_number):
        response = await client.post("/api/v1/voice/incoming", data={"CallSid": "CA1", "To": "+15550001111"})

        assert response.status_code == 200
        assert "Hello! Thank you for calling." in response.text

    @pytest.mark.asyncio
    async def test_active_flow_answers(self, client, phone_number):
        await client.post("/api/v1/flows", json=say_hangup_payload(phone_number.id))

        response = await client.post("/api/v1/voice/incoming", data={"CallSid": "CA1", "To": "+15550001111"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "Welcome to Acme" in response.text

    @pytest.mark.asyncio
    async def test_minutes_exhausted(self, client, services, phone_number, user_id):
        await services.entitlements.set(Entitlement(user_id=user_id, minutes_used=500))

        response = await client.post("/api/v1/voice/incoming", data={"CallSid": "CA1", "To": "+15550001111"})

        assert "Your monthly minute limit has been reached." in response.text

    @pytest.mark.asyncio
    async def test_gather_routes_digit(self, client, services, phone_number, user_id):
        """Test a pressed digit continues at the option's target block."""
        from callflow.flows.catalog import preset_blocks

        await services.flows.create_flow(user_id, "Test", phone_number.id, preset_blocks("test-call-flow"))

        response = await client.post(
            "/api/v1/voice/gather?blockId=2&attempt=0", data={"Digits": "2", "To": "+15550001111"}
        )

        assert response.status_code == 200
        assert "Thank you for testing. Goodbye!" in response.text
        assert "<Hangup />" in response.text

    @pytest.mark.asyncio
    async def test_gather_invalid_digit_reprompts(self, client, services, phone_number, user_id):
        from callflow.flows.catalog import preset_blocks

        await services.flows.create_flow(user_id, "Test", phone_number.id, preset_blocks("test-call-flow"))

        response = await client.post(
            "/api/v1/voice/gather?blockId=2&attempt=0", data={"Digits": "9", "To": "+15550001111"}
        )

        assert response.status_code == 200
        assert "<Gather" in response.text
        assert "attempt=1" in response.text

    @pytest.mark.asyncio
    async def test_gather_without_flow(self, client):
        response = await client.post("/api/v1/voice/gather?blockId=2", data={"Digits": "1", "To": "+15550009999"})

        assert response.status_code == 200
        assert "This number is not configured." in response.text

    @pytest.mark.asyncio
    async def test_status_records_minutes(self, client, services, phone_number, user_id):
        response = await client.post(
            "/api/v1/voice/status",
            data={"CallSid": "CA1", "CallStatus": "completed", "CallDuration": "61", "To": "+15550001111"},
        )

        assert response.json() == {"status": "ok"}
        assert (await services.entitlements.get(user_id)).minutes_used == 2

    @pytest.mark.asyncio
    async def test_recording_and_transcription_acknowledged(self, client):
        recording = await client.post("/api/v1/voice/recording", data={"RecordingSid": "RE1"})
        transcription = await client.post("/api/v1/voice/transcription", data={"TranscriptionText": "hi"})

        assert recording.json() == {"status": "ok"}
        assert transcription.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_record_continues_flow(self, client, phone_number):
        """Test the call carries on past the record block once the message is taken."""
        payload = say_hangup_payload(phone_number.id, text="Thanks for your message")
        payload["blocks"] = [
            {"id": "0", "type": "record", "config": {"prompt": "Speak now"}, "connections": ["1"]},
            *payload["blocks"],
        ]
        await client.post("/api/v1/flows", json=payload)

        response = await client.post(
            "/api/v1/voice/record?blockId=0",
            data={"CallSid": "CA1", "To": "+15550001111", "RecordingUrl": "https://example.com/RE1"},
        )

        assert response.status_code == 200
        assert "Thanks for your message" in response.text
        assert "Speak now" not in response.text
        assert "<Record" not in response.text
        assert "<Hangup />" in response.text

    @pytest.mark.asyncio
    async def test_record_without_flow(self, client):
        response = await client.post("/api/v1/voice/record?blockId=0", data={"To": "+15550009999"})

        assert response.status_code == 200
        assert "This number is not configured." in response.text

    @pytest.mark.asyncio
    async def test_voicemail_ends_call(self, client, phone_number):
        from callflow.compiler.forwarding import VOICEMAIL_GOODBYE

        response = await client.post(
            "/api/v1/voice/voicemail",
            data={"CallSid": "CA1", "To": "+15550001111", "RecordingUrl": "https://example.com/RE2"},
        )

        assert response.status_code == 200
        assert VOICEMAIL_GOODBYE in response.text
        assert "<Hangup />" in response.text
        assert "/voice/incoming" not in response.text
