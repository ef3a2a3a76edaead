"""
Call orchestrator scenarios driven through fake telephony and model legs.
"""

import asyncio
import json

import pytest

from switchboard.core.models import CallState
from switchboard.core.orchestrator import CallOrchestrator
from switchboard.lookups import PickupEvent

from conftest import FakeModel, FakeTelephony, wait_until


def _function_call(call_id, name, arguments):
    return {
        "type": "response.output_item.done",
        "item": {
            "type": "function_call",
            "call_id": call_id,
            "name": name,
            "arguments": json.dumps(arguments),
        },
    }


@pytest.fixture
def telephony():
    return FakeTelephony()


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def orchestrator(telephony, model, services):
    return CallOrchestrator("call-1", telephony, model, services)


async def _start_call(orchestrator, telephony, model):
    task = asyncio.create_task(orchestrator.run())
    telephony.start()
    await wait_until(lambda: orchestrator.session.greeted)
    model.push({"type": "response.done", "response": {"output": []}})
    await wait_until(lambda: not orchestrator.session.response_active)
    return task


async def _hang_up(task, telephony):
    telephony.push({"event": "stop"})
    return await asyncio.wait_for(task, timeout=2.0)


class TestGreeting:

    @pytest.mark.asyncio
    async def test_router_configured_then_greeted_once(self, orchestrator, telephony, model):
        task = asyncio.create_task(orchestrator.run())
        await wait_until(lambda: model.of_type("session.update"))

        update = model.of_type("session.update")[0]
        assert update["instructions"].startswith("You are the router.")
        assert update["tools"] == ["transfer_to_pickup", "transfer_to_items"]
        assert orchestrator.session.state == CallState.CONFIGURING
        # model ready, telephony not yet started: no greeting
        await asyncio.sleep(0.02)
        assert model.of_type("response.create") == []

        telephony.start()
        await wait_until(lambda: model.of_type("response.create"))
        telephony.start()
        await asyncio.sleep(0.02)

        assert len(model.of_type("response.create")) == 1
        assert orchestrator.session.state == CallState.ACTIVE
        assert await _hang_up(task, telephony) == "telephony_stop"

    @pytest.mark.asyncio
    async def test_telephony_ready_before_model(self, telephony, services):
        gate = asyncio.Event()
        model = FakeModel(connect_gate=gate)
        orchestrator = CallOrchestrator("call-2", telephony, model, services)
        task = asyncio.create_task(orchestrator.run())

        telephony.start()
        await asyncio.sleep(0.02)
        assert model.of_type("response.create") == []

        gate.set()
        await wait_until(lambda: model.of_type("response.create"))
        await asyncio.sleep(0.02)

        assert len(model.of_type("response.create")) == 1
        # the default persona is installed before the greeting is requested
        assert [m["type"] for m in model.sent[:2]] == ["session.update", "response.create"]
        await _hang_up(task, telephony)


class TestAudioRelay:

    @pytest.mark.asyncio
    async def test_caller_audio_dropped_while_assistant_speaks(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        telephony.media("caller-1")
        await wait_until(lambda: model.of_type("input_audio_buffer.append"))

        model.push({"type": "response.audio.delta", "delta": "bot-1"})
        model.push({"type": "response.output_audio.delta", "delta": "bot-2"})
        await wait_until(lambda: len(telephony.sent) == 2)
        telephony.media("caller-2")
        await asyncio.sleep(0.02)

        model.push({"type": "response.done", "response": {"output": []}})
        await wait_until(lambda: not orchestrator.gate.speaking)
        telephony.media("caller-3")
        await wait_until(lambda: len(model.of_type("input_audio_buffer.append")) == 2)

        assert [m["audio"] for m in model.of_type("input_audio_buffer.append")] == ["caller-1", "caller-3"]
        assert [m["payload"] for m in telephony.sent] == ["bot-1", "bot-2"]
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_passthrough_clears_on_barge_in(self, telephony, model, services):
        services.config.audio_gate.policy = "passthrough"
        orchestrator = CallOrchestrator("call-3", telephony, model, services)
        task = await _start_call(orchestrator, telephony, model)

        model.push({"type": "response.audio.delta", "delta": "bot-1"})
        await wait_until(lambda: telephony.sent)
        telephony.media("caller-1")
        model.push({"type": "input_audio_buffer.speech_started"})
        await wait_until(lambda: {"event": "clear"} in telephony.sent)

        assert model.of_type("input_audio_buffer.append")[0]["audio"] == "caller-1"
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_malformed_frames_ignored(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        telephony.push("not json at all")
        telephony.push({"event": "media"})
        telephony.media("caller-1")
        await wait_until(lambda: model.of_type("input_audio_buffer.append"))

        assert orchestrator.session.state == CallState.ACTIVE
        await _hang_up(task, telephony)


class TestHandoffScenario:

    @pytest.mark.asyncio
    async def test_pickup_handoff_replays_question(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        model.push(_function_call("fc-1", "transfer_to_pickup", {"caller_question": "when is pickup in Lakewood"}))
        await wait_until(lambda: model.of_type("user_text"))

        session = orchestrator.session
        assert session.active_persona.name == "pickup"
        output = model.of_type("function_call_output")[0]
        assert output["call_id"] == "fc-1"
        assert output["result"]["message"] == "Transferring you to the pickup specialist."
        assert model.of_type("session.update")[-1]["tools"] == ["get_pickup_times", "transfer_to_main_menu"]
        assert model.of_type("user_text") == [{"type": "user_text", "text": "when is pickup in Lakewood"}]
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_handoff_during_greeting_waits_for_response_done(self, orchestrator, telephony, model):
        task = asyncio.create_task(orchestrator.run())
        telephony.start()
        await wait_until(lambda: orchestrator.session.greeted)
        assert orchestrator.session.response_active

        model.push(_function_call("fc-1", "transfer_to_pickup", {}))
        await wait_until(lambda: orchestrator.session.deferred_response)

        assert orchestrator.session.active_persona.name == "pickup"
        assert len(model.of_type("session.update")) == 2
        assert len(model.of_type("response.create")) == 1

        model.push({"type": "response.done", "response": {"output": []}})
        await wait_until(lambda: len(model.of_type("response.create")) == 2)
        await asyncio.sleep(0.02)

        assert len(model.of_type("response.create")) == 2
        assert orchestrator.session.response_active
        assert not orchestrator.session.deferred_response
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_pickup_lookup_after_handoff(self, orchestrator, telephony, model, schedule):
        schedule.find_events.return_value = [
            PickupEvent("Lakewood", "Lakewood", "Tuesday, March 4", "5pm to 9pm", "123 Main St")
        ]
        task = await _start_call(orchestrator, telephony, model)
        model.push(_function_call("fc-1", "transfer_to_pickup", {}))
        await wait_until(lambda: orchestrator.session.active_persona.name == "pickup")

        model.push(_function_call("fc-2", "get_pickup_times", {"city": "Lakewood"}))
        await wait_until(lambda: len(model.of_type("function_call_output")) == 2)

        result = model.of_type("function_call_output")[1]["result"]
        assert result["outcome"] == "resolved"
        assert result["address"] == "123 Main St"
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_tool_outside_persona_gets_fallback(self, orchestrator, telephony, model, catalog):
        task = await _start_call(orchestrator, telephony, model)

        model.push(_function_call("fc-1", "get_item_info", {"item_query": "salmon", "focus": "both"}))
        await wait_until(lambda: model.of_type("function_call_output"))

        result = model.of_type("function_call_output")[0]["result"]
        assert result["error"] == "tool_not_available"
        assert result["message"] == "I'm having trouble accessing that information right now."
        catalog.search.assert_not_awaited()
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_duplicate_tool_call_dispatched_once(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)
        call = _function_call("fc-1", "transfer_to_items", {})

        model.push(call)
        model.push({"type": "response.done", "response": {"output": [call["item"]]}})
        await wait_until(lambda: orchestrator.session.active_persona.name == "items")
        await asyncio.sleep(0.02)

        assert len(model.of_type("function_call_output")) == 1
        await _hang_up(task, telephony)


class TestTeardown:

    @pytest.mark.asyncio
    async def test_model_connect_failure_closes_telephony(self, telephony, services):
        model = FakeModel(fail_connect=True)
        orchestrator = CallOrchestrator("call-4", telephony, model, services)

        reason = await asyncio.wait_for(orchestrator.run(), timeout=2.0)

        assert reason == "model_connect_failed"
        assert telephony.closed
        assert model.of_type("session.update") == []
        assert orchestrator.session.state == CallState.CLOSED

    @pytest.mark.asyncio
    async def test_benign_error_is_ignored(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        model.push({"type": "error", "error": {"code": "conversation_already_has_active_response"}})
        await asyncio.sleep(0.02)

        assert not task.done()
        await _hang_up(task, telephony)

    @pytest.mark.asyncio
    async def test_fatal_model_error_closes_both_legs(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        model.push({"type": "error", "error": {"code": "invalid_api_key", "message": "bad key"}})
        reason = await asyncio.wait_for(task, timeout=2.0)

        assert reason == "model_error"
        assert model.closed and telephony.closed
        assert orchestrator.session.active_persona is None

    @pytest.mark.asyncio
    async def test_model_leg_drop_closes_telephony(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)

        model.push(None)
        reason = await asyncio.wait_for(task, timeout=2.0)

        assert reason == "model_closed"
        assert telephony.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, orchestrator, telephony, model):
        task = await _start_call(orchestrator, telephony, model)
        await telephony.close()

        assert await asyncio.wait_for(task, timeout=2.0) == "telephony_closed"
        assert telephony.close_calls == 2
        assert model.closed

    @pytest.mark.asyncio
    async def test_late_lookup_result_discarded(self, orchestrator, telephony, model, schedule):
        release = asyncio.Event()

        async def slow_lookup(location):
            await release.wait()
            return []

        schedule.find_events.side_effect = slow_lookup
        task = await _start_call(orchestrator, telephony, model)
        model.push(_function_call("fc-1", "transfer_to_pickup", {}))
        await wait_until(lambda: orchestrator.session.active_persona.name == "pickup")
        model.push(_function_call("fc-2", "get_pickup_times", {"city": "Lakewood"}))
        await wait_until(lambda: schedule.find_events.await_count == 1)

        await _hang_up(task, telephony)
        release.set()
        await asyncio.sleep(0.02)

        assert [m["call_id"] for m in model.of_type("function_call_output")] == ["fc-1"]
