"""
Unit Tests for CaptureFlow

Tests the capture -> encode -> request -> result state machine:
- Stage ordering and the transition table
- Failure classification into ErrorDescriptors
- At-most-one attempt in flight
- Stale responses from abandoned attempts are dropped
- Verification input never exposes image data

Run with: pytest tests/test_capture_flow.py -v
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from receipt_ocr.errors import (
    ErrorKind,
    FlowBusyError,
    InvalidTransitionError,
    NetworkError,
    ServerError,
)
from receipt_ocr.clients.ocr_client import OCRClient
from receipt_ocr.models import EncodedPayload
from receipt_ocr.services.image_encoder import ImageEncoder
from receipt_ocr.flow.capture_flow import (
    CaptureFlow,
    FlowState,
    VerificationInput,
    ALLOWED_TRANSITIONS,
)

from conftest import build_ocr_backend, asgi_transport, OCR_BASE_URL


class GatedClient:
    """OCR client whose responses are released by the test, one per call."""

    def __init__(self):
        self.calls = []
        self.gates = []

    async def recognize(self, payload, correlation_id=None):
        gate = asyncio.get_running_loop().create_future()
        self.calls.append(payload)
        self.gates.append(gate)
        return await gate


class GatedEncoder:
    """Encoder whose result is released by the test."""

    def __init__(self, payload):
        self.payload = payload
        self.gate = None

    async def encode_async(self, image_ref):
        self.gate = asyncio.get_running_loop().create_future()
        await self.gate
        return self.payload


async def wait_for_state(flow: CaptureFlow, state: FlowState, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while flow.state != state:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"flow stuck in {flow.state.value}, expected {state.value}")
        await asyncio.sleep(0.005)


@pytest.fixture
def encoder():
    return ImageEncoder()


@pytest.fixture
def mock_client():
    client = MagicMock(spec=OCRClient)
    client.recognize = AsyncMock(return_value="TOTAL 12.34")
    return client


@pytest.fixture
def flow(encoder, mock_client):
    return CaptureFlow(encoder=encoder, client=mock_client)


class TestHappyPath:
    """A successful attempt walks every stage in order."""

    @pytest.mark.asyncio
    async def test_stages_in_order(self, encoder, jpeg_file):
        client = OCRClient(base_url=OCR_BASE_URL, transport=asgi_transport(build_ocr_backend()))
        flow = CaptureFlow(encoder=encoder, client=client)
        seen = []
        flow.subscribe(lambda t: seen.append(t.to_state))

        flow.capture(jpeg_file)
        result = await flow.process()

        assert seen == [
            FlowState.CAPTURING,
            FlowState.ENCODING,
            FlowState.REQUESTING,
            FlowState.SUCCEEDED,
        ]
        assert flow.state == FlowState.SUCCEEDED
        assert result.success
        assert result.text == "TOTAL 12.34"
        assert flow.result is result

    @pytest.mark.asyncio
    async def test_payload_sent_to_client(self, flow, mock_client, jpeg_file):
        flow.capture(jpeg_file)
        await flow.process(correlation_id="linux-host-1704067200000-abcdefgh")

        payload = mock_client.recognize.call_args.args[0]
        assert payload.data_uri.startswith("data:image/jpeg;base64,")
        assert mock_client.recognize.call_args.kwargs["correlation_id"] == "linux-host-1704067200000-abcdefgh"

    @pytest.mark.asyncio
    async def test_verification_input_has_text_only(self, flow, jpeg_file):
        await flow.run(jpeg_file)

        verification = flow.verification_input()

        assert isinstance(verification, VerificationInput)
        assert verification.success
        assert verification.text == "TOTAL 12.34"
        assert verification.error is None
        assert set(vars(verification)) == {"attempt_id", "text", "error"}

    @pytest.mark.asyncio
    async def test_history_records_attempt(self, flow, jpeg_file):
        attempt_id = flow.capture(jpeg_file)
        await flow.process()

        assert [t.attempt_id for t in flow.history] == [attempt_id] * 4
        assert flow.history[0].from_state == FlowState.IDLE

    def test_no_verification_input_before_result(self, flow):
        assert flow.verification_input() is None


class TestFailures:
    """Every failure lands in Failed with a classified descriptor."""

    @pytest.mark.asyncio
    async def test_encoding_error(self, flow, mock_client, tmp_path):
        seen = []
        flow.subscribe(lambda t: seen.append(t.to_state))

        result = await flow.run(tmp_path / "missing.jpg")

        assert flow.state == FlowState.FAILED
        assert seen == [FlowState.CAPTURING, FlowState.ENCODING, FlowState.FAILED]
        assert result.error_descriptor.kind == ErrorKind.ENCODING
        mock_client.recognize.assert_not_called()

    @pytest.mark.asyncio
    async def test_server_error_descriptor(self, flow, mock_client, jpeg_file):
        mock_client.recognize.side_effect = ServerError(503)

        await flow.run(jpeg_file)

        verification = flow.verification_input()
        assert flow.state == FlowState.FAILED
        assert not verification.success
        assert verification.text is None
        assert verification.error.kind == ErrorKind.SERVER
        assert verification.error.status_code == 503
        assert "unavailable" in verification.error.user_message

    @pytest.mark.asyncio
    async def test_network_error_descriptor(self, flow, mock_client, jpeg_file):
        mock_client.recognize.side_effect = NetworkError("connection refused")

        await flow.run(jpeg_file)

        error = flow.verification_input().error
        assert error.kind == ErrorKind.NETWORK
        assert error.to_dict()["kind"] == "network"

    @pytest.mark.asyncio
    async def test_misconfigured_client(self, encoder, jpeg_file):
        flow = CaptureFlow(encoder=encoder, client=OCRClient(base_url=""))

        await flow.run(jpeg_file)

        assert flow.verification_input().error.kind == ErrorKind.CONFIGURATION

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, flow, mock_client, jpeg_file):
        mock_client.recognize.side_effect = ServerError(500)

        await flow.run(jpeg_file)

        assert mock_client.recognize.await_count == 1
        assert flow.state == FlowState.FAILED

    @pytest.mark.asyncio
    async def test_failure_reported_to_error_tracking(self, flow, mock_client, jpeg_file):
        error = NetworkError("timed out")
        mock_client.recognize.side_effect = error

        with patch("receipt_ocr.flow.capture_flow.sentry_integration.capture_exception") as capture:
            await flow.run(jpeg_file)

        capture.assert_called_once()
        assert capture.call_args.args[0] is error
        assert capture.call_args.kwargs["stage"] == "requesting"

    @pytest.mark.asyncio
    async def test_unexpected_exception_propagates(self, flow, mock_client, jpeg_file):
        """Only classified errors become results; bugs are not swallowed."""
        mock_client.recognize.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await flow.run(jpeg_file)


class TestTransitions:
    """The transition table forbids skipping stages."""

    def test_requesting_only_from_encoding(self):
        for state, targets in ALLOWED_TRANSITIONS.items():
            assert (FlowState.REQUESTING in targets) == (state == FlowState.ENCODING)

    def test_terminal_states_only_from_requesting_or_encoding(self):
        sources = {s for s, targets in ALLOWED_TRANSITIONS.items() if FlowState.SUCCEEDED in targets}
        assert sources == {FlowState.REQUESTING}

    @pytest.mark.asyncio
    async def test_process_without_capture(self, flow):
        with pytest.raises(InvalidTransitionError):
            await flow.process()

        assert flow.state == FlowState.IDLE

    @pytest.mark.asyncio
    async def test_process_twice(self, flow, jpeg_file):
        await flow.run(jpeg_file)

        with pytest.raises(InvalidTransitionError):
            await flow.process()

    def test_direct_jump_to_requesting_rejected(self, flow, jpeg_file):
        flow.capture(jpeg_file)

        with pytest.raises(InvalidTransitionError):
            flow._transition(FlowState.REQUESTING)

        assert flow.state == FlowState.CAPTURING

    @pytest.mark.asyncio
    async def test_new_capture_resets_previous_result(self, flow, jpeg_file):
        first = flow.capture(jpeg_file)
        await flow.process()

        second = flow.capture(jpeg_file)

        assert second > first
        assert flow.state == FlowState.CAPTURING
        assert flow.result is None
        assert flow.verification_input() is None
        assert [t.to_state for t in flow.history][-2:] == [FlowState.IDLE, FlowState.CAPTURING]

    def test_reset_from_capturing(self, flow, jpeg_file):
        flow.capture(jpeg_file)

        flow.reset()

        assert flow.state == FlowState.IDLE
        assert flow.image is None

    def test_reset_when_idle_is_noop(self, flow):
        flow.reset()

        assert flow.history == []

    def test_unsubscribe(self, flow, jpeg_file):
        seen = []
        unsubscribe = flow.subscribe(seen.append)
        unsubscribe()

        flow.capture(jpeg_file)

        assert seen == []


class TestConcurrency:
    """One attempt in flight; abandoned attempts never touch the flow."""

    @pytest.mark.asyncio
    async def test_capture_while_requesting_is_rejected(self, encoder, jpeg_file):
        client = GatedClient()
        flow = CaptureFlow(encoder=encoder, client=client)
        flow.capture(jpeg_file)
        task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.REQUESTING)

        with pytest.raises(FlowBusyError):
            flow.capture(jpeg_file)

        assert flow.is_busy
        client.gates[0].set_result("TOTAL 12.34")
        result = await task
        assert result.text == "TOTAL 12.34"
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_stale_response_after_reset_is_dropped(self, encoder, jpeg_file):
        client = GatedClient()
        flow = CaptureFlow(encoder=encoder, client=client)
        seen = []
        flow.subscribe(lambda t: seen.append(t.to_state))
        flow.capture(jpeg_file)
        task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.REQUESTING)

        flow.reset()
        client.gates[0].set_result("TOTAL 12.34")
        result = await task

        assert result is None
        assert flow.state == FlowState.IDLE
        assert flow.result is None
        assert seen[-1] == FlowState.IDLE
        assert FlowState.SUCCEEDED not in seen

    @pytest.mark.asyncio
    async def test_stale_failure_after_reset_is_dropped(self, encoder, jpeg_file):
        client = GatedClient()
        flow = CaptureFlow(encoder=encoder, client=client)
        flow.capture(jpeg_file)
        task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.REQUESTING)

        flow.reset()
        client.gates[0].set_exception(ServerError(500))

        assert await task is None
        assert flow.state == FlowState.IDLE

    @pytest.mark.asyncio
    async def test_stale_response_does_not_overwrite_new_attempt(self, encoder, jpeg_file, png_file):
        client = GatedClient()
        flow = CaptureFlow(encoder=encoder, client=client)

        flow.capture(jpeg_file)
        old_task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.REQUESTING)

        flow.reset()
        new_attempt = flow.capture(png_file)
        new_task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.REQUESTING)

        # old response arrives while the new one is still outstanding
        client.gates[0].set_result("OLD RECEIPT")
        assert await old_task is None
        assert flow.state == FlowState.REQUESTING

        client.gates[1].set_result("NEW RECEIPT")
        result = await new_task

        assert result.attempt_id == new_attempt
        assert flow.verification_input().text == "NEW RECEIPT"
        assert flow.state == FlowState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_reset_during_encoding_skips_request(self, mock_client, jpeg_file):
        encoder = GatedEncoder(EncodedPayload(
            data_uri="data:image/jpeg;base64,/9j/4AAQ",
            mime_type="image/jpeg",
            byte_size=6,
        ))
        flow = CaptureFlow(encoder=encoder, client=mock_client)
        seen = []
        flow.subscribe(lambda t: seen.append(t.to_state))
        flow.capture(jpeg_file)
        task = asyncio.create_task(flow.process())
        await wait_for_state(flow, FlowState.ENCODING)

        flow.reset()
        encoder.gate.set_result(None)
        result = await task

        assert result is None
        assert flow.state == FlowState.IDLE
        assert flow.result is None
        assert seen == [FlowState.CAPTURING, FlowState.ENCODING, FlowState.IDLE]
        mock_client.recognize.assert_not_called()
