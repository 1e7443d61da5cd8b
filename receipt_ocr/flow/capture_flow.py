"""
Capture to Verification Flow

Explicit state machine behind the camera screens:

    Idle -> Capturing -> Encoding -> Requesting -> Succeeded | Failed
                         Encoding -> Failed (unreadable image)

- One recognition attempt in flight per flow instance
- reset() (or a new capture after a terminal state) returns to Idle and
  discards the image, payload and result of the previous attempt
- Results arriving for an abandoned attempt are dropped (attempt id guard)
- No automatic retries; a new attempt always starts from Idle
"""

import logging
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, List, Callable, Union, Dict, FrozenSet
from dataclasses import dataclass, field

from receipt_ocr.errors import (
    OCRPipelineError,
    ErrorDescriptor,
    FlowBusyError,
    InvalidTransitionError,
)
from receipt_ocr.models import CapturedImage, EncodedPayload, OCRResult
from receipt_ocr.services.image_encoder import ImageEncoder, ImageRef
from receipt_ocr.clients.ocr_client import OCRClient
from receipt_ocr.utils.correlation import generate_correlation_id
from receipt_ocr.logging_config import set_request_context, clear_request_context
from receipt_ocr import sentry_integration

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    """Stage of the current capture attempt."""
    IDLE = "idle"
    CAPTURING = "capturing"
    ENCODING = "encoding"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Idle is reachable from every state (abandon / reset)
ALLOWED_TRANSITIONS: Dict[FlowState, FrozenSet[FlowState]] = {
    FlowState.IDLE: frozenset({FlowState.CAPTURING}),
    FlowState.CAPTURING: frozenset({FlowState.ENCODING, FlowState.IDLE}),
    FlowState.ENCODING: frozenset({FlowState.REQUESTING, FlowState.FAILED, FlowState.IDLE}),
    FlowState.REQUESTING: frozenset({FlowState.SUCCEEDED, FlowState.FAILED, FlowState.IDLE}),
    FlowState.SUCCEEDED: frozenset({FlowState.IDLE}),
    FlowState.FAILED: frozenset({FlowState.IDLE}),
}

IN_FLIGHT_STATES = frozenset({FlowState.ENCODING, FlowState.REQUESTING})
TERMINAL_STATES = frozenset({FlowState.SUCCEEDED, FlowState.FAILED})


@dataclass(frozen=True)
class FlowTransition:
    from_state: FlowState
    to_state: FlowState
    attempt_id: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class VerificationInput:
    """What the verification stage receives: text or an error, never image data."""
    attempt_id: int
    text: Optional[str] = None
    error: Optional[ErrorDescriptor] = None

    @property
    def success(self) -> bool:
        return self.error is None


TransitionListener = Callable[[FlowTransition], None]


class CaptureFlow:
    """
    Drives one capture -> recognize -> verify attempt at a time.

    Usage:
        flow = CaptureFlow(encoder=ImageEncoder(), client=OCRClient(url))
        flow.capture("file:///tmp/receipt.jpg")
        result = await flow.process()
    """

    def __init__(self, encoder: ImageEncoder, client: OCRClient, history_limit: int = 100):
        self.encoder = encoder
        self.client = client
        self.history_limit = history_limit

        self._state = FlowState.IDLE
        self._attempt_id = 0
        self._image: Optional[CapturedImage] = None
        self._payload: Optional[EncodedPayload] = None
        self._result: Optional[OCRResult] = None
        self._history: List[FlowTransition] = []
        self._listeners: List[TransitionListener] = []

    # ==================== STATE ====================

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def attempt_id(self) -> int:
        return self._attempt_id

    @property
    def image(self) -> Optional[CapturedImage]:
        return self._image

    @property
    def result(self) -> Optional[OCRResult]:
        return self._result

    @property
    def history(self) -> List[FlowTransition]:
        return list(self._history)

    @property
    def is_busy(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==================== TRANSITIONS ====================

    def capture(self, image_ref: Union[CapturedImage, ImageRef]) -> int:
        """
        Start a new attempt with a freshly captured image.

        A previous terminal attempt is discarded first.

        Returns:
            The id of the new attempt

        Raises:
            FlowBusyError: an attempt is still encoding or requesting
        """
        if self.is_busy:
            raise FlowBusyError(
                f"Attempt {self._attempt_id} is still {self._state.value}; reset() before capturing again"
            )

        if self._state != FlowState.IDLE:
            self.reset()

        image = CapturedImage.from_ref(image_ref)
        self._attempt_id += 1
        self._image = image
        self._transition(FlowState.CAPTURING)

        logger.info(f"Attempt {self._attempt_id} captured image {image.id}")
        return self._attempt_id

    async def process(self, correlation_id: Optional[str] = None) -> Optional[OCRResult]:
        """
        Encode the captured image and submit it for recognition.

        Returns:
            The OCRResult of this attempt, or None if the attempt was
            abandoned before it completed.

        Raises:
            InvalidTransitionError: nothing has been captured
        """
        if self._state != FlowState.CAPTURING:
            raise InvalidTransitionError(self._state, FlowState.ENCODING)

        attempt_id = self._attempt_id
        image = self._image
        correlation_id = correlation_id or generate_correlation_id()
        set_request_context(correlation_id=correlation_id, attempt_id=attempt_id)

        try:
            self._transition(FlowState.ENCODING)
            try:
                payload = await self.encoder.encode_async(image)
            except OCRPipelineError as e:
                return self._complete(attempt_id, error=e, correlation_id=correlation_id)

            if self._is_stale(attempt_id):
                return None

            self._payload = payload
            self._transition(FlowState.REQUESTING)
            try:
                text = await self.client.recognize(payload, correlation_id=correlation_id)
            except OCRPipelineError as e:
                return self._complete(attempt_id, error=e, correlation_id=correlation_id)

            return self._complete(attempt_id, text=text, correlation_id=correlation_id)
        finally:
            clear_request_context()

    async def run(self, image_ref: Union[CapturedImage, ImageRef]) -> Optional[OCRResult]:
        """Capture and process in one step."""
        self.capture(image_ref)
        return await self.process()

    def reset(self):
        """
        Abandon the current attempt and return to Idle.

        An outstanding request keeps running but its result is dropped.
        """
        if self._state == FlowState.IDLE:
            return

        abandoned = self._attempt_id
        was_busy = self.is_busy
        self._transition(FlowState.IDLE)
        self._image = None
        self._payload = None
        self._result = None
        # retire the attempt id so late results are recognised as stale
        self._attempt_id += 1

        if was_busy:
            logger.info(f"Attempt {abandoned} abandoned while in flight")

    def verification_input(self) -> Optional[VerificationInput]:
        """Outcome of the finished attempt for the verification stage."""
        if self._result is None:
            return None
        return VerificationInput(
            attempt_id=self._result.attempt_id,
            text=self._result.text,
            error=self._result.error_descriptor,
        )

    # ==================== INTERNALS ====================

    def _is_stale(self, attempt_id: int) -> bool:
        if attempt_id != self._attempt_id:
            logger.info(f"Discarding stale result for attempt {attempt_id} (current: {self._attempt_id})")
            return True
        return False

    def _complete(
        self,
        attempt_id: int,
        text: Optional[str] = None,
        error: Optional[OCRPipelineError] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[OCRResult]:
        if self._is_stale(attempt_id):
            return None

        result = OCRResult(
            attempt_id=attempt_id,
            text=text,
            error=error,
            correlation_id=correlation_id,
        )
        self._result = result
        self._payload = None

        if error is None:
            self._transition(FlowState.SUCCEEDED)
        else:
            logger.warning(f"Attempt {attempt_id} failed: {error.code} - {error.message}")
            sentry_integration.capture_exception(
                error,
                attempt_id=attempt_id,
                stage=self._state.value,
                error_kind=error.kind.value,
                correlation_id=correlation_id,
            )
            self._transition(FlowState.FAILED)

        return result

    def _transition(self, to_state: FlowState):
        from_state = self._state
        if to_state not in ALLOWED_TRANSITIONS[from_state]:
            raise InvalidTransitionError(from_state, to_state)

        self._state = to_state
        transition = FlowTransition(from_state=from_state, to_state=to_state, attempt_id=self._attempt_id)
        self._history.append(transition)
        if len(self._history) > self.history_limit:
            del self._history[: len(self._history) - self.history_limit]

        logger.debug(f"Attempt {self._attempt_id}: {from_state.value} -> {to_state.value}")

        for listener in list(self._listeners):
            listener(transition)
