"""
Deferred generation: wait for readiness, then dispatch once
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import Optional

from studio.dispatcher import InferenceDispatcher, PayloadKind
from studio.errors import ReadinessError, StudioError
from studio.log import logger
from studio.readiness import ReadinessPoller
from studio.typing import InferenceRequest, InferenceResult, WorkflowOutcome


class DeferredGeneration:
    """Compose a poller and a dispatcher.

    The dispatcher runs at most once per ``run`` call and only after the poller
    produced ``True``. Cancelling the task running ``run`` closes the poller,
    so no further probes are scheduled and nothing is dispatched.
    """

    def __init__(
        self,
        poller: ReadinessPoller,
        dispatcher: InferenceDispatcher,
        readiness_timeout: Optional[float] = None,
    ):
        self.poller = poller
        self.dispatcher = dispatcher
        self.readiness_timeout = readiness_timeout

    async def wait_until_ready(self, request: InferenceRequest) -> None:
        async with aclosing(self.poller.poll(request.model)) as flags:
            async for ready in flags:
                if ready:
                    return
        raise ReadinessError(
            f"Readiness sequence for {request.model} ended without a ready signal",
            user_message=f"Model {request.model} never became ready.",
        )

    async def run(
        self, request: InferenceRequest, kind: PayloadKind = "image"
    ) -> InferenceResult:
        if self.readiness_timeout is None:
            await self.wait_until_ready(request)
        else:
            try:
                await asyncio.wait_for(
                    self.wait_until_ready(request), timeout=self.readiness_timeout
                )
            except asyncio.TimeoutError as e:
                raise ReadinessError(
                    f"Model {request.model} not ready within {self.readiness_timeout}s",
                    user_message=f"Model {request.model} is still loading, please try again later.",
                ) from e
        return await self.dispatcher.dispatch(request, kind=kind)

    async def run_outcome(
        self, request: InferenceRequest, kind: PayloadKind = "image"
    ) -> WorkflowOutcome:
        """Same as ``run`` but reports failures as a value"""
        try:
            result = await self.run(request, kind=kind)
        except StudioError as e:
            logger.error(f"Deferred generation for {request.model} failed: {e.message}")
            return WorkflowOutcome(
                ok=False,
                error=e.user_message,
                error_type=e.err_type,
                status_code=e.status_code,
            )
        return WorkflowOutcome(ok=True, result=result)
