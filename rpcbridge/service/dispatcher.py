#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Call dispatcher and per-request state machine.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import asyncio
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from ..core.utils.exceptions import ApplicationError, DispatchError, ExceptionFormatter
from ..core.utils.logger import ModernLogger
from ..protocols.models import CallEnvelope, ResultEnvelope, SerializationFormat
from .invocation import Invocation, InvocationAdapter
from .registry import MethodDescriptor, ServiceBinding, ServiceRegistry


class RequestState(str, Enum):
    """
    Lifecycle states of one RPC request.
    """

    RECEIVED = "received"
    NEGOTIATED = "negotiated"
    DECODED = "decoded"
    RESOLVED = "resolved"
    INVOKED = "invoked"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT_STATE: Dict[RequestState, RequestState] = {
    RequestState.RECEIVED: RequestState.NEGOTIATED,
    RequestState.NEGOTIATED: RequestState.DECODED,
    RequestState.DECODED: RequestState.RESOLVED,
    RequestState.RESOLVED: RequestState.INVOKED,
    RequestState.INVOKED: RequestState.COMPLETED,
}
_TERMINAL_STATES: FrozenSet[RequestState] = frozenset(
    {RequestState.COMPLETED, RequestState.FAILED}
)


class RequestLifecycle:
    """
    Linear state machine ``RECEIVED -> ... -> COMPLETED`` with an error exit
    from every non-terminal state to ``FAILED(kind)``.
    """

    def __init__(self, initial: RequestState = RequestState.RECEIVED) -> None:
        self.state = initial
        self.failure_kind: Optional[str] = None
        self.history: List[RequestState] = [initial]

    @property
    def terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    def advance(self, state: RequestState) -> None:
        if _NEXT_STATE.get(self.state) is not state:
            raise RuntimeError(
                f"Invalid request state transition: {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)

    def fail(self, kind: str) -> None:
        if self.terminal:
            raise RuntimeError(
                f"Invalid request state transition: {self.state.value} -> failed"
            )
        self.state = RequestState.FAILED
        self.failure_kind = kind
        self.history.append(RequestState.FAILED)


class Dispatcher(ModernLogger):
    """
    Resolve ``key:method`` against the registry and run the call.

    The dispatcher does not know how a method completes; the invocation
    adapter owns that. It only turns the outcome into a ``ResultEnvelope``:
    a value becomes a success, a declared exception an application exception,
    anything else an internal error.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        adapter: Optional[InvocationAdapter] = None,
    ) -> None:
        super().__init__(name="Dispatcher")
        self._registry = registry.freeze()
        self._adapter = adapter or InvocationAdapter()
        self._background: Set["asyncio.Task[Any]"] = set()

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    def resolve(self, call: CallEnvelope) -> Tuple[ServiceBinding, MethodDescriptor]:
        binding = self._registry.resolve(call.service_key)
        return binding, binding.resolve_method(call.method_name)

    async def dispatch(
        self,
        serialization_format: SerializationFormat,
        call: CallEnvelope,
        lifecycle: Optional[RequestLifecycle] = None,
    ) -> Optional[ResultEnvelope]:
        """
        Run one decoded call. Returns None for oneway calls.

        Raises ``DispatchError`` when the service or method does not exist.
        """
        lifecycle = lifecycle or RequestLifecycle(RequestState.DECODED)

        try:
            binding, method = self.resolve(call)
        except DispatchError as exc:
            lifecycle.fail("dispatch")
            self.debug("Dispatch failed for %s: %s", call.wire_name, exc)
            raise
        lifecycle.advance(RequestState.RESOLVED)

        invocation = Invocation(
            serialization_format=serialization_format,
            call=call,
            binding=binding,
            method=method,
        )
        lifecycle.advance(RequestState.INVOKED)

        if call.oneway or method.oneway:
            self._spawn_oneway(invocation)
            lifecycle.advance(RequestState.COMPLETED)
            return None

        try:
            value = await self._adapter.invoke(invocation)
        except asyncio.CancelledError:
            lifecycle.fail("cancelled")
            raise
        except Exception as exc:
            result = self._result_from_exception(invocation, exc)
        else:
            result = ResultEnvelope.success(call, value)

        lifecycle.advance(RequestState.COMPLETED)
        return result

    async def drain(self) -> None:
        """
        Wait for outstanding oneway invocations.
        """
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn_oneway(self, invocation: Invocation) -> None:
        task = asyncio.ensure_future(self._run_oneway(invocation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_oneway(self, invocation: Invocation) -> None:
        try:
            await self._adapter.invoke(invocation)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.warning(
                "Oneway invocation %s failed: %s",
                invocation.label,
                ExceptionFormatter.format_exception_summary(exc),
            )

    def _result_from_exception(self, invocation: Invocation, exc: Exception) -> ResultEnvelope:
        call = invocation.call
        if invocation.method.declares(exc):
            if isinstance(exc, ApplicationError):
                fields = exc.to_fields()
                name = exc.exception_name
            else:
                fields = {"message": str(exc)}
                name = exc.__class__.__name__
            self.debug("Invocation %s raised declared %s", invocation.label, name)
            return ResultEnvelope.application_exception(call, name, fields)

        self.error(
            "Unhandled exception in %s",
            invocation.label,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return ResultEnvelope.internal_error(
            call,
            "Internal error processing {0}: {1}".format(
                call.wire_name, ExceptionFormatter.format_exception_summary(exc)
            ),
        )
