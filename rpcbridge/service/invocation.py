#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Invocation adapter: one completion contract for every service method style.

Three styles are driven here and nowhere else:

- ``SYNC``: the method returns (or raises) directly. It runs inline on the
  event loop, or on the configured blocking executor.
- ``COROUTINE``: the method is an ``async def``; it runs as a task.
- ``CALLBACK``: the method receives a ``CompletionHandle`` as its last
  positional argument and completes it exactly once, later, from any thread.

All three complete through the same ``CompletionHandle``, a single-assignment
slot. A second completion is rejected and reported as an ``AdapterViolation``;
it never reaches the response that was already produced.

Author: Silan Hu (silan.hu@u.nus.edu)
"""

import asyncio
import functools
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from ..core.utils.concurrency import call_in_loop, create_loop_future
from ..core.utils.exceptions import AdapterViolation, ExceptionFormatter
from ..core.utils.logger import ModernLogger
from ..protocols.models import CallEnvelope, SerializationFormat
from .registry import InvocationStyle, MethodDescriptor, ServiceBinding

_DEFAULT_REPORTER = ModernLogger(name="CompletionHandle")


class CompletionHandle:
    """
    Single-assignment completion slot handed to callback-style methods.

    ``complete`` and ``fail`` may be called from any thread. The first call
    wins and returns True; later calls return False and are reported as
    adapter violations. Once the request is cancelled, the first completion
    is accepted as a no-op.
    """

    def __init__(self, label: str = "", reporter: Optional[Any] = None) -> None:
        self.label = label
        self._reporter = reporter or _DEFAULT_REPORTER
        self._future = create_loop_future()
        self._loop = self._future.get_loop()
        self._lock = threading.Lock()
        self._completed = False
        self._cancelled = False
        self._cancel_listeners: List[Callable[[], Any]] = []
        self.violations: List[AdapterViolation] = []

    @property
    def done(self) -> bool:
        return self._completed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def complete(self, value: Any = None) -> bool:
        return self._settle(value, None)

    def fail(self, exc: BaseException) -> bool:
        if not isinstance(exc, BaseException):
            raise TypeError("fail() expects an exception instance")
        return self._settle(None, exc)

    def add_cancel_listener(self, listener: Callable[[], Any]) -> None:
        """
        Register a callable run when the request is cancelled before completion.
        """
        with self._lock:
            if not self._cancelled:
                self._cancel_listeners.append(listener)
                return
        self._run_listener(listener)

    def cancel(self) -> bool:
        """
        Signal that nobody waits for the outcome anymore.

        Returns True when the invocation was still pending.
        """
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            pending = not self._completed
            listeners, self._cancel_listeners = self._cancel_listeners, []

        self._future.cancel()
        if pending:
            for listener in listeners:
                self._run_listener(listener)
        return pending

    async def wait(self) -> Any:
        return await self._future

    def _settle(self, value: Any, exc: Optional[BaseException]) -> bool:
        with self._lock:
            if self._completed:
                violation = AdapterViolation(
                    "Completion handle invoked more than once",
                    invocation=self.label,
                )
                self.violations.append(violation)
                self._reporter.warning("%s", violation)
                return False
            self._completed = True
            cancelled = self._cancelled

        if cancelled:
            self._reporter.debug("Discarding late completion of %s", self.label)
            return True

        if not call_in_loop(self._loop, self._resolve, value, exc):
            self._reporter.debug(
                "Event loop closed before completion of %s was delivered", self.label
            )
        return True

    def _resolve(self, value: Any, exc: Optional[BaseException]) -> None:
        if self._future.done():
            return
        if exc is not None:
            self._future.set_exception(exc)
        else:
            self._future.set_result(value)

    def _run_listener(self, listener: Callable[[], Any]) -> None:
        try:
            listener()
        except Exception as exc:
            self._reporter.warning(
                "Cancel listener of %s failed: %s",
                self.label,
                ExceptionFormatter.format_exception_summary(exc),
            )


@dataclass
class Invocation:
    """
    Per-request call state: format, envelope, target and completion slot.
    """

    serialization_format: SerializationFormat
    call: CallEnvelope
    binding: ServiceBinding
    method: MethodDescriptor
    completion: Optional[CompletionHandle] = None

    @property
    def label(self) -> str:
        return "{0}:{1}#{2}".format(
            self.binding.key or "<default>", self.method.name, self.call.sequence_id
        )


class InvocationAdapter(ModernLogger):
    """
    Drive a resolved method according to its style and await its completion.
    """

    def __init__(self, blocking_executor: Optional[Executor] = None) -> None:
        super().__init__(name="InvocationAdapter")
        self._blocking_executor = blocking_executor

    async def invoke(self, invocation: Invocation) -> Any:
        """
        Run the method; return its value or raise what it raised.

        Cancelling the awaiting task cancels the completion handle, which
        propagates a best-effort cancellation into the implementation.
        """
        handle = CompletionHandle(label=invocation.label, reporter=self)
        invocation.completion = handle
        self._start(invocation.method, invocation.call.arguments, handle)

        try:
            return await handle.wait()
        except asyncio.CancelledError:
            if handle.cancel():
                self.debug("Invocation %s cancelled before completion", invocation.label)
            raise

    def _start(
        self,
        method: MethodDescriptor,
        arguments: Tuple[Any, ...],
        handle: CompletionHandle,
    ) -> None:
        if method.style is InvocationStyle.SYNC:
            if self._blocking_executor is None:
                self._run_sync(method.function, arguments, handle)
                return
            future = asyncio.get_running_loop().run_in_executor(
                self._blocking_executor,
                self._run_sync,
                method.function,
                arguments,
                handle,
            )
            handle.add_cancel_listener(future.cancel)
            return

        if method.style is InvocationStyle.COROUTINE:
            try:
                coroutine = method.function(*arguments)
            except Exception as exc:
                handle.fail(exc)
                return
            task = asyncio.ensure_future(coroutine)
            task.add_done_callback(functools.partial(self._complete_from_task, handle))
            handle.add_cancel_listener(task.cancel)
            return

        try:
            returned = method.function(*arguments, handle)
        except Exception as exc:
            handle.fail(exc)
            return
        cancel = getattr(returned, "cancel", None)
        if callable(cancel):
            handle.add_cancel_listener(cancel)

    @staticmethod
    def _run_sync(
        function: Callable[..., Any],
        arguments: Tuple[Any, ...],
        handle: CompletionHandle,
    ) -> None:
        try:
            value = function(*arguments)
        except Exception as exc:
            handle.fail(exc)
        else:
            handle.complete(value)

    @staticmethod
    def _complete_from_task(handle: CompletionHandle, task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            if not handle.cancelled:
                handle.fail(RuntimeError("Service coroutine was cancelled"))
            return
        exc = task.exception()
        if exc is not None:
            handle.fail(exc)
        else:
            handle.complete(task.result())
