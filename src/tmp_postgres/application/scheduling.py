"""Drivers running one lifecycle under either scheduling model.

Factory construction and instance creation are generators that yield a
Call for every operation touching a process and receive its result back.
Where a call fails, the exception is thrown into the generator at the
yield, so its try/except blocks see failures exactly as straight-line
code would and can yield further calls to clean up.

    run_blocking(steps, backend)          # performs each call directly
    await run_cooperative(steps, backend) # awaits each call

Usage:
    def steps():
        out = yield Call("run", (command,))
        return out

    stdout = run_blocking(steps(), SubprocessBackend())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generator, TypeVar

from tmp_postgres.ports.outbound import AsyncProcessBackend, ProcessBackend

T = TypeVar("T")

Steps = Generator["Call", Any, T]


@dataclass(frozen=True)
class Call:
    """A backend capability to invoke with positional arguments."""
    name: str
    args: tuple[Any, ...] = ()

    def apply(self, backend: Any) -> Any:
        return getattr(backend, self.name)(*self.args)


def run_blocking(steps: Steps[T], backend: ProcessBackend) -> T:
    """Drive steps to completion on the calling thread."""
    send, value = steps.send, None
    while True:
        try:
            call = send(value)
        except StopIteration as done:
            return done.value
        try:
            value, send = call.apply(backend), steps.send
        except BaseException as exc:
            value, send = exc, steps.throw


async def run_cooperative(steps: Steps[T], backend: AsyncProcessBackend) -> T:
    """Drive steps to completion, suspending only the current task."""
    send, value = steps.send, None
    while True:
        try:
            call = send(value)
        except StopIteration as done:
            return done.value
        try:
            value, send = await call.apply(backend), steps.send
        except BaseException as exc:
            value, send = exc, steps.throw
