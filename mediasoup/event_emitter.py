"""A thread-safe event emitter in the style of Node's EventEmitter."""

from __future__ import annotations

import dataclasses
import json
import threading
import typing
from collections.abc import Callable
from typing import Any

from .logger import new_logger

Listener = Callable[..., Any]

_BYTES_TYPES = (bytes, bytearray, memoryview)
_CO_VARARGS = 0x04


def _accepts_bytes(annotation: Any) -> bool:
    if annotation is Any or annotation is object or annotation in _BYTES_TYPES:
        return True
    return any(_accepts_bytes(arg) for arg in typing.get_args(annotation))


def _convert(value: Any, annotation: Any) -> Any:
    """Decode JSON bytes into the type a listener parameter asks for."""
    if annotation is None or not isinstance(value, _BYTES_TYPES) or _accepts_bytes(annotation):
        return value
    decoded = json.loads(bytes(value))
    if (
        isinstance(annotation, type)
        and dataclasses.is_dataclass(annotation)
        and isinstance(decoded, dict)
    ):
        return annotation(**decoded)
    return decoded


def _resolve(annotation: Any, namespace: dict[str, Any]) -> Any:
    """Resolve an annotation written as a plain name; leave others unknown."""
    if not isinstance(annotation, str):
        return annotation
    builtin = {"bytes": bytes, "bytearray": bytearray, "memoryview": memoryview,
               "object": object, "Any": Any}
    if annotation in builtin:
        return builtin[annotation]
    return namespace.get(annotation)


def _plain_function(func: Listener) -> tuple[Any, int] | None:
    """Return the function object behind ``func`` and how many leading args it binds."""
    if hasattr(func, "__code__"):
        return func, 0
    inner = getattr(func, "__func__", None)
    if inner is not None and hasattr(inner, "__code__"):
        return inner, 1
    call = getattr(func, "__call__", None)
    inner = getattr(call, "__func__", None)
    if inner is not None and hasattr(inner, "__code__"):
        return inner, 1
    return None


class _Registration:
    """A registered listener together with what is known of its signature."""

    def __init__(self, func: Listener, once: bool) -> None:
        if not callable(func):
            raise TypeError(f"{type(func).__name__} is not callable")
        self.func = func
        self.once = once
        self.fired = False
        self._names: list[str] | None = None
        self._required = 0
        self._hints: dict[str, Any] = {}

        found = _plain_function(func)
        if found is None:
            return
        target, skip = found
        code = target.__code__
        if code.co_flags & _CO_VARARGS:
            return
        names = list(code.co_varnames[: code.co_argcount])
        defaults = getattr(target, "__defaults__", None) or ()
        required = len(names) - len(defaults)
        self._names = names[skip:]
        self._required = max(required - skip, 0)
        namespace = getattr(target, "__globals__", {}) or {}
        annotations = getattr(target, "__annotations__", None) or {}
        self._hints = {
            name: _resolve(annotation, namespace)
            for name, annotation in annotations.items()
            if name != "return"
        }

    def call(self, args: tuple[Any, ...]) -> None:
        if self._names is None:
            self.func(*args)
            return
        aligned = list(args[: len(self._names)])
        aligned.extend([None] * (self._required - len(aligned)))
        converted = [
            _convert(value, self._hints.get(name))
            for value, name in zip(aligned, self._names)
        ]
        self.func(*converted)


class EventEmitter:
    """Register listeners for named events and call them on emit.

    Listeners receive as many positional arguments as they declare: extra
    arguments are dropped and missing required ones are passed as ``None``.
    A ``bytes`` argument given to a parameter annotated with another type is
    decoded from JSON (into the dataclass, when the annotation is one).
    """

    def __init__(self) -> None:
        self._emitter_lock = threading.Lock()
        self._listeners: dict[str, list[_Registration]] = {}
        self._emitter_logger = new_logger("EventEmitter")

    def on(self, event: str, listener: Listener) -> None:
        """Add ``listener`` to the end of the listeners of ``event``."""
        self._add(event, _Registration(listener, once=False))

    def once(self, event: str, listener: Listener) -> None:
        """Add a listener that is removed the first time ``event`` fires."""
        self._add(event, _Registration(listener, once=True))

    def emit(self, event: str, *args: Any) -> bool:
        """Call the listeners of ``event`` in order; exceptions propagate.

        Returns whether the event had listeners.
        """
        registrations = self._snapshot(event)
        for registration in registrations:
            if self._claim(event, registration):
                registration.call(args)
        return bool(registrations)

    def safe_emit(self, event: str, *args: Any) -> bool:
        """Like :meth:`emit`, but a failing listener is logged and skipped."""
        registrations = self._snapshot(event)
        for registration in registrations:
            if not self._claim(event, registration):
                continue
            try:
                registration.call(args)
            except Exception:
                self._emitter_logger.exception("emit panic")
        return bool(registrations)

    def off(self, event: str, listener: Listener) -> None:
        """Remove the first registration of ``listener`` for ``event``."""
        with self._emitter_lock:
            registrations = self._listeners.get(event)
            if not registrations:
                return
            found = next((r for r in registrations if r.func == listener), None)
            if found is not None:
                registrations.remove(found)

    def remove_all_listeners(self, *args: str) -> None:
        """Remove every listener, or only those of the named events."""
        with self._emitter_lock:
            if not args:
                self._listeners.clear()
                return
            for event in args:
                self._listeners.pop(event, None)

    def listener_count(self, *args: str) -> int:
        """Count every listener, or only those of the named events."""
        with self._emitter_lock:
            if not args:
                return sum(len(registrations) for registrations in self._listeners.values())
            return sum(len(self._listeners.get(event, ())) for event in args)

    def _add(self, event: str, registration: _Registration) -> None:
        with self._emitter_lock:
            self._listeners.setdefault(event, []).append(registration)

    def _snapshot(self, event: str) -> list[_Registration]:
        with self._emitter_lock:
            return list(self._listeners.get(event, ()))

    def _claim(self, event: str, registration: _Registration) -> bool:
        """Unregister a one-time listener; False if it has already fired."""
        if not registration.once:
            return True
        with self._emitter_lock:
            if registration.fired:
                return False
            registration.fired = True
            registrations = self._listeners.get(event)
            if registrations and registration in registrations:
                registrations.remove(registration)
        return True