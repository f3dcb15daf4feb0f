"""
Corvid lifecycle hooks - per-model, per-event, optionally field-scoped.

Seven events: oncreate, prevalidate, postvalidate, presave, postsave,
predelete, postdelete. Event names are normalized, so ``pre_save``,
``preSave`` and ``presave`` all name the same event.

A hook receives the instance and may complete in any of three ways:

    def stamp(doc):                     # synchronous
        doc.updated = datetime.now()

    async def lookup(doc):              # awaitable
        doc.owner = await fetch_owner()

    def legacy(doc, done):              # continuation callback
        done()                          # or done(SomeError(...))

Usage:
    class User(Document):
        email = String

        @hook("prevalidate", "email")
        def normalize_email(self):
            self.email = self.email.lower()

    User.hooks.connect("postsave", audit)
    with User.hooks.connected("presave", check):
        await user.save()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger("corvid.models.hooks")

__all__ = ["HookEvent", "HookPipeline", "hook", "ALWAYS"]

# Field key for hooks that run regardless of which fields are in scope
ALWAYS = ""


class HookEvent(str, Enum):
    ONCREATE = "oncreate"
    PREVALIDATE = "prevalidate"
    POSTVALIDATE = "postvalidate"
    PRESAVE = "presave"
    POSTSAVE = "postsave"
    PREDELETE = "predelete"
    POSTDELETE = "postdelete"

    @classmethod
    def parse(cls, name: Union[str, HookEvent]) -> HookEvent:
        """Normalize an event name (case, ``_`` and ``-`` insensitive)."""
        if isinstance(name, HookEvent):
            return name
        key = str(name).lower().replace("_", "").replace("-", "")
        if key == "create":
            key = "oncreate"
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(e.value for e in cls)
            raise ValueError(f"Unknown hook event {name!r}; expected one of: {valid}") from None


def hook(event: Union[str, HookEvent], *fields: str) -> Callable:
    """
    Mark a Document method as a lifecycle hook.

    With no ``fields`` the hook always runs for the event; otherwise it runs
    once for each named field that is in scope.
    """
    parsed = HookEvent.parse(event)

    def _decorator(fn: Callable) -> Callable:
        marks = list(getattr(fn, "__corvid_hooks__", []))
        for field in fields or (ALWAYS,):
            marks.append((parsed, field))
        fn.__corvid_hooks__ = marks
        return fn

    return _decorator


def _accepts_callback(fn: Callable) -> bool:
    """True if ``fn`` requires a second positional parameter (``done``)."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    ]
    if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params):
        return False
    return len(positional) >= 2


class HookPipeline:
    """
    Ordered hook table for one model.

    Each event maps a field name (or ``ALWAYS``) to its hooks in
    registration order. ``run()`` calls the always-hooks first, then the
    hooks of each in-scope field in the order the fields are given, awaiting
    every hook before starting the next. The first failure aborts the event
    and propagates unchanged.
    """

    def __init__(self, model_name: str = "<unbound>"):
        self.model_name = model_name
        self._hooks: Dict[HookEvent, Dict[str, List[Callable]]] = {
            event: {} for event in HookEvent
        }

    def connect(
        self,
        event: Union[str, HookEvent],
        fn: Optional[Callable] = None,
        *,
        field: str = ALWAYS,
    ):
        """
        Add a hook. Can be used as a decorator.

        Args:
            event: Lifecycle event name
            fn: Hook callable (omit to use as ``@pipeline.connect("presave")``)
            field: Restrict the hook to one field (default: always run)
        """
        parsed = HookEvent.parse(event)

        def _decorator(func: Callable) -> Callable:
            self._add(parsed, func, field)
            return func

        if fn is not None:
            return _decorator(fn)
        return _decorator

    def _add(self, event: HookEvent, fn: Callable, field: str) -> None:
        if not callable(fn):
            raise TypeError(f"Hook for '{event.value}' must be callable, got {fn!r}")
        slot = self._hooks[event].setdefault(field, [])
        if any(existing is fn for existing in slot):
            return  # Already connected
        slot.append(fn)

    def disconnect(
        self,
        event: Union[str, HookEvent],
        fn: Callable,
        *,
        field: Optional[str] = None,
    ) -> bool:
        """
        Remove a hook. Returns True if it was found.

        With ``field=None`` the hook is removed from whichever slot holds it.
        """
        parsed = HookEvent.parse(event)
        slots = self._hooks[parsed]
        keys = [field] if field is not None else list(slots)
        for key in keys:
            hooks = slots.get(key, [])
            for i, existing in enumerate(hooks):
                if existing is fn:
                    hooks.pop(i)
                    return True
        return False

    def receivers(self, event: Union[str, HookEvent], fields: Iterable[str] = ()) -> List[Callable]:
        """Hooks ``run()`` would call for ``fields``, in call order."""
        parsed = HookEvent.parse(event)
        slots = self._hooks[parsed]
        ordered = list(slots.get(ALWAYS, []))
        for name in fields:
            if name != ALWAYS:
                ordered.extend(slots.get(name, []))
        return ordered

    def has_hooks(self, event: Union[str, HookEvent]) -> bool:
        return any(self._hooks[HookEvent.parse(event)].values())

    @contextlib.contextmanager
    def connected(self, event: Union[str, HookEvent], fn: Callable, *, field: str = ALWAYS):
        """
        Context manager for a temporary hook.

        Usage:
            with User.hooks.connected("presave", check):
                await user.save()
        """
        parsed = HookEvent.parse(event)
        self._add(parsed, fn, field)
        try:
            yield
        finally:
            self.disconnect(parsed, fn, field=field)

    def copy(self, model_name: str) -> HookPipeline:
        """Independent copy (used when a model subclasses another)."""
        clone = HookPipeline(model_name)
        for event, slots in self._hooks.items():
            clone._hooks[event] = {key: list(hooks) for key, hooks in slots.items()}
        return clone

    def clear(self) -> None:
        """Remove all hooks (useful for testing)."""
        for slots in self._hooks.values():
            slots.clear()

    async def run(
        self,
        event: Union[str, HookEvent],
        instance: Any,
        fields: Iterable[str] = (),
    ) -> None:
        """Run every hook in scope for ``event`` against ``instance``."""
        parsed = HookEvent.parse(event)
        hooks = self.receivers(parsed, fields)
        if not hooks:
            return
        logger.debug(f"{self.model_name}: running {len(hooks)} '{parsed.value}' hook(s)")
        for fn in hooks:
            await self.invoke(fn, instance)

    @staticmethod
    async def invoke(fn: Callable, instance: Any) -> Any:
        """Call one hook and wait for it, whichever completion style it uses."""
        if not _accepts_callback(fn):
            result = fn(instance)
            if inspect.isawaitable(result):
                result = await result
            return result

        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()

        def done(error: Any = None) -> None:
            if finished.done():
                logger.warning(f"Hook {getattr(fn, '__name__', fn)!r} called done() more than once")
                return
            if error is None:
                finished.set_result(None)
            elif isinstance(error, BaseException):
                finished.set_exception(error)
            else:
                finished.set_exception(RuntimeError(str(error)))

        result = fn(instance, done)
        if inspect.isawaitable(result):
            await result
        return await finished

    def __repr__(self) -> str:
        count = sum(len(h) for slots in self._hooks.values() for h in slots.values())
        return f"<HookPipeline '{self.model_name}' hooks={count}>"
