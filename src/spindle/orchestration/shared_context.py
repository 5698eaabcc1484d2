"""
Shared Context - the mutable key/value store threaded through a run.

A shared context is a plain ``MutableMapping[str, Any]`` (normally a
``dict``) created by the caller and passed by reference to every handler
in one top-level ``run``. Only ``process_results`` may write to it.

Parallel batch pipelines need two extra operations, both defined here so
that every call receives the context explicitly instead of reading it from
handler state:

- ``isolate_context`` deep-copies the context for one concurrent run.
- ``merge_isolated`` folds a finished run's copy back into the main context.

Values placed in a context that will be isolated must be deep-copyable
plain data (numbers, strings, lists, dicts, dataclasses of those, ...).

Example::

    baseline = isolate_context(shared)
    copies = [isolate_context(shared) for _ in param_sets]
    ...  # run each copy concurrently
    for copy_ in copies_in_completion_order:
        merge_isolated(shared, baseline, copy_)
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, MutableMapping
from typing import Any

from spindle.orchestration.exceptions import ContextIsolationError, MisuseError

# Type alias for the shared context
SharedContext = MutableMapping[str, Any]

# Type alias for handler parameters (read-only view)
HandlerParams = Mapping[str, Any]

# Type alias for the string label returned by process_results
ActionResult = str

DEFAULT_ACTION: ActionResult = "default"


def ensure_context(context: Any, owner: str) -> SharedContext:
    """Reject a missing or non-mapping context before any phase runs."""
    if context is None:
        raise MisuseError(f"{owner}.run() requires a shared context, got None").with_context(
            handler=owner,
        )
    if not isinstance(context, MutableMapping):
        raise MisuseError(
            f"{owner}.run() requires a mutable mapping as shared context, "
            f"got {type(context).__name__}"
        ).with_context(handler=owner)
    return context


def merge_params(context: SharedContext, params: HandlerParams) -> None:
    """Shallow-merge parameters into the context; later values win."""
    if params:
        context.update(params)


def isolate_context(context: SharedContext) -> dict[str, Any]:
    """Return an independent deep copy of ``context``.

    Raises:
        ContextIsolationError: If a value cannot be deep copied.
    """
    isolated: dict[str, Any] = {}
    for key, value in context.items():
        try:
            isolated[key] = copy.deepcopy(value)
        except (TypeError, copy.Error) as e:
            raise ContextIsolationError(key, e) from e
    return isolated


def merge_isolated(
    context: SharedContext,
    baseline: Mapping[str, Any],
    isolated: Mapping[str, Any],
) -> None:
    """Fold one isolated run's results back into the main context.

    Rules, applied per key of ``isolated``:

    - unchanged relative to ``baseline``: skipped, so a run that never
      touched a key cannot clobber another run's write to it
    - a list that only grew (baseline list is a prefix): the new tail is
      appended to the main context's list, so concurrent appends accumulate
    - anything else: overwritten (shallow, last merge wins)

    Keys removed by the run are left in place.
    """
    for key, value in isolated.items():
        if key in baseline:
            base = baseline[key]
            if _same(base, value):
                continue
            if _is_append(base, value) and isinstance(context.get(key), list):
                context[key].extend(copy.deepcopy(value[len(base):]))
                continue
        context[key] = value


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        # Values with exotic __eq__ (e.g. arrays) are treated as changed
        return False


def _is_append(base: Any, value: Any) -> bool:
    return (
        isinstance(base, list)
        and isinstance(value, list)
        and len(value) > len(base)
        and _same(value[: len(base)], base)
    )


__all__ = [
    "ActionResult",
    "DEFAULT_ACTION",
    "HandlerParams",
    "SharedContext",
    "ensure_context",
    "isolate_context",
    "merge_isolated",
    "merge_params",
]
