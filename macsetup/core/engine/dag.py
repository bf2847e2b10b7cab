"""
Step DAG utilities (pure).

Validation, stable topological ordering, and the parallel-safety
filter. No I/O, no subprocess.
"""

from __future__ import annotations

import heapq

from macsetup.core.models.step import Step


def validate_steps(steps: list[Step]) -> list[str]:
    """Validate the prerequisite graph.

    Checks for:
    - Duplicate capability names
    - Prerequisites that name no declared step
    - Cycles (Kahn's algorithm)

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    names = {s.name for s in steps}

    # Duplicate names
    seen: set[str] = set()
    for s in steps:
        if s.name in seen:
            errors.append(f"Duplicate step: {s.name}")
        seen.add(s.name)

    # Missing refs
    for s in steps:
        for dep in s.requires:
            if dep not in names:
                errors.append(f"Step '{s.name}' requires unknown step '{dep}'")
            elif dep == s.name:
                errors.append(f"Step '{s.name}' requires itself")

    if errors:
        return errors

    ordered = _kahn(steps)
    if len(ordered) < len(steps):
        placed = {s.name for s in ordered}
        stuck = [s.name for s in steps if s.name not in placed]
        errors.append(f"Dependency cycle detected among: {', '.join(stuck)}")

    return errors


def topological_order(steps: list[Step]) -> list[Step]:
    """Order steps so every prerequisite precedes its dependents.

    Among steps with no ordering constraint between them, declaration
    order is preserved. Call ``validate_steps`` first; on a cyclic
    graph the steps in the cycle are simply left out.
    """
    return _kahn(steps)


def _kahn(steps: list[Step]) -> list[Step]:
    index = {s.name: i for i, s in enumerate(steps)}
    in_degree = {s.name: len(set(s.requires)) for s in steps}
    # dep → steps that depend on it
    adj: dict[str, list[str]] = {s.name: [] for s in steps}
    for s in steps:
        for dep in set(s.requires):
            if dep in adj:
                adj[dep].append(s.name)

    # Min-heap on declaration index keeps the sort stable.
    heap = [index[name] for name, deg in in_degree.items() if deg == 0]
    heapq.heapify(heap)
    ordered: list[Step] = []
    while heap:
        step = steps[heapq.heappop(heap)]
        ordered.append(step)
        for successor in adj[step.name]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(heap, index[successor])
    return ordered


def ready_steps(
    ordered: list[Step],
    completed: set[str],
    running: set[str],
) -> list[Step]:
    """Steps whose prerequisites have all completed, in order."""
    ready: list[Step] = []
    done_or_running = completed | running
    for step in ordered:
        if step.name in done_or_running:
            continue
        if all(dep in completed for dep in step.requires):
            ready.append(step)
    return ready


def enforce_parallel_safety(steps: list[Step]) -> list[Step]:
    """Filter a wave of ready steps down to those safe to run together.

    - At most one step per installer lock group (package managers hold
      a lock on their database).
    - At most one step that edits shell profiles.
    - No two steps that share a prerequisite.
    - A critical step runs alone, so its failure stops the run before
      any other step is attempted.

    The first step is always kept, so a wave never comes back empty.
    """
    if steps and steps[0].critical:
        return [steps[0]]

    locks_seen: set[str] = set()
    prereqs_seen: set[str] = set()
    profile_taken = False
    safe: list[Step] = []

    for step in steps:
        if step.critical and safe:
            continue
        lock = step.installer.lock_group
        if lock and lock in locks_seen:
            continue  # same lock already taken in this wave
        if step.touches_profile and profile_taken:
            continue
        if prereqs_seen.intersection(step.requires):
            continue
        if lock:
            locks_seen.add(lock)
        if step.touches_profile:
            profile_taken = True
        prereqs_seen.update(step.requires)
        safe.append(step)

    return safe
