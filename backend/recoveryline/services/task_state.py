"""Task status state machine.

    pending     -> in_progress | completed | skipped | overdue
    in_progress -> completed | skipped | overdue
    overdue     -> in_progress | completed | skipped

completed and skipped are terminal. Nothing ever returns to pending.
"""

from recoveryline.errors import InvalidTransitionError
from recoveryline.models.task import TaskStatus

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.SKIPPED, TaskStatus.OVERDUE}
    ),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED, TaskStatus.OVERDUE}),
    TaskStatus.OVERDUE: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.SKIPPED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.SKIPPED: frozenset(),
}

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED})
OPEN_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE})

# Tie-break for equal timestamps: the further along a task is, the more
# authoritative its state.
STATUS_RANK: dict[TaskStatus, int] = {
    TaskStatus.PENDING: 0,
    TaskStatus.OVERDUE: 1,
    TaskStatus.IN_PROGRESS: 2,
    TaskStatus.SKIPPED: 3,
    TaskStatus.COMPLETED: 4,
}


def sources_for(target: TaskStatus) -> frozenset[TaskStatus]:
    """Statuses from which `target` may be entered."""
    return frozenset(source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def check_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Validate a transition.

    Returns:
        True if the status must change, False if the task is already in
        `target` (the request is a no-op).

    Raises:
        InvalidTransitionError: if the state machine forbids the move.
    """
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return True
