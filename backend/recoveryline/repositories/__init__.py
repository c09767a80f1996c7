"""Repository layer for data access.

Repositories commit their own writes and publish the committed rows on the
realtime hub, so callers never observe an event for an uncommitted change.
"""

from recoveryline.repositories.alert import AlertRepository
from recoveryline.repositories.conversation import ConversationRepository
from recoveryline.repositories.patient import PatientRepository, ProgressRepository
from recoveryline.repositories.task import TaskRepository

__all__ = [
    "AlertRepository",
    "ConversationRepository",
    "PatientRepository",
    "ProgressRepository",
    "TaskRepository",
]
