"""SQLAlchemy models."""

from recoveryline.models.alert import Alert, AlertSeverity, AlertStatus, AlertType, ProgressEntry, ProgressType
from recoveryline.models.auth import AuthSession, UserRole
from recoveryline.models.conversation import Conversation, ConversationStatus, Message, SenderType
from recoveryline.models.patient import Patient, PatientStatus
from recoveryline.models.task import PatientTask, TaskStatus, TaskType

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "AuthSession",
    "Conversation",
    "ConversationStatus",
    "Message",
    "Patient",
    "PatientStatus",
    "PatientTask",
    "ProgressEntry",
    "ProgressType",
    "SenderType",
    "TaskStatus",
    "TaskType",
    "UserRole",
]
