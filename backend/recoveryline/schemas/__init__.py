"""Pydantic schemas."""

from recoveryline.schemas.actions import (
    ButtonAction,
    ButtonKind,
    CompleteTaskAction,
    EscalationAction,
    EscalationNotice,
    OfferProviderContactAction,
    RecordProgressAction,
    ShowButtonsAction,
)
from recoveryline.schemas.alert import AlertListResponse, AlertResponse, AlertUpdate
from recoveryline.schemas.conversation import (
    ButtonPress,
    ConversationOpen,
    ConversationResponse,
    ConversationUpdate,
    MarkRead,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    PainReportCreate,
    TurnResponse,
)
from recoveryline.schemas.patient import PatientCreate, PatientResponse, PatientUpdate, RecoveryDayResponse
from recoveryline.schemas.responder import ResponderContext, ResponderReply, ResponderRequest
from recoveryline.schemas.task import (
    DaySummary,
    DayTask,
    DayTaskList,
    SweepResponse,
    TaskCreate,
    TaskResponse,
    TimelineResponse,
)

__all__ = [
    "AlertListResponse",
    "AlertResponse",
    "AlertUpdate",
    "ButtonAction",
    "ButtonKind",
    "ButtonPress",
    "CompleteTaskAction",
    "ConversationOpen",
    "ConversationResponse",
    "ConversationUpdate",
    "DaySummary",
    "DayTask",
    "DayTaskList",
    "EscalationAction",
    "EscalationNotice",
    "MarkRead",
    "MessageCreate",
    "MessageListResponse",
    "MessageResponse",
    "OfferProviderContactAction",
    "PainReportCreate",
    "PatientCreate",
    "PatientResponse",
    "PatientUpdate",
    "RecordProgressAction",
    "RecoveryDayResponse",
    "ResponderContext",
    "ResponderReply",
    "ResponderRequest",
    "ShowButtonsAction",
    "SweepResponse",
    "TaskCreate",
    "TaskResponse",
    "TimelineResponse",
    "TurnResponse",
]
