"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Models Package                                                        ║
║                                                                              ║
║  Exports all request/document models                                         ║
║  from models import TaskCreate, LogCall, PaymentUpdate, etc.                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    UserLogin,
    ProfileResponse,
)

# Task
from .task import (
    TaskStatus,
    TaskType,
    Priority,
    AcceptanceStatus,
    TaskCreate,
    TaskDecline,
    TaskComplete,
    TaskCommentCreate,
    TaskDocument,
)

# Lead
from .lead import (
    LeadStatus,
    CallOutcome,
    LeadCreate,
    LeadPriorityUpdate,
    LogCall,
    MarkCallDone,
)

# Client
from .client import (
    ClientStatus,
    PaymentStatus,
    ClientCreate,
    ClientStatusUpdate,
    PaymentUpdate,
    DeliverClient,
    NewProject,
    ClientDocument,
)

# Team
from .team import (
    InvitationCreate,
    InvitationAccept,
    JoinRequestCreate,
    JoinRequestReject,
    PromotionRequestCreate,
    PromotionVote,
)

__all__ = [
    # Auth
    "UserLogin",
    "ProfileResponse",
    # Task
    "TaskStatus",
    "TaskType",
    "Priority",
    "AcceptanceStatus",
    "TaskCreate",
    "TaskDecline",
    "TaskComplete",
    "TaskCommentCreate",
    "TaskDocument",
    # Lead
    "LeadStatus",
    "CallOutcome",
    "LeadCreate",
    "LeadPriorityUpdate",
    "LogCall",
    "MarkCallDone",
    # Client
    "ClientStatus",
    "PaymentStatus",
    "ClientCreate",
    "ClientStatusUpdate",
    "PaymentUpdate",
    "DeliverClient",
    "NewProject",
    "ClientDocument",
    # Team
    "InvitationCreate",
    "InvitationAccept",
    "JoinRequestCreate",
    "JoinRequestReject",
    "PromotionRequestCreate",
    "PromotionVote",
]
