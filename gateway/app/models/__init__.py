"""Models package - re-exports for convenience."""

from gateway.app.models.common import DocumentStatus, MessageRole, WorkflowPurpose, WorkflowState
from gateway.app.models.conversations import Conversation, ConversationList, Message, MessageList
from gateway.app.models.documents import Document, DocumentList, DownloadURL, UploadedDocument

__all__ = [
    "Conversation",
    "ConversationList",
    "Document",
    "DocumentList",
    "DocumentStatus",
    "DownloadURL",
    "Message",
    "MessageList",
    "MessageRole",
    "UploadedDocument",
    "WorkflowPurpose",
    "WorkflowState",
]
