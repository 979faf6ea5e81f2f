from toolchat.memory.models import MessageRecord, PartRecord, SessionRecord
from toolchat.memory.session_manager import SessionManager
from toolchat.memory.store import MemoryStore

__all__ = [
    "MemoryStore",
    "MessageRecord",
    "PartRecord",
    "SessionManager",
    "SessionRecord",
]
