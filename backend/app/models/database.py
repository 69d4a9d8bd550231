from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ConversationTurnDocument(BaseModel):
    user_id: str
    role: str
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class InterestHistoryDocument(BaseModel):
    user_id: str
    content: str
    created_at: datetime


class SessionMemoryDocument(BaseModel):
    user_id: str
    session_id: str
    current_topic: str
    messages: List[Dict[str, str]]  # Rolling window of the last exchanges
    step_count: int
    created_at: datetime
    updated_at: datetime
