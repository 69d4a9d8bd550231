from typing import List

from app.models.tutor import InterestHistoryEntry, TutorResponse
from pydantic import BaseModel


class ChatRequest(BaseModel):
    user_id: str = ""
    input: str = ""


class ChatResponse(BaseModel):
    response: TutorResponse


class HistoryEntryRequest(BaseModel):
    user_id: str = ""
    content: str = ""


class HistoryEntryResponse(BaseModel):
    data: InterestHistoryEntry


class HistoryListResponse(BaseModel):
    data: List[InterestHistoryEntry]
