from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from odontomind.utils import utcnow


class Notebook(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    notebook_id: str = Field(index=True, unique=True)
    name: str
    document_ids: str = "[]"  # JSON list of doc_id, in insertion order
    created_at: datetime = Field(default_factory=utcnow)


class Document(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    doc_id: str = Field(index=True, unique=True)
    name: str
    content: str
    folder: str
    created_at: datetime = Field(default_factory=utcnow)


class Summary(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    summary_id: str = Field(index=True, unique=True)
    title: str
    content: str
    source_id: str = Field(index=True)  # doc_id or recording_id
    source_type: str  # "pdf" | "recording"
    folder: str
    created_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: str
    doc_id: str = Field(index=True)
    position: int
    question: str
    options: str  # JSON list of 4 strings
    correct_answer: str
    type: str = "multiple-choice"


class QuizAttempt(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: str = Field(index=True, unique=True)
    date: datetime
    score: int
    total_questions: int
    topic: str


class RecordedClass(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    recording_id: str = Field(index=True, unique=True)
    title: str
    date: datetime
    transcription: str
