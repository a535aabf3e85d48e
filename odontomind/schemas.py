"""
Schemas for OdontoMind.

The first group describes what the Gemini model must return; the second group
is what the store hands out and what the HTTP API serializes.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

QUESTIONS_PER_DOCUMENT = 5
OPTIONS_PER_QUESTION = 4


# --- Model output -----------------------------------------------------------

class GeneratedQuestion(BaseModel):
    question: str = Field(..., min_length=1)
    options: List[str]
    correctAnswer: str

    @field_validator("options")
    @classmethod
    def four_options(cls, v):
        if len(v) != OPTIONS_PER_QUESTION:
            raise ValueError(f"expected {OPTIONS_PER_QUESTION} options, got {len(v)}")
        return v

    @model_validator(mode="after")
    def answer_is_an_option(self):
        if self.correctAnswer not in self.options:
            raise ValueError("correctAnswer is not one of the options")
        return self


class GeneratedSource(BaseModel):
    id: int
    quote: str


class GeneratedChatAnswer(BaseModel):
    answer: str
    sources: List[GeneratedSource] = []


# --- Domain views -----------------------------------------------------------

class QuestionOut(BaseModel):
    id: str
    question: str
    options: List[str]
    correct_answer: str
    type: Literal["multiple-choice", "open-ended"] = "multiple-choice"


class SummaryOut(BaseModel):
    id: str
    title: str
    content: str
    source_id: str
    source_type: Literal["pdf", "recording"]
    folder: str


class DocumentOut(BaseModel):
    id: str
    name: str
    content: str
    folder: str
    summary: Optional[SummaryOut] = None
    questions: List[QuestionOut] = []


class NotebookOut(BaseModel):
    id: str
    name: str
    document_ids: List[str] = []


class QuizAttemptOut(BaseModel):
    id: str
    date: datetime
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    topic: str

    @model_validator(mode="after")
    def score_within_total(self):
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed total_questions")
        return self


class RecordedClassOut(BaseModel):
    id: str
    title: str
    date: datetime
    transcription: str
    summary: Optional[SummaryOut] = None


class Source(BaseModel):
    id: int = Field(..., description="1-based position of the document in the chat context")
    quote: str
    document_name: str


class ChatAnswer(BaseModel):
    answer: str
    sources: List[Source] = []


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    content: str
    sources: Optional[List[Source]] = None


# --- Requests ---------------------------------------------------------------

class NotebookCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("O nome do notebook não pode ser vazio.")
        return v


class ChatRequest(BaseModel):
    question: str


class DocumentDraft(BaseModel):
    """A processed but unsaved upload, kept on the server until it is saved."""
    id: str
    name: str
    content: str
    folder: str
    summary: SummaryOut
    questions: List[QuestionOut]


class SaveDraftRequest(BaseModel):
    # Only the summary title can be changed before saving.
    draft_id: str
    title: Optional[str] = None


class QuizStartRequest(BaseModel):
    topic: str = "all"


class QuizAnswerRequest(BaseModel):
    answer: str


class RecordingCreate(BaseModel):
    transcription: str
    title: Optional[str] = None
