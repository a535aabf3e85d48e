import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient

from odontomind.app import app, get_chats, get_drafts, get_gateway_provider, get_quizzes, get_store
from odontomind.db import make_engine
from odontomind.notebook import ChatRegistry, DraftRegistry
from odontomind.quiz import QuizSessions
from odontomind.schemas import ChatAnswer, QuestionOut, Source
from odontomind.store import AppStore


def make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def make_questions(prefix: str = "Q", count: int = 5):
    return [
        QuestionOut(
            id=f"q-{prefix}-{i}",
            question=f"{prefix} pergunta {i}?",
            options=[f"{prefix}{i}-a", f"{prefix}{i}-b", f"{prefix}{i}-c", f"{prefix}{i}-d"],
            correct_answer=f"{prefix}{i}-a",
        )
        for i in range(count)
    ]


class StubGateway:
    """Stands in for GeminiGateway and counts every call."""

    def __init__(self, summary="S", questions=None, fail=None):
        self.summary = summary
        self.questions = questions
        self.fail = fail  # exception raised by every call when set
        self.calls = {"summarize": 0, "generate_questions": 0, "chat": 0}
        self.chat_documents = None

    async def summarize(self, text):
        self.calls["summarize"] += 1
        if self.fail:
            raise self.fail
        return self.summary

    async def generate_questions(self, text):
        self.calls["generate_questions"] += 1
        if self.fail:
            raise self.fail
        return self.questions if self.questions is not None else make_questions()

    async def chat(self, question, documents):
        self.calls["chat"] += 1
        if self.fail:
            raise self.fail
        self.chat_documents = list(documents)
        first = documents[0]
        return ChatAnswer(
            answer="A resposta está no material [1].",
            sources=[Source(id=1, quote=first.content[:20], document_name=first.name)],
        )


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def store():
    return AppStore(make_engine("sqlite://"))


@pytest.fixture
def client(store, gateway):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway_provider] = lambda: (lambda: gateway)
    chats = ChatRegistry()
    app.dependency_overrides[get_chats] = lambda: chats
    drafts = DraftRegistry()
    app.dependency_overrides[get_drafts] = lambda: drafts
    quizzes = QuizSessions()
    app.dependency_overrides[get_quizzes] = lambda: quizzes
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sample_pdf():
    return make_pdf("Tratamento endodontico: preparo do canal radicular.", "Obturacao com guta-percha.")


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def questions_factory():
    return make_questions
