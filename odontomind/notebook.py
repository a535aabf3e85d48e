"""Adding PDFs to notebooks and chatting with a notebook's documents."""

import asyncio
import logging
import re
from collections import OrderedDict
from typing import Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel

from odontomind import config
from odontomind.errors import (
    CredentialMissingError,
    EmptyInputError,
    GatewayError,
    NoDocumentsError,
    NotFoundError,
    SchemaViolationError,
)
from odontomind.gateway import GeminiGateway
from odontomind.schemas import (
    OPTIONS_PER_QUESTION,
    QUESTIONS_PER_DOCUMENT,
    ChatMessage,
    DocumentDraft,
    DocumentOut,
    QuestionOut,
    Source,
    SummaryOut,
)
from odontomind.store import AppStore
from odontomind.utils import extract_text_from_pdf, generate_unique_id, validate_pdf_upload

logger = logging.getLogger(__name__)

GatewayProvider = Callable[[], GeminiGateway]

GREETING = "Olá! Faça uma pergunta sobre os documentos neste notebook."
NO_DOCUMENTS_MESSAGE = (
    "Por favor, adicione pelo menos um documento a este notebook antes de fazer uma pergunta."
)
CHAT_ERROR_MESSAGE = "Desculpe, ocorreu um erro ao tentar responder."

_CITATION = re.compile(r"\[(\d+)\]")


async def process_pdf(
    get_gateway: GatewayProvider,
    filename: str,
    content_type: Optional[str],
    data: bytes,
    folder: str,
) -> DocumentDraft:
    """Extracts the PDF text and generates its summary and questions.

    Nothing is stored here. Both generations run concurrently and the draft only
    exists if both succeed; when one fails the other is cancelled.
    """
    validate_pdf_upload(filename, content_type, len(data))
    text = extract_text_from_pdf(data)
    if not text.strip():
        raise EmptyInputError("O conteúdo do PDF não pôde ser lido ou está vazio.")

    gateway = get_gateway()
    logger.info("Generating summary and questions for %s (%d chars)", filename, len(text))
    tasks = [
        asyncio.ensure_future(gateway.summarize(text)),
        asyncio.ensure_future(gateway.generate_questions(text)),
    ]
    try:
        summary_content, questions = await asyncio.gather(*tasks)
    except Exception:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    doc_id = generate_unique_id("doc")
    return DocumentDraft(
        id=doc_id,
        name=filename,
        content=text,
        folder=folder,
        summary=SummaryOut(
            id=f"sum-{doc_id}",
            title=f"Resumo de {filename}",
            content=summary_content,
            source_id=doc_id,
            source_type="pdf",
            folder=folder,
        ),
        questions=questions,
    )


def check_questions(questions: Sequence[QuestionOut]) -> None:
    if len(questions) != QUESTIONS_PER_DOCUMENT:
        raise SchemaViolationError(
            f"Um documento precisa de {QUESTIONS_PER_DOCUMENT} questões, recebeu {len(questions)}."
        )
    for q in questions:
        if len(q.options) != OPTIONS_PER_QUESTION or q.correct_answer not in q.options:
            raise SchemaViolationError(f"Questão inválida: {q.question!r}.")


def save_draft(store: AppStore, draft: DocumentDraft, notebook_id: Optional[str] = None) -> DocumentOut:
    check_questions(draft.questions)
    if not draft.summary.title.strip():
        raise EmptyInputError("O título do resumo não pode ser vazio.")
    summary = draft.summary.model_copy(
        update={"source_id": draft.id, "folder": draft.folder, "source_type": "pdf"}
    )
    doc = DocumentOut(
        id=draft.id,
        name=draft.name,
        content=draft.content,
        folder=draft.folder,
        summary=summary,
        questions=draft.questions,
    )
    return store.add_document(doc, notebook_id)


class DraftRegistry:
    """Processed uploads waiting to be saved; beyond ``limit`` the oldest is dropped."""

    def __init__(self, limit: int = config.MAX_DRAFTS) -> None:
        self.limit = limit
        self._drafts: "OrderedDict[str, DocumentDraft]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._drafts)

    def put(self, draft: DocumentDraft) -> DocumentDraft:
        self._drafts[draft.id] = draft
        while len(self._drafts) > self.limit:
            dropped, _ = self._drafts.popitem(last=False)
            logger.info("Discarding unsaved draft %s", dropped)
        return draft

    def get(self, draft_id: str) -> DocumentDraft:
        draft = self._drafts.get(draft_id)
        if draft is None:
            raise NotFoundError("Rascunho não encontrado ou já salvo.")
        return draft

    def discard(self, draft_id: str) -> None:
        self._drafts.pop(draft_id, None)


def save_processed(
    store: AppStore,
    drafts: DraftRegistry,
    draft_id: str,
    title: Optional[str] = None,
) -> DocumentOut:
    """Saves a draft produced by ``process_pdf``, with an optionally edited summary title."""
    draft = drafts.get(draft_id)
    if title is not None:
        summary = draft.summary.model_copy(update={"title": title.strip()})
        draft = draft.model_copy(update={"summary": summary})
    doc = save_draft(store, draft)
    drafts.discard(draft_id)
    return doc


async def add_document(
    store: AppStore,
    get_gateway: GatewayProvider,
    notebook_id: str,
    filename: str,
    content_type: Optional[str],
    data: bytes,
) -> DocumentOut:
    notebook = store.get_notebook(notebook_id)
    draft = await process_pdf(get_gateway, filename, content_type, data, folder=notebook.name)
    return save_draft(store, draft, notebook_id=notebook.id)


class CitationSegment(BaseModel):
    type: Literal["text", "citation"]
    text: str
    source: Optional[Source] = None


def link_citations(answer: str, sources: Sequence[Source]) -> List[CitationSegment]:
    """Splits an answer into plain text and ``[n]`` markers tied to their quoted excerpt.

    Markers that no source backs stay as plain text.
    """
    by_id: Dict[int, Source] = {}
    for src in sources:
        by_id.setdefault(src.id, src)

    segments: List[CitationSegment] = []
    pos = 0
    for match in _CITATION.finditer(answer):
        source = by_id.get(int(match.group(1)))
        if source is None:
            continue
        if match.start() > pos:
            segments.append(CitationSegment(type="text", text=answer[pos:match.start()]))
        segments.append(CitationSegment(type="citation", text=match.group(0), source=source))
        pos = match.end()
    if pos < len(answer):
        segments.append(CitationSegment(type="text", text=answer[pos:]))
    return segments


class NotebookChat:
    """In-memory chat history of one notebook; lost on restart."""

    def __init__(self) -> None:
        self.messages: List[ChatMessage] = [ChatMessage(role="model", content=GREETING)]

    def _reply(self, content: str, sources: Optional[List[Source]] = None) -> ChatMessage:
        message = ChatMessage(role="model", content=content, sources=sources)
        self.messages.append(message)
        return message

    async def ask(
        self,
        question: str,
        documents: Sequence[DocumentOut],
        get_gateway: GatewayProvider,
    ) -> ChatMessage:
        question = question.strip()
        if not question:
            raise EmptyInputError("A pergunta não pode ser vazia.")
        self.messages.append(ChatMessage(role="user", content=question))

        if not documents:
            self._reply(NO_DOCUMENTS_MESSAGE)
            raise NoDocumentsError(NO_DOCUMENTS_MESSAGE)

        try:
            answer = await get_gateway().chat(question, documents)
        except CredentialMissingError as e:
            self._reply(str(e))
            raise
        except GatewayError:
            self._reply(CHAT_ERROR_MESSAGE)
            raise
        return self._reply(answer.answer, answer.sources)


class ChatRegistry:
    def __init__(self) -> None:
        self._chats: Dict[str, NotebookChat] = {}

    def get(self, notebook_id: str) -> NotebookChat:
        if notebook_id not in self._chats:
            self._chats[notebook_id] = NotebookChat()
        return self._chats[notebook_id]
