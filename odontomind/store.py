"""Application state.

``AppStore`` owns every persisted entity. Its methods are the only way the rest
of the application changes state; none of them awaits, so each update runs to
completion before another coroutine can observe the store.
"""

import json
import logging
from typing import List, Optional

from sqlmodel import Session, select

from odontomind.config import RECORDINGS_FOLDER
from odontomind.db import create_db_and_tables, engine as default_engine
from odontomind.errors import DuplicateDocumentError, NotFoundError
from odontomind.models import (
    Document,
    Notebook,
    Question,
    QuizAttempt,
    RecordedClass,
    Summary,
)
from odontomind.schemas import (
    DocumentOut,
    NotebookOut,
    QuestionOut,
    QuizAttemptOut,
    RecordedClassOut,
    SummaryOut,
)
from odontomind.utils import as_utc, generate_unique_id

logger = logging.getLogger(__name__)


def _summary_out(row: Summary) -> SummaryOut:
    return SummaryOut(
        id=row.summary_id,
        title=row.title,
        content=row.content,
        source_id=row.source_id,
        source_type=row.source_type,
        folder=row.folder,
    )


def _question_out(row: Question) -> QuestionOut:
    return QuestionOut(
        id=row.question_id,
        question=row.question,
        options=json.loads(row.options),
        correct_answer=row.correct_answer,
        type=row.type,
    )


def _notebook_out(row: Notebook) -> NotebookOut:
    return NotebookOut(id=row.notebook_id, name=row.name, document_ids=json.loads(row.document_ids))


def _attempt_out(row: QuizAttempt) -> QuizAttemptOut:
    return QuizAttemptOut(
        id=row.attempt_id,
        date=as_utc(row.date),
        score=row.score,
        total_questions=row.total_questions,
        topic=row.topic,
    )


class AppStore:
    def __init__(self, engine=None) -> None:
        self.engine = engine or default_engine
        create_db_and_tables(self.engine)

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # --- Notebooks ---

    def add_notebook(self, name: str) -> NotebookOut:
        row = Notebook(notebook_id=generate_unique_id("nb"), name=name)
        with self._session() as session:
            session.add(row)
            session.commit()
        logger.info("Created notebook %s (%s)", row.notebook_id, name)
        return _notebook_out(row)

    def list_notebooks(self) -> List[NotebookOut]:
        with self._session() as session:
            rows = session.exec(select(Notebook).order_by(Notebook.id)).all()
            return [_notebook_out(r) for r in rows]

    def _notebook_row(self, session: Session, notebook_id: str) -> Notebook:
        row = session.exec(select(Notebook).where(Notebook.notebook_id == notebook_id)).one_or_none()
        if row is None:
            raise NotFoundError("Notebook não encontrado.")
        return row

    def get_notebook(self, notebook_id: str) -> NotebookOut:
        with self._session() as session:
            return _notebook_out(self._notebook_row(session, notebook_id))

    # --- Documents ---

    def add_document(self, doc: DocumentOut, notebook_id: Optional[str] = None) -> DocumentOut:
        """Persists a document with its summary and questions, optionally appending it to a notebook.

        Everything is written in one transaction: either the whole document is
        stored (and linked) or nothing is.
        """
        with self._session() as session:
            notebook = self._notebook_row(session, notebook_id) if notebook_id else None
            if session.exec(select(Document).where(Document.doc_id == doc.id)).first() is not None:
                raise DuplicateDocumentError("Este documento já foi salvo.")
            session.add(Document(doc_id=doc.id, name=doc.name, content=doc.content, folder=doc.folder))
            if doc.summary is not None:
                s = doc.summary
                session.add(Summary(
                    summary_id=s.id,
                    title=s.title,
                    content=s.content,
                    source_id=doc.id,
                    source_type="pdf",
                    folder=s.folder,
                ))
            for position, q in enumerate(doc.questions):
                session.add(Question(
                    question_id=q.id,
                    doc_id=doc.id,
                    position=position,
                    question=q.question,
                    options=json.dumps(q.options, ensure_ascii=False),
                    correct_answer=q.correct_answer,
                    type=q.type,
                ))
            if notebook is not None:
                notebook.document_ids = json.dumps(json.loads(notebook.document_ids) + [doc.id])
                session.add(notebook)
            session.commit()
        logger.info("Stored document %s (%s) in folder %s", doc.id, doc.name, doc.folder)
        return self.get_document(doc.id)

    def _document_out(self, session: Session, row: Document) -> DocumentOut:
        summary = session.exec(
            select(Summary).where(Summary.source_id == row.doc_id, Summary.source_type == "pdf")
        ).one_or_none()
        questions = session.exec(
            select(Question).where(Question.doc_id == row.doc_id).order_by(Question.position)
        ).all()
        return DocumentOut(
            id=row.doc_id,
            name=row.name,
            content=row.content,
            folder=row.folder,
            summary=_summary_out(summary) if summary else None,
            questions=[_question_out(q) for q in questions],
        )

    def get_document(self, doc_id: str) -> DocumentOut:
        with self._session() as session:
            row = session.exec(select(Document).where(Document.doc_id == doc_id)).one_or_none()
            if row is None:
                raise NotFoundError("Documento não encontrado.")
            return self._document_out(session, row)

    def list_documents(self) -> List[DocumentOut]:
        with self._session() as session:
            rows = session.exec(select(Document).order_by(Document.id)).all()
            return [self._document_out(session, r) for r in rows]

    def notebook_documents(self, notebook_id: str) -> List[DocumentOut]:
        """The notebook's documents, in the order they were added."""
        notebook = self.get_notebook(notebook_id)
        return [self.get_document(doc_id) for doc_id in notebook.document_ids]

    # --- Recorded classes ---

    def add_recording(self, recording: RecordedClassOut) -> RecordedClassOut:
        with self._session() as session:
            session.add(RecordedClass(
                recording_id=recording.id,
                title=recording.title,
                date=recording.date,
                transcription=recording.transcription,
            ))
            if recording.summary is not None:
                s = recording.summary
                session.add(Summary(
                    summary_id=s.id,
                    title=s.title,
                    content=s.content,
                    source_id=recording.id,
                    source_type="recording",
                    folder=s.folder,
                ))
            session.commit()
        logger.info("Stored recording %s", recording.id)
        return recording

    def list_recordings(self) -> List[RecordedClassOut]:
        with self._session() as session:
            rows = session.exec(select(RecordedClass).order_by(RecordedClass.id)).all()
            out = []
            for r in rows:
                summary = session.exec(
                    select(Summary).where(Summary.source_id == r.recording_id, Summary.source_type == "recording")
                ).one_or_none()
                out.append(RecordedClassOut(
                    id=r.recording_id,
                    title=r.title,
                    date=as_utc(r.date),
                    transcription=r.transcription,
                    summary=_summary_out(summary) if summary else None,
                ))
            return out

    # --- Quiz attempts ---

    def add_quiz_attempt(self, attempt: QuizAttemptOut) -> QuizAttemptOut:
        with self._session() as session:
            session.add(QuizAttempt(
                attempt_id=attempt.id,
                date=attempt.date,
                score=attempt.score,
                total_questions=attempt.total_questions,
                topic=attempt.topic,
            ))
            session.commit()
        return attempt

    def list_quiz_attempts(self) -> List[QuizAttemptOut]:
        with self._session() as session:
            rows = session.exec(select(QuizAttempt).order_by(QuizAttempt.id)).all()
            return [_attempt_out(r) for r in rows]

    # --- Summaries, folders and topics ---

    def list_summaries(self, folder: str = "all") -> List[SummaryOut]:
        # Document summaries first, then recording summaries, each in creation order.
        with self._session() as session:
            statement = select(Summary)
            if folder != "all":
                statement = statement.where(Summary.folder == folder)
            rows = session.exec(statement.order_by(Summary.id)).all()
        pdf = [_summary_out(r) for r in rows if r.source_type == "pdf"]
        rec = [_summary_out(r) for r in rows if r.source_type == "recording"]
        return pdf + rec

    def folders(self) -> List[str]:
        return [n.name for n in self.list_notebooks()] + [RECORDINGS_FOLDER]

    def topics(self) -> List[str]:
        """Distinct document folders, in first-seen order."""
        seen = []
        for doc in self.list_documents():
            if doc.folder not in seen:
                seen.append(doc.folder)
        return seen
