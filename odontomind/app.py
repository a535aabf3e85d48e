import logging
from typing import List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    Query,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from odontomind.config import DEFAULT_FOLDER, LOG_LEVEL
from odontomind.errors import (
    CredentialMissingError,
    DuplicateDocumentError,
    EmptyInputError,
    ExtractionError,
    GatewayError,
    InvalidFileError,
    NotFoundError,
    OdontoMindError,
    QuizStateError,
)
from odontomind.gateway import get_gateway
from odontomind.notebook import (
    ChatRegistry,
    CitationSegment,
    DraftRegistry,
    GatewayProvider,
    add_document,
    link_citations,
    process_pdf,
    save_processed,
)
from odontomind.quiz import QuizEngine, QuizSessions, QuizState
from odontomind.recording import LiveTranscript, summarize_recording
from odontomind.schemas import (
    ChatMessage,
    ChatRequest,
    DocumentDraft,
    DocumentOut,
    NotebookCreate,
    NotebookOut,
    QuizAnswerRequest,
    QuizStartRequest,
    RecordedClassOut,
    RecordingCreate,
    SaveDraftRequest,
    SummaryOut,
)
from odontomind.stats import Dashboard, ProfileStats, compute_stats, dashboard, render_accuracy_chart
from odontomind.store import AppStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="OdontoMind API")

# --- Dependencies ---

_store: Optional[AppStore] = None
_chats = ChatRegistry()
_drafts = DraftRegistry()
_quizzes = QuizSessions()


def get_store() -> AppStore:
    global _store
    if _store is None:
        _store = AppStore()
    return _store


def get_gateway_provider() -> GatewayProvider:
    # The gateway is resolved inside each flow, after local checks have passed.
    return get_gateway


def get_chats() -> ChatRegistry:
    return _chats


def get_drafts() -> DraftRegistry:
    return _drafts


def get_quizzes() -> QuizSessions:
    return _quizzes


# --- Error handling ---

_STATUS = [
    (CredentialMissingError, 503),
    (GatewayError, 502),
    (EmptyInputError, 400),
    (InvalidFileError, 400),
    (ExtractionError, 422),
    (NotFoundError, 404),
    (QuizStateError, 409),
    (DuplicateDocumentError, 409),
]


@app.exception_handler(OdontoMindError)
async def odontomind_error_handler(request: Request, exc: OdontoMindError):
    status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 500)
    detail = str(exc)
    if isinstance(exc, GatewayError):
        detail = f"Ocorreu um erro ao se comunicar com a IA. Tente novamente. ({exc})"
    return JSONResponse(status_code=status, content={"detail": detail, "error": type(exc).__name__})


# --- Health ---

@app.get("/")
def read_root():
    return {"message": "OdontoMind backend running"}


# --- Notebooks ---

@app.post("/notebooks", response_model=NotebookOut)
async def create_notebook(payload: NotebookCreate, store: AppStore = Depends(get_store)):
    return store.add_notebook(payload.name)


@app.get("/notebooks", response_model=List[NotebookOut])
async def list_notebooks(store: AppStore = Depends(get_store)):
    return store.list_notebooks()


@app.get("/notebooks/{notebook_id}", response_model=NotebookOut)
async def get_notebook(notebook_id: str, store: AppStore = Depends(get_store)):
    return store.get_notebook(notebook_id)


@app.get("/notebooks/{notebook_id}/documents", response_model=List[DocumentOut])
async def list_notebook_documents(notebook_id: str, store: AppStore = Depends(get_store)):
    return store.notebook_documents(notebook_id)


@app.post("/notebooks/{notebook_id}/documents", response_model=DocumentOut)
async def upload_notebook_document(
    notebook_id: str,
    file: UploadFile = File(...),
    store: AppStore = Depends(get_store),
    provider: GatewayProvider = Depends(get_gateway_provider),
):
    data = await file.read()
    return await add_document(store, provider, notebook_id, file.filename, file.content_type, data)


# --- Notebook chat ---

class ChatReply(BaseModel):
    message: ChatMessage
    segments: List[CitationSegment]


@app.get("/notebooks/{notebook_id}/chat", response_model=List[ChatMessage])
async def chat_history(
    notebook_id: str,
    store: AppStore = Depends(get_store),
    chats: ChatRegistry = Depends(get_chats),
):
    store.get_notebook(notebook_id)
    return chats.get(notebook_id).messages


@app.post("/notebooks/{notebook_id}/chat", response_model=ChatReply)
async def send_chat_message(
    notebook_id: str,
    payload: ChatRequest,
    store: AppStore = Depends(get_store),
    chats: ChatRegistry = Depends(get_chats),
    provider: GatewayProvider = Depends(get_gateway_provider),
):
    documents = store.notebook_documents(notebook_id)
    reply = await chats.get(notebook_id).ask(payload.question, documents, provider)
    return ChatReply(message=reply, segments=link_citations(reply.content, reply.sources or []))


# --- Standalone PDF processing ---

@app.post("/docs/process", response_model=DocumentDraft)
async def process_document(
    file: UploadFile = File(...),
    folder: str = Form(DEFAULT_FOLDER),
    provider: GatewayProvider = Depends(get_gateway_provider),
    drafts: DraftRegistry = Depends(get_drafts),
):
    folder = folder.strip()
    if not folder:
        raise EmptyInputError("Escolha uma pasta para o documento.")
    data = await file.read()
    draft = await process_pdf(provider, file.filename, file.content_type, data, folder)
    return drafts.put(draft)


@app.post("/docs", response_model=DocumentOut)
async def save_document(
    payload: SaveDraftRequest,
    store: AppStore = Depends(get_store),
    drafts: DraftRegistry = Depends(get_drafts),
):
    return save_processed(store, drafts, payload.draft_id, payload.title)


@app.get("/docs", response_model=List[DocumentOut])
async def list_documents(store: AppStore = Depends(get_store)):
    return store.list_documents()


@app.get("/docs/{doc_id}", response_model=DocumentOut)
async def get_document(doc_id: str, store: AppStore = Depends(get_store)):
    return store.get_document(doc_id)


# --- Summaries ---

@app.get("/summaries", response_model=List[SummaryOut])
async def list_summaries(folder: str = Query("all"), store: AppStore = Depends(get_store)):
    return store.list_summaries(folder)


@app.get("/folders", response_model=List[str])
async def list_folders(store: AppStore = Depends(get_store)):
    return store.folders()


# --- Quiz ---

class QuizView(BaseModel):
    session_id: str
    state: QuizState
    topic: str
    index: int
    total: int
    score: int
    question: Optional[str] = None
    options: List[str] = []
    selected: Optional[str] = None
    correct_answer: Optional[str] = None
    percentage: Optional[int] = None


def _quiz_view(session_id: str, quiz: QuizEngine) -> QuizView:
    view = QuizView(
        session_id=session_id,
        state=quiz.state,
        topic=quiz.topic,
        index=quiz.index,
        total=quiz.total,
        score=quiz.score,
    )
    question = quiz.current_question
    if question is not None:
        view.question = question.question
        view.options = question.options
        view.selected = quiz.answers[quiz.index]
        # The right answer is only revealed once the question has been answered.
        if view.selected is not None:
            view.correct_answer = question.correct_answer
    if quiz.state is QuizState.FINISHED:
        view.percentage = quiz.percentage
    return view


@app.get("/quiz/topics", response_model=List[str])
async def quiz_topics(store: AppStore = Depends(get_store)):
    return store.topics()


@app.post("/quiz/sessions", response_model=QuizView)
async def create_quiz_session(quizzes: QuizSessions = Depends(get_quizzes)):
    session_id, quiz = quizzes.create()
    return _quiz_view(session_id, quiz)


@app.get("/quiz/{session_id}", response_model=QuizView)
async def get_quiz(session_id: str, quizzes: QuizSessions = Depends(get_quizzes)):
    return _quiz_view(session_id, quizzes.get(session_id))


@app.post("/quiz/{session_id}/start", response_model=QuizView)
async def start_quiz(
    session_id: str,
    payload: QuizStartRequest,
    store: AppStore = Depends(get_store),
    quizzes: QuizSessions = Depends(get_quizzes),
):
    quiz = quizzes.get(session_id)
    quiz.start(payload.topic, store.list_documents())
    return _quiz_view(session_id, quiz)


@app.post("/quiz/{session_id}/answer")
async def answer_quiz_question(
    session_id: str,
    payload: QuizAnswerRequest,
    quizzes: QuizSessions = Depends(get_quizzes),
):
    quiz = quizzes.get(session_id)
    correct = quiz.answer(payload.answer)
    return {"correct": correct, "quiz": _quiz_view(session_id, quiz)}


@app.post("/quiz/{session_id}/advance", response_model=QuizView)
async def advance_quiz(
    session_id: str,
    store: AppStore = Depends(get_store),
    quizzes: QuizSessions = Depends(get_quizzes),
):
    quiz = quizzes.get(session_id)
    attempt = quiz.advance()
    if attempt is not None:
        store.add_quiz_attempt(attempt)
    return _quiz_view(session_id, quiz)


@app.post("/quiz/{session_id}/reset", response_model=QuizView)
async def reset_quiz(session_id: str, quizzes: QuizSessions = Depends(get_quizzes)):
    quiz = quizzes.get(session_id)
    quiz.reset()
    return _quiz_view(session_id, quiz)


# --- Profile and dashboard ---

@app.get("/profile/stats", response_model=ProfileStats)
async def profile_stats(store: AppStore = Depends(get_store)):
    return compute_stats(store.list_quiz_attempts())


@app.get("/profile/chart.png")
async def profile_chart(store: AppStore = Depends(get_store)):
    image = render_accuracy_chart(compute_stats(store.list_quiz_attempts()))
    if image is None:
        return JSONResponse(status_code=404, content={"detail": "Nenhum dado de simulado para exibir."})
    return Response(content=image, media_type="image/png")


@app.get("/dashboard", response_model=Dashboard)
async def get_dashboard(store: AppStore = Depends(get_store)):
    return dashboard(store.list_summaries(), store.list_quiz_attempts())


# --- Recorded classes ---

@app.post("/recordings", response_model=RecordedClassOut)
async def create_recording(
    payload: RecordingCreate,
    store: AppStore = Depends(get_store),
    provider: GatewayProvider = Depends(get_gateway_provider),
):
    return await summarize_recording(store, provider, payload.transcription, payload.title)


@app.get("/recordings", response_model=List[RecordedClassOut])
async def list_recordings(store: AppStore = Depends(get_store)):
    return store.list_recordings()


@app.websocket("/recordings/live")
async def live_recording(
    websocket: WebSocket,
    store: AppStore = Depends(get_store),
    provider: GatewayProvider = Depends(get_gateway_provider),
):
    """Receives transcription events and, on ``stop``, summarizes and saves the class.

    Events: ``{"text": "..."}``, ``{"turn_complete": true}``, ``{"stop": true}``.
    """
    await websocket.accept()
    transcript = LiveTranscript()
    transcript.on_close(lambda: logger.info("Live transcription session closed"))
    try:
        while True:
            event = await websocket.receive_json()
            if event.get("text"):
                transcript.append(str(event["text"]))
                await websocket.send_json({"transcript": transcript.text})
            if event.get("turn_complete"):
                transcript.turn_complete()
            if event.get("stop"):
                break
        transcript.close()
        try:
            recording = await summarize_recording(store, provider, transcript.text)
            await websocket.send_json({"recording": recording.model_dump(mode="json")})
        except OdontoMindError as e:
            logger.warning("Could not summarize live recording: %s", e)
            await websocket.send_json({"error": str(e), "transcript": transcript.text})
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Live transcription client disconnected")
    finally:
        transcript.close()


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
