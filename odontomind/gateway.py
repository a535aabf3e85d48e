"""Gemini-backed generation of summaries, quiz questions and cited chat answers."""

import logging
from typing import List, Optional, Sequence

from google import genai
from google.genai import types
from pydantic import TypeAdapter, ValidationError

from odontomind import config
from odontomind.errors import (
    CredentialMissingError,
    NoDocumentsError,
    SchemaViolationError,
    TransportError,
)
from odontomind.schemas import (
    OPTIONS_PER_QUESTION,
    QUESTIONS_PER_DOCUMENT,
    ChatAnswer,
    DocumentOut,
    GeneratedChatAnswer,
    GeneratedQuestion,
    QuestionOut,
    Source,
)
from odontomind.utils import generate_unique_id

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Por favor, gere um resumo claro e organizado do seguinte texto, focado nos "
    "pontos principais para um estudante de odontologia:\n\n---\n\n{text}"
)

QUESTIONS_PROMPT = (
    "Com base no texto a seguir, crie {count} questões de múltipla escolha para um "
    "estudante de odontologia. Cada questão deve ter {options} opções e uma resposta "
    "correta, e a resposta correta deve ser idêntica a uma das opções. Formate a "
    "saída exatamente como o schema JSON fornecido.\n\n---\n\n{text}"
)

CHAT_PROMPT = """Você é um assistente de estudos especializado em odontologia. Sua tarefa é responder à pergunta do usuário baseando-se exclusivamente no contexto dos documentos de estudo fornecidos. Não utilize conhecimento externo. Se a resposta não estiver contida nos documentos, informe claramente que não encontrou a informação nos materiais fornecidos.

Cada documento do contexto é identificado por um número entre colchetes, por exemplo [1]. Sempre que usar uma informação, cite o documento inserindo o marcador correspondente no texto da resposta. Para cada marcador usado, inclua em "sources" o número do documento ("id") e o trecho exato do documento que sustenta a afirmação ("quote").

--- CONTEXTO DOS DOCUMENTOS ---
{context}
--- FIM DO CONTEXTO ---

PERGUNTA DO USUÁRIO: "{question}"
"""

QUESTIONS_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    min_items=QUESTIONS_PER_DOCUMENT,
    max_items=QUESTIONS_PER_DOCUMENT,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "question": types.Schema(type=types.Type.STRING),
            "options": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.STRING),
                min_items=OPTIONS_PER_QUESTION,
                max_items=OPTIONS_PER_QUESTION,
            ),
            "correctAnswer": types.Schema(type=types.Type.STRING),
        },
        required=["question", "options", "correctAnswer"],
    ),
)

CHAT_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "answer": types.Schema(type=types.Type.STRING),
        "sources": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "id": types.Schema(type=types.Type.INTEGER),
                    "quote": types.Schema(type=types.Type.STRING),
                },
                required=["id", "quote"],
            ),
        ),
    },
    required=["answer", "sources"],
)

_questions_adapter = TypeAdapter(List[GeneratedQuestion])


def build_context(documents: Sequence[DocumentOut]) -> str:
    """Labels each document with its 1-based position so the model can cite it."""
    return "\n\n".join(
        f"[{idx}] Documento: {doc.name}\n{doc.content}"
        for idx, doc in enumerate(documents, start=1)
    )


class GeminiGateway:
    """Thin async wrapper over one shared ``genai.Client``."""

    def __init__(self, client: genai.Client, model: str = config.GEMINI_MODEL) -> None:
        self._client = client
        self.model = model

    async def _generate(self, operation: str, contents: str, cfg: types.GenerateContentConfig) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=cfg,
            )
            text = response.text
        except Exception as e:
            logger.exception("Gemini %s call failed", operation)
            raise TransportError(f"Falha ao se comunicar com a IA ({operation}).") from e
        if not text or not text.strip():
            logger.error("Gemini %s returned an empty response", operation)
            raise SchemaViolationError(f"A IA retornou uma resposta vazia ({operation}).")
        return text

    async def summarize(self, text: str) -> str:
        cfg = types.GenerateContentConfig(temperature=0.5, top_p=0.95, top_k=64)
        summary = await self._generate("summary", SUMMARY_PROMPT.format(text=text), cfg)
        return summary.strip()

    async def generate_questions(self, text: str) -> List[QuestionOut]:
        cfg = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=QUESTIONS_SCHEMA,
        )
        prompt = QUESTIONS_PROMPT.format(
            count=QUESTIONS_PER_DOCUMENT, options=OPTIONS_PER_QUESTION, text=text
        )
        raw = await self._generate("questions", prompt, cfg)
        try:
            generated = _questions_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Gemini questions response failed validation: %s", e)
            raise SchemaViolationError("A IA retornou questões em formato inválido.") from e
        if len(generated) != QUESTIONS_PER_DOCUMENT:
            logger.error("Gemini returned %d questions instead of %d", len(generated), QUESTIONS_PER_DOCUMENT)
            raise SchemaViolationError(
                f"A IA retornou {len(generated)} questões em vez de {QUESTIONS_PER_DOCUMENT}."
            )
        return [
            QuestionOut(
                id=generate_unique_id("q"),
                question=q.question,
                options=q.options,
                correct_answer=q.correctAnswer,
                type="multiple-choice",
            )
            for q in generated
        ]

    async def chat(self, question: str, documents: Sequence[DocumentOut]) -> ChatAnswer:
        if not documents:
            raise NoDocumentsError(
                "Por favor, adicione pelo menos um documento a este notebook antes de fazer uma pergunta."
            )
        cfg = types.GenerateContentConfig(
            temperature=0.3,
            top_p=0.95,
            top_k=64,
            response_mime_type="application/json",
            response_schema=CHAT_SCHEMA,
        )
        prompt = CHAT_PROMPT.format(context=build_context(documents), question=question)
        raw = await self._generate("chat", prompt, cfg)
        try:
            generated = GeneratedChatAnswer.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Gemini chat response failed validation: %s", e)
            raise SchemaViolationError("A IA retornou uma resposta em formato inválido.") from e

        sources = []
        for src in generated.sources:
            if not 1 <= src.id <= len(documents):
                logger.error("Gemini cited unknown document [%d]", src.id)
                raise SchemaViolationError(f"A IA citou um documento inexistente: [{src.id}].")
            sources.append(
                Source(id=src.id, quote=src.quote, document_name=documents[src.id - 1].name)
            )
        return ChatAnswer(answer=generated.answer, sources=sources)


def build_gateway(api_key: Optional[str], model: str = config.GEMINI_MODEL) -> GeminiGateway:
    if not api_key or not api_key.strip() or api_key.strip() == "undefined":
        raise CredentialMissingError(config.API_KEY_ERROR_MESSAGE)
    return GeminiGateway(genai.Client(api_key=api_key.strip()), model=model)


_gateway: Optional[GeminiGateway] = None
_credential_missing = False


def get_gateway() -> GeminiGateway:
    """Returns the process-wide gateway; the credential is checked only on the first call."""
    global _gateway, _credential_missing
    if _gateway is None and not _credential_missing:
        try:
            _gateway = build_gateway(config.GEMINI_API_KEY)
        except CredentialMissingError:
            logger.error("GEMINI_API_KEY is not set; AI features are disabled")
            _credential_missing = True
    if _credential_missing:
        raise CredentialMissingError(config.API_KEY_ERROR_MESSAGE)
    return _gateway
