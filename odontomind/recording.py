"""Recorded classes: a running transcript fed by a live session, summarized at the end."""

import logging
from typing import Callable, List, Optional

from odontomind.config import RECORDINGS_FOLDER
from odontomind.errors import EmptyInputError
from odontomind.gateway import GeminiGateway
from odontomind.schemas import RecordedClassOut, SummaryOut
from odontomind.store import AppStore
from odontomind.utils import generate_unique_id, utcnow

logger = logging.getLogger(__name__)


class LiveTranscript:
    """Accumulates transcription fragments as they arrive.

    ``close`` runs the registered release callbacks exactly once, no matter how
    many times it is called or whether a callback fails.
    """

    def __init__(self) -> None:
        self._parts: List[str] = []
        self._on_close: List[Callable[[], None]] = []
        self.closed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def on_close(self, callback: Callable[[], None]) -> None:
        self._on_close.append(callback)

    def append(self, fragment: str) -> None:
        if self.closed:
            raise RuntimeError("transcript is closed")
        self._parts.append(fragment)

    def turn_complete(self) -> None:
        self.append(" ")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        callbacks, self._on_close = self._on_close, []
        errors = []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.exception("Failed to release live session resource")
                errors.append(e)
        if errors:
            raise errors[0]


async def summarize_recording(
    store: AppStore,
    get_gateway: Callable[[], GeminiGateway],
    transcription: str,
    title: Optional[str] = None,
) -> RecordedClassOut:
    if not transcription.strip():
        raise EmptyInputError("Nenhuma fala foi detectada para resumir.")

    content = await get_gateway().summarize(transcription)

    now = utcnow()
    stamp = now.astimezone().strftime("%d/%m/%Y %H:%M:%S")
    recording_id = generate_unique_id("rec")
    recording = RecordedClassOut(
        id=recording_id,
        title=title or f"Gravação de {stamp}",
        date=now,
        transcription=transcription,
        summary=SummaryOut(
            id=f"sum-{recording_id}",
            title=f"Resumo da Gravação de {stamp}",
            content=content,
            source_id=recording_id,
            source_type="recording",
            folder=RECORDINGS_FOLDER,
        ),
    )
    return store.add_recording(recording)
