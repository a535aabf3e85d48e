import fitz  # PyMuPDF
import os
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from odontomind.config import MAX_UPLOAD_MB
from odontomind.errors import ExtractionError, InvalidFileError

PDF_MIME_TYPE = "application/pdf"

# Helper functions

def get_file_extension(filename: str) -> str:
    """Gets the file extension from a filename."""
    return os.path.splitext(filename)[1].lower()


def utcnow() -> datetime:
    """Current time in UTC; stored timestamps always carry their timezone."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values for what was written as UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def generate_unique_id(prefix: str) -> str:
    """Generates a prefixed unique ID, e.g. ``doc-3f9a0c…``."""
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def validate_pdf_upload(filename: Optional[str], content_type: Optional[str], size: int) -> None:
    """Rejects anything that is not a single PDF within the upload size limit."""
    if not filename:
        raise InvalidFileError("Por favor, selecione um arquivo PDF.")
    if get_file_extension(filename) != ".pdf" or (content_type and content_type != PDF_MIME_TYPE):
        raise InvalidFileError("Tipo de arquivo inválido. Apenas arquivos PDF são permitidos.")
    if size > MAX_UPLOAD_MB * 1024 * 1024:
        raise InvalidFileError(f"O arquivo excede o limite de {MAX_UPLOAD_MB} MB.")


def extract_pages_from_pdf(data: bytes) -> List[str]:
    """Extracts the text of every page of an in-memory PDF using PyMuPDF."""
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise ValueError("PDF has no pages")
            return [page.get_text() for page in doc]
    except Exception as e:
        raise ExtractionError(
            "Ocorreu um erro ao processar o PDF. O arquivo pode estar corrompido."
        ) from e


def extract_text_from_pdf(data: bytes) -> str:
    """Extracts the full text of a PDF, one line break after each page."""
    return "".join(page.rstrip("\n") + "\n" for page in extract_pages_from_pdf(data))
