import os

from dotenv import load_dotenv

load_dotenv()

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite://")

MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", 25))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

RECORDINGS_FOLDER = "Aulas Gravadas"
DEFAULT_FOLDER = "Endodontia"

# Unsaved drafts and live quiz sessions kept in memory; the oldest go first.
MAX_DRAFTS = int(os.environ.get("MAX_DRAFTS", 50))
MAX_QUIZ_SESSIONS = int(os.environ.get("MAX_QUIZ_SESSIONS", 100))

API_KEY_ERROR_MESSAGE = (
    "A chave da API do Gemini não foi configurada. Defina GEMINI_API_KEY no "
    "ambiente (ou no arquivo .env) para usar as funcionalidades de IA."
)
