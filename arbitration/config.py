import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.db")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Model provider: openrouter, openai, gemini or mock
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openrouter").lower()
LLM_MODEL = os.getenv("LLM_MODEL", "")  # empty -> provider default
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "800"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.2"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60"))
LLM_RETRIES = int(os.getenv("LLM_RETRIES", "0"))
LLM_RETRY_BACKOFF = float(os.getenv("LLM_RETRY_BACKOFF", "1.0"))

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

# Arbitration rules
MAX_ARGUMENTS = int(os.getenv("MAX_ARGUMENTS", "5"))
STORE_MAX_ATTEMPTS = int(os.getenv("STORE_MAX_ATTEMPTS", "5"))
DEFAULT_JURISDICTION = os.getenv("DEFAULT_JURISDICTION", "India")
DOCUMENT_EXCERPT_CHARS = int(os.getenv("DOCUMENT_EXCERPT_CHARS", "500"))

# Uploaded documents: which suffixes get text extracted, and how
OCR_EXTENSIONS = [e.strip().lower() for e in os.getenv("OCR_EXTENSIONS", ".png,.jpg,.jpeg,.tiff,.bmp").split(",") if e.strip()]
PLAIN_TEXT_EXTENSIONS = [e.strip().lower() for e in os.getenv("PLAIN_TEXT_EXTENSIONS", ".txt,.md").split(",") if e.strip()]
