import json
import logging
import math
import re
import time
import requests
from pathlib import Path
from pdfminer.high_level import extract_text as pdf_extract_text
from PIL import Image
import pytesseract
from typing import Callable, Dict, List, NamedTuple, Optional

from . import config
from .errors import ModelUnavailable
from .models import Verdict, VerdictRecord

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

DEFAULT_MODELS = {
    "openrouter": "mistralai/mistral-small-3.2-24b-instruct:free",
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.5-pro",
    "mock": "mock",
}

MOCK_RESPONSE = "MOCK: Neutral (no LLM provider configured)."

DEFAULT_CONFIDENCE = 50
PARSE_FAILURE = "Could not parse model response. Raw output: {raw}"
NO_REASONING = "No reasoning provided."

Messages = List[Dict[str, str]]


class ModelOptions(NamedTuple):
    model: str
    max_output_tokens: int = 800
    temperature: float = 0.2


Generator = Callable[[Messages, ModelOptions], str]


# -------------------------------
# Utility: Extract text from files
# -------------------------------
def extract_text_from_file(path: Path) -> str:
    """Text of an uploaded document, or "" when the type is not supported."""
    suffix = path.suffix.lower()
    try:
        if suffix == ".pdf":
            return pdf_extract_text(str(path))
        if suffix in config.OCR_EXTENSIONS:
            with Image.open(path) as img:
                return pytesseract.image_to_string(img)
        if suffix in config.PLAIN_TEXT_EXTENSIONS:
            return path.read_text(encoding="utf-8", errors="replace")
        return ""
    except Exception:
        logger.warning("Text extraction failed for %s", path, exc_info=True)
        return ""


# -------------------------------
# Model providers
# -------------------------------
def _post(url, payload, headers=None, params=None) -> dict:
    attempts = config.LLM_RETRIES + 1
    for attempt in range(attempts):
        try:
            resp = requests.post(url, headers=headers, params=params, json=payload, timeout=config.LLM_TIMEOUT)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            if attempt + 1 >= attempts:
                raise ModelUnavailable(f"LLM call failed: {e}") from e
            delay = config.LLM_RETRY_BACKOFF * (2 ** attempt)
            logger.warning("LLM call failed (%s), retrying in %.1fs", e, delay)
            time.sleep(delay)


def _chat_completion(url, api_key, messages, options) -> str:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": options.model,
        "messages": messages,
        "max_tokens": options.max_output_tokens,
        "temperature": options.temperature,
    }
    data = _post(url, payload, headers=headers)
    try:
        return data["choices"][0]["message"]["content"].strip()
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise ModelUnavailable(f"Unexpected LLM response shape: {e}") from e


def call_openrouter(messages: Messages, options: ModelOptions) -> str:
    if not config.OPENROUTER_API_KEY:
        raise ModelUnavailable("OPENROUTER_API_KEY not set")
    return _chat_completion(OPENROUTER_URL, config.OPENROUTER_API_KEY, messages, options)


def call_openai(messages: Messages, options: ModelOptions) -> str:
    if not config.OPENAI_API_KEY:
        raise ModelUnavailable("OPENAI_API_KEY not set")
    return _chat_completion(OPENAI_URL, config.OPENAI_API_KEY, messages, options)


def call_gemini(messages: Messages, options: ModelOptions) -> str:
    if not config.GEMINI_API_KEY:
        raise ModelUnavailable("GEMINI_API_KEY not set")
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
        for m in messages
        if m["role"] != "system"
    ]
    payload = {
        "contents": contents,
        "generationConfig": {
            "maxOutputTokens": options.max_output_tokens,
            "temperature": options.temperature,
        },
    }
    if system:
        payload["systemInstruction"] = {"parts": [{"text": system}]}
    data = _post(
        GEMINI_URL.format(model=options.model),
        payload,
        headers={"Content-Type": "application/json"},
        params={"key": config.GEMINI_API_KEY},
    )
    try:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts).strip()
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise ModelUnavailable(f"Unexpected Gemini response shape: {e}") from e


def call_mock(messages: Messages, options: ModelOptions) -> str:
    return MOCK_RESPONSE


PROVIDERS: Dict[str, Generator] = {
    "openrouter": call_openrouter,
    "openai": call_openai,
    "gemini": call_gemini,
    "mock": call_mock,
}


def select_generator(provider: Optional[str] = None) -> Generator:
    provider = (provider or config.LLM_PROVIDER).lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown LLM_PROVIDER {provider!r}; expected one of {sorted(PROVIDERS)}")
    logger.info("Using LLM provider %s", provider)
    return PROVIDERS[provider]


def default_options(provider: Optional[str] = None) -> ModelOptions:
    provider = (provider or config.LLM_PROVIDER).lower()
    return ModelOptions(
        model=config.LLM_MODEL or DEFAULT_MODELS.get(provider, ""),
        max_output_tokens=config.LLM_MAX_TOKENS,
        temperature=config.LLM_TEMPERATURE,
    )


# -------------------------------
# Parse model output into a verdict
# -------------------------------
_FENCE_OPEN = re.compile(r"^```[\w-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")
_VERDICT_LABELS = {
    "favorofa": Verdict.FAVOR_A,
    "favora": Verdict.FAVOR_A,
    "infavorofa": Verdict.FAVOR_A,
    "favorofb": Verdict.FAVOR_B,
    "favorb": Verdict.FAVOR_B,
    "infavorofb": Verdict.FAVOR_B,
    "neutral": Verdict.NEUTRAL,
}


def strip_fences(text: str) -> str:
    clean = _FENCE_OPEN.sub("", text.strip())
    return _FENCE_CLOSE.sub("", clean).strip()


def _coerce_confidence(value) -> int:
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
    try:
        number = float(value)
    except OverflowError:
        # integer beyond float range
        return 100 if value > 0 else 0
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if not math.isfinite(number):
        return DEFAULT_CONFIDENCE
    return int(min(max(round(number), 0), 100))


def _coerce_verdict(value) -> Verdict:
    if not isinstance(value, str):
        return Verdict.NEUTRAL
    key = re.sub(r"[^a-z]", "", value.lower()).replace("favour", "favor")
    label = _VERDICT_LABELS.get(key)
    if label is None:
        logger.warning("Unrecognised verdict label %r, using Neutral", value)
        return Verdict.NEUTRAL
    return label


def _pick(data: dict, primary: str, fallback: str):
    value = data.get(primary)
    if value is None or (isinstance(value, str) and not value.strip()):
        value = data.get(fallback)
    return value


def parse_model_response(response_text) -> VerdictRecord:
    """
    Turn raw model text into a VerdictRecord. Never raises.

    Code fences around the JSON are stripped. Text that does not decode to a
    JSON object falls back to a Neutral verdict at confidence 50 that keeps
    the raw output in the reasoning. ``reason`` and ``conf`` are accepted
    when ``reasoning`` and ``confidence`` are missing.
    """
    raw = response_text if isinstance(response_text, str) else str(response_text)
    try:
        data = json.loads(strip_fences(raw))
    except (ValueError, RecursionError):
        data = None
    if not isinstance(data, dict):
        logger.warning("Model response is not a JSON object, falling back to Neutral")
        logger.debug("Unparsed model output: %s", raw)
        return VerdictRecord(
            verdict=Verdict.NEUTRAL,
            confidence=DEFAULT_CONFIDENCE,
            reasoning=PARSE_FAILURE.format(raw=raw),
        )

    reasoning = _pick(data, "reasoning", "reason")
    if reasoning is None or not str(reasoning).strip():
        reasoning = NO_REASONING
    return VerdictRecord(
        verdict=_coerce_verdict(data.get("verdict")),
        confidence=_coerce_confidence(_pick(data, "confidence", "conf")),
        reasoning=str(reasoning),
    )
