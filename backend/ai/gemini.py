"""
ai/gemini.py

Gemini-backed services used by the ingestion pipeline
- GeminiImageExtractor: OCR + short summary of an image
- GeminiAudioExtractor: transcription of a voice recording
- GeminiAnalyzer: structured analysis of the aggregated text

Environment (one of the first two is required):
- GOOGLE_APPLICATION_CREDENTIALS: service account JSON path (Vertex AI)
- GOOGLE_API_KEY: API key
- VERTEX_LOCATION (optional, default: us-central1)
- GEMINI_MODEL (optional, default: gemini-2.0-flash)
- GEMINI_AUDIO_MODEL (optional, defaults to GEMINI_MODEL)
"""

from __future__ import annotations

import io
import json
import logging
import os
from datetime import datetime
from typing import Any, Optional, Tuple

from dotenv import load_dotenv
from google import genai
from google.genai import types
from PIL import Image

from helpers.ai_helpers import parse_json_response
from helpers.errors import AnalyzerUnavailable
from models.pipeline import ExtractionResult

load_dotenv()

logger = logging.getLogger(__name__)

MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
AUDIO_MODEL = os.getenv("GEMINI_AUDIO_MODEL", MODEL)

API_KEY = os.getenv("GOOGLE_API_KEY")
CREDENTIALS_PATH = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
VERTEX_LOCATION = os.getenv("VERTEX_LOCATION", "us-central1")


def _load_project_id_from_credentials(path: str) -> str | None:
    try:
        with open(path, "r") as f:
            return json.load(f).get("project_id")
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"[AI] Could not read service account file: {e}")
        return None


def create_client() -> genai.Client | None:
    if CREDENTIALS_PATH and os.path.exists(CREDENTIALS_PATH):
        project_id = _load_project_id_from_credentials(CREDENTIALS_PATH)
        if project_id:
            logger.info(f"[AI] Using Vertex AI - project: {project_id}, location: {VERTEX_LOCATION}")
            return genai.Client(vertexai=True, project=project_id, location=VERTEX_LOCATION)
        logger.warning("[AI] project_id missing from service account JSON")
    if API_KEY:
        logger.info("[AI] Using API key authentication")
        return genai.Client(api_key=API_KEY)
    logger.warning("[AI] No credentials. Set GOOGLE_APPLICATION_CREDENTIALS or GOOGLE_API_KEY.")
    return None


client = create_client()


# ============ Prompts ============
def _load_prompt(filename: str) -> str:
    path = os.path.join(os.path.dirname(__file__), filename)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


ANALYSIS_PROMPT = _load_prompt("analysis_prompt.md")

IMAGE_PROMPT = """Analyze this image and do the following:
1. OCR: extract all text visible in the image. If there is no text, use an empty string.
2. Summary: briefly describe the main content, scene or key information of the image.

Return JSON only, exactly in this shape:
{"ocr_text": "extracted text", "summary": "image summary"}"""

AUDIO_PROMPT = (
    "Transcribe this voice recording verbatim in its original language. "
    "Return only the transcript text. If nothing intelligible is spoken, return an empty response."
)


# ============ Helpers ============
def _preprocess_image(image_bytes: bytes, max_size: int = 1024, quality: int = 85) -> Tuple[bytes, Optional[str]]:
    """
    Resize (keeping aspect ratio) and re-encode as JPEG before OCR.
    Falls back to the original bytes if Pillow cannot read the image.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        original_size = img.size

        if img.mode in ("RGBA", "P"):
            if img.mode == "P":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if max(img.size) > max_size:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            logger.info(f"[AI] Image resized: {original_size} -> {img.size}")

        output = io.BytesIO()
        img.save(output, format="JPEG", quality=quality, optimize=True)
        return output.getvalue(), "image/jpeg"
    except Exception as e:
        logger.error(f"[AI] Image preprocessing failed: {e}, using original")
        return image_bytes, None


def _require_client(c):
    if c is None:
        raise RuntimeError("Gemini client is not configured (GOOGLE_API_KEY / GOOGLE_APPLICATION_CREDENTIALS)")
    return c


def _media_part(data: bytes, mime_type: str, reference: Optional[str], use_reference: bool):
    if use_reference and reference:
        return types.Part.from_uri(file_uri=reference, mime_type=mime_type)
    return types.Part.from_bytes(data=data, mime_type=mime_type)


# ============ Extractors ============
class GeminiImageExtractor:
    def __init__(self, gemini_client=None, model: str = MODEL, use_reference: bool = False):
        self.client = gemini_client if gemini_client is not None else client
        self.model = model
        self.use_reference = use_reference

    async def extract(self, data: bytes, mime_type: str, reference: Optional[str] = None) -> ExtractionResult:
        try:
            c = _require_client(self.client)
            if self.use_reference and reference:
                part = _media_part(data, mime_type, reference, True)
            else:
                processed, processed_mime = _preprocess_image(data)
                part = types.Part.from_bytes(data=processed, mime_type=processed_mime or mime_type)

            resp = await c.aio.models.generate_content(
                model=self.model,
                contents=[part, IMAGE_PROMPT],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    temperature=0.3,
                    max_output_tokens=1000,
                ),
            )
            result = parse_json_response(resp.text or "")
            if not isinstance(result, dict):
                return ExtractionResult(error="Image analysis returned an unexpected shape")
            ocr_text = result.get("ocr_text") or result.get("ocrText")
            summary = result.get("summary")
            return ExtractionResult(
                text=ocr_text if isinstance(ocr_text, str) else None,
                summary=summary if isinstance(summary, str) else None,
            )
        except Exception as e:
            logger.error(f"[AI] Image analysis failed: {e}")
            return ExtractionResult(error=str(e) or type(e).__name__)


class GeminiAudioExtractor:
    def __init__(self, gemini_client=None, model: str = AUDIO_MODEL, use_reference: bool = False):
        self.client = gemini_client if gemini_client is not None else client
        self.model = model
        self.use_reference = use_reference

    async def transcribe(self, data: bytes, mime_type: str, reference: Optional[str] = None) -> ExtractionResult:
        try:
            c = _require_client(self.client)
            part = _media_part(data, mime_type, reference, self.use_reference)
            resp = await c.aio.models.generate_content(
                model=self.model,
                contents=[part, AUDIO_PROMPT],
                config=types.GenerateContentConfig(temperature=0.0),
            )
            return ExtractionResult(text=(resp.text or "").strip())
        except Exception as e:
            logger.error(f"[AI] Transcription failed: {e}")
            return ExtractionResult(error=str(e) or type(e).__name__)


# ============ Analyzer ============
class GeminiAnalyzer:
    """Raises AnalyzerMalformedResponse for unparseable output, AnalyzerUnavailable otherwise."""

    def __init__(self, gemini_client=None, model: str = MODEL):
        self.client = gemini_client if gemini_client is not None else client
        self.model = model

    def build_prompt(self, text: str) -> str:
        return ANALYSIS_PROMPT.format(today=datetime.now().strftime("%Y-%m-%d"), content=text)

    async def analyze(self, text: str) -> Any:
        try:
            c = _require_client(self.client)
            logger.info(f"[AI] Gemini analysis - model: {self.model}")
            resp = await c.aio.models.generate_content(
                model=self.model,
                contents=[self.build_prompt(text)],
                config=types.GenerateContentConfig(
                    system_instruction="You are a concise assistant that only returns valid JSON.",
                    response_mime_type="application/json",
                    temperature=0.3,
                    max_output_tokens=1024,
                ),
            )
        except Exception as e:
            logger.error(f"[AI] Gemini call failed: {e}")
            raise AnalyzerUnavailable(f"Gemini call failed: {e}") from e

        raw_text = resp.text or ""
        logger.debug(f"[AI] Raw analyzer response:\n{raw_text[:2000]}")
        return parse_json_response(raw_text)


def is_ai_available() -> bool:
    return client is not None
