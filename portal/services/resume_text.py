# portal/services/resume_text.py
"""Plain text out of an uploaded resume, chosen by file extension."""
import io
import logging

from docx import Document
from pdfminer.high_level import extract_text as pdf_text

logger = logging.getLogger(__name__)


def _docx_text(data: bytes) -> str:
    lines = [p.text.strip() for p in Document(io.BytesIO(data)).paragraphs]
    return "\n".join(line for line in lines if line)


_PARSERS = {
    ".pdf": lambda data: pdf_text(io.BytesIO(data)),
    ".docx": _docx_text,
}


def resume_text(data: bytes, suffix: str) -> str:
    """Extract text; a file the parser rejects is read as UTF-8 so the prompt still gets something."""
    parser = _PARSERS.get(suffix.lower())
    if parser is not None and data:
        try:
            return parser(data)
        except Exception:
            logger.warning("Could not parse %s resume; using raw text", suffix, exc_info=True)
    return data.decode("utf-8", errors="replace")
