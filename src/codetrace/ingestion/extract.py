"""Document bytes → plain text.

PDFs go through pdfplumber page by page; anything else is treated as HTML
and flattened with BeautifulSoup, keeping table rows on one line each.
"""

import io
import logging
import re

import pdfplumber
from bs4 import BeautifulSoup

from codetrace.core.errors import DocumentParseError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


def is_pdf(data: bytes) -> bool:
    return data.lstrip()[:4] == PDF_MAGIC


def html_to_text(html: str) -> str:
    """Convert HTML to clean text, preserving table structure."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style"]):
        tag.decompose()

    for table in soup.find_all("table"):
        rows = []
        for tr in table.find_all("tr"):
            cells = [td.get_text(strip=True) for td in tr.find_all(["td", "th"])]
            rows.append(" | ".join(cells))
        table.replace_with("\n".join(rows) + "\n")

    text = soup.get_text(separator="\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def pdf_to_text(data: bytes, url: str = "") -> str:
    """Extract the text layer of a PDF. Pages without text are skipped."""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise DocumentParseError(url, str(e)) from e

    text = "\n".join(p for p in pages if p.strip())
    logger.debug("Extracted %d chars from %d PDF pages (%s)", len(text), len(pages), url)
    return text


def document_to_text(data: bytes, url: str = "") -> str:
    """Extract text from a fetched document, PDF or HTML."""
    if is_pdf(data):
        return pdf_to_text(data, url)
    return html_to_text(data.decode("utf-8", errors="replace"))
