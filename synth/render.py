"""Render-and-Persist: HTML templating, PDF rendering with retry, artifact writes.

Order of writes for one job:
1. resume_<ts>.html into <output_root>/generated  (mandatory; failure is fatal)
2. PDF render, up to N attempts, each checked for the %PDF signature
3. resume_<ts>.pdf next to the HTML, then <uuid>.pdf under resumes/<user_id>

A render that never produces a PDF is recorded in the returned metadata
and nothing PDF-related is written.
"""

import io
import logging
import uuid
from datetime import datetime
from pathlib import Path
from xml.sax.saxutils import escape

from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, select_autoescape
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer

from synth.api_utils import CancelToken, call_with_retry
from synth.errors import JobCancelledError, RenderError
from synth.prompts import DEFAULT_LABELS

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
PDF_MAGIC = b"%PDF"


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

def inline_css(html: str, css: str) -> str:
    """Put the stylesheet inside <head>, or in front of the document if there is none."""
    style = f"<style>\n{css}\n</style>\n"
    idx = html.find("</head>")
    if idx >= 0:
        return html[:idx] + style + html[idx:]
    return style + html


def render_html(document, language: str = "english", template_dir: Path = TEMPLATE_DIR) -> str:
    """Render a ResumeDocument into self-contained HTML."""
    template_dir = Path(template_dir)
    env = Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(["html"]),
    )
    labels = dict(DEFAULT_LABELS)
    labels.update(document.labels or {})
    html = env.get_template("resume.html").render(
        resume=document,
        labels=labels,
        lang=language[:2].lower() if language else "en",
    )
    css = (template_dir / "style.css").read_text(encoding="utf-8")
    return inline_css(html, css)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

GREEN = HexColor("#1CAD62")
GRAY = HexColor("#3E3E3E")

_STYLES = {
    "h1": ParagraphStyle("h1", fontName="Times-Bold", fontSize=20, leading=24, spaceAfter=2),
    "h2": ParagraphStyle("h2", fontName="Times-Bold", fontSize=12, leading=15, textColor=GREEN,
                         spaceBefore=10, spaceAfter=4),
    "h3": ParagraphStyle("h3", fontName="Helvetica-Bold", fontSize=10, leading=13, spaceBefore=5),
    "p": ParagraphStyle("p", fontName="Helvetica", fontSize=9.5, leading=12.5, textColor=GRAY),
    "li": ParagraphStyle("li", fontName="Helvetica", fontSize=9.5, leading=12.5, textColor=GRAY,
                         leftIndent=10, bulletIndent=2),
}


class ReportlabRenderer:
    """HTML -> PDF with BeautifulSoup and reportlab platypus.

    Typesets headings, paragraphs and list items in document order; the
    stylesheet is approximated by fixed paragraph styles.
    """

    def render_html_to_pdf(self, html: str) -> bytes:
        soup = BeautifulSoup(html, "html.parser")
        root = soup.body or soup
        story = []
        for el in root.find_all(["h1", "h2", "h3", "p", "li", "div"]):
            if el.name == "div":
                if "page-break" in (el.get("class") or []):
                    story.append(PageBreak())
                continue
            text = " ".join(el.get_text(" ", strip=True).split())
            if not text:
                continue
            if el.name == "li":
                story.append(Paragraph(escape(text), _STYLES["li"], bulletText="•"))
            else:
                story.append(Paragraph(escape(text), _STYLES[el.name]))
            if el.name == "h1":
                story.append(Spacer(1, 2))

        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf, pagesize=A4,
            leftMargin=14 * mm, rightMargin=14 * mm, topMargin=14 * mm, bottomMargin=12 * mm,
        )
        doc.build(story)
        return buf.getvalue()


def _delays_for(attempts: int, delays) -> tuple:
    """Backoff schedule with exactly attempts-1 waits, repeating the last delay if short."""
    delays = tuple(delays) or (0.0,)
    waits = max(attempts - 1, 0)
    return tuple(delays[i] if i < len(delays) else delays[-1] for i in range(waits))


def render_pdf_with_retry(html: str, renderer, attempts: int = 3, delays=(1.0, 2.0),
                          cancel: CancelToken = None):
    """Render html, retrying on renderer errors and bad signatures.

    Returns:
        (pdf_bytes, attempts_used)

    Raises:
        RenderError: every attempt failed; carries .attempts.
        JobCancelledError: the token tripped before or between attempts.
    """
    used = 0

    def _attempt():
        nonlocal used
        used += 1
        try:
            data = renderer.render_html_to_pdf(html)
        except (JobCancelledError, RenderError):
            raise
        except Exception as e:
            raise RenderError(f"renderer failed: {e}") from e
        if not isinstance(data, (bytes, bytearray)) or not bytes(data[:4]) == PDF_MAGIC:
            raise RenderError("renderer output is not a PDF (missing %PDF signature)")
        return bytes(data)

    try:
        pdf = call_with_retry(
            _attempt,
            delays=_delays_for(attempts, delays),
            cancel=cancel,
            label="PDF render",
        )
    except RenderError as e:
        e.attempts = used
        raise
    return pdf, used


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def _timestamp(now: datetime = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S_%f")


def persist_artifacts(document, user_id: str, generated_dir, user_resumes_dir, renderer,
                      attempts: int = 3, delays=(1.0, 2.0), cancel: CancelToken = None,
                      language: str = "english", now: datetime = None) -> dict:
    """Write HTML, then try PDF and the per-user copy.

    Args:
        document: validated ResumeDocument.
        user_id: owner; names the per-user directory.
        generated_dir: shared directory for timestamp-keyed artifacts.
        user_resumes_dir: parent of the per-user directories.
        renderer: object with render_html_to_pdf(html) -> bytes.

    Returns:
        Metadata: generated_html, generated_pdf, user_copy, pdf_attempts and,
        on render failure only, pdf_render_error.

    Raises:
        OSError: the HTML artifact could not be written.
    """
    generated_dir = Path(generated_dir)
    generated_dir.mkdir(parents=True, exist_ok=True)

    html = render_html(document, language=language)
    stem = f"resume_{_timestamp(now)}"
    html_path = generated_dir / f"{stem}.html"
    if html_path.exists():
        stem = f"{stem}_{uuid.uuid4().hex[:8]}"
        html_path = generated_dir / f"{stem}.html"
    html_path.write_text(html, encoding="utf-8")
    logger.info("Wrote HTML artifact %s", html_path)

    meta = {"generated_html": str(html_path), "generated_pdf": "", "user_copy": ""}
    try:
        pdf, used = render_pdf_with_retry(html, renderer, attempts=attempts, delays=delays, cancel=cancel)
    except RenderError as e:
        logger.warning("PDF render failed after %d attempts: %s", getattr(e, "attempts", attempts), e)
        meta["pdf_render_error"] = str(e)
        meta["pdf_attempts"] = getattr(e, "attempts", attempts)
        return meta
    meta["pdf_attempts"] = used

    try:
        pdf_path = generated_dir / f"{stem}.pdf"
        pdf_path.write_bytes(pdf)
        user_dir = Path(user_resumes_dir) / str(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)
        user_path = user_dir / f"{uuid.uuid4()}.pdf"
        user_path.write_bytes(pdf)
    except OSError as e:
        logger.warning("Could not write PDF artifacts: %s", e)
        meta["pdf_render_error"] = f"could not write pdf: {e}"
        return meta

    meta["generated_pdf"] = str(pdf_path)
    meta["user_copy"] = str(user_path)
    logger.info("Wrote PDF artifacts %s and %s", pdf_path, user_path)
    return meta
