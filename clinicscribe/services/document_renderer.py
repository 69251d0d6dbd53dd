"""Render a finalized consultation into a printable HTML document."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape
from markupsafe import Markup, escape

__all__ = ["DocumentData", "render_document", "nl2br"]

TEMPLATE_NAME = "consultation_document.html"


@dataclass(frozen=True)
class DocumentData:
    patient_name: str
    patient_age: str
    date: str
    summary: str
    diagnosis: str
    prescription: str
    examination_results: Optional[str] = None
    treatment_plan: Optional[str] = None
    doctor_notes: Optional[str] = None


def nl2br(value: Any) -> Markup:
    """Escape ``value`` and turn its line breaks into ``<br>``."""
    text = str(escape(value or "")).replace("\r\n", "\n")
    return Markup(text.replace("\n", "<br>"))


def _is_filled(value: Any) -> bool:
    return bool(value and str(value).strip())


_env = Environment(
    loader=PackageLoader("clinicscribe", "templates"),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
)
_env.filters["nl2br"] = nl2br
_env.tests["filled"] = _is_filled


def render_document(data: DocumentData) -> str:
    """Return the complete HTML document for ``data``.

    Optional sections (examination results, plan, additional notes) are left
    out entirely when empty.
    """
    return _env.get_template(TEMPLATE_NAME).render(doc=data)
