"""
Service per la generazione di PDF dei documenti (Invoice Deal, ricevute).
Progetto: Fleet Back Office (Gestionale Trasporti)

Due renderer intercambiabili, scelti con settings.pdf_renderer:
- local: WeasyPrint + Jinja2 in-process, il file viene salvato su disco
- http: servizio di rendering remoto che restituisce {"pdf_url": ...}
"""

import asyncio
import logging
import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings
from app.core.exceptions import ExternalServiceFailure
from app.schemas.invoice_deal import DocumentLanguage, DocumentSnapshot

logger = logging.getLogger(__name__)

# Path alle cartelle templates
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")

RTL_LANGUAGES = {DocumentLanguage.HE, DocumentLanguage.AR}

# Etichette dei documenti per lingua
LABELS: dict[DocumentLanguage, dict[str, str]] = {
    DocumentLanguage.EN: {
        "deal": "Invoice Deal",
        "receipt": "Receipt",
        "number": "Number",
        "date": "Date",
        "booking": "Booking",
        "scheduled": "Scheduled",
        "address": "Service address",
        "customer": "Customer",
        "provider": "Provider",
        "description": "Description",
        "quantity": "Qty",
        "unit_price": "Unit price",
        "line_total": "Total",
        "subtotal": "Subtotal",
        "tax": "Tax",
        "total": "Total",
        "paid": "Paid",
        "remaining": "Remaining",
    },
    DocumentLanguage.HE: {
        "deal": "סיכום עסקה",
        "receipt": "קבלה",
        "number": "מספר",
        "date": "תאריך",
        "booking": "הזמנה",
        "scheduled": "מועד",
        "address": "כתובת השירות",
        "customer": "לקוח",
        "provider": "ספק",
        "description": "תיאור",
        "quantity": "כמות",
        "unit_price": "מחיר יחידה",
        "line_total": "סה\"כ",
        "subtotal": "סכום ביניים",
        "tax": "מע\"מ",
        "total": "סה\"כ לתשלום",
        "paid": "שולם",
        "remaining": "יתרה",
    },
    DocumentLanguage.AR: {
        "deal": "ملخص الصفقة",
        "receipt": "إيصال",
        "number": "رقم",
        "date": "تاريخ",
        "booking": "حجز",
        "scheduled": "الموعد",
        "address": "عنوان الخدمة",
        "customer": "العميل",
        "provider": "المزود",
        "description": "الوصف",
        "quantity": "الكمية",
        "unit_price": "سعر الوحدة",
        "line_total": "المجموع",
        "subtotal": "المجموع الفرعي",
        "tax": "الضريبة",
        "total": "الإجمالي",
        "paid": "المدفوع",
        "remaining": "المتبقي",
    },
}


# Lazy import of weasyprint to avoid startup errors if GTK libraries aren't available
def _get_weasyprint():
    """Lazy import of weasyprint to handle missing system libraries gracefully."""
    try:
        from weasyprint import HTML, CSS
        return HTML, CSS
    except OSError as e:
        raise RuntimeError(
            "WeasyPrint dependencies not found. Please install Pango/GTK libraries"
        ) from e


class PdfRenderer:
    """Interfaccia dei renderer: dallo snapshot all'URL del PDF."""

    async def render(self, snapshot: DocumentSnapshot) -> str:
        raise NotImplementedError


class LocalPdfRenderer(PdfRenderer):
    """
    Genera PDF da template HTML/CSS usando WeasyPrint + Jinja2.

    Il rendering è sincrono e viene eseguito in un thread per non
    bloccare l'event loop.
    """

    def __init__(
        self,
        storage_dir: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(["html"]),
        )
        self.storage_dir = storage_dir or settings.pdf_storage_dir
        self.public_base_url = (public_base_url or settings.pdf_public_base_url).rstrip("/")

    def render_html(self, snapshot: DocumentSnapshot) -> str:
        """Compila il template del documento per la lingua dello snapshot."""
        template = self.env.get_template("deal_template.html")
        context = {
            "doc": snapshot,
            "labels": LABELS[snapshot.language],
            "lang": snapshot.language.value,
            "direction": "rtl" if snapshot.language in RTL_LANGUAGES else "ltr",
            "title": LABELS[snapshot.language][snapshot.kind.value],
        }
        return template.render(context)

    def generate_document_pdf(self, snapshot: DocumentSnapshot) -> bytes:
        """
        Genera il PDF di un documento.

        Args:
            snapshot: Snapshot autosufficiente del documento

        Returns:
            bytes: PDF binario
        """
        # Lazy import weasyprint
        HTML, CSS = _get_weasyprint()

        html_out = self.render_html(snapshot)
        css = CSS(filename=os.path.join(TEMPLATES_DIR, "deal_style.css"))

        return HTML(string=html_out, base_url=TEMPLATES_DIR).write_pdf(stylesheets=[css])

    def _write(self, snapshot: DocumentSnapshot) -> str:
        pdf_bytes = self.generate_document_pdf(snapshot)
        filename = f"{snapshot.kind.value}-{snapshot.document_number}.pdf"
        os.makedirs(self.storage_dir, exist_ok=True)
        with open(os.path.join(self.storage_dir, filename), "wb") as f:
            f.write(pdf_bytes)
        return f"{self.public_base_url}/{filename}"

    async def render(self, snapshot: DocumentSnapshot) -> str:
        try:
            url = await asyncio.to_thread(self._write, snapshot)
        except (OSError, RuntimeError) as e:
            logger.error("Generazione PDF %s fallita: %s", snapshot.document_number, e)
            raise ExternalServiceFailure(f"Generazione PDF fallita: {e}") from e

        logger.info("PDF generato per %s: %s", snapshot.document_number, url)
        return url


class HttpPdfRenderer(PdfRenderer):
    """Client del servizio di rendering remoto."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or settings.pdf_service_url
        self.timeout = timeout or settings.pdf_timeout_seconds

    async def render(self, snapshot: DocumentSnapshot) -> str:
        payload = snapshot.model_dump(mode="json")
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0))
            ) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Servizio PDF non disponibile (%s): %s", self.url, e)
            raise ExternalServiceFailure(f"Servizio PDF non disponibile: {e}") from e

        pdf_url = None
        if isinstance(data, dict):
            pdf_url = data.get("pdf_url") or data.get("pdfUrl")
        if not pdf_url:
            raise ExternalServiceFailure("Risposta del servizio PDF senza pdf_url")

        logger.info("PDF generato per %s: %s", snapshot.document_number, pdf_url)
        return pdf_url


def get_pdf_renderer() -> PdfRenderer:
    """Renderer configurato in settings.pdf_renderer."""
    if settings.pdf_renderer == "http":
        return HttpPdfRenderer()
    return LocalPdfRenderer()
