"""
Mirror dei documenti verso il gateway di pagamento
Progetto: Fleet Back Office (Gestionale Trasporti)

Effetto collaterale best-effort: eseguito come BackgroundTask dopo
la risposta, un errore viene solo loggato.
"""

import logging
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.schemas.invoice import InvoiceRead, PaymentRead

logger = logging.getLogger(__name__)


class DocumentMirrorService:
    """Client del gateway a cui vengono replicati fatture e pagamenti."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.url = url if url is not None else settings.gateway_mirror_url
        self.api_key = api_key if api_key is not None else settings.gateway_mirror_api_key
        self.timeout = timeout or settings.gateway_mirror_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def build_payload(
        self,
        invoice: InvoiceRead,
        payments: Optional[list[PaymentRead]] = None,
    ) -> dict[str, Any]:
        """Documento inviato al gateway."""
        return {
            "document_number": invoice.invoice_number,
            "document_type": invoice.invoice_type.value,
            "direction": invoice.direction.value,
            "booking_id": str(invoice.booking_id),
            "customer_id": str(invoice.customer_id),
            "total_amount": str(invoice.total_amount),
            "tax_amount": str(invoice.tax_amount) if invoice.tax_amount is not None else None,
            "paid_amount": str(invoice.paid_amount),
            "remaining_amount": str(invoice.remaining_amount),
            "status": invoice.status.value,
            "payments": [
                {
                    "amount": str(p.amount),
                    "method": p.method.value,
                    "transaction_id": p.transaction_id,
                    "paid_at": p.paid_at.isoformat(),
                }
                for p in (payments or [])
            ],
        }

    async def mirror_invoice(
        self,
        invoice: InvoiceRead,
        payments: Optional[list[PaymentRead]] = None,
    ) -> bool:
        """
        Invia il documento al gateway.

        Returns:
            bool: True se il gateway ha accettato il documento
        """
        if not self.enabled:
            logger.debug("Mirror gateway disabilitato, documento %s non inviato", invoice.invoice_number)
            return False

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.post(
                    self.url,
                    json=self.build_payload(invoice, payments),
                    headers={"X-API-Key": self.api_key},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Mirror del documento %s fallito: %s", invoice.invoice_number, e)
            return False

        logger.info("Documento %s replicato sul gateway", invoice.invoice_number)
        return True


document_mirror_service = DocumentMirrorService()
