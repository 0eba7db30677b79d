"""
Impressão de recibos, relatórios de fechamento e etiquetas.
Os documentos HTML são gravados no diretório de impressão; falhas
são apenas registradas em log e nunca interrompem a venda ou o fechamento.
"""
from pathlib import Path
from typing import Optional

from config.logging_config import get_logger
from config.settings import Settings
from utils import clock
from utils.receipt_builder import (
    build_barcode_labels_html,
    build_closure_report_html,
    build_receipt_html,
    build_shipping_label_html,
)

logger = get_logger(__name__)


class ReceiptPrinter:
    def __init__(self, print_dir: Optional[Path] = None):
        self.print_dir = Path(print_dir or Settings.PRINT_DIR)

    def _write(self, filename: str, html: str) -> Path:
        self.print_dir.mkdir(parents=True, exist_ok=True)
        path = self.print_dir / filename
        path.write_text(html, encoding="utf-8")
        return path

    def print_receipt(self, sale, items, settings: Optional[dict] = None) -> Optional[Path]:
        try:
            path = self._write(f"recibo_{sale.id}.html", build_receipt_html(sale, items, settings))
        except Exception:
            logger.exception("Falha ao imprimir recibo da venda %s", getattr(sale, "id", None))
            return None
        logger.info("Recibo gerado: %s", path)
        return path

    def print_closure_report(self, closure, settings: Optional[dict] = None) -> Optional[Path]:
        try:
            path = self._write(
                f"fechamento_{closure.cash_session_id}.html",
                build_closure_report_html(closure, settings),
            )
        except Exception:
            logger.exception(
                "Falha ao imprimir fechamento da sessão %s",
                getattr(closure, "cash_session_id", None),
            )
            return None
        logger.info("Relatório de fechamento gerado: %s", path)
        return path

    def print_shipping_label(self, order, settings: Optional[dict] = None) -> Optional[Path]:
        try:
            path = self._write(
                f"etiqueta_envio_{order.id}.html", build_shipping_label_html(order, settings)
            )
        except Exception:
            logger.exception("Falha ao imprimir etiqueta do pedido %s", getattr(order, "id", None))
            return None
        logger.info("Etiqueta de envio gerada: %s", path)
        return path

    def print_barcode_labels(self, products, settings: Optional[dict] = None) -> Optional[Path]:
        try:
            path = self._write(
                f"etiquetas_{clock.now():%Y%m%d_%H%M%S}.html",
                build_barcode_labels_html(products, settings),
            )
        except Exception:
            logger.exception("Falha ao imprimir etiquetas de código de barras")
            return None
        logger.info("Etiquetas geradas: %s", path)
        return path
