"""
Carrega e salva configuração de layout do recibo para impressão.
"""
import json
from pathlib import Path

from config.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "receipt_config.json"

DEFAULTS = {
    "paper_width_mm": 80,
    "margin_mm": 5,
    "font_size_pt": 10,
    "header_text": "PDV",
    "subheader_text": "Extrato nao fiscal",
    "footer_text": "Obrigado pela preferencia!",
    "copies": 1,
}


def load_receipt_config(path: Path = CONFIG_PATH) -> dict:
    """Retorna a configuração do recibo (merge com defaults)."""
    out = dict(DEFAULTS)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                out.update(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning("Configuração de recibo ignorada (%s): %s", path, e)
    return out


def save_receipt_config(config: dict, path: Path = CONFIG_PATH) -> None:
    """Salva a configuração do recibo em config/receipt_config.json."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, ensure_ascii=False, indent=2)
