"""
Cache do catálogo de produtos da loja.
Recarregado por inteiro a cada refresh (ex.: na abertura do caixa).
"""
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from config.logging_config import get_logger
from models.product import Product
from utils.money import to_money

logger = get_logger(__name__)


class ProductCatalog:
    def __init__(self, db: Session, store_id: str):
        self.db = db
        self.store_id = store_id
        self._by_code: Dict[str, Product] = {}

    def refresh(self) -> int:
        products: List[Product] = (
            self.db.query(Product)
            .filter(Product.store_id == self.store_id, Product.ativo.is_(True))
            .order_by(Product.nome)
            .all()
        )
        self._by_code = {p.codigo: p for p in products if p.codigo}
        logger.info("Catálogo atualizado: %s produtos", len(self._by_code))
        return len(self._by_code)

    def products(self) -> List[Product]:
        return list(self._by_code.values())

    def find_by_code(self, codigo: str) -> Optional[Product]:
        if not self._by_code:
            self.refresh()
        return self._by_code.get((codigo or "").strip())

    def cost_for(self, codigo: str) -> Optional[Decimal]:
        """Custo atual do produto (usado quando a venda não gravou o custo)."""
        product = self.find_by_code(codigo)
        if product is None:
            return None
        return to_money(product.preco_custo)
