"""
Carrinho do caixa e cálculo de troco.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from services.exceptions import InsufficientPaymentError, InsufficientStockError, InvalidAmountError
from utils.money import ZERO, parse_amount, to_money


def whole_quantity(quantidade) -> int:
    """Quantidade de peças: inteira; 1.5 ou "2,5" são rejeitados."""
    try:
        valor = Decimal(str(quantidade).replace(",", "."))
        inteiro = int(valor)
    except (ArithmeticError, ValueError, TypeError):
        raise InvalidAmountError(f"Quantidade inválida: {quantidade!r}.")
    if isinstance(quantidade, bool) or valor != inteiro:
        raise InvalidAmountError(f"Quantidade fracionada não permitida: {quantidade}.")
    return inteiro


@dataclass
class CartItem:
    product_id: Optional[int]
    codigo: Optional[str]
    nome: str
    preco_unitario: Decimal
    preco_custo_unitario: Optional[Decimal]
    quantidade: int = 1
    estoque: Optional[int] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.preco_unitario * self.quantidade)

    def to_payload(self) -> dict:
        return {
            "product_id": self.product_id,
            "codigo": self.codigo,
            "nome": self.nome,
            "quantidade": self.quantidade,
            "preco_unitario": str(self.preco_unitario),
            "preco_custo_unitario": (
                str(self.preco_custo_unitario) if self.preco_custo_unitario is not None else None
            ),
        }


class Cart:
    """
    Itens em venda no caixa. Um item por produto; adicionar de novo soma a quantidade.
    """

    def __init__(self):
        self.itens: List[CartItem] = []
        self.desconto: Decimal = ZERO

    def __len__(self) -> int:
        return len(self.itens)

    def is_empty(self) -> bool:
        return not self.itens

    def _find(self, product_id, codigo) -> Optional[CartItem]:
        for item in self.itens:
            if product_id is not None and item.product_id == product_id:
                return item
            if product_id is None and codigo and item.codigo == codigo:
                return item
        return None

    def add_product(self, product, quantidade: int = 1) -> CartItem:
        """
        Adiciona um produto. Estoque nulo é ilimitado; estoque definido <= 0 bloqueia.
        """
        quantidade = whole_quantity(quantidade)
        if quantidade < 1:
            raise InvalidAmountError("Quantidade deve ser maior que zero.")
        estoque = product.estoque_atual
        if estoque is not None and estoque <= 0:
            raise InsufficientStockError(product.codigo or product.nome, estoque, quantidade)
        item = self._find(product.id, product.codigo)
        if item is not None:
            item.quantidade += quantidade
            return item
        item = CartItem(
            product_id=product.id,
            codigo=product.codigo,
            nome=product.nome,
            preco_unitario=to_money(product.preco_venda),
            preco_custo_unitario=(
                to_money(product.preco_custo) if product.preco_custo is not None else None
            ),
            quantidade=quantidade,
            estoque=estoque,
        )
        self.itens.append(item)
        return item

    def set_quantity(self, index: int, quantidade: int) -> None:
        quantidade = whole_quantity(quantidade)
        if quantidade < 1:
            self.remove(index)
            return
        self.itens[index].quantidade = quantidade

    def remove(self, index: int) -> None:
        del self.itens[index]

    def clear(self) -> None:
        self.itens = []
        self.desconto = ZERO

    def apply_discount(self, valor) -> Decimal:
        desconto = parse_amount(valor)
        if desconto > self.subtotal:
            raise InvalidAmountError("Desconto maior que o subtotal da venda.")
        self.desconto = desconto
        return desconto

    @property
    def subtotal(self) -> Decimal:
        return sum((item.subtotal for item in self.itens), ZERO)

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.desconto

    @property
    def total_pecas(self) -> int:
        return sum(item.quantidade for item in self.itens)

    def snapshot(self) -> list:
        return [item.to_payload() for item in self.itens]


def compute_change(total, received) -> Decimal:
    """
    Troco do pagamento. Valor recebido vazio significa pagamento exato.
    """
    total = to_money(total)
    if received is None or (isinstance(received, str) and not received.strip()):
        return ZERO
    recebido = parse_amount(received)
    if recebido < total:
        raise InsufficientPaymentError(
            f"Valor recebido ({recebido}) menor que o total da venda ({total})."
        )
    return recebido - total
