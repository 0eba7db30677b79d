"""
Erros de negócio do PDV.
Cada erro carrega uma mensagem pronta para exibir ao operador.
"""
from typing import Optional


class PDVError(Exception):
    default_message = "Erro no PDV."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyOpenError(PDVError):
    default_message = "Já existe um caixa aberto para esta loja."


class NoOpenSessionError(PDVError):
    default_message = "Nenhum caixa aberto. Abra o caixa antes de continuar."


class InvalidAmountError(PDVError):
    default_message = "Valor inválido."


class UnauthorizedError(PDVError):
    default_message = "Autorização negada. Informe as credenciais de um gerente ou administrador."


class MissingIdentifierError(PDVError):
    default_message = "Há produto sem código no carrinho."


class InsufficientPaymentError(PDVError):
    default_message = "Valor recebido menor que o total da venda."


class InsufficientStockError(PDVError):
    def __init__(self, codigo: str, disponivel: int, necessario: int, message: Optional[str] = None):
        self.codigo = codigo
        self.disponivel = disponivel
        self.necessario = necessario
        super().__init__(
            message
            or f"Estoque insuficiente para {codigo}: disponível {disponivel}, necessário {necessario}."
        )


class PersistenceTimeoutError(PDVError, TimeoutError):
    default_message = "O banco de dados não respondeu a tempo."


class UnknownPersistenceError(PDVError):
    default_message = "Erro inesperado ao gravar no banco de dados."


class EmptyCartError(PDVError):
    default_message = "O carrinho está vazio."


class InvalidPaymentMethodError(PDVError):
    default_message = "Forma de pagamento inválida."


class InvalidCouponError(PDVError):
    default_message = "Cupom inválido ou inativo."


class SaleNotFoundError(PDVError):
    default_message = "Venda não encontrada."


class AlreadyCancelledError(PDVError):
    default_message = "Esta venda já foi cancelada."


class PendingSalesError(PDVError):
    def __init__(self, quantidade: int, message: Optional[str] = None):
        self.quantidade = quantidade
        super().__init__(
            message
            or f"Há {quantidade} venda(s) desta sessão aguardando sincronização. "
            "Sincronize ou descarte antes de fechar o caixa."
        )


class OrderNotFoundError(PDVError):
    default_message = "Pedido não encontrado."


class InvalidOrderStatusError(PDVError):
    default_message = "Status de pedido inválido."
