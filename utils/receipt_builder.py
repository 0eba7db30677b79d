"""
Gera HTML do recibo não fiscal, do relatório de fechamento e das etiquetas
(envio e código de barras) para impressão, conforme config de layout.
"""
from html import escape

from utils.barcode import code39_svg
from utils.formatters import format_currency, format_date, format_payment_method
from utils.receipt_config import load_receipt_config


def _document(title: str, body_content: str, config: dict) -> str:
    w_mm = config.get("paper_width_mm", 80)
    margin_mm = config.get("margin_mm", 5)
    font_pt = config.get("font_size_pt", 10)
    width_px = max(200, min(400, w_mm * 3.78))  # aprox 80mm ~ 302px

    return f"""<!DOCTYPE html>
<html lang="pt-BR">
<head>
<meta charset="utf-8">
<title>{escape(title)}</title>
<style>
  body {{
    width: {w_mm}mm;
    max-width: {width_px}px;
    margin: {margin_mm}mm auto;
    font-family: monospace, sans-serif;
    font-size: {font_pt}pt;
    padding: 8px;
    background: #fff;
    color: #000;
  }}
  .header {{ text-align: center; font-weight: bold; margin-bottom: 4px; }}
  .subheader {{ text-align: center; font-size: 0.9em; margin-bottom: 8px; }}
  .line {{ margin: 2px 0; word-break: break-word; }}
  .total {{ font-weight: bold; margin-top: 6px; }}
  .footer {{ text-align: center; margin-top: 12px; font-size: 0.9em; }}
  .no-print {{ margin-top: 12px; text-align: center; }}
  .label {{ border: 1px dashed #999; padding: 4px; margin-bottom: 6px; text-align: center; page-break-inside: avoid; }}
  @media print {{
    .no-print {{ display: none !important; }}
  }}
</style>
</head>
<body>
<div class="receipt-content">
{body_content}
</div>
<div class="no-print">
  <button type="button" onclick="window.print();">Imprimir</button>
</div>
</body>
</html>"""


def build_receipt_html(sale, itens: list, config: dict = None) -> str:
    """
    sale: objeto Sale (id, created_at, total_bruto, desconto, total_vendido, tipo_pagamento...).
    itens: lista de SaleItem da venda.
    config: dict de layout (ou None para usar load_receipt_config()).
    Retorna HTML completo (documento) para exibir em iframe e imprimir.
    """
    if config is None:
        config = load_receipt_config()
    header = (config.get("header_text") or "").strip()
    subheader = (config.get("subheader_text") or "Extrato nao fiscal").strip()
    footer = (config.get("footer_text") or "").strip()

    linhas = []
    linhas.append(f"<div class='header'>{escape(header)}</div>")
    linhas.append(f"<div class='subheader'>{escape(subheader)}</div>")
    linhas.append(
        f"<div class='line'>Venda #{sale.id} &nbsp; {format_date(sale.created_at)} &nbsp; "
        f"{format_payment_method(sale.tipo_pagamento)}</div>"
    )
    if sale.operador_nome:
        linhas.append(f"<div class='line'>Operador: {escape(sale.operador_nome)}</div>")
    linhas.append("<div class='line'>--------------------------------</div>")
    for it in itens:
        nome = escape((it.nome or "-")[:28])
        linhas.append(f"<div class='line'>{escape(it.codigo)} {nome}</div>")
        linhas.append(
            f"<div class='line'>{it.quantidade} x {format_currency(it.preco_unitario)} = "
            f"{format_currency(it.subtotal)}</div>"
        )
    linhas.append("<div class='line'>--------------------------------</div>")
    if sale.desconto:
        linhas.append(f"<div class='line'>Subtotal: {format_currency(sale.total_bruto)}</div>")
        cupom = f" ({escape(sale.cupom)})" if sale.cupom else ""
        linhas.append(f"<div class='line'>Desconto{cupom}: -{format_currency(sale.desconto)}</div>")
    linhas.append(f"<div class='line total'>Total: {format_currency(sale.total_vendido)}</div>")
    if sale.valor_recebido is not None:
        linhas.append(f"<div class='line'>Recebido: {format_currency(sale.valor_recebido)}</div>")
        linhas.append(f"<div class='line'>Troco: {format_currency(sale.troco)}</div>")
    linhas.append(f"<div class='line'>Peças: {sale.total_pecas or 0}</div>")
    if footer:
        linhas.append(f"<div class='footer'>{escape(footer)}</div>")

    return _document(f"Recibo #{sale.id}", "\n".join(linhas), config)


def build_closure_report_html(closure, config: dict = None) -> str:
    """
    Relatório de fechamento de caixa (CashClosure) no mesmo layout do recibo.
    """
    if config is None:
        config = load_receipt_config()
    header = (config.get("header_text") or "").strip()

    linhas = []
    linhas.append(f"<div class='header'>{escape(header)}</div>")
    linhas.append(f"<div class='subheader'>Fechamento de caixa #{closure.cash_session_id}</div>")
    linhas.append(
        f"<div class='line'>{format_date(closure.janela_inicio)} até "
        f"{format_date(closure.janela_fim)}</div>"
    )
    linhas.append("<div class='line'>--------------------------------</div>")
    resumo = [
        ("Abertura", closure.valor_abertura),
        ("Vendas", closure.total_vendas),
        ("Custos", closure.total_custos),
        ("Descontos", closure.total_descontos),
        ("Despesas", closure.total_despesas),
        ("Lucro bruto", closure.lucro_bruto),
        ("Lucro líquido", closure.lucro_liquido),
    ]
    for rotulo, valor in resumo:
        linhas.append(f"<div class='line'>{rotulo}: {format_currency(valor)}</div>")
    linhas.append(
        f"<div class='line total'>Valor final em caixa: "
        f"{format_currency(closure.valor_final_caixa)}</div>"
    )

    linhas.append("<div class='line'>--------------------------------</div>")
    linhas.append("<div class='line'>Por forma de pagamento</div>")
    for forma, valor in (closure.por_pagamento or {}).items():
        linhas.append(
            f"<div class='line'>{format_payment_method(forma)}: {format_currency(valor)}</div>"
        )

    linhas.append("<div class='line'>--------------------------------</div>")
    linhas.append("<div class='line'>Por operador</div>")
    for nome, dados in (closure.por_operador or {}).items():
        linhas.append(
            f"<div class='line'>{escape(nome)}: {format_currency(dados.get('total'))}</div>"
        )

    linhas.append("<div class='line'>--------------------------------</div>")
    linhas.append(
        f"<div class='line'>Vendas: {closure.qtd_vendas} &nbsp; "
        f"Cancelamentos: {closure.qtd_cancelamentos} &nbsp; Despesas: {closure.qtd_despesas}</div>"
    )
    if closure.autorizado_por:
        linhas.append(f"<div class='line'>Autorizado por: {escape(closure.autorizado_por)}</div>")

    return _document(f"Fechamento #{closure.cash_session_id}", "\n".join(linhas), config)


def _endereco_linhas(endereco: dict) -> list:
    endereco = endereco or {}
    rua = " ".join(str(p) for p in (endereco.get("rua"), endereco.get("numero")) if p)
    linhas = [rua, endereco.get("complemento"), endereco.get("bairro")]
    cidade = " - ".join(p for p in (endereco.get("cidade"), endereco.get("estado")) if p)
    linhas.append(cidade)
    if endereco.get("cep"):
        linhas.append(f"CEP {endereco['cep']}")
    return [escape(str(linha)) for linha in linhas if linha]


def build_shipping_label_html(order, config: dict = None) -> str:
    """
    Etiqueta de envio de um pedido online (OnlineOrder): a loja no cabeçalho,
    o destinatário com endereço e os itens para conferência.
    """
    if config is None:
        config = load_receipt_config()
    header = (config.get("header_text") or "").strip()

    linhas = []
    linhas.append(f"<div class='header'>{escape(header)}</div>")
    numero = order.numero or order.id
    linhas.append(f"<div class='subheader'>Pedido #{escape(str(numero))}</div>")
    linhas.append(f"<div class='line'>{format_date(order.created_at)}</div>")
    linhas.append("<div class='line'>--------------------------------</div>")
    linhas.append("<div class='line total'>DESTINATÁRIO</div>")
    linhas.append(f"<div class='line'>{escape(order.cliente_nome)}</div>")
    for linha in _endereco_linhas(order.endereco):
        linhas.append(f"<div class='line'>{linha}</div>")
    if order.cliente_telefone:
        linhas.append(f"<div class='line'>Tel: {escape(order.cliente_telefone)}</div>")
    linhas.append("<div class='line'>--------------------------------</div>")
    for item in order.itens or []:
        nome = escape((item.get("nome") or item.get("codigo") or "-")[:28])
        linhas.append(f"<div class='line'>{item.get('quantidade')} x {nome}</div>")
    linhas.append(f"<div class='line total'>Total: {format_currency(order.valor_total)}</div>")
    if order.forma_pagamento:
        linhas.append(
            f"<div class='line'>Pagamento: {format_payment_method(order.forma_pagamento)}</div>"
        )
    if order.codigo_rastreio:
        linhas.append(f"<div class='line'>Rastreio: {escape(order.codigo_rastreio)}</div>")
    if order.atendente:
        linhas.append(f"<div class='line'>Atendente: {escape(order.atendente)}</div>")

    return _document(f"Etiqueta pedido #{numero}", "\n".join(linhas), config)


def build_barcode_labels_html(products, config: dict = None) -> str:
    """
    Etiquetas de gôndola com nome, preço e código de barras (Code 39).
    products: Product ou tuplas (Product, quantidade de etiquetas).
    Produtos sem código são ignorados.
    """
    if config is None:
        config = load_receipt_config()

    etiquetas = []
    for entry in products:
        product, copias = entry if isinstance(entry, tuple) else (entry, 1)
        if not product.codigo:
            continue
        try:
            barras = code39_svg(product.codigo)
        except ValueError:
            # código fora do Code 39: etiqueta só com o texto
            barras = ""
        etiqueta = (
            "<div class='label'>"
            f"<div class='line'>{escape((product.nome or '-')[:28])}</div>"
            f"<div class='line total'>{format_currency(product.preco_venda)}</div>"
            f"{barras}"
            f"<div class='line'>{escape(product.codigo)}</div>"
            "</div>"
        )
        etiquetas.extend([etiqueta] * max(int(copias), 0))

    return _document("Etiquetas", "\n".join(etiquetas), config)
