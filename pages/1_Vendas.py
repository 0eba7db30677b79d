import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import streamlit as st

from config.database import SessionLocal
from config.settings import Settings
from services.auth_service import Authorization, AuthService
from services.cart import Cart
from services.catalog_service import ProductCatalog
from services.exceptions import PDVError
from services.ledger import SalesLedger
from services.printing import ReceiptPrinter
from services.sale_service import SaleService
from utils.formatters import PAYMENT_METHOD_LABELS, format_currency, format_date, format_payment_method
from utils.navigation import show_sidebar
from utils.ui_helpers import page_title, status_box


st.set_page_config(page_title="Vendas", page_icon="🧾", layout="wide")

AuthService.require_roles(["admin", "gerente", "vendedor"])
show_sidebar()

user = AuthService.get_current_user()

if "cart" not in st.session_state:
    st.session_state.cart = Cart()
cart: Cart = st.session_state.cart

page_title("🧾 Vendas (PDV)", "Adicione os produtos ao carrinho e finalize a venda. Caixa precisa estar aberto.")

db = SessionLocal()
service = SaleService(db, Settings.STORE_ID, printer=ReceiptPrinter())

try:
    sessao_aberta = service.cash.get_current()
    if not sessao_aberta:
        st.error("Não há caixa aberto. Abra o caixa em **Caixa** antes de vender.")
        st.stop()

    pendentes = service.queue.pending_count()
    if pendentes:
        status_box(f"{pendentes} venda(s) aguardando sincronização com o banco.", "warning")
        if st.button("Sincronizar agora"):
            service.sync_pending()
            st.rerun()

    catalog = ProductCatalog(db, Settings.STORE_ID)
    catalog.refresh()

    col_prod, col_cart = st.columns([1, 2])

    with col_prod:
        st.subheader("Passo 1: Adicionar produto")
        termo = st.text_input("Buscar por nome ou código", placeholder="Ex: 001, camiseta").strip().lower()
        produtos = [
            p
            for p in catalog.products()
            if not termo or termo in (p.nome or "").lower() or termo in (p.codigo or "").lower()
        ]
        if not produtos:
            st.info("Nenhum produto encontrado para este filtro.")
        else:
            idx = st.selectbox(
                "Produto",
                options=list(range(len(produtos))),
                format_func=lambda i: f"{produtos[i].codigo} - {produtos[i].nome} "
                f"({format_currency(produtos[i].preco_venda)})",
            )
            quantidade = st.number_input("Quantidade", min_value=1, value=1, step=1)
            if st.button("Adicionar ao carrinho", use_container_width=True):
                try:
                    cart.add_product(produtos[idx], int(quantidade))
                    st.rerun()
                except PDVError as e:
                    st.error(e.message)

    with col_cart:
        st.subheader("Passo 2: Carrinho e finalizar")
        if cart.is_empty():
            st.info("Nenhum item no carrinho.")
        else:
            for i, item in enumerate(cart.itens):
                c_nome, c_qtd, c_sub, c_rem = st.columns([4, 1, 2, 1])
                c_nome.markdown(f"**{item.codigo}** {item.nome}")
                c_qtd.markdown(f"{item.quantidade}x")
                c_sub.markdown(format_currency(item.subtotal))
                if c_rem.button("✖", key=f"rem_{i}"):
                    cart.remove(i)
                    st.rerun()

            st.markdown(f"**Subtotal:** {format_currency(cart.subtotal)} | **Peças:** {cart.total_pecas}")

            with st.form("finalizar_venda"):
                tipo_pagamento = st.selectbox(
                    "Forma de pagamento",
                    options=list(PAYMENT_METHOD_LABELS),
                    format_func=format_payment_method,
                )
                desconto = st.text_input("Desconto (R$)", value="0")
                cupom = st.text_input("Cupom (opcional)")
                valor_recebido = st.text_input("Valor recebido (dinheiro)", value="")
                finalizar = st.form_submit_button("Finalizar venda", type="primary")

            if finalizar:
                try:
                    cart.apply_discount(desconto or "0")
                    resultado = service.checkout(
                        cart,
                        tipo_pagamento,
                        operator=user,
                        valor_recebido=valor_recebido,
                        cupom=cupom or None,
                    )
                    if resultado.status == "concluida":
                        st.success(
                            f"Venda #{resultado.sale_id} finalizada. "
                            f"Total {format_currency(resultado.total)} | "
                            f"Troco {format_currency(resultado.troco)}"
                        )
                    else:
                        st.warning(resultado.mensagem)
                except PDVError as e:
                    st.error(e.message)

    st.markdown("---")
    with st.expander("🧾 Vendas recentes e cancelamento"):
        vendas = SalesLedger(db, Settings.STORE_ID).recent(limit=30)
        if not vendas:
            st.info("Nenhuma venda registrada.")
        else:
            st.dataframe(
                [
                    {
                        "ID": v.id,
                        "Data": format_date(v.created_at),
                        "Total": format_currency(v.total_vendido),
                        "Pagamento": format_payment_method(v.tipo_pagamento),
                        "Operador": v.operador_nome or "-",
                        "Status": v.status,
                    }
                    for v in vendas
                ],
                use_container_width=True,
                hide_index=True,
            )
            ativas = [v for v in vendas if v.status == "concluida"]
            if ativas:
                with st.form("cancelar_venda"):
                    venda_id = st.selectbox(
                        "Venda",
                        options=[v.id for v in ativas],
                        format_func=lambda vid: f"#{vid}",
                    )
                    motivo = st.text_input("Motivo")
                    gerente = None
                    if user["role"] not in ("admin", "gerente"):
                        gerente = st.text_input("Usuário do gerente/admin")
                    senha = st.text_input("Senha", type="password")
                    confirmar = st.checkbox("Confirmo o cancelamento")
                    cancelar = st.form_submit_button("Cancelar venda")
                if cancelar and confirmar:
                    try:
                        service.cancel_sale(
                            venda_id,
                            Authorization(operator=user, password=senha, username=gerente),
                            motivo=motivo or None,
                        )
                        st.success(f"Venda #{venda_id} cancelada.")
                        st.rerun()
                    except PDVError as e:
                        st.error(e.message)

    falhas = service.queue.dead_letters()
    if falhas:
        with st.expander(f"⚠️ Vendas não sincronizadas ({len(falhas)})"):
            for entrada in falhas:
                st.markdown(
                    f"**{entrada.external_id[:8]}** | {entrada.status} | "
                    f"{entrada.tentativas} tentativa(s) | {entrada.ultimo_erro or '-'}"
                )
                c_re, c_des = st.columns(2)
                if c_re.button("Tentar novamente", key=f"req_{entrada.external_id}"):
                    service.queue.requeue(entrada.external_id)
                    st.rerun()
                if user["role"] in ("admin", "gerente") and c_des.button(
                    "Descartar", key=f"des_{entrada.external_id}"
                ):
                    service.queue.discard(entrada.external_id)
                    st.rerun()
finally:
    service.close()
    db.close()
