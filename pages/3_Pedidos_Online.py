import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import streamlit as st

from config.database import SessionLocal
from config.settings import Settings
from models.online_order import STATUS_PEDIDO
from models.sale import FORMAS_PAGAMENTO
from services.auth_service import AuthService
from services.catalog_service import ProductCatalog
from services.exceptions import PDVError
from services.online_order_service import OnlineOrderService
from services.printing import ReceiptPrinter
from utils.formatters import format_currency, format_date, format_payment_method
from utils.navigation import show_sidebar
from utils.ui_helpers import page_title


st.set_page_config(page_title="Pedidos online", page_icon="📦", layout="wide")

AuthService.require_auth()
show_sidebar()

user = AuthService.get_current_user()

page_title("📦 Pedidos online", "Separação, envio e etiquetas.")

db = SessionLocal()

try:
    service = OnlineOrderService(db, Settings.STORE_ID)
    catalog = ProductCatalog(db, Settings.STORE_ID)
    printer = ReceiptPrinter()

    tab_lista, tab_novo, tab_etiquetas = st.tabs(["Pedidos", "Novo pedido", "Etiquetas"])

    with tab_lista:
        filtro = st.selectbox("Status", options=["todos"] + list(STATUS_PEDIDO))
        pedidos = service.list(None if filtro == "todos" else filtro)
        if not pedidos:
            st.info("Nenhum pedido.")
        for pedido in pedidos:
            titulo = (
                f"#{pedido.numero or pedido.id} - {pedido.cliente_nome} - "
                f"{format_currency(pedido.valor_total)} - {pedido.status}"
            )
            with st.expander(titulo):
                st.caption(format_date(pedido.created_at))
                for item in pedido.itens or []:
                    st.write(f"{item['quantidade']} x {item.get('nome') or item.get('codigo')}")
                if pedido.forma_pagamento:
                    st.write(f"Pagamento: {format_payment_method(pedido.forma_pagamento)}")
                novo_status = st.selectbox(
                    "Novo status",
                    options=list(STATUS_PEDIDO),
                    index=STATUS_PEDIDO.index(pedido.status),
                    key=f"status_{pedido.id}",
                )
                rastreio = st.text_input(
                    "Código de rastreio",
                    value=pedido.codigo_rastreio or "",
                    key=f"rastreio_{pedido.id}",
                )
                c_status, c_label = st.columns(2)
                if c_status.button("Atualizar", key=f"upd_{pedido.id}", use_container_width=True):
                    try:
                        service.update_status(pedido.id, novo_status, rastreio or None)
                        st.success("Pedido atualizado.")
                        st.rerun()
                    except PDVError as e:
                        st.error(e.message)
                if c_label.button(
                    "Imprimir etiqueta", key=f"label_{pedido.id}", use_container_width=True
                ):
                    path = printer.print_shipping_label(pedido)
                    if path:
                        st.success(f"Etiqueta gerada em {path}.")
                    else:
                        st.error("Não foi possível gerar a etiqueta.")

    with tab_novo:
        with st.form("novo_pedido", clear_on_submit=True):
            cliente = st.text_input("Cliente")
            telefone = st.text_input("Telefone")
            c1, c2 = st.columns([3, 1])
            rua = c1.text_input("Rua")
            numero_end = c2.text_input("Número")
            bairro = st.text_input("Bairro")
            c3, c4, c5 = st.columns([3, 1, 2])
            cidade = c3.text_input("Cidade")
            estado = c4.text_input("UF")
            cep = c5.text_input("CEP")
            forma = st.selectbox(
                "Pagamento", options=list(FORMAS_PAGAMENTO), format_func=format_payment_method
            )
            produtos = {p.codigo: p for p in catalog.products()}
            escolhidos = st.multiselect(
                "Produtos",
                options=list(produtos),
                format_func=lambda c: f"{c} - {produtos[c].nome}",
            )
            quantidades = {
                c: st.number_input(f"Qtd {c}", min_value=1, step=1, value=1, key=f"qtd_{c}")
                for c in escolhidos
            }
            if st.form_submit_button("Registrar pedido", type="primary"):
                try:
                    pedido = service.create(
                        cliente,
                        [
                            {
                                "codigo": c,
                                "nome": produtos[c].nome,
                                "quantidade": quantidades[c],
                                "preco": produtos[c].preco_venda,
                            }
                            for c in escolhidos
                        ],
                        endereco={
                            "rua": rua,
                            "numero": numero_end,
                            "bairro": bairro,
                            "cidade": cidade,
                            "estado": estado,
                            "cep": cep,
                        },
                        cliente_telefone=telefone or None,
                        atendente=user["name"],
                        forma_pagamento=forma,
                    )
                    st.success(f"Pedido #{pedido.id} registrado.")
                except PDVError as e:
                    st.error(e.message)

    with tab_etiquetas:
        st.caption("Etiquetas de gôndola com código de barras.")
        produtos = [p for p in catalog.products() if p.codigo]
        selecionados = st.multiselect(
            "Produtos",
            options=list(range(len(produtos))),
            format_func=lambda i: f"{produtos[i].codigo} - {produtos[i].nome}",
            key="etiquetas_produtos",
        )
        copias = st.number_input("Etiquetas por produto", min_value=1, step=1, value=1)
        if st.button("Gerar etiquetas", disabled=not selecionados):
            path = printer.print_barcode_labels([(produtos[i], copias) for i in selecionados])
            if path:
                st.success(f"Etiquetas geradas em {path}.")
            else:
                st.error("Não foi possível gerar as etiquetas.")
finally:
    db.close()
