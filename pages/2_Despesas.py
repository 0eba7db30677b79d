import sys
from datetime import timedelta
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import streamlit as st

from config.database import SessionLocal
from config.settings import Settings
from services.auth_service import AuthService
from services.exceptions import PDVError
from services.ledger import ExpenseLedger
from utils import clock
from utils.formatters import format_currency, format_date
from utils.navigation import show_sidebar
from utils.ui_helpers import page_title


st.set_page_config(page_title="Despesas", page_icon="📄", layout="wide")

AuthService.require_roles(["admin", "gerente"])
show_sidebar()

user = AuthService.get_current_user()

page_title("📄 Despesas", "Despesas do dia entram no fechamento do caixa.")

db = SessionLocal()

try:
    ledger = ExpenseLedger(db, Settings.STORE_ID)
    col_form, col_list = st.columns([1, 2])

    with col_form:
        st.subheader("Nova despesa")
        data = st.date_input("Data", value=clock.today())
        categoria = st.text_input("Categoria", placeholder="Ex: Aluguel, Fornecedor")
        descricao = st.text_input("Descrição (opcional)")
        valor = st.text_input("Valor", value="")
        if st.button("Salvar despesa", type="primary", use_container_width=True):
            try:
                ledger.add(
                    data,
                    valor,
                    categoria=categoria or None,
                    descricao=descricao or None,
                    criado_por=user["name"],
                )
                st.success("Despesa registrada.")
                st.rerun()
            except PDVError as e:
                st.error(e.message)

    with col_list:
        st.subheader("Últimos 30 dias")
        despesas = ledger.list_between(clock.today() - timedelta(days=30), clock.today())
        if not despesas:
            st.info("Nenhuma despesa registrada.")
        else:
            st.dataframe(
                [
                    {
                        "Data": format_date(d.data),
                        "Categoria": d.categoria or "-",
                        "Descrição": d.descricao or "",
                        "Valor": format_currency(d.valor),
                        "Criado por": d.criado_por or "-",
                    }
                    for d in despesas
                ],
                use_container_width=True,
                hide_index=True,
            )

            st.markdown("---")
            idx = st.selectbox(
                "Selecione a despesa",
                options=list(range(len(despesas))),
                format_func=lambda i: f"{format_date(despesas[i].data)} - "
                f"{despesas[i].categoria or '-'} - {format_currency(despesas[i].valor)}",
            )
            novo_valor = st.text_input("Novo valor", value=str(despesas[idx].valor))
            c_edit, c_del = st.columns(2)
            if c_edit.button("Atualizar valor", use_container_width=True):
                try:
                    ledger.update(despesas[idx].id, valor=novo_valor)
                    st.success("Despesa atualizada.")
                    st.rerun()
                except PDVError as e:
                    st.error(e.message)
            if c_del.button("Excluir despesa", use_container_width=True):
                ledger.delete(despesas[idx].id)
                st.success("Despesa excluída.")
                st.rerun()
finally:
    db.close()
