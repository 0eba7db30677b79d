import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import streamlit as st

from config.database import QueueSessionLocal, SessionLocal
from config.settings import Settings
from services.auth_service import Authorization, AuthService
from services.cash_session_service import CashSessionService
from services.exceptions import PDVError
from services.printing import ReceiptPrinter
from services.retry_queue import PendingSaleQueue
from utils.formatters import format_currency, format_date, format_payment_method
from utils.navigation import show_sidebar
from utils.ui_helpers import page_title, status_box


st.set_page_config(page_title="Caixa", page_icon="💰", layout="wide")

AuthService.require_auth()
show_sidebar()

user = AuthService.get_current_user()
role = user["role"] if user else None

page_title(
    "💰 Caixa",
    "Abra o caixa no início do dia e feche ao encerrar. Vendas vinculadas à sessão.",
)

db = SessionLocal()
queue_db = QueueSessionLocal()

try:
    fila = PendingSaleQueue(queue_db, Settings.STORE_ID)
    service = CashSessionService(db, Settings.STORE_ID, printer=ReceiptPrinter(), queue=fila)
    sessao_aberta = service.get_current()

    # Status em destaque no topo
    if sessao_aberta:
        previa = service.live_summary()
        status_box(
            f"Caixa aberto desde {format_date(sessao_aberta.data_abertura)} | "
            f"Abertura: {format_currency(sessao_aberta.valor_abertura)} | "
            f"Vendas nesta sessão: {format_currency(previa.total_vendas)}",
            "success",
        )
    else:
        status_box("Nenhum caixa aberto no momento. Abra o caixa para permitir vendas.", "warning")

    col1, col2 = st.columns(2)

    with col1:
        if not sessao_aberta:
            st.subheader("1. Abrir caixa")
            st.caption("Defina o valor de abertura (dinheiro na gaveta).")
            with st.form("abrir_caixa"):
                valor_abertura = st.text_input("Valor de abertura", value="0,00")
                observacao = st.text_input("Observação (opcional)", placeholder="Ex: Início do dia")
                abrir = st.form_submit_button("Abrir caixa", type="primary")
            if abrir:
                try:
                    service.open_session(
                        valor_abertura,
                        operator=user,
                        terminal=Settings.TERMINAL,
                        observacao=observacao or None,
                    )
                    st.success("Caixa aberto com sucesso.")
                    st.rerun()
                except PDVError as e:
                    st.error(e.message)
        else:
            st.subheader("1. Aporte de dinheiro")
            st.caption("Reforço de troco durante o expediente. Soma ao valor de abertura.")
            with st.form("aporte_caixa"):
                valor_aporte = st.text_input("Valor do aporte", value="")
                aportar = st.form_submit_button("Adicionar ao caixa")
            if aportar:
                try:
                    service.add_resources(valor_aporte, operator=user)
                    st.success("Aporte registrado.")
                    st.rerun()
                except PDVError as e:
                    st.error(e.message)

    with col2:
        st.subheader("2. Fechar caixa")
        if not sessao_aberta:
            st.info("Não há caixa aberto no momento.")
        else:
            st.caption("O fechamento exige senha de gerente ou administrador.")
            st.markdown(f"**Custos:** {format_currency(previa.total_custos)}")
            st.markdown(f"**Despesas do dia:** {format_currency(previa.total_despesas)}")
            st.markdown(f"**Valor final previsto:** {format_currency(previa.valor_final_caixa)}")
            pendentes = service.pending_sales(sessao_aberta)
            if pendentes:
                st.warning(
                    f"{len(pendentes)} venda(s) desta sessão ainda não chegaram ao banco. "
                    "Sincronize antes de fechar; se fechar assim, elas entram no próximo caixa."
                )
                if st.button("Sincronizar vendas pendentes"):
                    fila.drain(db)
                    st.rerun()
            with st.form("fechar_caixa"):
                gerente = None
                if role not in ("admin", "gerente"):
                    gerente = st.text_input("Usuário do gerente/admin")
                senha = st.text_input("Senha", type="password")
                confirmar = st.checkbox("Confirmo o fechamento do caixa")
                forcar = False
                if pendentes:
                    forcar = st.checkbox("Fechar mesmo com vendas pendentes")
                fechar = st.form_submit_button("Fechar caixa", type="primary")
            if fechar:
                if not confirmar:
                    st.warning("Marque a confirmação para fechar o caixa.")
                else:
                    try:
                        fechamento = service.close_session(
                            Authorization(operator=user, password=senha, username=gerente),
                            permitir_pendentes=forcar,
                        )
                        st.success(
                            f"Caixa fechado. Valor final: {format_currency(fechamento.valor_final_caixa)}"
                        )
                        st.session_state.ultimo_fechamento_id = fechamento.id
                    except PDVError as e:
                        st.error(e.message)

    st.markdown("---")
    with st.expander("📋 Fechamentos anteriores"):
        fechamentos = service.list_closures()
        if not fechamentos:
            st.info("Nenhum fechamento registrado ainda.")
        else:
            linhas = [
                {
                    "Sessão": f.cash_session_id,
                    "Data": format_date(f.data),
                    "Abertura": format_currency(f.valor_abertura),
                    "Vendas": format_currency(f.total_vendas),
                    "Custos": format_currency(f.total_custos),
                    "Despesas": format_currency(f.total_despesas),
                    "Lucro líquido": format_currency(f.lucro_liquido),
                    "Valor final": format_currency(f.valor_final_caixa),
                    "Autorizado por": f.autorizado_por or "-",
                }
                for f in fechamentos
            ]
            st.dataframe(linhas, use_container_width=True, hide_index=True)
            ultimo = fechamentos[0]
            st.markdown("**Último fechamento por forma de pagamento**")
            st.dataframe(
                [
                    {"Forma": format_payment_method(forma), "Total": format_currency(valor)}
                    for forma, valor in ultimo.por_pagamento.items()
                ],
                use_container_width=True,
                hide_index=True,
            )

    with st.expander("🗂️ Histórico de sessões de caixa"):
        sessoes = service.list_sessions()
        if not sessoes:
            st.info("Nenhuma sessão de caixa registrada ainda.")
        else:
            st.dataframe(
                [
                    {
                        "ID": s.id,
                        "Terminal": s.terminal,
                        "Abertura": format_date(s.data_abertura),
                        "Fechamento": format_date(s.data_fechamento) if s.data_fechamento else "-",
                        "Valor abertura": format_currency(s.valor_abertura),
                        "Status": s.status,
                        "Aberto por": s.aberto_por or "-",
                        "Obs.": s.observacao or "",
                    }
                    for s in sessoes
                ],
                use_container_width=True,
                hide_index=True,
            )
finally:
    queue_db.close()
    db.close()
