import sys
from pathlib import Path

# Garante que o diretório raiz do projeto esteja no path (para rodar de qualquer cwd)
_ROOT = Path(__file__).resolve().parents[0]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import streamlit as st

from config.database import SessionLocal, init_db
from config.logging_config import get_logger, setup_logging
from config.settings import Settings
from services.auth_service import AuthService, ensure_default_admin
from services.report_service import closure_metrics
from services.retry_queue import RetryWorker
from utils import clock
from utils.formatters import format_date
from utils.navigation import show_sidebar

logger = get_logger(__name__)

st.set_page_config(
    page_title="PDV",
    page_icon="🛍️",
    layout="wide",
    initial_sidebar_state="expanded",
    menu_items={
        "Get Help": None,
        "Report a bug": None,
        "About": None,
    },
)


@st.cache_resource
def initialize_app():
    """
    Inicializa logs e banco, garante usuário admin padrão e inicia
    a sincronização da fila de vendas pendentes (uma vez por processo).
    """
    setup_logging()
    init_db()
    ensure_default_admin()
    worker = RetryWorker(SessionLocal, Settings.STORE_ID)
    worker.start()
    logger.info("PDV iniciado (loja=%s, terminal=%s)", Settings.STORE_ID, Settings.TERMINAL)
    return worker


def login_page():
    st.markdown("# 🔐 PDV")
    st.caption("Sistema de Ponto de Venda")
    st.markdown("---")

    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.subheader("Entrar no sistema")
        st.caption("Digite seu usuário e senha para acessar o PDV.")
        with st.form("login_form"):
            username = st.text_input("Usuário", placeholder="Ex: admin")
            password = st.text_input("Senha", type="password", placeholder="••••••••")
            submit = st.form_submit_button("Entrar", use_container_width=True, type="primary")

        if submit:
            if not username or not password:
                st.error("Por favor, preencha usuário e senha.")
            else:
                db = SessionLocal()
                try:
                    user = AuthService.authenticate(db, username, password)
                    if user:
                        AuthService.login(user)
                        st.success(f"Bem-vindo, {user.name}!")
                        st.rerun()
                    else:
                        st.error("Usuário ou senha inválidos.")
                finally:
                    db.close()


def home_page():
    user = AuthService.get_current_user()

    st.markdown("# 🏠 Início")
    if user:
        st.markdown(f"Olá, **{user['name']}**! Use o menu ao lado para navegar.")
    st.markdown("---")

    db = SessionLocal()
    try:
        metricas = closure_metrics(db, Settings.STORE_ID)
    finally:
        db.close()

    st.markdown(f"### Mês atual ({metricas['fechamentos']} fechamento(s))")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Receita", metricas["receita_fmt"])
    col2.metric("Custos", metricas["custos_fmt"])
    col3.metric("Despesas", metricas["despesas_fmt"])
    col4.metric("Lucro", metricas["lucro_fmt"])

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Hoje", format_date(clock.now()))
    with col2:
        st.metric("Perfil", user["role"] if user else "-")

    st.markdown("---")
    st.markdown("### Próximos passos")
    st.markdown(
        "1. Abra o **Caixa** para liberar vendas.  \n"
        "2. Use **Vendas** para registrar vendas; sem conexão, a venda fica pendente e é sincronizada depois.  \n"
        "3. Registre as **Despesas** do dia (gerente/admin).  \n"
        "4. Feche o **Caixa** com a senha de um gerente ou administrador."
    )


def main():
    initialize_app()
    AuthService.init_session_state()

    if not AuthService.is_authenticated():
        login_page()
    else:
        show_sidebar()
        home_page()


if __name__ == "__main__":
    main()
