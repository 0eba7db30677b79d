import streamlit as st

from services.auth_service import AuthService


def show_sidebar() -> None:
    """
    Sidebar com informações do usuário e links para as páginas do PDV.
    """
    user = AuthService.get_current_user()
    role = user["role"] if user else None

    with st.sidebar:
        st.markdown("## 🛍️ PDV")
        if user:
            st.markdown(f"**{user['name']}**")
            st.caption(f"Perfil: {role}")

        st.markdown("---")
        st.markdown("### Menu")
        st.page_link("app.py", label="Início", icon="🏠")
        st.page_link("pages/0_Caixa.py", label="Caixa", icon="💰")
        st.page_link("pages/1_Vendas.py", label="Vendas", icon="🧾")
        st.page_link("pages/3_Pedidos_Online.py", label="Pedidos online", icon="📦")
        if role in ("admin", "gerente"):
            st.page_link("pages/2_Despesas.py", label="Despesas", icon="📄")

        st.markdown("---")
        if st.button("Sair", use_container_width=True):
            AuthService.logout()
            if hasattr(st, "switch_page"):
                st.switch_page("app.py")
            else:
                st.rerun()
