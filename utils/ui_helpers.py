"""
Helpers visuais compartilhados pelas páginas.
"""
import streamlit as st

_BOX_STYLES = {
    "success": ("#e8f5e9", "#43a047", "✅"),
    "warning": ("#fff3e0", "#fb8c00", "⚠️"),
    "info": ("#e8f4fd", "#1e88e5", "ℹ️"),
}


def status_box(message: str, kind: str = "info"):
    """Caixa de status (ex.: caixa aberto, fila pendente)."""
    background, border, icon = _BOX_STYLES.get(kind, _BOX_STYLES["info"])
    st.markdown(
        f"""
    <div style="
        background-color: {background};
        border-left: 4px solid {border};
        padding: 14px 18px;
        margin: 12px 0;
        border-radius: 0 8px 8px 0;
        font-weight: 500;
    ">
        {icon} {message}
    </div>
    """,
        unsafe_allow_html=True,
    )


def page_title(title: str, subtitle: str = ""):
    st.markdown(
        f"<p style='margin:0 0 0.25rem 0; font-size:1.25rem;'><strong>{title}</strong></p>"
        f"<p style='margin:0; font-size:0.8rem; color:#666;'>{subtitle}</p>",
        unsafe_allow_html=True,
    )
    st.markdown("---")
