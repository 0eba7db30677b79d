"""
Script para inicializar o banco de dados do PDV.
- Cria todas as tabelas
- Garante a existência de um usuário admin padrão
- Cadastra o cupom de boas-vindas
"""
from config.database import SessionLocal, init_db
from config.logging_config import get_logger, setup_logging
from config.settings import Settings
from models.coupon import Coupon
from services.auth_service import ensure_default_admin

logger = get_logger(__name__)

DEFAULT_COUPON = ("BEMVINDO10", 10)


def ensure_default_coupon(store_id: str = Settings.STORE_ID) -> None:
    codigo, percentual = DEFAULT_COUPON
    db = SessionLocal()
    try:
        exists = (
            db.query(Coupon).filter(Coupon.store_id == store_id, Coupon.codigo == codigo).first()
        )
        if not exists:
            db.add(Coupon(store_id=store_id, codigo=codigo, desconto_percentual=percentual))
            db.commit()
            logger.info("Cupom %s criado (%s%%)", codigo, percentual)
    finally:
        db.close()


def main() -> None:
    setup_logging()
    logger.info("Inicializando banco de dados do PDV...")
    init_db()
    logger.info("Tabelas criadas (se não existiam).")
    ensure_default_admin()
    ensure_default_coupon()


if __name__ == "__main__":
    main()
