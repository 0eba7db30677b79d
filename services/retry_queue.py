"""
Fila offline de vendas pendentes.

Vendas que não chegaram ao banco (timeout ou erro) ficam em pending_sales, num
SQLite local separado do banco principal, com o mesmo token de idempotência, e
são reenviadas periodicamente. Cada falha adia a próxima tentativa (backoff
exponencial com teto); ao atingir o máximo de tentativas a venda vai para a
lista de falhas, resolvida manualmente.

Uma venda cuja sessão de caixa já foi fechada entra na sessão aberta no momento
do reenvio; sem caixa aberto ela continua na fila.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.database import QueueSessionLocal
from config.logging_config import get_logger
from config.settings import Settings
from models.cash_session import CashSession, CurrentCashSession
from models.pending_sale import PendingSale, StockConflict
from services.exceptions import PDVError
from services.persistence import SalesRepository, safe_rollback
from utils import clock

logger = get_logger(__name__)

PENDENTE = "pendente"
CONFLITO = "conflito"
FALHOU = "falhou"


@dataclass
class DrainSummary:
    enviadas: List[str] = field(default_factory=list)
    falhas: List[str] = field(default_factory=list)
    conflitos: List[str] = field(default_factory=list)
    esgotadas: List[str] = field(default_factory=list)
    # sessão de origem fechada e nenhum caixa aberto para receber a venda
    aguardando_caixa: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.enviadas) + len(self.falhas) + len(self.conflitos)


def record_stock_conflict(
    db: Session, store_id: str, external_id: str, result, origem: str
) -> StockConflict:
    """Grava o conflito de estoque na base local da fila."""
    conflict = StockConflict(
        store_id=store_id,
        external_id=external_id,
        codigo=result.codigo,
        disponivel=result.disponivel,
        necessario=result.necessario,
        origem=origem,
    )
    db.add(conflict)
    db.commit()
    logger.warning(
        "Conflito de estoque venda=%s codigo=%s disponivel=%s necessario=%s",
        external_id,
        result.codigo,
        result.disponivel,
        result.necessario,
    )
    return conflict


class PendingSaleQueue:
    """
    db: sessão da base local da fila (QueueSessionLocal), nunca a do banco principal.
    """

    def __init__(
        self,
        db: Session,
        store_id: str,
        max_attempts: int = Settings.RETRY_MAX_ATTEMPTS,
        base_backoff: float = Settings.RETRY_BASE_BACKOFF_SECONDS,
        max_backoff: float = Settings.RETRY_MAX_BACKOFF_SECONDS,
    ):
        self.db = db
        self.store_id = store_id
        self.max_attempts = max_attempts
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff

    def backoff(self, tentativas: int) -> timedelta:
        segundos = min(self.base_backoff * (2 ** tentativas), self.max_backoff)
        return timedelta(seconds=segundos)

    def _query(self):
        return self.db.query(PendingSale).filter(PendingSale.store_id == self.store_id)

    def enqueue(
        self, payload: dict, token: str, erro: Optional[str] = None, now: Optional[datetime] = None
    ) -> PendingSale:
        now = now or clock.now()
        entry = self._query().filter(PendingSale.external_id == token).first()
        if entry is None:
            entry = PendingSale(
                external_id=token,
                store_id=self.store_id,
                payload=payload,
                tentativas=0,
                status=PENDENTE,
                proxima_tentativa=now,
                created_at=now,
            )
            self.db.add(entry)
        entry.ultimo_erro = erro
        self.db.commit()
        logger.warning("Venda %s enviada para a fila offline: %s", token, erro)
        return entry

    def pending(self) -> List[PendingSale]:
        return self._query().filter(PendingSale.status == PENDENTE).order_by(PendingSale.created_at).all()

    def pending_count(self) -> int:
        return self._query().filter(PendingSale.status == PENDENTE).count()

    def for_session(self, cash_session_id: int) -> List[PendingSale]:
        """Entradas ainda na fila (qualquer status) geradas na sessão informada."""
        entries = self._query().order_by(PendingSale.created_at).all()
        return [e for e in entries if (e.payload or {}).get("cash_session_id") == cash_session_id]

    def dead_letters(self) -> List[PendingSale]:
        """Vendas que esgotaram as tentativas ou deram conflito de estoque."""
        return (
            self._query()
            .filter(PendingSale.status.in_((FALHOU, CONFLITO)))
            .order_by(PendingSale.created_at)
            .all()
        )

    def requeue(self, token: str, now: Optional[datetime] = None) -> Optional[PendingSale]:
        entry = self._query().filter(PendingSale.external_id == token).first()
        if entry is None:
            return None
        entry.status = PENDENTE
        entry.tentativas = 0
        entry.proxima_tentativa = now or clock.now()
        self.db.commit()
        logger.info("Venda %s devolvida para a fila", token)
        return entry

    def discard(self, token: str) -> bool:
        entry = self._query().filter(PendingSale.external_id == token).first()
        if entry is None:
            return False
        self.db.delete(entry)
        self.db.commit()
        logger.info("Venda %s descartada da fila", token)
        return True

    def _attribute_session(self, sales_db: Session, payload: dict, now: datetime) -> Optional[dict]:
        """
        Payload a reenviar. Sessão de origem fechada: a venda passa para o caixa
        aberto agora, com o horário do reenvio, para entrar no próximo fechamento.
        None quando não há caixa aberto.
        """
        session = sales_db.get(CashSession, payload.get("cash_session_id"))
        if session is None or session.status != "fechada":
            return payload
        pointer = (
            sales_db.query(CurrentCashSession)
            .filter(CurrentCashSession.store_id == self.store_id)
            .first()
        )
        if pointer is None:
            return None
        logger.info(
            "Venda da sessão fechada %s (criada em %s) atribuída à sessão aberta %s",
            session.id,
            payload.get("created_at"),
            pointer.cash_session_id,
        )
        return dict(
            payload,
            cash_session_id=pointer.cash_session_id,
            created_at=now.isoformat(),
            data_venda=now.date().isoformat(),
        )

    def drain(self, sales_db: Session, now: Optional[datetime] = None) -> DrainSummary:
        """
        Reenvia para o banco principal (sales_db) as vendas pendentes cuja
        próxima tentativa já venceu.
        """
        now = now or clock.now()
        summary = DrainSummary()
        due = (
            self._query()
            .filter(PendingSale.status == PENDENTE, PendingSale.proxima_tentativa <= now)
            .order_by(PendingSale.created_at)
            .all()
        )
        repo = SalesRepository(sales_db, self.store_id)
        for entry in due:
            token = entry.external_id
            try:
                payload = self._attribute_session(sales_db, entry.payload, now)
                if payload is None:
                    entry.ultimo_erro = "Sessão de caixa fechada; aguardando abertura do caixa."
                    entry.proxima_tentativa = now + self.backoff(entry.tentativas)
                    self.db.commit()
                    summary.aguardando_caixa.append(token)
                    continue
                if payload is not entry.payload:
                    entry.payload = payload
                    self.db.commit()
                result = repo.create_sale_atomic(payload, token)
            except (PDVError, SQLAlchemyError) as e:
                safe_rollback(sales_db)
                self._register_failure(entry, str(e), now, summary)
                continue

            if result.ok:
                self.db.delete(entry)
                self.db.commit()
                summary.enviadas.append(token)
                logger.info("Venda %s sincronizada (%s)", token, result.status)
            elif result.status == "insufficient_stock":
                entry.status = CONFLITO
                entry.tentativas += 1
                entry.ultima_tentativa = now
                entry.ultimo_erro = (
                    f"Estoque insuficiente para {result.codigo}: "
                    f"disponível {result.disponivel}, necessário {result.necessario}"
                )
                self.db.commit()
                record_stock_conflict(self.db, self.store_id, token, result, origem="fila")
                summary.conflitos.append(token)
            else:
                self._register_failure(entry, result.message or "erro", now, summary)
        return summary

    def _register_failure(self, entry: PendingSale, erro: str, now: datetime, summary: DrainSummary) -> None:
        entry.tentativas += 1
        entry.ultimo_erro = erro
        entry.ultima_tentativa = now
        if entry.tentativas >= self.max_attempts:
            entry.status = FALHOU
            summary.esgotadas.append(entry.external_id)
            logger.error(
                "Venda %s movida para falhas após %s tentativas: %s",
                entry.external_id,
                entry.tentativas,
                erro,
            )
        else:
            entry.proxima_tentativa = now + self.backoff(entry.tentativas)
            logger.warning(
                "Falha ao sincronizar venda %s (tentativa %s): %s",
                entry.external_id,
                entry.tentativas,
                erro,
            )
        summary.falhas.append(entry.external_id)
        self.db.commit()


class RetryWorker(threading.Thread):
    """
    Thread em segundo plano que esvazia a fila a cada intervalo.
    Executa uma vez logo ao iniciar.
    """

    def __init__(
        self,
        session_factory,
        store_id: str,
        queue_factory=QueueSessionLocal,
        interval: float = Settings.RETRY_INTERVAL_SECONDS,
        on_update: Optional[Callable[[DrainSummary], None]] = None,
    ):
        super().__init__(name=f"pdv-fila-{store_id}", daemon=True)
        self.session_factory = session_factory
        self.queue_factory = queue_factory
        self.store_id = store_id
        self.interval = interval
        self.on_update = on_update
        self._stop_event = threading.Event()

    def tick(self) -> DrainSummary:
        db = self.session_factory()
        queue_db = self.queue_factory()
        try:
            summary = PendingSaleQueue(queue_db, self.store_id).drain(db)
        finally:
            queue_db.close()
            db.close()
        if summary.total and self.on_update is not None:
            self.on_update(summary)
        return summary

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Erro ao processar a fila de vendas pendentes")
            self._stop_event.wait(self.interval)

    def stop(self) -> None:
        self._stop_event.set()
