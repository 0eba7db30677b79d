import threading
from datetime import datetime, timedelta

import pytest

from models.pending_sale import PendingSale, StockConflict
from models.sale import Sale
from services.auth_service import Authorization
from services.exceptions import UnknownPersistenceError
from services.persistence import SalesRepository
from services.retry_queue import CONFLITO, FALHOU, PENDENTE, PendingSaleQueue, RetryWorker

AGORA = datetime(2026, 3, 10, 12, 0)


def _payload(session, codigo="P001", quantidade=1):
    return {
        "cash_session_id": session.id,
        "created_at": AGORA.isoformat(),
        "tipo_pagamento": "dinheiro",
        "itens": [
            {"codigo": codigo, "nome": codigo, "quantidade": quantidade,
             "preco_unitario": "50.00", "preco_custo_unitario": "20.00"},
        ],
    }


@pytest.fixture
def queue(queue_db, store_id):
    return PendingSaleQueue(queue_db, store_id, max_attempts=3, base_backoff=1, max_backoff=5)


def _fail(monkeypatch):
    def boom(self, payload, token):
        raise UnknownPersistenceError("banco fora do ar")

    monkeypatch.setattr(SalesRepository, "create_sale_atomic", boom)


def test_backoff_doubles_and_is_capped(queue):
    assert [queue.backoff(n).total_seconds() for n in range(5)] == [1, 2, 4, 5, 5]


def test_enqueue_is_idempotent_per_token(queue, queue_db, open_session):
    queue.enqueue(_payload(open_session), "tok-1", "timeout", now=AGORA)
    queue.enqueue(_payload(open_session), "tok-1", "erro de rede", now=AGORA)

    entrada = queue_db.query(PendingSale).one()
    assert entrada.ultimo_erro == "erro de rede"
    assert queue.pending_count() == 1


def test_successful_drain_removes_entry(queue, db, open_session):
    queue.enqueue(_payload(open_session), "tok-ok", "timeout", now=AGORA)

    summary = queue.drain(db, now=AGORA)

    assert summary.enviadas == ["tok-ok"]
    assert queue.pending_count() == 0
    assert db.query(Sale).filter(Sale.external_id == "tok-ok").count() == 1


def test_replay_of_already_created_sale_is_not_duplicated(queue, db, store_id, open_session):
    SalesRepository(db, store_id).create_sale_atomic(_payload(open_session), "tok-dup")
    queue.enqueue(_payload(open_session), "tok-dup", "timeout", now=AGORA)

    summary = queue.drain(db, now=AGORA)

    assert summary.enviadas == ["tok-dup"]
    assert db.query(Sale).count() == 1


def test_failure_increments_attempts_and_schedules_backoff(queue, db, queue_db, open_session, monkeypatch):
    queue.enqueue(_payload(open_session), "tok-f", "timeout", now=AGORA)
    _fail(monkeypatch)

    summary = queue.drain(db, now=AGORA)

    entrada = queue_db.query(PendingSale).one()
    assert summary.falhas == ["tok-f"]
    assert entrada.tentativas == 1
    assert entrada.ultimo_erro == "banco fora do ar"
    assert entrada.proxima_tentativa == AGORA + timedelta(seconds=2)

    # Antes do prazo a venda não é reenviada
    assert queue.drain(db, now=AGORA + timedelta(seconds=1)).total == 0
    assert queue_db.query(PendingSale).one().tentativas == 1


def test_exhausted_attempts_go_to_dead_letters(queue, db, queue_db, open_session, monkeypatch):
    queue.enqueue(_payload(open_session), "tok-dl", "timeout", now=AGORA)
    _fail(monkeypatch)

    momento = AGORA
    for _ in range(3):
        queue.drain(db, now=momento)
        momento += timedelta(minutes=10)

    entrada = queue_db.query(PendingSale).one()
    assert entrada.status == FALHOU
    assert entrada.tentativas == 3
    assert [e.external_id for e in queue.dead_letters()] == ["tok-dl"]
    assert queue.pending_count() == 0
    assert queue.drain(db, now=momento).total == 0


def test_requeue_and_discard(queue, queue_db, open_session):
    queue.enqueue(_payload(open_session), "tok-r", "timeout", now=AGORA)
    entrada = queue_db.query(PendingSale).one()
    entrada.status = FALHOU
    entrada.tentativas = 3
    queue_db.commit()

    queue.requeue("tok-r", now=AGORA)
    entrada = queue_db.query(PendingSale).one()
    assert (entrada.status, entrada.tentativas) == (PENDENTE, 0)

    assert queue.discard("tok-r") is True
    assert queue.discard("tok-r") is False
    assert queue_db.query(PendingSale).count() == 0


def test_insufficient_stock_on_replay_marks_conflict(queue, db, queue_db, open_session):
    queue.enqueue(_payload(open_session, quantidade=50), "tok-c", "timeout", now=AGORA)

    summary = queue.drain(db, now=AGORA)

    assert summary.conflitos == ["tok-c"]
    entrada = queue_db.query(PendingSale).one()
    assert entrada.status == CONFLITO
    assert "P001" in entrada.ultimo_erro
    conflito = queue_db.query(StockConflict).one()
    assert (conflito.disponivel, conflito.necessario, conflito.origem) == (10, 50, "fila")
    assert [e.external_id for e in queue.dead_letters()] == ["tok-c"]


def test_worker_tick_reports_progress(session_factory, queue_factory, store_id, queue, open_session):
    queue.enqueue(_payload(open_session), "tok-w", "timeout", now=AGORA)
    updates = []

    worker = RetryWorker(
        session_factory, store_id, queue_factory=queue_factory, interval=60, on_update=updates.append
    )
    summary = worker.tick()

    assert summary.enviadas == ["tok-w"]
    assert updates == [summary]


def test_worker_thread_runs_immediately_and_stops(session_factory, queue_factory, store_id, queue, open_session):
    queue.enqueue(_payload(open_session), "tok-t", "timeout", now=AGORA)
    done = threading.Event()

    worker = RetryWorker(
        session_factory,
        store_id,
        queue_factory=queue_factory,
        interval=60,
        on_update=lambda s: done.set(),
    )
    worker.start()
    try:
        assert done.wait(timeout=5)
    finally:
        worker.stop()
        worker.join(timeout=5)

    assert not worker.is_alive()
    assert queue.pending_count() == 0


def test_replay_after_session_closed_goes_to_open_session(
    queue, db, queue_db, store_id, cash_service, operators, open_session
):
    queue.enqueue(_payload(open_session), "tok-late", "timeout", now=AGORA)
    cash_service.close_session(
        Authorization(operator=operators["gerente"], password="ger123"),
        now=AGORA + timedelta(hours=1),
        permitir_pendentes=True,
    )
    nova = cash_service.open_session("50.00", operator=operators["vendedor"], now=AGORA + timedelta(hours=2))

    momento = AGORA + timedelta(hours=3)
    summary = queue.drain(db, now=momento)

    assert summary.enviadas == ["tok-late"]
    sale = db.query(Sale).filter(Sale.external_id == "tok-late").one()
    assert sale.cash_session_id == nova.id
    assert sale.created_at == momento


def test_replay_without_open_session_waits_without_counting_attempt(
    queue, db, queue_db, cash_service, operators, open_session
):
    queue.enqueue(_payload(open_session), "tok-wait", "timeout", now=AGORA)
    cash_service.close_session(
        Authorization(operator=operators["gerente"], password="ger123"),
        now=AGORA + timedelta(hours=1),
        permitir_pendentes=True,
    )

    summary = queue.drain(db, now=AGORA + timedelta(hours=2))

    assert summary.aguardando_caixa == ["tok-wait"]
    assert summary.total == 0
    entrada = queue_db.query(PendingSale).one()
    assert (entrada.status, entrada.tentativas) == (PENDENTE, 0)
    assert db.query(Sale).count() == 0
