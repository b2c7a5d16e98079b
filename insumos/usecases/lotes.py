# insumos/usecases/lotes.py
"""
UC: Lotes perecíveis (abertura, consumo FEFO e consulta de vencimentos).

Obs.:
- ``abrir_lote`` e ``consumir_lotes`` recebem a conexão do ledger e
  participam da transação do movimento; não abrem conexão própria.
- O consumo segue FEFO: validade mais próxima primeiro, lotes sem
  validade por último, desempate pelo recebimento mais antigo.
"""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta
from typing import List, Optional, Tuple

from insumos.config import DB_PATH
from insumos.domain.errors import InvalidMovementError, NotFoundError
from insumos.domain.formulas import EPS, arredonda
from insumos.domain.models import Escopo, Lote
from insumos.infra.db import connect
from insumos.infra.logger import log_database_operation, log_system_event
from insumos.infra.migrations import preparar_banco
from insumos.infra.repositories import ItemRepo, LoteRepo, agora_iso


def abrir_lote(
    conn: sqlite3.Connection,
    escopo: Escopo,
    item_id: int,
    quantidade: float,
    custo_unitario: float,
    data_validade: Optional[str] = None,
    numero_lote: Optional[str] = None,
    recebido_em: Optional[str] = None,
) -> Lote:
    """Cria um lote com ``quantidade_restante = quantidade``."""
    if quantidade is None or float(quantidade) <= EPS:
        raise InvalidMovementError("quantidade do lote deve ser positiva")
    if data_validade:
        try:
            data_validade = date.fromisoformat(str(data_validade)[:10]).isoformat()
        except ValueError:
            raise InvalidMovementError(f"data de validade inválida: {data_validade!r}")
    quando = recebido_em or agora_iso()
    numero = (numero_lote or "").strip() or f"LOTE-{quando.replace('-', '').replace(':', '')}"
    lote = LoteRepo(conn).insert({
        "tenant_id": escopo.tenant_id,
        "item_id": item_id,
        "numero_lote": numero,
        "quantidade": arredonda(quantidade),
        "quantidade_restante": arredonda(quantidade),
        "custo_unitario": arredonda(custo_unitario or 0.0),
        "data_validade": data_validade or None,
        "recebido_em": quando,
    })
    log_database_operation("lote", "INSERT", 1, item_id=item_id, numero_lote=numero)
    return lote


def consumir_lotes(
    conn: sqlite3.Connection,
    escopo: Escopo,
    item_id: int,
    quantidade: float,
    lote_preferido: Optional[int] = None,
) -> List[Tuple[int, float]]:
    """Baixa ``quantidade`` dos lotes do item e retorna ``[(lote_id, qtd)]``.

    Se ``lote_preferido`` for informado, ele é consumido antes dos demais.
    O que os lotes não cobrem sai do estoque sem lote.
    """
    repo = LoteRepo(conn)
    lotes = repo.list_com_saldo_fefo(escopo.tenant_id, item_id)
    if lote_preferido is not None:
        pref = repo.get(escopo.tenant_id, lote_preferido)
        if pref is None or pref.item_id != item_id:
            raise NotFoundError("Lote", lote_preferido)
        lotes = [pref] + [l for l in lotes if l.id != pref.id]

    restante = float(quantidade)
    consumidos: List[Tuple[int, float]] = []
    for lote in lotes:
        if restante <= EPS:
            break
        saldo = float(lote.quantidade_restante)
        if saldo <= EPS:
            continue
        tirar = min(saldo, restante)
        repo.update_restante(lote.id, arredonda(saldo - tirar))
        consumidos.append((lote.id, arredonda(tirar)))
        restante -= tirar

    if consumidos:
        log_database_operation("lote", "CONSUME", len(consumidos), item_id=item_id, consumidos=consumidos)
    return consumidos


def listar_lotes_a_vencer(
    escopo: Escopo,
    dentro_de_dias: int,
    hoje: Optional[date] = None,
    db_path: str = DB_PATH,
) -> List[Lote]:
    """Lotes com saldo cuja validade cai até ``hoje + dentro_de_dias``.

    Lotes já vencidos (e ainda com saldo) também são retornados.
    """
    if dentro_de_dias is None or int(dentro_de_dias) < 0:
        raise ValueError("dentro_de_dias deve ser >= 0")
    preparar_banco(db_path)
    limite = (hoje or date.today()) + timedelta(days=int(dentro_de_dias))
    with connect(db_path) as conn:
        lotes = LoteRepo(conn).list_a_vencer(escopo.tenant_id, limite.isoformat())
    log_system_event("lotes_a_vencer", {"tenant_id": escopo.tenant_id, "dias": dentro_de_dias, "total": len(lotes)})
    return lotes


def listar_lotes_item(escopo: Escopo, item_id: int, apenas_com_saldo: bool = True, db_path: str = DB_PATH) -> List[Lote]:
    preparar_banco(db_path)
    with connect(db_path) as conn:
        if ItemRepo(conn).get(escopo.tenant_id, item_id) is None:
            raise NotFoundError("Item", item_id)
        return LoteRepo(conn).list_by_item(escopo.tenant_id, item_id, apenas_com_saldo)
