# insumos/usecases/cadastro.py
"""
UC: Cadastro de itens (insumos).

Obs.:
- Estoque e custo médio não são editáveis aqui; só mudam via ledger.
- Itens não são removidos: ``desativar_item`` marca ``ativo = 0``.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from insumos.config import DB_PATH
from insumos.domain.errors import InvalidMovementError, NotFoundError
from insumos.domain.models import Escopo, Item
from insumos.infra.db import connect
from insumos.infra.logger import log_database_operation, log_system_event, log_transaction
from insumos.infra.migrations import preparar_banco
from insumos.infra.repositories import ItemRepo


def _normalize_str(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def _validar_campos(campos: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(campos)
    if "nome" in out:
        out["nome"] = _normalize_str(out["nome"])
        if not out["nome"]:
            raise InvalidMovementError("nome do item é obrigatório")
    if "unidade_base" in out:
        out["unidade_base"] = (_normalize_str(out["unidade_base"]) or "UN").upper()
    if "categoria" in out:
        out["categoria"] = _normalize_str(out["categoria"])
    if out.get("ponto_reposicao_manual") is not None:
        if float(out["ponto_reposicao_manual"]) < 0:
            raise InvalidMovementError("ponto de reposição manual não pode ser negativo")
        out["ponto_reposicao_manual"] = float(out["ponto_reposicao_manual"])
    if "lead_time_dias" in out:
        lt = int(out["lead_time_dias"] if out["lead_time_dias"] is not None else 1)
        if lt < 0:
            raise InvalidMovementError("lead time não pode ser negativo")
        out["lead_time_dias"] = lt
    for k in ("perecivel", "materia_prima"):
        if k in out:
            out[k] = 1 if out[k] else 0
    return out


def inserir_item(conn: sqlite3.Connection, escopo: Escopo, nome: str, **campos) -> Item:
    """Cria o item usando a conexão (e a transação) do chamador."""
    dados = _validar_campos({"nome": nome, **campos})
    dados["tenant_id"] = escopo.tenant_id
    repo = ItemRepo(conn)
    item_id = repo.insert(dados)
    log_database_operation("item", "INSERT", 1, item_id=item_id, nome=dados["nome"])
    return repo.get(escopo.tenant_id, item_id)


def criar_item(
    escopo: Escopo,
    nome: str,
    unidade_base: str = "UN",
    categoria: Optional[str] = None,
    ponto_reposicao_manual: Optional[float] = None,
    lead_time_dias: int = 1,
    perecivel: bool = False,
    materia_prima: bool = True,
    db_path: str = DB_PATH,
) -> Item:
    preparar_banco(db_path)
    try:
        with connect(db_path, immediate=True) as conn:
            item = inserir_item(
                conn,
                escopo,
                nome,
                unidade_base=unidade_base,
                categoria=categoria,
                ponto_reposicao_manual=ponto_reposicao_manual,
                lead_time_dias=lead_time_dias,
                perecivel=perecivel,
                materia_prima=materia_prima,
            )
        log_transaction("criar_item", {"tenant_id": escopo.tenant_id, "nome": nome}, result=item.id)
        return item
    except Exception as e:
        log_transaction("criar_item", {"tenant_id": escopo.tenant_id, "nome": nome}, error=str(e))
        raise


def obter_item(escopo: Escopo, item_id: int, db_path: str = DB_PATH) -> Item:
    preparar_banco(db_path)
    with connect(db_path) as conn:
        item = ItemRepo(conn).get(escopo.tenant_id, item_id)
    if item is None:
        raise NotFoundError("Item", item_id)
    return item


def listar_itens(escopo: Escopo, apenas_ativos: bool = True, db_path: str = DB_PATH) -> List[Item]:
    preparar_banco(db_path)
    with connect(db_path) as conn:
        return ItemRepo(conn).list(escopo.tenant_id, apenas_ativos=apenas_ativos)


def configurar_item(escopo: Escopo, item_id: int, db_path: str = DB_PATH, **campos) -> Item:
    """Atualiza dados cadastrais e de reposição (ponto manual, lead time).

    ``ponto_reposicao_manual=None`` remove o override e volta a valer o
    ponto calculado pelo sistema.
    """
    invalidos = set(campos) - {
        "nome", "categoria", "unidade_base", "ponto_reposicao_manual",
        "lead_time_dias", "perecivel", "materia_prima",
    }
    if invalidos:
        raise InvalidMovementError(f"campos não configuráveis: {', '.join(sorted(invalidos))}")
    preparar_banco(db_path)
    dados = _validar_campos(campos)
    with connect(db_path, immediate=True) as conn:
        repo = ItemRepo(conn)
        if repo.get(escopo.tenant_id, item_id) is None:
            raise NotFoundError("Item", item_id)
        repo.update_config(escopo.tenant_id, item_id, dados)
        item = repo.get(escopo.tenant_id, item_id)
    log_database_operation("item", "UPDATE", 1, item_id=item_id, campos=sorted(dados))
    return item


def desativar_item(escopo: Escopo, item_id: int, db_path: str = DB_PATH) -> Item:
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = ItemRepo(conn)
        if repo.get(escopo.tenant_id, item_id) is None:
            raise NotFoundError("Item", item_id)
        repo.set_ativo(escopo.tenant_id, item_id, False)
        item = repo.get(escopo.tenant_id, item_id)
    log_system_event("item_desativado", {"tenant_id": escopo.tenant_id, "item_id": item_id})
    return item
