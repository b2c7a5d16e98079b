# insumos/usecases/relatorios.py
"""
Relatórios de estoque:
- resumo (valor em estoque, itens baixos/zerados, entradas e saídas do dia e do mês)
- baixa autonomia (dias de cobertura pelo consumo de 30 dias)
- desperdício (WASTE no período, top itens por valor)
- valor por categoria

Os relatórios tabulares retornam ``(colunas, linhas, mensagem)`` para
exibição direta em tabela.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from insumos.config import DB_PATH, DEFAULTS
from insumos.domain.formulas import arredonda
from insumos.domain.models import WASTE, Escopo
from insumos.infra.db import connect
from insumos.infra.logger import log_database_operation, log_system_event, system_logger
from insumos.infra.migrations import preparar_banco
from insumos.infra.repositories import ItemRepo, MovimentoRepo, agora_iso

Tabela = Tuple[List[str], List[List[Any]], Optional[str]]


# ----------------------
# util
# ----------------------

def _inicio_do_dia(d: date) -> str:
    return agora_iso(datetime.combine(d, time.min))


def _posicoes(conn, tenant_id: str) -> List[Dict[str, Any]]:
    cur = conn.execute("SELECT * FROM vw_posicao_estoque WHERE tenant_id = ? ORDER BY nome", (tenant_id,))
    return [dict(r) for r in cur.fetchall()]


# ----------------------
# 1) Resumo
# ----------------------

def resumo_estoque(escopo: Escopo, hoje: Optional[date] = None, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Números de capa do estoque do tenant.

    Entradas somam IN e ajustes para cima; saídas somam OUT, WASTE e
    ajustes para baixo (valores em custo).
    """
    hoje = hoje or date.today()
    preparar_banco(db_path)
    with connect(db_path) as conn:
        pos = _posicoes(conn, escopo.tenant_id)
        mov = MovimentoRepo(conn)
        dia = mov.soma_custo_por_sentido(escopo.tenant_id, _inicio_do_dia(hoje))
        mes = mov.soma_custo_por_sentido(escopo.tenant_id, _inicio_do_dia(hoje.replace(day=1)))
    log_database_operation("vw_posicao_estoque", "SELECT", len(pos), tenant_id=escopo.tenant_id)

    resumo = {
        "total_itens": len(pos),
        "valor_total": arredonda(sum(float(p["valor_estoque"] or 0) for p in pos)),
        "itens_estoque_baixo": sum(1 for p in pos if p["estoque_baixo"]),
        "itens_sem_estoque": sum(1 for p in pos if p["sem_estoque"]),
        "entradas_hoje": arredonda(dia["entradas"]),
        "saidas_hoje": arredonda(dia["saidas"]),
        "entradas_mes": arredonda(mes["entradas"]),
        "saidas_mes": arredonda(mes["saidas"]),
    }
    log_system_event("resumo_estoque", {"tenant_id": escopo.tenant_id, **resumo})
    return resumo


# ----------------------
# 2) Baixa autonomia
# ----------------------

def relatorio_baixa_autonomia(
    escopo: Escopo,
    horizonte_dias: int = DEFAULTS.cobertura_alvo_dias,
    hoje: Optional[datetime] = None,
    db_path: str = DB_PATH,
) -> Tabela:
    """Itens com cobertura ``<= horizonte_dias`` ou abaixo do ponto de reposição.

    Cobertura = estoque / (saídas OUT+WASTE dos últimos 30 dias / 30),
    arredondada para dias inteiros. Itens sem consumo só entram pelo ponto
    de reposição. Ordena pela menor cobertura.
    """
    agora = hoje or datetime.now()
    janela = DEFAULTS.janela_consumo_dias
    preparar_banco(db_path)
    system_logger.info(f"REPORT_AUTONOMIA: horizonte={horizonte_dias} dias")
    with connect(db_path) as conn:
        pos = _posicoes(conn, escopo.tenant_id)
        consumo = MovimentoRepo(conn).consumo_por_item(
            escopo.tenant_id, agora_iso(agora - timedelta(days=janela)), incluir_desperdicio=True
        )

    out: List[Dict[str, Any]] = []
    for p in pos:
        total = consumo.get(p["id"], 0.0)
        media = total / janela
        autonomia = round(float(p["estoque_atual"]) / media) if media > 0 else None
        baixo = bool(p["estoque_baixo"])
        if (autonomia is not None and autonomia <= horizonte_dias) or baixo:
            out.append({**p, "consumo_30d": total, "autonomia_dias": autonomia})

    out.sort(key=lambda r: r["autonomia_dias"] if r["autonomia_dias"] is not None else 999)
    log_system_event("relatorio_baixa_autonomia", {"tenant_id": escopo.tenant_id, "itens": len(out)})

    columns = ["ID", "Item", "Unidade", "Estoque", "Ponto Reposição", "Consumo 30d", "Autonomia (dias)", "Valor"]
    rows = [
        [
            r["id"], r["nome"], r["unidade_base"], r["estoque_atual"], r["ponto_efetivo"],
            arredonda(r["consumo_30d"]),
            r["autonomia_dias"] if r["autonomia_dias"] is not None else "-",
            arredonda(r["valor_estoque"] or 0),
        ]
        for r in out
    ]
    msg = None if rows else "Nenhum item com baixa autonomia."
    return columns, rows, msg


# ----------------------
# 3) Desperdício
# ----------------------

def relatorio_desperdicio(
    escopo: Escopo,
    dias: int = 30,
    hoje: Optional[datetime] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Perdas (WASTE) no período: totais e os 5 itens de maior valor."""
    agora = hoje or datetime.now()
    desde = agora_iso(agora - timedelta(days=int(dias)))
    preparar_banco(db_path)
    with connect(db_path) as conn:
        perdas = MovimentoRepo(conn).list_by_tipo(escopo.tenant_id, WASTE, desde, limite=10_000)
        nomes = {i.id: i.nome for i in ItemRepo(conn).list(escopo.tenant_id, apenas_ativos=False)}

    por_item: Dict[int, Dict[str, Any]] = {}
    for m in perdas:
        acc = por_item.setdefault(m.item_id, {"item_id": m.item_id, "nome": nomes.get(m.item_id), "quantidade": 0.0, "valor": 0.0})
        acc["quantidade"] += m.quantidade
        acc["valor"] += m.custo_total
    top = sorted(por_item.values(), key=lambda r: r["valor"], reverse=True)[:5]
    for r in top:
        r["quantidade"] = arredonda(r["quantidade"])
        r["valor"] = arredonda(r["valor"])

    return {
        "periodo_dias": int(dias),
        "total_registros": len(perdas),
        "valor_total": arredonda(sum(m.custo_total for m in perdas)),
        "top_itens": top,
        "movimentos": perdas,
    }


# ----------------------
# 4) Valor por categoria
# ----------------------

def valor_por_categoria(escopo: Escopo, db_path: str = DB_PATH) -> Tabela:
    preparar_banco(db_path)
    with connect(db_path) as conn:
        pos = _posicoes(conn, escopo.tenant_id)

    grupos: Dict[str, Dict[str, Any]] = {}
    for p in pos:
        cat = p["categoria"] or "Sem categoria"
        g = grupos.setdefault(cat, {"itens": 0, "valor": 0.0})
        g["itens"] += 1
        g["valor"] += float(p["valor_estoque"] or 0)
    total = sum(g["valor"] for g in grupos.values())

    columns = ["Categoria", "Itens", "Valor", "%"]
    rows = [
        [cat, g["itens"], arredonda(g["valor"]), round(g["valor"] / total * 100, 2) if total > 0 else 0.0]
        for cat, g in sorted(grupos.items(), key=lambda kv: kv[1]["valor"], reverse=True)
    ]
    msg = None if rows else "Nenhum item cadastrado."
    return columns, rows, msg
