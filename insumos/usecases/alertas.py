# insumos/usecases/alertas.py
"""
UC: Alertas derivados do ledger (estoque baixo, lote a vencer).

As funções ``on_*`` são puras: montam o ``Alerta`` e não persistem nada.
A entrega (push, e-mail, tela) é de quem recebe o alerta; o destino
padrão apenas registra no log do sistema.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, List, Optional

from insumos.config import DB_PATH, DEFAULTS
from insumos.domain.models import STOCK_EXPIRING, STOCK_LOW, Alerta, Escopo, Item, Lote
from insumos.domain.policies import severidade_estoque_baixo, severidade_vencimento
from insumos.infra.db import connect
from insumos.infra.logger import log_system_event
from insumos.infra.repositories import ItemRepo
from insumos.usecases.lotes import listar_lotes_a_vencer

AlertSink = Callable[[Alerta], None]


def _fmt(x: float) -> str:
    return f"{float(x):g}"


def on_low_stock(item: Item, novo_estoque: float, limite: float) -> Alerta:
    severidade = severidade_estoque_baixo(novo_estoque)
    return Alerta(
        tipo=STOCK_LOW,
        severidade=severidade,
        titulo=f"Estoque Baixo: {item.nome}",
        mensagem=(
            f"O produto {item.nome} precisa ser reposto. "
            f"Estoque atual: {_fmt(novo_estoque)} {item.unidade_base} "
            f"(Ponto de reposição: {float(limite):.2f})"
        ),
        tenant_id=item.tenant_id,
        item_id=item.id,
        dados={"estoque_atual": novo_estoque, "ponto_reposicao": limite},
    )


def on_expiring_batch(lote: Lote, hoje: Optional[date] = None, nome_item: Optional[str] = None) -> Alerta:
    """Alerta de vencimento; ``CRITICAL`` para vencidos ou a poucos dias."""
    if not lote.data_validade:
        raise ValueError(f"lote {lote.id} não tem data de validade")
    hoje = hoje or date.today()
    dias = (date.fromisoformat(str(lote.data_validade)[:10]) - hoje).days
    nome = nome_item or f"item {lote.item_id}"
    if dias < 0:
        quando = f"venceu há {-dias} dia(s)"
    elif dias == 0:
        quando = "vence hoje"
    else:
        quando = f"vence em {dias} dia(s)"
    return Alerta(
        tipo=STOCK_EXPIRING,
        severidade=severidade_vencimento(dias, DEFAULTS.dias_vencimento_critico),
        titulo=f"Lote a vencer: {nome}",
        mensagem=(
            f"O lote {lote.numero_lote} de {nome} {quando} "
            f"({_fmt(lote.quantidade_restante)} restante)."
        ),
        tenant_id=lote.tenant_id,
        item_id=lote.item_id,
        lote_id=lote.id,
        dados={
            "data_validade": lote.data_validade,
            "dias_para_vencer": dias,
            "quantidade_restante": lote.quantidade_restante,
        },
    )


def registrar_no_log(alerta: Alerta) -> None:
    """Destino padrão dos alertas: log do sistema."""
    nivel = "warning" if alerta.severidade in ("HIGH", "CRITICAL") else "info"
    log_system_event(
        f"alerta_{alerta.tipo.lower()}",
        {
            "severidade": alerta.severidade,
            "tenant_id": alerta.tenant_id,
            "item_id": alerta.item_id,
            "lote_id": alerta.lote_id,
            "mensagem": alerta.mensagem,
        },
        level=nivel,
    )


def alertas_lotes_a_vencer(
    escopo: Escopo,
    dentro_de_dias: int = DEFAULTS.janela_vencimento_dias,
    hoje: Optional[date] = None,
    alert_sink: Optional[AlertSink] = None,
    db_path: str = DB_PATH,
) -> List[Alerta]:
    """Varre os lotes a vencer do tenant e emite um alerta por lote."""
    hoje = hoje or date.today()
    lotes = listar_lotes_a_vencer(escopo, dentro_de_dias, hoje=hoje, db_path=db_path)
    if not lotes:
        return []
    with connect(db_path) as conn:
        repo = ItemRepo(conn)
        nomes = {}
        for lote in lotes:
            if lote.item_id not in nomes:
                item = repo.get(escopo.tenant_id, lote.item_id)
                nomes[lote.item_id] = item.nome if item else None
    sink = alert_sink or registrar_no_log
    alertas = [on_expiring_batch(l, hoje=hoje, nome_item=nomes.get(l.item_id)) for l in lotes]
    for a in alertas:
        sink(a)
    return alertas
