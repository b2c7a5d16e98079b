# insumos/usecases/reposicao.py
"""
UC: Motor de reposição.

- Lista de compras por ponto de reposição (snapshot do que falta).
- Sugestões por velocidade de consumo (média diária na janela do tenant).
- Confirmação de chegada, que vira entrada (IN) no ledger na mesma transação.
- Política de compras por tenant (gatilhos e heurísticas).

Obs.:
- A avaliação dos gatilhos (agenda, pós-inventário) é de um agendador
  externo; aqui só ficam guardados e expostos.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from insumos.config import DB_PATH, DEFAULTS
from insumos.domain.errors import AlreadyConfirmedError, InvalidMovementError, NotFoundError
from insumos.domain.formulas import (
    EPS,
    arredonda,
    consumo_medio_diario,
    data_ruptura,
    dias_restantes,
    ponto_reposicao_seguranca,
    quantidade_sugerida,
)
from insumos.domain.models import (
    CANCELADO,
    CHEGOU,
    GATILHOS_LISTA,
    IN,
    RECORRENCIAS,
    REF_PURCHASE_LIST,
    STATUS_LISTA,
    ConfigCompra,
    Escopo,
    ItemListaCompra,
    ListaCompra,
    SugestaoCompra,
)
from insumos.domain.policies import (
    ORDEM_PRIORIDADE,
    ponto_reposicao_efetivo,
    prioridade_por_dias,
    status_item_confirmado,
    status_lista,
)
from insumos.infra.db import connect
from insumos.infra.logger import log_reposicao, log_transaction
from insumos.infra.migrations import preparar_banco
from insumos.infra.repositories import (
    ConfigCompraRepo,
    ItemRepo,
    ListaCompraRepo,
    MovimentoRepo,
    SugestaoRepo,
    agora_iso,
)
from insumos.usecases.movimentos import aplicar_movimento


# ----------------------
# Locks por tenant (regeração de sugestões)
# ----------------------

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_tenant(tenant_id: str) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(tenant_id)
        if lock is None:
            lock = _LOCKS[tenant_id] = threading.Lock()
        return lock


# ----------------------
# Config
# ----------------------

_CAMPOS_CONFIG = (
    "gatilho_pos_inventario",
    "gatilho_estoque_critico",
    "percentual_estoque_critico",
    "gatilho_datas_fixas",
    "recorrencia",
    "dias_semana",
    "dias_mes",
    "janela_consumo_dias",
    "fator_seguranca",
    "cobertura_alvo_dias",
    "confianca",
)


def _config_padrao(tenant_id: str) -> ConfigCompra:
    return ConfigCompra(
        tenant_id=tenant_id,
        janela_consumo_dias=DEFAULTS.janela_consumo_dias,
        fator_seguranca=DEFAULTS.fator_seguranca,
        cobertura_alvo_dias=DEFAULTS.cobertura_alvo_dias,
        confianca=DEFAULTS.confianca,
    )


def _config_from_row(d: Dict[str, Any]) -> ConfigCompra:
    cfg = _config_padrao(d["tenant_id"])
    cfg.gatilho_pos_inventario = bool(d["gatilho_pos_inventario"])
    cfg.gatilho_estoque_critico = bool(d["gatilho_estoque_critico"])
    cfg.percentual_estoque_critico = float(d["percentual_estoque_critico"])
    cfg.gatilho_datas_fixas = bool(d["gatilho_datas_fixas"])
    cfg.recorrencia = d["recorrencia"]
    cfg.dias_semana = [int(x) for x in d["dias_semana"]]
    cfg.dias_mes = [int(x) for x in d["dias_mes"]]
    # heurísticas nulas herdam os padrões globais
    if d.get("janela_consumo_dias") is not None:
        cfg.janela_consumo_dias = int(d["janela_consumo_dias"])
    if d.get("fator_seguranca") is not None:
        cfg.fator_seguranca = float(d["fator_seguranca"])
    if d.get("cobertura_alvo_dias") is not None:
        cfg.cobertura_alvo_dias = int(d["cobertura_alvo_dias"])
    if d.get("confianca") is not None:
        cfg.confianca = float(d["confianca"])
    return cfg


def _validar_config(campos: Dict[str, Any]) -> Dict[str, Any]:
    desconhecidos = set(campos) - set(_CAMPOS_CONFIG)
    if desconhecidos:
        raise ValueError(f"campos de configuração desconhecidos: {', '.join(sorted(desconhecidos))}")
    out = dict(campos)
    if "recorrencia" in out:
        out["recorrencia"] = str(out["recorrencia"]).strip().upper()
        if out["recorrencia"] not in RECORRENCIAS:
            raise ValueError(f"recorrência inválida: {campos['recorrencia']!r}")
    if "dias_semana" in out:
        dias = sorted({int(x) for x in out["dias_semana"]})
        if any(d < 0 or d > 6 for d in dias):
            raise ValueError("dias_semana deve conter valores entre 0 e 6")
        out["dias_semana"] = dias
    if "dias_mes" in out:
        dias = sorted({int(x) for x in out["dias_mes"]})
        if any(d < 1 or d > 31 for d in dias):
            raise ValueError("dias_mes deve conter valores entre 1 e 31")
        out["dias_mes"] = dias
    if "percentual_estoque_critico" in out:
        p = float(out["percentual_estoque_critico"])
        if not 0 <= p <= 100:
            raise ValueError("percentual_estoque_critico deve estar entre 0 e 100")
        out["percentual_estoque_critico"] = p
    if "janela_consumo_dias" in out and int(out["janela_consumo_dias"]) <= 0:
        raise ValueError("janela_consumo_dias deve ser positiva")
    if "cobertura_alvo_dias" in out and int(out["cobertura_alvo_dias"]) <= 0:
        raise ValueError("cobertura_alvo_dias deve ser positiva")
    if "fator_seguranca" in out and float(out["fator_seguranca"]) < 0:
        raise ValueError("fator_seguranca não pode ser negativo")
    if "confianca" in out and not 0 <= float(out["confianca"]) <= 1:
        raise ValueError("confianca deve estar entre 0 e 1")
    for k in ("gatilho_pos_inventario", "gatilho_estoque_critico", "gatilho_datas_fixas"):
        if k in out:
            out[k] = bool(out[k])
    return out


def obter_config(escopo: Escopo, db_path: str = DB_PATH) -> ConfigCompra:
    """Retorna a política do tenant, criando a padrão se ainda não existir."""
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = ConfigCompraRepo(conn)
        row = repo.get(escopo.tenant_id)
        if row is None:
            cfg = _config_padrao(escopo.tenant_id)
            repo.upsert(cfg)
            log_reposicao("config_criada", escopo.tenant_id)
            return cfg
    return _config_from_row(row)


def atualizar_config(escopo: Escopo, db_path: str = DB_PATH, **campos) -> ConfigCompra:
    """Atualização parcial da política do tenant."""
    dados = _validar_config(campos)
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = ConfigCompraRepo(conn)
        row = repo.get(escopo.tenant_id)
        cfg = _config_from_row(row) if row else _config_padrao(escopo.tenant_id)
        for k, v in dados.items():
            setattr(cfg, k, v)
        repo.upsert(cfg)
    log_reposicao("config_atualizada", escopo.tenant_id, campos=sorted(dados))
    return cfg


# ----------------------
# Lista de compras (ponto de reposição)
# ----------------------

def gerar_lista_compra(
    escopo: Escopo,
    tipo_gatilho: str = "MANUAL",
    descricao: Optional[str] = None,
    observacao: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Optional[ListaCompra]:
    """Gera a lista com os itens ativos abaixo do ponto de reposição.

    Retorna ``None`` quando nenhum item precisa de reposição (listas
    vazias não são gravadas).
    """
    tipo_gatilho = (tipo_gatilho or "").strip().upper()
    if tipo_gatilho not in GATILHOS_LISTA:
        raise ValueError(f"tipo de gatilho inválido: {tipo_gatilho!r}")
    preparar_banco(db_path)
    agora = datetime.now()

    try:
        with connect(db_path, immediate=True) as conn:
            itens: List[ItemListaCompra] = []
            for item in ItemRepo(conn).list_com_ponto_reposicao(escopo.tenant_id):
                ponto = ponto_reposicao_efetivo(item.ponto_reposicao_manual, item.ponto_reposicao)
                if ponto <= EPS:
                    continue
                faltante = arredonda(ponto - item.estoque_atual)
                if faltante <= EPS:
                    continue
                itens.append(ItemListaCompra(
                    item_id=item.id,
                    nome_produto=item.nome,
                    unidade=item.unidade_base,
                    ponto_reposicao=arredonda(ponto),
                    estoque_atual=arredonda(item.estoque_atual),
                    quantidade_sugerida=faltante,
                ))

            if not itens:
                log_reposicao("lista_vazia", escopo.tenant_id, tipo_gatilho=tipo_gatilho)
                return None

            lista = ListaCompra(
                tenant_id=escopo.tenant_id,
                tipo_gatilho=tipo_gatilho,
                descricao=descricao or f"Lista de Compras - {agora:%d/%m/%Y}",
                observacao=observacao,
                criado_por=escopo.usuario_id,
                criado_em=agora_iso(agora),
            )
            lista.itens = itens
            ListaCompraRepo(conn).insert(lista)
    except Exception as e:
        log_transaction("gerar_lista_compra", {"tenant_id": escopo.tenant_id, "tipo_gatilho": tipo_gatilho}, error=str(e))
        raise

    log_reposicao("gerar_lista", escopo.tenant_id, lista_id=lista.id, itens=len(lista.itens), tipo_gatilho=tipo_gatilho)
    return lista


def obter_lista(escopo: Escopo, lista_id: int, db_path: str = DB_PATH) -> ListaCompra:
    preparar_banco(db_path)
    with connect(db_path) as conn:
        lista = ListaCompraRepo(conn).get(escopo.tenant_id, lista_id)
    if lista is None:
        raise NotFoundError("Lista de compras", lista_id)
    return lista


def listar_listas(
    escopo: Escopo,
    status: Optional[str] = None,
    tipo_gatilho: Optional[str] = None,
    pagina: int = 1,
    limite: int = 20,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Listas do tenant, mais recentes primeiro, paginadas."""
    preparar_banco(db_path)
    with connect(db_path) as conn:
        listas, total = ListaCompraRepo(conn).list(
            escopo.tenant_id, status=status, tipo_gatilho=tipo_gatilho, pagina=pagina, limite=limite
        )
    return {
        "listas": listas,
        "total": total,
        "pagina": pagina,
        "limite": limite,
        "paginas": (total + limite - 1) // limite if limite else 0,
    }


def atualizar_status_lista(escopo: Escopo, lista_id: int, status: str, db_path: str = DB_PATH) -> ListaCompra:
    status = (status or "").strip().upper()
    if status not in STATUS_LISTA:
        raise ValueError(f"status de lista inválido: {status!r}")
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = ListaCompraRepo(conn)
        if repo.get(escopo.tenant_id, lista_id) is None:
            raise NotFoundError("Lista de compras", lista_id)
        repo.update_status(lista_id, status, agora_iso() if status == "CONCLUIDA" else None)
        lista = repo.get(escopo.tenant_id, lista_id)
    log_reposicao("status_lista", escopo.tenant_id, lista_id=lista_id, status=status)
    return lista


def _carregar_item_lista(repo: ListaCompraRepo, escopo: Escopo, item_lista_id: int) -> Tuple[ItemListaCompra, Dict[str, Any]]:
    achado = repo.get_item(escopo.tenant_id, item_lista_id)
    if achado is None:
        raise NotFoundError("Item da lista", item_lista_id)
    return achado


def confirmar_chegada(
    escopo: Escopo,
    item_lista_id: int,
    quantidade_confirmada: float,
    preco_compra: Optional[float] = None,
    db_path: str = DB_PATH,
) -> ItemListaCompra:
    """Confirma o recebimento de um item da lista.

    Grava a entrada (IN) no ledger, vincula o movimento ao item da lista e
    recalcula o status da lista, tudo na mesma transação. Não pode ser
    repetida para o mesmo item.
    """
    if quantidade_confirmada is None or float(quantidade_confirmada) <= EPS:
        raise InvalidMovementError("quantidade confirmada deve ser maior que zero")
    q = arredonda(quantidade_confirmada)
    preparar_banco(db_path)
    dados = {"tenant_id": escopo.tenant_id, "item_lista_id": item_lista_id, "quantidade": q}

    try:
        with connect(db_path, immediate=True) as conn:
            repo = ListaCompraRepo(conn)
            it, lista = _carregar_item_lista(repo, escopo, item_lista_id)
            if it.status == CHEGOU or it.movimento_id is not None:
                raise AlreadyConfirmedError(item_lista_id)
            if it.status == CANCELADO:
                raise InvalidMovementError(f"item {item_lista_id} foi cancelado")
            if lista["status"] == "CANCELADA":
                raise InvalidMovementError(f"lista {lista['id']} está cancelada")

            novo_status = status_item_confirmado(q, it.quantidade_sugerida)
            custo = float(preco_compra) if preco_compra is not None and float(preco_compra) > 0 else None
            ap = aplicar_movimento(
                conn, escopo, it.item_id, IN, q,
                custo_unitario=custo,
                referencia_tipo=REF_PURCHASE_LIST,
                referencia_id=str(lista["id"]),
                observacao=f"Recebimento da lista: {lista['descricao']}",
            )
            quando = agora_iso()
            if not repo.update_item_confirmacao(item_lista_id, q, novo_status, escopo.usuario_id, quando, ap.movimento.id):
                raise AlreadyConfirmedError(item_lista_id)

            status = status_lista(repo.count_pendentes(lista["id"]))
            repo.update_status(lista["id"], status, quando if status == "CONCLUIDA" else None)
            it, _ = _carregar_item_lista(repo, escopo, item_lista_id)
    except Exception as e:
        log_transaction("confirmar_chegada", dados, error=str(e))
        raise

    log_reposicao("confirmar", escopo.tenant_id, item_lista_id=item_lista_id, status=it.status, movimento_id=it.movimento_id)
    log_transaction("confirmar_chegada", dados, result=it.movimento_id)
    return it


def cancelar_item(escopo: Escopo, item_lista_id: int, db_path: str = DB_PATH) -> ItemListaCompra:
    """Cancela um item ainda não recebido e atualiza o status da lista."""
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = ListaCompraRepo(conn)
        it, lista = _carregar_item_lista(repo, escopo, item_lista_id)
        if it.status == CHEGOU or it.movimento_id is not None:
            raise AlreadyConfirmedError(item_lista_id)
        if it.status == CANCELADO:
            return it
        repo.update_item_status(item_lista_id, CANCELADO)
        pendentes = repo.count_pendentes(lista["id"])
        if pendentes == 0:
            repo.update_status(lista["id"], "CONCLUIDA", agora_iso())
        elif lista["status"] != "ABERTA":
            repo.update_status(lista["id"], status_lista(pendentes))
        it, _ = _carregar_item_lista(repo, escopo, item_lista_id)
    log_reposicao("cancelar_item", escopo.tenant_id, item_lista_id=item_lista_id)
    return it


# ----------------------
# Sugestões (velocidade de consumo)
# ----------------------

def _ordenar(sugestoes: List[SugestaoCompra]) -> List[SugestaoCompra]:
    return sorted(sugestoes, key=lambda s: (ORDEM_PRIORIDADE[s.prioridade], s.data_ruptura_estimada, s.item_id))


def gerar_sugestoes(escopo: Escopo, agora: Optional[datetime] = None, db_path: str = DB_PATH) -> List[SugestaoCompra]:
    """Recalcula as sugestões de compra do tenant.

    Para cada matéria-prima ativa com consumo na janela: calcula o ponto de
    reposição com margem de segurança proporcional ao lead time, descarta
    itens acima dele e sugere a quantidade que restaura a cobertura alvo.
    As sugestões pendentes anteriores são substituídas pelas novas.
    """
    cfg = obter_config(escopo, db_path=db_path)
    agora = agora or datetime.now()
    janela = cfg.janela_consumo_dias
    desde = agora_iso(agora - timedelta(days=janela))
    gerada_em = agora_iso(agora)

    log_reposicao("gerar_sugestoes_start", escopo.tenant_id, janela=janela)
    with _lock_tenant(escopo.tenant_id):
        with connect(db_path, immediate=True) as conn:
            consumo = MovimentoRepo(conn).consumo_por_item(escopo.tenant_id, desde)
            novas: List[SugestaoCompra] = []
            for item in ItemRepo(conn).list_materias_primas(escopo.tenant_id):
                total = consumo.get(item.id, 0.0)
                media = consumo_medio_diario(total, janela)
                if media <= EPS:
                    continue
                ponto = ponto_reposicao_seguranca(media, item.lead_time_dias, cfg.fator_seguranca)
                estoque = float(item.estoque_atual)
                if estoque > ponto + EPS:
                    continue
                qtd = quantidade_sugerida(media, estoque, cfg.cobertura_alvo_dias)
                if qtd <= 0:
                    continue
                dias = dias_restantes(estoque, media)
                novas.append(SugestaoCompra(
                    item_id=item.id,
                    tenant_id=escopo.tenant_id,
                    estoque_atual=arredonda(estoque),
                    consumo_medio_diario=arredonda(media),
                    quantidade_sugerida=float(qtd),
                    unidade_sugerida=item.unidade_base,
                    ponto_reposicao=arredonda(ponto),
                    lead_time_dias=item.lead_time_dias,
                    prioridade=prioridade_por_dias(dias),
                    data_ruptura_estimada=agora_iso(data_ruptura(agora, dias)),
                    confianca=cfg.confianca,
                    justificativa=f"Consumo: {media:.2f}/dia. Estoque: {estoque:g}. Sugiro {qtd}.",
                    gerada_em=gerada_em,
                ))

            sug_repo = SugestaoRepo(conn)
            removidas = sug_repo.delete_pendentes(escopo.tenant_id)
            sug_repo.insert_many(novas)

    log_reposicao("gerar_sugestoes", escopo.tenant_id, geradas=len(novas), substituidas=removidas)
    return _ordenar(novas)


def listar_sugestoes(escopo: Escopo, db_path: str = DB_PATH) -> List[SugestaoCompra]:
    """Sugestões pendentes (não decididas), URGENT primeiro."""
    preparar_banco(db_path)
    with connect(db_path) as conn:
        return SugestaoRepo(conn).list_pendentes(escopo.tenant_id)


def decidir_sugestao(escopo: Escopo, sugestao_id: int, aceita: bool, db_path: str = DB_PATH) -> SugestaoCompra:
    """Marca a sugestão como aceita ou recusada; decisões são definitivas."""
    preparar_banco(db_path)
    with connect(db_path, immediate=True) as conn:
        repo = SugestaoRepo(conn)
        sug = repo.get(escopo.tenant_id, sugestao_id)
        if sug is None:
            raise NotFoundError("Sugestão", sugestao_id)
        if sug.aceita is not None:
            raise InvalidMovementError(f"sugestão {sugestao_id} já foi decidida")
        repo.decidir(sugestao_id, bool(aceita), agora_iso())
        sug = repo.get(escopo.tenant_id, sugestao_id)
    log_reposicao("decidir_sugestao", escopo.tenant_id, sugestao_id=sugestao_id, aceita=bool(aceita))
    return sug
