# insumos/usecases/movimentos.py
"""
UC: Ledger de movimentos de estoque.

Toda alteração de estoque passa por aqui e vira uma linha imutável em
``movimento``. Cada chamada roda numa transação ``BEGIN IMMEDIATE``:
lê o item, calcula o novo estado, grava o movimento, atualiza o item
(compare-and-swap em ``versao``) e, quando for o caso, abre ou baixa lotes.

Obs.:
- Saídas (OUT, WASTE, PRODUCTION de consumo, ajuste para baixo) baixam
  lotes em ordem FEFO antes do estoque sem lote.
- O alerta de estoque baixo é avaliado depois do commit.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, NamedTuple, Optional, TypeVar

from insumos.config import DB_PATH, DEFAULTS
from insumos.domain.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidMovementError,
    NotFoundError,
)
from insumos.domain.formulas import (
    EPS,
    arredonda,
    consumo_medio_diario,
    custo_medio_ponderado,
    ponto_reposicao_ciclo,
    sentido_movimento,
)
from insumos.domain.models import (
    ADJUSTMENT,
    IN,
    OUT,
    REF_ADJUSTMENT,
    REF_IMPORT,
    REF_INVENTORY,
    REF_PURCHASE,
    REF_REQUISITION,
    REF_WASTE,
    WASTE,
    Escopo,
    Item,
    LoteInfo,
    Movimento,
)
from insumos.domain.policies import estoque_baixo, ponto_reposicao_efetivo, severidade_estoque_baixo
from insumos.infra.db import connect
from insumos.infra.logger import log_movimento, log_system_event, log_transaction
from insumos.infra.migrations import preparar_banco
from insumos.infra.repositories import ItemRepo, MovimentoRepo, agora_iso
from insumos.usecases.alertas import AlertSink, on_low_stock, registrar_no_log
from insumos.usecases.cadastro import inserir_item
from insumos.usecases.lotes import abrir_lote, consumir_lotes

T = TypeVar("T")

# referência padrão por tipo, quando o chamador não informa
_REFERENCIA_PADRAO = {IN: REF_PURCHASE, ADJUSTMENT: REF_ADJUSTMENT, WASTE: REF_WASTE}


class Aplicacao(NamedTuple):
    """Resultado de um movimento aplicado dentro de uma transação."""
    movimento: Movimento
    item: Item
    limite_antes: float
    limite_depois: float


# ----------------------
# util
# ----------------------

def _com_retentativa(operacao: str, fn: Callable[[], T]) -> T:
    tentativas = max(1, int(DEFAULTS.max_tentativas))
    for tentativa in range(1, tentativas + 1):
        try:
            return fn()
        except ConcurrencyConflictError as e:
            if tentativa == tentativas:
                raise
            log_system_event(
                "conflito_concorrencia",
                {"operacao": operacao, "item_id": e.item_id, "tentativa": tentativa},
                level="warning",
            )
    raise AssertionError("unreachable")


def _quantidade_positiva(quantidade: Any) -> float:
    try:
        q = float(quantidade)
    except (TypeError, ValueError):
        raise InvalidMovementError(f"quantidade inválida: {quantidade!r}")
    if q <= EPS:
        raise InvalidMovementError("quantidade deve ser maior que zero")
    return arredonda(q)


def _exigir_campos(linha: Dict[str, Any], campos: tuple, contexto: str) -> None:
    if not isinstance(linha, dict):
        raise InvalidMovementError(f"{contexto}: esperado um dicionário, recebido {type(linha).__name__}")
    faltando = [c for c in campos if linha.get(c) is None]
    if faltando:
        raise InvalidMovementError(f"{contexto} sem {', '.join(faltando)}")


def _carregar_item(conn: sqlite3.Connection, escopo: Escopo, item_id: int) -> Item:
    item = ItemRepo(conn).get(escopo.tenant_id, item_id)
    if item is None:
        raise NotFoundError("Item", item_id)
    return item


def _resolver_custo(tipo: str, sentido: int, item: Item, custo_unitario: Optional[float]) -> float:
    if custo_unitario is not None:
        c = float(custo_unitario)
        if c < 0:
            raise InvalidMovementError("custo unitário não pode ser negativo")
        if c > 0 or tipo != IN:
            return c
    if tipo == IN:
        if item.ultimo_preco_compra:
            return float(item.ultimo_preco_compra)
        return float(custo_unitario or 0.0)
    return float(item.custo_medio)


def _recalcular_ponto_reposicao(conn: sqlite3.Connection, escopo: Escopo, item_id: int, agora: datetime) -> float:
    """Ponto do sistema: média diária de OUT/WASTE na janela × ciclo × (1 + margem)."""
    janela = DEFAULTS.janela_ponto_reposicao_dias
    desde = agora_iso(agora - timedelta(days=janela))
    total = MovimentoRepo(conn).soma_saidas_item(escopo.tenant_id, item_id, desde)
    media = consumo_medio_diario(total, janela)
    ponto = arredonda(ponto_reposicao_ciclo(media, DEFAULTS.ciclo_reposicao_dias, DEFAULTS.margem_ponto_reposicao))
    ItemRepo(conn).update_ponto_reposicao(item_id, ponto)
    return ponto


def aplicar_movimento(
    conn: sqlite3.Connection,
    escopo: Escopo,
    item_id: int,
    tipo: str,
    quantidade: float,
    unidade: Optional[str] = None,
    custo_unitario: Optional[float] = None,
    lote: Optional[LoteInfo] = None,
    direcao: Optional[str] = None,
    fornecedor_id: Optional[str] = None,
    nota_fiscal: Optional[str] = None,
    referencia_tipo: Optional[str] = None,
    referencia_id: Optional[str] = None,
    observacao: Optional[str] = None,
    data_movimento: Optional[datetime] = None,
) -> Aplicacao:
    """Aplica um movimento na transação aberta em ``conn``.

    Não faz commit nem emite alerta; é o bloco comum ao registro avulso,
    à entrada em lote, à requisição, à conciliação de inventário e à
    chegada de compras.
    """
    tipo = (tipo or "").strip().upper()
    try:
        sentido = sentido_movimento(tipo, direcao)
    except ValueError as e:
        raise InvalidMovementError(str(e))
    q = _quantidade_positiva(quantidade)

    item = _carregar_item(conn, escopo, item_id)
    if not item.ativo:
        raise InvalidMovementError(f"item {item_id} está inativo")

    estoque_antes = arredonda(item.estoque_atual)
    estoque_depois = arredonda(estoque_antes + sentido * q)
    if estoque_depois < -EPS:
        raise InsufficientStockError(item.id, estoque_antes, q, item.unidade_base)
    estoque_depois = max(estoque_depois, 0.0)

    custo = arredonda(_resolver_custo(tipo, sentido, item, custo_unitario))
    custo_total = arredonda(q * custo)

    quando_dt = data_movimento or datetime.now()
    quando = agora_iso(quando_dt)

    novo_custo_medio = item.custo_medio
    ultimo_preco = None
    data_compra = None
    if tipo == IN:
        novo_custo_medio = arredonda(custo_medio_ponderado(estoque_antes, item.custo_medio, q, custo))
        ultimo_preco = custo
        data_compra = quando

    lote_id = None
    if sentido > 0:
        if lote is not None and (lote.numero_lote or lote.data_validade):
            if tipo != IN:
                raise InvalidMovementError("lotes só são abertos em entradas (IN)")
            novo = abrir_lote(conn, escopo, item.id, q, custo, lote.data_validade, lote.numero_lote, recebido_em=quando)
            lote_id = novo.id
    else:
        preferido = lote.lote_id if lote is not None else None
        consumidos = consumir_lotes(conn, escopo, item.id, q, lote_preferido=preferido)
        # o movimento aponta para o primeiro lote de fato baixado
        if consumidos:
            lote_id = consumidos[0][0]

    mov = MovimentoRepo(conn).insert({
        "tenant_id": escopo.tenant_id,
        "item_id": item.id,
        "tipo": tipo,
        "sentido": sentido,
        "quantidade": q,
        "unidade": (unidade or item.unidade_base),
        "custo_unitario": custo,
        "custo_total": custo_total,
        "estoque_antes": estoque_antes,
        "estoque_depois": estoque_depois,
        "lote_id": lote_id,
        "fornecedor_id": fornecedor_id,
        "nota_fiscal": nota_fiscal,
        "referencia_tipo": referencia_tipo or _REFERENCIA_PADRAO.get(tipo),
        "referencia_id": referencia_id,
        "usuario_id": escopo.usuario_id,
        "observacao": observacao,
        "criado_em": quando,
    })

    ok = ItemRepo(conn).update_estoque(
        item.id, item.versao, estoque_depois, novo_custo_medio, ultimo_preco, data_compra
    )
    if not ok:
        raise ConcurrencyConflictError(item.id, item.versao)

    limite_antes = ponto_reposicao_efetivo(item.ponto_reposicao_manual, item.ponto_reposicao)
    limite_depois = limite_antes
    if tipo in (OUT, WASTE):
        ponto = _recalcular_ponto_reposicao(conn, escopo, item.id, quando_dt)
        limite_depois = ponto_reposicao_efetivo(item.ponto_reposicao_manual, ponto)

    log_movimento(
        "insert", item.id, tipo, q,
        tenant_id=escopo.tenant_id, movimento_id=mov.id,
        estoque_antes=estoque_antes, estoque_depois=estoque_depois, lote_id=lote_id,
    )
    return Aplicacao(mov, item, limite_antes, limite_depois)


def _avaliar_estoque_baixo(ap: Aplicacao, alert_sink: Optional[AlertSink]):
    """Emite STOCK_LOW quando a condição passa a valer ou escala para CRITICAL."""
    antes = ap.movimento.estoque_antes
    depois = ap.movimento.estoque_depois
    if not estoque_baixo(depois, ap.limite_depois):
        return None
    ja_baixo = estoque_baixo(antes, ap.limite_antes)
    escalou = severidade_estoque_baixo(depois) == "CRITICAL" and severidade_estoque_baixo(antes) != "CRITICAL"
    if ja_baixo and not escalou:
        return None
    alerta = on_low_stock(ap.item, depois, ap.limite_depois)
    sink = alert_sink or registrar_no_log
    try:
        sink(alerta)
    except Exception as e:
        # o movimento já foi gravado; falha de entrega fica só no log
        log_system_event("alerta_falhou", {"item_id": ap.item.id, "error": str(e)}, level="error")
    return alerta


# ----------------------
# Entradas públicas
# ----------------------

def registrar_movimento(
    escopo: Escopo,
    item_id: int,
    tipo: str,
    quantidade: float,
    unidade: Optional[str] = None,
    custo_unitario: Optional[float] = None,
    lote: Optional[LoteInfo] = None,
    direcao: Optional[str] = None,
    fornecedor_id: Optional[str] = None,
    nota_fiscal: Optional[str] = None,
    referencia_tipo: Optional[str] = None,
    referencia_id: Optional[str] = None,
    observacao: Optional[str] = None,
    data_movimento: Optional[datetime] = None,
    alert_sink: Optional[AlertSink] = None,
    db_path: str = DB_PATH,
) -> Movimento:
    """Registra um movimento de estoque e retorna a linha gravada.

    Raises:
        NotFoundError: item inexistente ou de outro tenant.
        InvalidMovementError: quantidade/tipo/direção/lote inválidos.
        InsufficientStockError: o estoque ficaria negativo.
        ConcurrencyConflictError: versão do item mudou em todas as tentativas.
    """
    preparar_banco(db_path)
    dados = {"tenant_id": escopo.tenant_id, "item_id": item_id, "tipo": tipo, "quantidade": quantidade}

    def _executar() -> Aplicacao:
        with connect(db_path, immediate=True) as conn:
            return aplicar_movimento(
                conn, escopo, item_id, tipo, quantidade,
                unidade=unidade,
                custo_unitario=custo_unitario,
                lote=lote,
                direcao=direcao,
                fornecedor_id=fornecedor_id,
                nota_fiscal=nota_fiscal,
                referencia_tipo=referencia_tipo,
                referencia_id=referencia_id,
                observacao=observacao,
                data_movimento=data_movimento,
            )

    try:
        ap = _com_retentativa("registrar_movimento", _executar)
    except Exception as e:
        log_transaction("registrar_movimento", dados, error=str(e))
        raise

    log_transaction("registrar_movimento", dados, result=ap.movimento.id)
    _avaliar_estoque_baixo(ap, alert_sink)
    return ap.movimento


def registrar_movimentos_em_lote(
    escopo: Escopo,
    linhas: List[Dict[str, Any]],
    fornecedor_id: Optional[str] = None,
    nota_fiscal: Optional[str] = None,
    db_path: str = DB_PATH,
) -> List[Movimento]:
    """Entrada (IN) de várias linhas numa única transação.

    Cada linha: ``{"item_id", "quantidade", "custo_unitario"?, "unidade"?,
    "numero_lote"?, "data_validade"?, "observacao"?}``. O estado do item é
    relido a cada linha, então linhas repetidas do mesmo item se compõem.
    Qualquer falha desfaz todas as linhas.
    """
    if not linhas:
        raise InvalidMovementError("nenhuma linha informada")
    for linha in linhas:
        _exigir_campos(linha, ("item_id", "quantidade"), "linha de entrada")
    preparar_banco(db_path)

    def _executar() -> List[Movimento]:
        out: List[Movimento] = []
        with connect(db_path, immediate=True) as conn:
            for linha in linhas:
                lote = None
                if linha.get("numero_lote") or linha.get("data_validade"):
                    lote = LoteInfo(numero_lote=linha.get("numero_lote"), data_validade=linha.get("data_validade"))
                ap = aplicar_movimento(
                    conn, escopo, linha["item_id"], IN, linha.get("quantidade"),
                    unidade=linha.get("unidade"),
                    custo_unitario=linha.get("custo_unitario"),
                    lote=lote,
                    fornecedor_id=fornecedor_id,
                    nota_fiscal=nota_fiscal,
                    observacao=linha.get("observacao"),
                )
                out.append(ap.movimento)
        return out

    dados = {"tenant_id": escopo.tenant_id, "linhas": len(linhas), "nota_fiscal": nota_fiscal}
    try:
        movimentos = _com_retentativa("registrar_movimentos_em_lote", _executar)
    except Exception as e:
        log_transaction("registrar_movimentos_em_lote", dados, error=str(e))
        raise
    log_movimento("bulk", None, IN, sum(m.quantidade for m in movimentos), tenant_id=escopo.tenant_id, linhas=len(movimentos))
    log_transaction("registrar_movimentos_em_lote", dados, result=[m.id for m in movimentos])
    return movimentos


def registrar_requisicao(
    escopo: Escopo,
    linhas: List[Dict[str, Any]],
    centro_custo: Optional[str] = None,
    solicitante: Optional[str] = None,
    alert_sink: Optional[AlertSink] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Requisição de estoque: saída (OUT) de vários itens numa transação.

    Cada linha: ``{"item_id", "quantidade", "lote_id"?, "finalidade"?}``.
    Os lotes são baixados em ordem FEFO (ou a partir de ``lote_id``). Se
    algum item faltar ou não tiver saldo, nenhuma linha é gravada.

    Returns:
        ``{"requisicao_id", "movimentos": [Movimento, ...]}``; cada movimento
        leva ``referencia_id = requisicao_id``.
    """
    if not linhas:
        raise InvalidMovementError("requisição sem itens")
    for linha in linhas:
        _exigir_campos(linha, ("item_id", "quantidade"), "linha da requisição")
    preparar_banco(db_path)

    requisicao_id = uuid.uuid4().hex
    cabecalho = f"Requisição: {centro_custo or '-'} - {solicitante or escopo.usuario_id or '-'}"

    def _executar() -> List[Aplicacao]:
        aplicacoes: List[Aplicacao] = []
        with connect(db_path, immediate=True) as conn:
            for linha in linhas:
                lote = LoteInfo(lote_id=linha["lote_id"]) if linha.get("lote_id") is not None else None
                obs = cabecalho
                if linha.get("finalidade"):
                    obs = f"{cabecalho} ({linha['finalidade']})"
                aplicacoes.append(aplicar_movimento(
                    conn, escopo, linha["item_id"], OUT, linha["quantidade"],
                    lote=lote,
                    referencia_tipo=REF_REQUISITION,
                    referencia_id=requisicao_id,
                    observacao=obs,
                ))
        return aplicacoes

    dados = {
        "tenant_id": escopo.tenant_id,
        "requisicao_id": requisicao_id,
        "linhas": len(linhas),
        "centro_custo": centro_custo,
    }
    try:
        aplicacoes = _com_retentativa("registrar_requisicao", _executar)
    except Exception as e:
        log_transaction("registrar_requisicao", dados, error=str(e))
        raise

    movimentos = [ap.movimento for ap in aplicacoes]
    log_transaction("registrar_requisicao", dados, result=[m.id for m in movimentos])
    for ap in aplicacoes:
        _avaliar_estoque_baixo(ap, alert_sink)
    return {"requisicao_id": requisicao_id, "movimentos": movimentos}


def reconciliar(
    escopo: Escopo,
    item_id: int,
    quantidade_contada: float,
    observacao: Optional[str] = None,
    alert_sink: Optional[AlertSink] = None,
    db_path: str = DB_PATH,
) -> Optional[Movimento]:
    """Ajusta o estoque para a quantidade contada.

    Sem diferença, nada é gravado e retorna ``None``. Com diferença, grava
    um ADJUSTMENT de ``|diferença|`` ao custo médio, com referência de
    inventário; falta física baixa os lotes em ordem FEFO.
    """
    try:
        contada = arredonda(float(quantidade_contada))
    except (TypeError, ValueError):
        raise InvalidMovementError(f"quantidade contada inválida: {quantidade_contada!r}")
    if contada < 0:
        raise InvalidMovementError("quantidade contada não pode ser negativa")
    preparar_banco(db_path)

    def _executar() -> Optional[Aplicacao]:
        with connect(db_path, immediate=True) as conn:
            item = _carregar_item(conn, escopo, item_id)
            diferenca = arredonda(contada - item.estoque_atual)
            if abs(diferenca) <= EPS:
                return None
            return aplicar_movimento(
                conn, escopo, item_id, ADJUSTMENT, abs(diferenca),
                custo_unitario=item.custo_medio,
                direcao="in" if diferenca > 0 else "out",
                referencia_tipo=REF_INVENTORY,
                observacao=observacao or "Ajuste de inventário",
            )

    dados = {"tenant_id": escopo.tenant_id, "item_id": item_id, "contada": contada}
    try:
        ap = _com_retentativa("reconciliar", _executar)
    except Exception as e:
        log_transaction("reconciliar", dados, error=str(e))
        raise
    if ap is None:
        log_transaction("reconciliar", dados, result="sem_diferenca")
        return None
    log_transaction("reconciliar", dados, result=ap.movimento.id)
    _avaliar_estoque_baixo(ap, alert_sink)
    return ap.movimento


def reconciliar_contagem(
    escopo: Escopo,
    contagens: List[Dict[str, Any]],
    alert_sink: Optional[AlertSink] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Aplica uma contagem de inventário, um item por transação.

    Cada contagem: ``{"item_id", "quantidade_contada", "observacao"?}``.
    Retorna o resumo com diferença e valor por item. Se o tenant tiver o
    gatilho pós-inventário ligado, gera a lista de compras ao final.
    """
    if not contagens:
        raise InvalidMovementError("nenhuma contagem informada")
    for c in contagens:
        _exigir_campos(c, ("item_id", "quantidade_contada"), "contagem")
    preparar_banco(db_path)
    log_system_event("inventario_start", {"tenant_id": escopo.tenant_id, "itens": len(contagens)})

    itens: List[Dict[str, Any]] = []
    valor_total = 0.0
    for c in contagens:
        mov = reconciliar(
            escopo, c["item_id"], c["quantidade_contada"],
            observacao=c.get("observacao"), alert_sink=alert_sink, db_path=db_path,
        )
        if mov is None:
            itens.append({"item_id": c["item_id"], "diferenca": 0.0, "valor": 0.0, "movimento_id": None})
            continue
        diferenca = mov.sentido * mov.quantidade
        valor = arredonda(mov.sentido * mov.custo_total)
        valor_total += valor
        itens.append({"item_id": c["item_id"], "diferenca": diferenca, "valor": valor, "movimento_id": mov.id})

    resumo: Dict[str, Any] = {
        "itens_contados": len(itens),
        "itens_ajustados": sum(1 for i in itens if i["movimento_id"] is not None),
        "valor_diferenca": arredonda(valor_total),
        "itens": itens,
        "lista_compra_id": None,
    }

    # import local: reposicao depende deste módulo
    from insumos.usecases.reposicao import gerar_lista_compra, obter_config

    if obter_config(escopo, db_path=db_path).gatilho_pos_inventario:
        lista = gerar_lista_compra(escopo, tipo_gatilho="POS_INVENTARIO", db_path=db_path)
        resumo["lista_compra_id"] = lista.id if lista else None

    log_system_event("inventario_success", {"tenant_id": escopo.tenant_id, **{k: resumo[k] for k in ("itens_ajustados", "valor_diferenca")}})
    return resumo


def registrar_importacao(
    escopo: Escopo,
    linhas: List[Dict[str, Any]],
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Grava entradas vindas de linhas já normalizadas por um importador.

    Cada linha: ``{"nome_item", "categoria"?, "quantidade", "unidade"?,
    "custo_unitario"?, "data"?}``. O item é localizado pelo nome (sem
    diferenciar maiúsculas); se não existir, é criado na categoria indicada.
    Tudo numa transação.
    """
    if not linhas:
        raise InvalidMovementError("nenhuma linha para importar")
    preparar_banco(db_path)

    def _executar() -> Dict[str, Any]:
        criados: List[int] = []
        movimentos: List[int] = []
        with connect(db_path, immediate=True) as conn:
            repo = ItemRepo(conn)
            for linha in linhas:
                nome = str(linha.get("nome_item") or "").strip()
                if not nome:
                    raise InvalidMovementError("linha de importação sem nome de item")
                item = repo.get_by_nome(escopo.tenant_id, nome)
                if item is None:
                    item = inserir_item(
                        conn, escopo, nome,
                        categoria=linha.get("categoria"),
                        unidade_base=linha.get("unidade") or "UN",
                    )
                    criados.append(item.id)
                quando = linha.get("data")
                if quando and not isinstance(quando, datetime):
                    try:
                        quando = datetime.fromisoformat(str(quando))
                    except ValueError:
                        raise InvalidMovementError(f"data inválida na importação: {quando!r}")
                ap = aplicar_movimento(
                    conn, escopo, item.id, IN, linha.get("quantidade"),
                    unidade=linha.get("unidade"),
                    custo_unitario=linha.get("custo_unitario"),
                    referencia_tipo=REF_IMPORT,
                    data_movimento=quando or None,
                )
                movimentos.append(ap.movimento.id)
        return {"linhas": len(linhas), "itens_criados": criados, "movimentos": movimentos}

    dados = {"tenant_id": escopo.tenant_id, "linhas": len(linhas)}
    try:
        resultado = _com_retentativa("registrar_importacao", _executar)
    except Exception as e:
        log_transaction("registrar_importacao", dados, error=str(e))
        raise
    log_transaction("registrar_importacao", dados, result=resultado)
    return resultado


def listar_movimentos(
    escopo: Escopo,
    item_id: int,
    limite: Optional[int] = None,
    db_path: str = DB_PATH,
) -> List[Movimento]:
    """Histórico do item em ordem cronológica (os ``limite`` mais recentes)."""
    preparar_banco(db_path)
    with connect(db_path) as conn:
        _carregar_item(conn, escopo, item_id)
        return MovimentoRepo(conn).list_by_item(escopo.tenant_id, item_id, limite)
