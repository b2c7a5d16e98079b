# insumos/domain/models.py
"""
Modelos (dataclasses) do domínio.

Observação importante:
- Os repositórios devolvem estas dataclasses a partir das linhas do SQLite
  (``from_row``). Os valores de tipo/status são strings simples, listadas
  nas constantes abaixo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# -------------------------
# Constantes de domínio
# -------------------------

IN = "IN"
OUT = "OUT"
ADJUSTMENT = "ADJUSTMENT"
WASTE = "WASTE"
RETURN = "RETURN"
PRODUCTION = "PRODUCTION"

TIPOS_MOVIMENTO = (IN, OUT, ADJUSTMENT, WASTE, RETURN, PRODUCTION)

# Referências de origem do movimento
REF_PURCHASE = "PURCHASE"
REF_ADJUSTMENT = "ADJUSTMENT"
REF_WASTE = "WASTE"
REF_INVENTORY = "INVENTORY"
REF_PURCHASE_LIST = "PURCHASE_LIST"
REF_IMPORT = "IMPORT"
REF_REQUISITION = "REQUISITION"

# Sugestões
PRIORIDADES = ("LOW", "MEDIUM", "HIGH", "URGENT")

# Listas de compra
GATILHOS_LISTA = ("MANUAL", "ESTOQUE_CRITICO", "DATA_FIXA", "POS_INVENTARIO")
STATUS_LISTA = ("ABERTA", "EM_ANDAMENTO", "CONCLUIDA", "CANCELADA")

PENDENTE = "PENDENTE"
PARCIAL = "PARCIAL"
CHEGOU = "CHEGOU"
CANCELADO = "CANCELADO"
STATUS_ITEM_LISTA = (PENDENTE, PARCIAL, CHEGOU, CANCELADO)

RECORRENCIAS = ("NENHUM", "SEMANAL", "MENSAL")

# Alertas
STOCK_LOW = "STOCK_LOW"
STOCK_EXPIRING = "STOCK_EXPIRING"
SEVERIDADES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


def _row_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return row
    return {k: row[k] for k in row.keys()}


# -------------------------
# Escopo (tenant + ator)
# -------------------------

@dataclass(frozen=True)
class Escopo:
    """Contexto explícito de cada chamada: tenant dono dos dados e usuário ator.

    O core não sabe como o escopo foi obtido; a camada chamadora já
    autenticou e autorizou o usuário.
    """
    tenant_id: str
    usuario_id: Optional[str] = None


# -------------------------
# Entidades
# -------------------------

@dataclass
class Item:
    """Produto controlado (insumo)."""
    id: int
    tenant_id: str
    nome: str
    unidade_base: str = "UN"
    categoria: Optional[str] = None
    estoque_atual: float = 0.0
    custo_medio: float = 0.0
    ultimo_preco_compra: Optional[float] = None
    data_ultima_compra: Optional[str] = None
    ponto_reposicao: Optional[float] = None
    ponto_reposicao_manual: Optional[float] = None
    lead_time_dias: int = 1
    perecivel: bool = False
    materia_prima: bool = True
    ativo: bool = True
    versao: int = 0
    criado_em: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Item":
        d = _row_dict(row)
        return cls(
            id=d["id"],
            tenant_id=d["tenant_id"],
            nome=d["nome"],
            unidade_base=d["unidade_base"],
            categoria=d.get("categoria"),
            estoque_atual=float(d["estoque_atual"] or 0.0),
            custo_medio=float(d["custo_medio"] or 0.0),
            ultimo_preco_compra=d.get("ultimo_preco_compra"),
            data_ultima_compra=d.get("data_ultima_compra"),
            ponto_reposicao=d.get("ponto_reposicao"),
            ponto_reposicao_manual=d.get("ponto_reposicao_manual"),
            lead_time_dias=int(d.get("lead_time_dias") or 0),
            perecivel=bool(d.get("perecivel")),
            materia_prima=bool(d.get("materia_prima")),
            ativo=bool(d.get("ativo")),
            versao=int(d.get("versao") or 0),
            criado_em=d.get("criado_em"),
        )


@dataclass(frozen=True)
class Movimento:
    """Registro imutável de uma alteração de estoque."""
    id: int
    tenant_id: str
    item_id: int
    tipo: str
    sentido: int
    quantidade: float
    unidade: str
    custo_unitario: float
    custo_total: float
    estoque_antes: float
    estoque_depois: float
    lote_id: Optional[int] = None
    fornecedor_id: Optional[str] = None
    nota_fiscal: Optional[str] = None
    referencia_tipo: Optional[str] = None
    referencia_id: Optional[str] = None
    usuario_id: Optional[str] = None
    observacao: Optional[str] = None
    criado_em: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Movimento":
        d = _row_dict(row)
        return cls(**{k: d.get(k) for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class LoteInfo:
    """Dados de lote informados junto a um movimento.

    - Em IN: ``numero_lote`` e/ou ``data_validade`` abrem um lote novo.
    - Em saídas: ``lote_id`` indica o lote a ser consumido primeiro.
    """
    numero_lote: Optional[str] = None
    data_validade: Optional[str] = None
    lote_id: Optional[int] = None


@dataclass
class Lote:
    """Lote perecível recebido em uma entrada."""
    id: int
    tenant_id: str
    item_id: int
    numero_lote: str
    quantidade: float
    quantidade_restante: float
    custo_unitario: float
    data_validade: Optional[str] = None
    recebido_em: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Lote":
        d = _row_dict(row)
        return cls(**{k: d.get(k) for k in cls.__dataclass_fields__})


@dataclass
class SugestaoCompra:
    """Sugestão de recompra derivada da velocidade de consumo."""
    item_id: int
    tenant_id: str
    estoque_atual: float
    consumo_medio_diario: float
    quantidade_sugerida: float
    ponto_reposicao: float
    lead_time_dias: int
    prioridade: str
    data_ruptura_estimada: str
    confianca: float
    unidade_sugerida: Optional[str] = None
    justificativa: Optional[str] = None
    aceita: Optional[bool] = None
    decidida_em: Optional[str] = None
    gerada_em: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Any) -> "SugestaoCompra":
        d = _row_dict(row)
        out = cls(**{k: d.get(k) for k in cls.__dataclass_fields__})
        if out.aceita is not None:
            out.aceita = bool(out.aceita)
        return out


@dataclass
class ItemListaCompra:
    """Linha de uma lista de compras, com snapshot do produto na geração."""
    item_id: int
    nome_produto: str
    unidade: str
    ponto_reposicao: float
    estoque_atual: float
    quantidade_sugerida: float
    status: str = PENDENTE
    quantidade_confirmada: Optional[float] = None
    confirmado_por: Optional[str] = None
    confirmado_em: Optional[str] = None
    movimento_id: Optional[int] = None
    lista_id: Optional[int] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Any) -> "ItemListaCompra":
        d = _row_dict(row)
        return cls(**{k: d.get(k) for k in cls.__dataclass_fields__})


@dataclass
class ListaCompra:
    """Execução nomeada de reposição, acompanhada até a chegada dos itens."""
    tenant_id: str
    tipo_gatilho: str
    descricao: str
    status: str = "ABERTA"
    observacao: Optional[str] = None
    criado_por: Optional[str] = None
    criado_em: Optional[str] = None
    concluida_em: Optional[str] = None
    itens: List[ItemListaCompra] = field(default_factory=list)
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Any, itens: Optional[List[ItemListaCompra]] = None) -> "ListaCompra":
        d = _row_dict(row)
        fields = {k: d.get(k) for k in cls.__dataclass_fields__ if k != "itens"}
        return cls(itens=list(itens or []), **fields)


@dataclass
class ConfigCompra:
    """Política de reposição por tenant (gatilhos e heurísticas)."""
    tenant_id: str
    gatilho_pos_inventario: bool = False
    gatilho_estoque_critico: bool = False
    percentual_estoque_critico: float = 20.0
    gatilho_datas_fixas: bool = False
    recorrencia: str = "NENHUM"
    dias_semana: List[int] = field(default_factory=list)
    dias_mes: List[int] = field(default_factory=list)
    janela_consumo_dias: int = 30
    fator_seguranca: float = 0.2
    cobertura_alvo_dias: int = 7
    confianca: float = 0.8


@dataclass(frozen=True)
class Alerta:
    """Alerta derivado do estado do ledger; a entrega é externa."""
    tipo: str
    severidade: str
    titulo: str
    mensagem: str
    tenant_id: str
    item_id: int
    lote_id: Optional[int] = None
    dados: Dict[str, Any] = field(default_factory=dict)
