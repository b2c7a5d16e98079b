# insumos/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Cada repositório recebe a conexão já aberta pelo caso de uso, para que
várias escritas (item, movimento, lote, lista) participem da mesma
transação. Todas as consultas são filtradas por ``tenant_id``.

Classes:
- ItemRepo
- MovimentoRepo
- LoteRepo
- SugestaoRepo
- ListaCompraRepo
- ConfigCompraRepo
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from insumos.domain.models import (
    ConfigCompra,
    Item,
    ItemListaCompra,
    ListaCompra,
    Lote,
    Movimento,
    SugestaoCompra,
)


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return row
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


def agora_iso(quando: Optional[datetime] = None) -> str:
    """Timestamp no formato gravado no banco (ISO, precisão de segundos)."""
    return (quando or datetime.now()).isoformat(timespec="seconds")


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


# -------------------------
# Item
# -------------------------

_ITEM_CAMPOS_CONFIG = (
    "nome",
    "categoria",
    "unidade_base",
    "ponto_reposicao_manual",
    "lead_time_dias",
    "perecivel",
    "materia_prima",
)


class ItemRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert(self, row: Dict[str, Any]) -> int:
        row = dict(_as_dict(row))
        row.setdefault("categoria", None)
        row.setdefault("unidade_base", "UN")
        row.setdefault("ponto_reposicao", None)
        row.setdefault("ponto_reposicao_manual", None)
        row.setdefault("lead_time_dias", 1)
        row.setdefault("perecivel", 0)
        row.setdefault("materia_prima", 1)
        row.setdefault("criado_em", agora_iso())
        cur = self.conn.execute(
            """
            INSERT INTO item
                (tenant_id, nome, categoria, unidade_base, ponto_reposicao,
                 ponto_reposicao_manual, lead_time_dias, perecivel, materia_prima,
                 criado_em)
            VALUES
                (:tenant_id, :nome, :categoria, :unidade_base, :ponto_reposicao,
                 :ponto_reposicao_manual, :lead_time_dias, :perecivel, :materia_prima,
                 :criado_em)
            """,
            row,
        )
        return int(cur.lastrowid)

    def get(self, tenant_id: str, item_id: int) -> Optional[Item]:
        row = self.conn.execute(
            "SELECT * FROM item WHERE id = ? AND tenant_id = ?", (item_id, tenant_id)
        ).fetchone()
        return Item.from_row(row) if row else None

    def get_by_nome(self, tenant_id: str, nome: str) -> Optional[Item]:
        row = self.conn.execute(
            "SELECT * FROM item WHERE tenant_id = ? AND lower(nome) = lower(?) ORDER BY id LIMIT 1",
            (tenant_id, nome.strip()),
        ).fetchone()
        return Item.from_row(row) if row else None

    def list(self, tenant_id: str, apenas_ativos: bool = True) -> List[Item]:
        sql = "SELECT * FROM item WHERE tenant_id = ?"
        if apenas_ativos:
            sql += " AND ativo = 1"
        sql += " ORDER BY nome"
        return [Item.from_row(r) for r in self.conn.execute(sql, (tenant_id,)).fetchall()]

    def list_com_ponto_reposicao(self, tenant_id: str) -> List[Item]:
        cur = self.conn.execute(
            """
            SELECT * FROM item
            WHERE tenant_id = ? AND ativo = 1
              AND (ponto_reposicao > 0 OR ponto_reposicao_manual > 0)
            ORDER BY nome
            """,
            (tenant_id,),
        )
        return [Item.from_row(r) for r in cur.fetchall()]

    def list_materias_primas(self, tenant_id: str) -> List[Item]:
        cur = self.conn.execute(
            "SELECT * FROM item WHERE tenant_id = ? AND ativo = 1 AND materia_prima = 1 ORDER BY nome",
            (tenant_id,),
        )
        return [Item.from_row(r) for r in cur.fetchall()]

    def update_estoque(
        self,
        item_id: int,
        versao_esperada: int,
        estoque_atual: float,
        custo_medio: float,
        ultimo_preco_compra: Optional[float] = None,
        data_ultima_compra: Optional[str] = None,
    ) -> bool:
        """Compare-and-swap na versão do item. Retorna False se a versão mudou."""
        cur = self.conn.execute(
            """
            UPDATE item SET
                estoque_atual = :estoque_atual,
                custo_medio = :custo_medio,
                ultimo_preco_compra = COALESCE(:ultimo_preco_compra, ultimo_preco_compra),
                data_ultima_compra = COALESCE(:data_ultima_compra, data_ultima_compra),
                versao = versao + 1
            WHERE id = :id AND versao = :versao
            """,
            {
                "id": item_id,
                "versao": versao_esperada,
                "estoque_atual": estoque_atual,
                "custo_medio": custo_medio,
                "ultimo_preco_compra": ultimo_preco_compra,
                "data_ultima_compra": data_ultima_compra,
            },
        )
        return cur.rowcount == 1

    def update_ponto_reposicao(self, item_id: int, valor: float) -> None:
        self.conn.execute("UPDATE item SET ponto_reposicao = ? WHERE id = ?", (valor, item_id))

    def update_config(self, tenant_id: str, item_id: int, campos: Dict[str, Any]) -> None:
        cols = [k for k in campos if k in _ITEM_CAMPOS_CONFIG]
        if not cols:
            return
        sets = ", ".join(f"{c} = :{c}" for c in cols)
        params = {c: campos[c] for c in cols}
        params.update({"id": item_id, "tenant_id": tenant_id})
        self.conn.execute(f"UPDATE item SET {sets} WHERE id = :id AND tenant_id = :tenant_id", params)

    def set_ativo(self, tenant_id: str, item_id: int, ativo: bool) -> None:
        self.conn.execute(
            "UPDATE item SET ativo = ? WHERE id = ? AND tenant_id = ?",
            (1 if ativo else 0, item_id, tenant_id),
        )


# -------------------------
# Movimentos (ledger)
# -------------------------

# Tipos que contam como consumo para velocidade e ponto de reposição
_SQL_CONSUMO = "(tipo = 'OUT' OR (tipo = 'PRODUCTION' AND sentido = -1))"
_SQL_SAIDAS = "(tipo IN ('OUT', 'WASTE') OR (tipo = 'PRODUCTION' AND sentido = -1))"


class MovimentoRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert(self, row: Dict[str, Any]) -> Movimento:
        row = dict(_as_dict(row))
        for k in ("lote_id", "fornecedor_id", "nota_fiscal", "referencia_tipo",
                  "referencia_id", "usuario_id", "observacao"):
            row.setdefault(k, None)
        row.setdefault("criado_em", agora_iso())
        cur = self.conn.execute(
            """
            INSERT INTO movimento
                (tenant_id, item_id, tipo, sentido, quantidade, unidade,
                 custo_unitario, custo_total, estoque_antes, estoque_depois,
                 lote_id, fornecedor_id, nota_fiscal, referencia_tipo,
                 referencia_id, usuario_id, observacao, criado_em)
            VALUES
                (:tenant_id, :item_id, :tipo, :sentido, :quantidade, :unidade,
                 :custo_unitario, :custo_total, :estoque_antes, :estoque_depois,
                 :lote_id, :fornecedor_id, :nota_fiscal, :referencia_tipo,
                 :referencia_id, :usuario_id, :observacao, :criado_em)
            """,
            row,
        )
        row["id"] = int(cur.lastrowid)
        return Movimento.from_row(row)

    def list_by_item(self, tenant_id: str, item_id: int, limite: Optional[int] = None) -> List[Movimento]:
        sql = "SELECT * FROM movimento WHERE tenant_id = ? AND item_id = ? ORDER BY id"
        params: Tuple[Any, ...] = (tenant_id, item_id)
        if limite:
            # últimos N, mantendo ordem cronológica
            sql = f"SELECT * FROM ({sql} DESC LIMIT ?) ORDER BY id"
            params = params + (int(limite),)
        return [Movimento.from_row(r) for r in self.conn.execute(sql, params).fetchall()]

    def list_by_tipo(self, tenant_id: str, tipo: str, desde: str, limite: int = 50) -> List[Movimento]:
        cur = self.conn.execute(
            """
            SELECT * FROM movimento
            WHERE tenant_id = ? AND tipo = ? AND criado_em >= ?
            ORDER BY criado_em DESC, id DESC
            LIMIT ?
            """,
            (tenant_id, tipo, desde, limite),
        )
        return [Movimento.from_row(r) for r in cur.fetchall()]

    def soma_saidas_item(self, tenant_id: str, item_id: int, desde: str) -> float:
        """Soma OUT + WASTE do item desde ``desde``."""
        row = self.conn.execute(
            """
            SELECT COALESCE(SUM(quantidade), 0.0)
            FROM movimento
            WHERE tenant_id = ? AND item_id = ? AND criado_em >= ? AND tipo IN ('OUT', 'WASTE')
            """,
            (tenant_id, item_id, desde),
        ).fetchone()
        return float(row[0] or 0.0)

    def consumo_por_item(self, tenant_id: str, desde: str, incluir_desperdicio: bool = False) -> Dict[int, float]:
        """Consumo agregado por item desde ``desde``.

        Por padrão conta OUT e PRODUCTION de saída; ``incluir_desperdicio``
        soma também WASTE.
        """
        filtro = _SQL_SAIDAS if incluir_desperdicio else _SQL_CONSUMO
        cur = self.conn.execute(
            f"""
            SELECT item_id, COALESCE(SUM(quantidade), 0.0)
            FROM movimento
            WHERE tenant_id = ? AND criado_em >= ? AND {filtro}
            GROUP BY item_id
            """,
            (tenant_id, desde),
        )
        return {int(r[0]): float(r[1]) for r in cur.fetchall()}

    def soma_custo_por_sentido(self, tenant_id: str, desde: str) -> Dict[str, float]:
        """Valor de entradas e saídas desde ``desde``.

        IN conta como entrada; OUT/WASTE como saída; ADJUSTMENT conforme o
        sentido do ajuste.
        """
        row = self.conn.execute(
            """
            SELECT
                COALESCE(SUM(CASE WHEN tipo = 'IN' OR (tipo = 'ADJUSTMENT' AND sentido = 1)
                                  THEN custo_total END), 0.0),
                COALESCE(SUM(CASE WHEN tipo IN ('OUT', 'WASTE') OR (tipo = 'ADJUSTMENT' AND sentido = -1)
                                  THEN custo_total END), 0.0)
            FROM movimento
            WHERE tenant_id = ? AND criado_em >= ?
            """,
            (tenant_id, desde),
        ).fetchone()
        return {"entradas": float(row[0]), "saidas": float(row[1])}


# -------------------------
# Lotes
# -------------------------

class LoteRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert(self, row: Dict[str, Any]) -> Lote:
        row = dict(_as_dict(row))
        row.setdefault("data_validade", None)
        row.setdefault("recebido_em", agora_iso())
        cur = self.conn.execute(
            """
            INSERT INTO lote
                (tenant_id, item_id, numero_lote, quantidade, quantidade_restante,
                 custo_unitario, data_validade, recebido_em)
            VALUES
                (:tenant_id, :item_id, :numero_lote, :quantidade, :quantidade_restante,
                 :custo_unitario, :data_validade, :recebido_em)
            """,
            row,
        )
        row["id"] = int(cur.lastrowid)
        return Lote.from_row(row)

    def get(self, tenant_id: str, lote_id: int) -> Optional[Lote]:
        row = self.conn.execute(
            "SELECT * FROM lote WHERE id = ? AND tenant_id = ?", (lote_id, tenant_id)
        ).fetchone()
        return Lote.from_row(row) if row else None

    def list_com_saldo_fefo(self, tenant_id: str, item_id: int) -> List[Lote]:
        """Lotes com saldo na ordem de consumo: validade mais próxima primeiro,
        lotes sem validade por último, desempate pelo recebimento mais antigo."""
        cur = self.conn.execute(
            """
            SELECT * FROM lote
            WHERE tenant_id = ? AND item_id = ? AND quantidade_restante > 0
            ORDER BY data_validade IS NULL, data_validade, recebido_em, id
            """,
            (tenant_id, item_id),
        )
        return [Lote.from_row(r) for r in cur.fetchall()]

    def list_by_item(self, tenant_id: str, item_id: int, apenas_com_saldo: bool = True) -> List[Lote]:
        sql = "SELECT * FROM lote WHERE tenant_id = ? AND item_id = ?"
        if apenas_com_saldo:
            sql += " AND quantidade_restante > 0"
        sql += " ORDER BY data_validade IS NULL, data_validade, id"
        return [Lote.from_row(r) for r in self.conn.execute(sql, (tenant_id, item_id)).fetchall()]

    def list_a_vencer(self, tenant_id: str, data_limite: str) -> List[Lote]:
        cur = self.conn.execute(
            """
            SELECT l.* FROM lote l
            JOIN vw_lotes_ativos v ON v.id = l.id
            WHERE l.tenant_id = ?
              AND l.data_validade IS NOT NULL
              AND date(l.data_validade) <= date(?)
            ORDER BY date(l.data_validade), l.id
            """,
            (tenant_id, data_limite),
        )
        return [Lote.from_row(r) for r in cur.fetchall()]

    def update_restante(self, lote_id: int, quantidade_restante: float) -> None:
        self.conn.execute(
            "UPDATE lote SET quantidade_restante = ? WHERE id = ?",
            (quantidade_restante, lote_id),
        )


# -------------------------
# Sugestões de compra
# -------------------------

class SugestaoRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def delete_pendentes(self, tenant_id: str) -> int:
        cur = self.conn.execute(
            "DELETE FROM sugestao_compra WHERE tenant_id = ? AND aceita IS NULL", (tenant_id,)
        )
        return cur.rowcount

    def insert_many(self, rows: Iterable[SugestaoCompra]) -> List[SugestaoCompra]:
        out = []
        for s in rows:
            d = _as_dict(s)
            cur = self.conn.execute(
                """
                INSERT INTO sugestao_compra
                    (tenant_id, item_id, estoque_atual, consumo_medio_diario,
                     quantidade_sugerida, unidade_sugerida, ponto_reposicao,
                     lead_time_dias, prioridade, data_ruptura_estimada, confianca,
                     justificativa, aceita, decidida_em, gerada_em)
                VALUES
                    (:tenant_id, :item_id, :estoque_atual, :consumo_medio_diario,
                     :quantidade_sugerida, :unidade_sugerida, :ponto_reposicao,
                     :lead_time_dias, :prioridade, :data_ruptura_estimada, :confianca,
                     :justificativa, NULL, NULL, :gerada_em)
                """,
                d,
            )
            s.id = int(cur.lastrowid)
            out.append(s)
        return out

    def list_pendentes(self, tenant_id: str) -> List[SugestaoCompra]:
        cur = self.conn.execute(
            """
            SELECT * FROM sugestao_compra
            WHERE tenant_id = ? AND aceita IS NULL
            ORDER BY CASE prioridade
                        WHEN 'URGENT' THEN 0 WHEN 'HIGH' THEN 1
                        WHEN 'MEDIUM' THEN 2 ELSE 3 END,
                     data_ruptura_estimada, id
            """,
            (tenant_id,),
        )
        return [SugestaoCompra.from_row(r) for r in cur.fetchall()]

    def get(self, tenant_id: str, sugestao_id: int) -> Optional[SugestaoCompra]:
        row = self.conn.execute(
            "SELECT * FROM sugestao_compra WHERE id = ? AND tenant_id = ?", (sugestao_id, tenant_id)
        ).fetchone()
        return SugestaoCompra.from_row(row) if row else None

    def decidir(self, sugestao_id: int, aceita: bool, quando: str) -> None:
        self.conn.execute(
            "UPDATE sugestao_compra SET aceita = ?, decidida_em = ? WHERE id = ?",
            (1 if aceita else 0, quando, sugestao_id),
        )


# -------------------------
# Listas de compra
# -------------------------

class ListaCompraRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert(self, lista: ListaCompra) -> ListaCompra:
        cur = self.conn.execute(
            """
            INSERT INTO lista_compra
                (tenant_id, tipo_gatilho, descricao, observacao, status, criado_por, criado_em)
            VALUES
                (:tenant_id, :tipo_gatilho, :descricao, :observacao, :status, :criado_por, :criado_em)
            """,
            {
                "tenant_id": lista.tenant_id,
                "tipo_gatilho": lista.tipo_gatilho,
                "descricao": lista.descricao,
                "observacao": lista.observacao,
                "status": lista.status,
                "criado_por": lista.criado_por,
                "criado_em": lista.criado_em or agora_iso(),
            },
        )
        lista.id = int(cur.lastrowid)
        for it in lista.itens:
            it.lista_id = lista.id
            c = self.conn.execute(
                """
                INSERT INTO item_lista_compra
                    (lista_id, item_id, nome_produto, unidade, ponto_reposicao,
                     estoque_atual, quantidade_sugerida, status)
                VALUES
                    (:lista_id, :item_id, :nome_produto, :unidade, :ponto_reposicao,
                     :estoque_atual, :quantidade_sugerida, :status)
                """,
                {
                    "lista_id": it.lista_id,
                    "item_id": it.item_id,
                    "nome_produto": it.nome_produto,
                    "unidade": it.unidade,
                    "ponto_reposicao": it.ponto_reposicao,
                    "estoque_atual": it.estoque_atual,
                    "quantidade_sugerida": it.quantidade_sugerida,
                    "status": it.status,
                },
            )
            it.id = int(c.lastrowid)
        return lista

    def get(self, tenant_id: str, lista_id: int) -> Optional[ListaCompra]:
        row = self.conn.execute(
            "SELECT * FROM lista_compra WHERE id = ? AND tenant_id = ?", (lista_id, tenant_id)
        ).fetchone()
        if not row:
            return None
        itens = [
            ItemListaCompra.from_row(r)
            for r in self.conn.execute(
                "SELECT * FROM item_lista_compra WHERE lista_id = ? ORDER BY nome_produto, id",
                (lista_id,),
            ).fetchall()
        ]
        return ListaCompra.from_row(row, itens)

    def list(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        tipo_gatilho: Optional[str] = None,
        pagina: int = 1,
        limite: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        where = ["l.tenant_id = ?"]
        params: List[Any] = [tenant_id]
        if status:
            where.append("l.status = ?")
            params.append(status)
        if tipo_gatilho:
            where.append("l.tipo_gatilho = ?")
            params.append(tipo_gatilho)
        where_sql = " AND ".join(where)
        total = self.conn.execute(
            f"SELECT COUNT(*) FROM lista_compra l WHERE {where_sql}", params
        ).fetchone()[0]
        cur = self.conn.execute(
            f"""
            SELECT l.*, (SELECT COUNT(*) FROM item_lista_compra i WHERE i.lista_id = l.id) AS total_itens
            FROM lista_compra l
            WHERE {where_sql}
            ORDER BY l.criado_em DESC, l.id DESC
            LIMIT ? OFFSET ?
            """,
            params + [limite, (max(pagina, 1) - 1) * limite],
        )
        return [dict(r) for r in cur.fetchall()], int(total)

    def get_item(self, tenant_id: str, item_lista_id: int) -> Optional[Tuple[ItemListaCompra, Dict[str, Any]]]:
        row = self.conn.execute(
            """
            SELECT i.*, l.tenant_id AS _tenant_id, l.descricao AS _descricao, l.status AS _status_lista
            FROM item_lista_compra i
            JOIN lista_compra l ON l.id = i.lista_id
            WHERE i.id = ? AND l.tenant_id = ?
            """,
            (item_lista_id, tenant_id),
        ).fetchone()
        if not row:
            return None
        d = dict(row)
        lista = {"id": d["lista_id"], "descricao": d.pop("_descricao"), "status": d.pop("_status_lista")}
        d.pop("_tenant_id")
        return ItemListaCompra.from_row(d), lista

    def update_item_confirmacao(
        self,
        item_lista_id: int,
        quantidade_confirmada: float,
        status: str,
        confirmado_por: Optional[str],
        confirmado_em: str,
        movimento_id: int,
    ) -> bool:
        """Só confirma itens ainda sem movimento vinculado (não reexecutável)."""
        cur = self.conn.execute(
            """
            UPDATE item_lista_compra SET
                quantidade_confirmada = ?, status = ?, confirmado_por = ?,
                confirmado_em = ?, movimento_id = ?
            WHERE id = ? AND movimento_id IS NULL AND status NOT IN ('CHEGOU', 'CANCELADO')
            """,
            (quantidade_confirmada, status, confirmado_por, confirmado_em, movimento_id, item_lista_id),
        )
        return cur.rowcount == 1

    def update_item_status(self, item_lista_id: int, status: str) -> None:
        self.conn.execute(
            "UPDATE item_lista_compra SET status = ? WHERE id = ?", (status, item_lista_id)
        )

    def count_pendentes(self, lista_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM item_lista_compra WHERE lista_id = ? AND status = 'PENDENTE'",
            (lista_id,),
        ).fetchone()
        return int(row[0])

    def update_status(self, lista_id: int, status: str, concluida_em: Optional[str] = None) -> None:
        self.conn.execute(
            "UPDATE lista_compra SET status = ?, concluida_em = COALESCE(?, concluida_em) WHERE id = ?",
            (status, concluida_em, lista_id),
        )


# -------------------------
# Config de compras
# -------------------------

_CONFIG_COLS = (
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


class ConfigCompraRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT * FROM config_compra WHERE tenant_id = ?", (tenant_id,)
        ).fetchone()
        if not row:
            return None
        d = dict(row)
        d["dias_semana"] = json.loads(d.get("dias_semana") or "[]")
        d["dias_mes"] = json.loads(d.get("dias_mes") or "[]")
        return d

    def upsert(self, cfg: ConfigCompra) -> None:
        d = _as_dict(cfg)
        payload = {k: d[k] for k in _CONFIG_COLS}
        payload["tenant_id"] = cfg.tenant_id
        payload["dias_semana"] = json.dumps(list(cfg.dias_semana))
        payload["dias_mes"] = json.dumps(list(cfg.dias_mes))
        for k in ("gatilho_pos_inventario", "gatilho_estoque_critico", "gatilho_datas_fixas"):
            payload[k] = 1 if payload[k] else 0
        cols = ("tenant_id",) + _CONFIG_COLS
        updates = ", ".join(f"{c}=excluded.{c}" for c in _CONFIG_COLS)
        self.conn.execute(
            f"""
            INSERT INTO config_compra ({", ".join(cols)})
            VALUES ({", ".join(":" + c for c in cols)})
            ON CONFLICT(tenant_id) DO UPDATE SET {updates}
            """,
            payload,
        )
