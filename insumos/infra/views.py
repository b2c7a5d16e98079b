# insumos/infra/views.py
"""
Criação de views auxiliares para consultas frequentes.

Views criadas:
- vw_lotes_ativos:     lotes com saldo (quantidade_restante > 0).
- vw_posicao_estoque:  posição por item (ponto de reposição efetivo,
                       valor em estoque, flags de estoque baixo/zerado).
- vw_consumo_diario:   consumo (saídas) por item e dia.

Obs.:
- As views assumem que as migrações V1→V2 já foram aplicadas.
- Um conjunto de índices úteis também é criado, caso não existam.
"""

from __future__ import annotations

from .db import connect


_VIEWS = [
    "DROP VIEW IF EXISTS vw_lotes_ativos;",
    """
    CREATE VIEW vw_lotes_ativos AS
    SELECT
        l.id,
        l.tenant_id,
        l.item_id,
        i.nome                AS nome_item,
        i.unidade_base        AS unidade,
        l.numero_lote,
        l.quantidade,
        l.quantidade_restante,
        l.custo_unitario,
        date(l.data_validade) AS data_validade,
        l.recebido_em
    FROM lote l
    JOIN item i ON i.id = l.item_id
    WHERE l.quantidade_restante > 0;
    """,
    "DROP VIEW IF EXISTS vw_posicao_estoque;",
    """
    CREATE VIEW vw_posicao_estoque AS
    SELECT
        id,
        tenant_id,
        nome,
        categoria,
        unidade_base,
        estoque_atual,
        custo_medio,
        estoque_atual * custo_medio                               AS valor_estoque,
        COALESCE(ponto_reposicao_manual, ponto_reposicao, 0)      AS ponto_efetivo,
        CASE WHEN estoque_atual <= COALESCE(ponto_reposicao_manual, ponto_reposicao, 0)
             THEN 1 ELSE 0 END                                    AS estoque_baixo,
        CASE WHEN estoque_atual <= 0 THEN 1 ELSE 0 END            AS sem_estoque
    FROM item
    WHERE ativo = 1;
    """,
    "DROP VIEW IF EXISTS vw_consumo_diario;",
    """
    CREATE VIEW vw_consumo_diario AS
    SELECT
        tenant_id,
        item_id,
        date(criado_em)  AS data,
        SUM(quantidade)  AS qtd_total
    FROM movimento
    WHERE tipo IN ('OUT', 'WASTE') OR (tipo = 'PRODUCTION' AND sentido = -1)
    GROUP BY tenant_id, item_id, date(criado_em);
    """,
]

_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_item_tenant       ON item(tenant_id, ativo);",
    "CREATE INDEX IF NOT EXISTS idx_mov_item_data     ON movimento(item_id, criado_em);",
    "CREATE INDEX IF NOT EXISTS idx_mov_tenant_tipo   ON movimento(tenant_id, tipo, criado_em);",
    "CREATE INDEX IF NOT EXISTS idx_lote_item         ON lote(item_id, quantidade_restante);",
    "CREATE INDEX IF NOT EXISTS idx_lote_validade     ON lote(tenant_id, data_validade);",
    "CREATE INDEX IF NOT EXISTS idx_sugestao_tenant   ON sugestao_compra(tenant_id, aceita);",
    "CREATE INDEX IF NOT EXISTS idx_lista_tenant      ON lista_compra(tenant_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_item_lista        ON item_lista_compra(lista_id, status);",
]


def create_views(db_path: str) -> None:
    with connect(db_path, immediate=True) as c:
        # -----------------------
        # Views (drop + create)
        # -----------------------
        for sql in _VIEWS:
            c.execute(sql)

        # --------------------------------
        # Índices úteis (IF NOT EXISTS)
        # --------------------------------
        for sql in _INDICES:
            c.execute(sql)
