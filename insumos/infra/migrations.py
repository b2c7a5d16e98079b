# insumos/infra/migrations.py
"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (item, movimento, lote, sugestões, listas, config)
V2: travas de imutabilidade do ledger (triggers) e versão do item
"""

from __future__ import annotations

import threading
from typing import List, Set

from .db import connect
from .views import create_views


SCHEMA_V1: List[str] = [
    # Cadastro de itens (insumos)
    """
    CREATE TABLE IF NOT EXISTS item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        nome TEXT NOT NULL,
        categoria TEXT,
        unidade_base TEXT NOT NULL DEFAULT 'UN',
        estoque_atual REAL NOT NULL DEFAULT 0 CHECK (estoque_atual >= 0),
        custo_medio REAL NOT NULL DEFAULT 0 CHECK (custo_medio >= 0),
        ultimo_preco_compra REAL,
        data_ultima_compra TEXT,
        ponto_reposicao REAL,
        ponto_reposicao_manual REAL,
        lead_time_dias INTEGER NOT NULL DEFAULT 1,
        perecivel INTEGER NOT NULL DEFAULT 0,
        materia_prima INTEGER NOT NULL DEFAULT 1,
        ativo INTEGER NOT NULL DEFAULT 1,
        criado_em TEXT NOT NULL
    );
    """,
    # Lotes perecíveis
    """
    CREATE TABLE IF NOT EXISTS lote (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        item_id INTEGER NOT NULL,
        numero_lote TEXT NOT NULL,
        quantidade REAL NOT NULL CHECK (quantidade > 0),
        quantidade_restante REAL NOT NULL
            CHECK (quantidade_restante >= 0 AND quantidade_restante <= quantidade),
        custo_unitario REAL NOT NULL DEFAULT 0,
        data_validade TEXT,
        recebido_em TEXT NOT NULL,
        FOREIGN KEY (item_id) REFERENCES item(id)
    );
    """,
    # Ledger de movimentos
    """
    CREATE TABLE IF NOT EXISTS movimento (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        item_id INTEGER NOT NULL,
        tipo TEXT NOT NULL
            CHECK (tipo IN ('IN','OUT','ADJUSTMENT','WASTE','RETURN','PRODUCTION')),
        sentido INTEGER NOT NULL CHECK (sentido IN (1, -1)),
        quantidade REAL NOT NULL CHECK (quantidade > 0),
        unidade TEXT NOT NULL,
        custo_unitario REAL NOT NULL DEFAULT 0,
        custo_total REAL NOT NULL DEFAULT 0,
        estoque_antes REAL NOT NULL,
        estoque_depois REAL NOT NULL CHECK (estoque_depois >= 0),
        lote_id INTEGER,
        fornecedor_id TEXT,
        nota_fiscal TEXT,
        referencia_tipo TEXT,
        referencia_id TEXT,
        usuario_id TEXT,
        observacao TEXT,
        criado_em TEXT NOT NULL,
        FOREIGN KEY (item_id) REFERENCES item(id),
        FOREIGN KEY (lote_id) REFERENCES lote(id)
    );
    """,
    # Sugestões de compra (efêmeras por ciclo de geração)
    """
    CREATE TABLE IF NOT EXISTS sugestao_compra (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        item_id INTEGER NOT NULL,
        estoque_atual REAL NOT NULL,
        consumo_medio_diario REAL NOT NULL,
        quantidade_sugerida REAL NOT NULL,
        unidade_sugerida TEXT,
        ponto_reposicao REAL NOT NULL,
        lead_time_dias INTEGER NOT NULL,
        prioridade TEXT NOT NULL CHECK (prioridade IN ('LOW','MEDIUM','HIGH','URGENT')),
        data_ruptura_estimada TEXT,
        confianca REAL NOT NULL,
        justificativa TEXT,
        aceita INTEGER,
        decidida_em TEXT,
        gerada_em TEXT NOT NULL,
        FOREIGN KEY (item_id) REFERENCES item(id)
    );
    """,
    # Listas de compra
    """
    CREATE TABLE IF NOT EXISTS lista_compra (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        tipo_gatilho TEXT NOT NULL
            CHECK (tipo_gatilho IN ('MANUAL','ESTOQUE_CRITICO','DATA_FIXA','POS_INVENTARIO')),
        descricao TEXT NOT NULL,
        observacao TEXT,
        status TEXT NOT NULL DEFAULT 'ABERTA'
            CHECK (status IN ('ABERTA','EM_ANDAMENTO','CONCLUIDA','CANCELADA')),
        criado_por TEXT,
        criado_em TEXT NOT NULL,
        concluida_em TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS item_lista_compra (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        lista_id INTEGER NOT NULL,
        item_id INTEGER NOT NULL,
        nome_produto TEXT NOT NULL,
        unidade TEXT NOT NULL,
        ponto_reposicao REAL NOT NULL,
        estoque_atual REAL NOT NULL,
        quantidade_sugerida REAL NOT NULL,
        quantidade_confirmada REAL,
        status TEXT NOT NULL DEFAULT 'PENDENTE'
            CHECK (status IN ('PENDENTE','PARCIAL','CHEGOU','CANCELADO')),
        confirmado_por TEXT,
        confirmado_em TEXT,
        movimento_id INTEGER UNIQUE,
        FOREIGN KEY (lista_id) REFERENCES lista_compra(id),
        FOREIGN KEY (item_id) REFERENCES item(id),
        FOREIGN KEY (movimento_id) REFERENCES movimento(id)
    );
    """,
    # Política de reposição por tenant
    """
    CREATE TABLE IF NOT EXISTS config_compra (
        tenant_id TEXT PRIMARY KEY,
        gatilho_pos_inventario INTEGER NOT NULL DEFAULT 0,
        gatilho_estoque_critico INTEGER NOT NULL DEFAULT 0,
        percentual_estoque_critico REAL NOT NULL DEFAULT 20,
        gatilho_datas_fixas INTEGER NOT NULL DEFAULT 0,
        recorrencia TEXT NOT NULL DEFAULT 'NENHUM'
            CHECK (recorrencia IN ('NENHUM','SEMANAL','MENSAL')),
        dias_semana TEXT NOT NULL DEFAULT '[]',
        dias_mes TEXT NOT NULL DEFAULT '[]',
        janela_consumo_dias INTEGER,
        fator_seguranca REAL,
        cobertura_alvo_dias INTEGER,
        confianca REAL
    );
    """,
]

# V2: ledger imutável e versão otimista do item
SCHEMA_V2: List[str] = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_movimento_sem_update
    BEFORE UPDATE ON movimento
    BEGIN
        SELECT RAISE(ABORT, 'movimento é imutável');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_movimento_sem_delete
    BEFORE DELETE ON movimento
    BEGIN
        SELECT RAISE(ABORT, 'movimento é imutável');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_lote_sem_delete
    BEFORE DELETE ON lote
    BEGIN
        SELECT RAISE(ABORT, 'lote é histórico e não pode ser removido');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_item_sem_delete
    BEFORE DELETE ON item
    WHEN EXISTS (SELECT 1 FROM movimento WHERE item_id = OLD.id)
    BEGIN
        SELECT RAISE(ABORT, 'item com movimentos deve ser desativado, não removido');
    END;
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.execute(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "item", "versao", "versao INTEGER NOT NULL DEFAULT 0")
    for sql in SCHEMA_V2:
        conn.execute(sql)


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path, immediate=True) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2

        # versões futuras: if ver < 3: _apply_v3(...)


_PREPARADOS: Set[str] = set()
_PREPARO_LOCK = threading.Lock()


def preparar_banco(db_path: str) -> None:
    """Migrações + views, uma vez por arquivo de banco neste processo."""
    chave = str(db_path)
    with _PREPARO_LOCK:
        if chave in _PREPARADOS:
            return
        apply_migrations(chave)
        create_views(chave)
        _PREPARADOS.add(chave)
