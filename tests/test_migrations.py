import sqlite3

import pytest

from insumos.domain.models import Escopo
from insumos.infra.db import connect
from insumos.infra.migrations import apply_migrations, preparar_banco
from insumos.usecases.cadastro import criar_item
from insumos.usecases.movimentos import registrar_movimento

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")


def test_migracoes_sao_idempotentes(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    apply_migrations(db)
    apply_migrations(db)
    with connect(db) as conn:
        assert conn.execute("PRAGMA user_version;").fetchone()[0] == 2
        tabelas = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"item", "movimento", "lote", "sugestao_compra", "lista_compra", "item_lista_compra", "config_compra"} <= tabelas


def test_movimento_nao_pode_ser_alterado_nem_removido(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "Óleo de soja", unidade_base="L", db_path=db)
    mov = registrar_movimento(ESC, item.id, "IN", 5, custo_unitario=7.5, db_path=db)

    with pytest.raises(sqlite3.DatabaseError):
        with connect(db) as conn:
            conn.execute("UPDATE movimento SET quantidade = 1 WHERE id = ?", (mov.id,))
    with pytest.raises(sqlite3.DatabaseError):
        with connect(db) as conn:
            conn.execute("DELETE FROM movimento WHERE id = ?", (mov.id,))

    with connect(db) as conn:
        row = conn.execute("SELECT quantidade FROM movimento WHERE id = ?", (mov.id,)).fetchone()
    assert row["quantidade"] == 5


def test_views_existem_apos_preparo(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    preparar_banco(db)
    with connect(db) as conn:
        views = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'view'")}
    assert {"vw_lotes_ativos", "vw_posicao_estoque", "vw_consumo_diario"} <= views
