from math import isclose

from insumos.domain.models import Escopo
from insumos.usecases.cadastro import criar_item
from insumos.usecases.movimentos import reconciliar, registrar_movimento
from insumos.usecases.relatorios import (
    relatorio_baixa_autonomia,
    relatorio_desperdicio,
    resumo_estoque,
    valor_por_categoria,
)

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")


def _seed(db):
    """Arroz abaixo do ponto manual, Detergente com folga, Sal zerado."""
    arroz = criar_item(ESC, "Arroz", unidade_base="KG", categoria="Grãos", ponto_reposicao_manual=15, db_path=db)
    registrar_movimento(ESC, arroz.id, "IN", 10, custo_unitario=2.0, db_path=db)
    reconciliar(ESC, arroz.id, 11, db_path=db)

    detergente = criar_item(ESC, "Detergente", categoria="Limpeza", db_path=db)
    registrar_movimento(ESC, detergente.id, "IN", 5, custo_unitario=4.0, db_path=db)
    registrar_movimento(ESC, detergente.id, "OUT", 1, db_path=db)
    registrar_movimento(ESC, detergente.id, "WASTE", 1, db_path=db)

    sal = criar_item(ESC, "Sal", db_path=db)
    return arroz, detergente, sal


def test_resumo_estoque(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    _seed(db)
    r = resumo_estoque(ESC, db_path=db)
    assert r["total_itens"] == 3
    # 11 × 2 + 3 × 4
    assert isclose(r["valor_total"], 34.0)
    assert r["itens_estoque_baixo"] == 2
    assert r["itens_sem_estoque"] == 1
    # IN 20 + IN 20 + ajuste para cima 2
    assert isclose(r["entradas_hoje"], 42.0)
    # OUT 4 + WASTE 4
    assert isclose(r["saidas_hoje"], 8.0)
    assert isclose(r["entradas_mes"], 42.0)
    assert isclose(r["saidas_mes"], 8.0)

    vazio = resumo_estoque(Escopo("rest-2"), db_path=db)
    assert vazio["total_itens"] == 0
    assert vazio["valor_total"] == 0


def test_valor_por_categoria(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    _seed(db)
    columns, rows, msg = valor_por_categoria(ESC, db_path=db)
    assert columns == ["Categoria", "Itens", "Valor", "%"]
    assert msg is None
    assert rows[0] == ["Grãos", 1, 22.0, 64.71]
    assert rows[1] == ["Limpeza", 1, 12.0, 35.29]
    assert rows[2] == ["Sem categoria", 1, 0.0, 0.0]

    _, vazias, msg = valor_por_categoria(Escopo("rest-2"), db_path=db)
    assert vazias == [] and msg


def test_baixa_autonomia(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    arroz, detergente, sal = _seed(db)
    leite = criar_item(ESC, "Leite", unidade_base="L", db_path=db)
    registrar_movimento(ESC, leite.id, "IN", 35, custo_unitario=1.0, db_path=db)
    registrar_movimento(ESC, leite.id, "OUT", 30, db_path=db)

    columns, rows, msg = relatorio_baixa_autonomia(ESC, horizonte_dias=7, db_path=db)
    assert columns[0] == "ID" and "Autonomia (dias)" in columns
    assert msg is None
    ids = [r[0] for r in rows]
    # Leite: 5 / (30 / 30) = 5 dias; Arroz e Sal entram pelo ponto de reposição
    assert ids == [leite.id, arroz.id, sal.id]
    assert detergente.id not in ids
    linha_leite = rows[0]
    assert linha_leite[5] == 30
    assert linha_leite[6] == 5
    assert rows[1][6] == "-"


def test_relatorio_desperdicio(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    arroz, detergente, _ = _seed(db)
    registrar_movimento(ESC, arroz.id, "WASTE", 3, observacao="venceu", db_path=db)

    r = relatorio_desperdicio(ESC, dias=30, db_path=db)
    assert r["periodo_dias"] == 30
    assert r["total_registros"] == 2
    assert isclose(r["valor_total"], 10.0)
    assert [t["item_id"] for t in r["top_itens"]] == [arroz.id, detergente.id]
    assert r["top_itens"][0]["nome"] == "Arroz"
    assert r["top_itens"][0]["quantidade"] == 3
    assert r["top_itens"][0]["valor"] == 6.0
    assert all(m.tipo == "WASTE" for m in r["movimentos"])
