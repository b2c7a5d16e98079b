import threading
from math import isclose

import pytest

from insumos.domain.errors import InsufficientStockError
from insumos.domain.models import Escopo
from insumos.usecases.cadastro import criar_item, obter_item
from insumos.usecases.movimentos import listar_movimentos, registrar_movimento

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")


def _disparar(n, alvo):
    erros = []

    def _rodar(i):
        try:
            alvo(i)
        except Exception as e:  # coletado para o assert
            erros.append(e)

    threads = [threading.Thread(target=_rodar, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return erros


def test_saidas_concorrentes_nao_perdem_atualizacao(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "Batata", unidade_base="KG", db_path=db)
    registrar_movimento(ESC, item.id, "IN", 100, custo_unitario=2.0, db_path=db)

    erros = _disparar(20, lambda i: registrar_movimento(ESC, item.id, "OUT", 1.5, db_path=db))
    assert erros == []

    it = obter_item(ESC, item.id, db_path=db)
    assert isclose(it.estoque_atual, 70.0)
    assert it.versao == 21
    movs = listar_movimentos(ESC, item.id, db_path=db)
    assert len(movs) == 21
    for anterior, atual in zip(movs, movs[1:]):
        assert anterior.estoque_depois == atual.estoque_antes


def test_estoque_nunca_fica_negativo_sob_concorrencia(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "Cebola", unidade_base="KG", db_path=db)
    registrar_movimento(ESC, item.id, "IN", 10, custo_unitario=1.0, db_path=db)

    erros = _disparar(15, lambda i: registrar_movimento(ESC, item.id, "OUT", 1, db_path=db))
    assert len(erros) == 5
    assert all(isinstance(e, InsufficientStockError) for e in erros)
    assert obter_item(ESC, item.id, db_path=db).estoque_atual == 0
    assert len(listar_movimentos(ESC, item.id, db_path=db)) == 11


@pytest.mark.parametrize("n", [8])
def test_entradas_concorrentes_mantem_custo_medio(tmp_path, n):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "Tomate", unidade_base="KG", db_path=db)
    erros = _disparar(n, lambda i: registrar_movimento(ESC, item.id, "IN", 1, custo_unitario=float(i + 1), db_path=db))
    assert erros == []
    it = obter_item(ESC, item.id, db_path=db)
    assert it.estoque_atual == n
    # média simples de 1..n
    assert isclose(it.custo_medio, (n + 1) / 2, rel_tol=1e-5)
