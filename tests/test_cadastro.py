import pytest

from insumos.domain.errors import InvalidMovementError, NotFoundError
from insumos.domain.models import Escopo
from insumos.usecases.cadastro import configurar_item, criar_item, desativar_item, listar_itens, obter_item

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")


def test_criar_item_com_estoque_zero(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "  Farinha de trigo ", unidade_base="kg", categoria="Secos", lead_time_dias=2, db_path=db)
    assert item.nome == "Farinha de trigo"
    assert item.unidade_base == "KG"
    assert item.estoque_atual == 0
    assert item.custo_medio == 0
    assert item.ponto_reposicao_manual is None
    assert item.lead_time_dias == 2
    assert item.ativo and item.materia_prima and not item.perecivel


@pytest.mark.parametrize("kw", [
    {"nome": "   "},
    {"nome": "X", "ponto_reposicao_manual": -1},
    {"nome": "X", "lead_time_dias": -2},
])
def test_criar_item_invalido(tmp_path, kw):
    db = str(tmp_path / "insumos_test.sqlite")
    with pytest.raises(InvalidMovementError):
        criar_item(ESC, db_path=db, **kw)
    assert listar_itens(ESC, db_path=db) == []


def test_configurar_e_limpar_ponto_manual(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    item = criar_item(ESC, "Azeite", unidade_base="L", db_path=db)
    item = configurar_item(ESC, item.id, ponto_reposicao_manual=3, lead_time_dias=5, db_path=db)
    assert item.ponto_reposicao_manual == 3
    assert item.lead_time_dias == 5
    item = configurar_item(ESC, item.id, ponto_reposicao_manual=None, db_path=db)
    assert item.ponto_reposicao_manual is None

    with pytest.raises(InvalidMovementError):
        configurar_item(ESC, item.id, estoque_atual=100, db_path=db)
    with pytest.raises(NotFoundError):
        configurar_item(Escopo("rest-2"), item.id, nome="Outro", db_path=db)
    assert obter_item(ESC, item.id, db_path=db).estoque_atual == 0


def test_desativar_item_mantem_historico(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    a = criar_item(ESC, "Azeite", db_path=db)
    b = criar_item(ESC, "Vinagre", db_path=db)
    desativar_item(ESC, a.id, db_path=db)
    assert [i.id for i in listar_itens(ESC, db_path=db)] == [b.id]
    assert {i.id for i in listar_itens(ESC, apenas_ativos=False, db_path=db)} == {a.id, b.id}
    assert not obter_item(ESC, a.id, db_path=db).ativo
