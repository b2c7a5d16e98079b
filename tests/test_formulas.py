from datetime import datetime
from math import isclose

import pytest

from insumos.domain.formulas import (
    arredonda,
    consumo_medio_diario,
    custo_medio_ponderado,
    data_ruptura,
    dias_restantes,
    ponto_reposicao_ciclo,
    ponto_reposicao_seguranca,
    quantidade_sugerida,
    sentido_movimento,
)
from insumos.domain.policies import (
    estoque_baixo,
    ponto_reposicao_efetivo,
    prioridade_por_dias,
    severidade_estoque_baixo,
    severidade_vencimento,
    status_item_confirmado,
    status_lista,
)


def test_arredonda_precisao_e_zero_negativo():
    assert arredonda(1.23456789) == 1.234568
    assert arredonda(-0.0000001) == 0.0
    assert str(arredonda(-0.0)) == "0.0"


def test_sentido_por_tipo():
    assert sentido_movimento("IN") == 1
    assert sentido_movimento("RETURN") == 1
    assert sentido_movimento("OUT") == -1
    assert sentido_movimento("WASTE") == -1
    # PRODUCTION consome por padrão
    assert sentido_movimento("PRODUCTION") == -1
    assert sentido_movimento("PRODUCTION", "in") == 1
    assert sentido_movimento("ADJUSTMENT", "in") == 1
    assert sentido_movimento("ADJUSTMENT", "OUT") == -1


@pytest.mark.parametrize("tipo,direcao", [
    ("ADJUSTMENT", None),
    ("OUT", "in"),
    ("IN", "out"),
    ("FOO", None),
    ("ADJUSTMENT", "lado"),
])
def test_sentido_invalido(tipo, direcao):
    with pytest.raises(ValueError):
        sentido_movimento(tipo, direcao)


def test_custo_medio_ponderado():
    # cenário compra e consumo: 30@2 e depois 10@4
    c1 = custo_medio_ponderado(0, 0, 30, 2.0)
    assert isclose(c1, 2.0)
    c2 = custo_medio_ponderado(30, c1, 10, 4.0)
    assert isclose(c2, 2.5)
    # valor total preservado
    assert isclose(c2 * 40, 30 * 2.0 + 10 * 4.0)


def test_custo_medio_sem_estoque_resultante_mantem_anterior():
    assert custo_medio_ponderado(0, 3.0, 0, 9.0) == 3.0


def test_consumo_e_pontos_de_reposicao():
    media = consumo_medio_diario(300, 30)
    assert media == 10.0
    # 10/dia, lead time 3, margem 20% → 30 + 6
    assert isclose(ponto_reposicao_seguranca(media, 3, 0.2), 36.0)
    # ciclo de 7 dias + 30%
    assert isclose(ponto_reposicao_ciclo(1.0, 7, 0.3), 9.1)
    with pytest.raises(ValueError):
        consumo_medio_diario(10, 0)


def test_quantidade_sugerida_e_prioridade_do_exemplo():
    assert quantidade_sugerida(10, 25, 7) == 45
    assert quantidade_sugerida(10, 70, 7) == 0
    # ruído de ponto flutuante não sobe uma unidade
    assert quantidade_sugerida(10.0000000000001, 25, 7) == 45
    dias = dias_restantes(25, 10)
    assert dias == 2.5
    assert prioridade_por_dias(dias) == "HIGH"


def test_dias_restantes_exige_consumo():
    with pytest.raises(ValueError):
        dias_restantes(10, 0)


def test_data_ruptura():
    agora = datetime(2026, 1, 10, 12, 0, 0)
    assert data_ruptura(agora, 2.5) == datetime(2026, 1, 13, 0, 0, 0)


@pytest.mark.parametrize("dias,esperado", [
    (0, "URGENT"),
    (1, "URGENT"),
    (1.5, "HIGH"),
    (3, "HIGH"),
    (5, "MEDIUM"),
    (5.01, "LOW"),
])
def test_prioridade_por_dias(dias, esperado):
    assert prioridade_por_dias(dias) == esperado


def test_ponto_reposicao_efetivo():
    assert ponto_reposicao_efetivo(None, 5.0) == 5.0
    assert ponto_reposicao_efetivo(3.0, 5.0) == 3.0
    # manual zerado ainda tem precedência
    assert ponto_reposicao_efetivo(0.0, 5.0) == 0.0
    assert ponto_reposicao_efetivo(None, None) == 0.0


def test_estoque_baixo_e_severidade():
    assert estoque_baixo(5, 5)
    assert not estoque_baixo(5.1, 5)
    assert severidade_estoque_baixo(0) == "CRITICAL"
    assert severidade_estoque_baixo(2) == "HIGH"
    assert severidade_vencimento(7, 7) == "CRITICAL"
    assert severidade_vencimento(-1, 7) == "CRITICAL"
    assert severidade_vencimento(8, 7) == "MEDIUM"


def test_status_de_confirmacao_e_lista():
    assert status_item_confirmado(10, 10) == "CHEGOU"
    assert status_item_confirmado(12, 10) == "CHEGOU"
    assert status_item_confirmado(4, 10) == "PARCIAL"
    assert status_lista(0) == "CONCLUIDA"
    assert status_lista(2) == "EM_ANDAMENTO"
