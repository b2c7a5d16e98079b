from datetime import date, timedelta

import pytest

from insumos.domain.models import Escopo, Item, Lote, LoteInfo
from insumos.usecases.alertas import alertas_lotes_a_vencer, on_expiring_batch, on_low_stock
from insumos.usecases.cadastro import criar_item, obter_item
from insumos.usecases.movimentos import listar_movimentos, registrar_movimento

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")
HOJE = date(2026, 3, 10)


def _lote(validade, restante=4.0):
    return Lote(
        id=7, tenant_id="rest-1", item_id=3, numero_lote="L-7",
        quantidade=10.0, quantidade_restante=restante, custo_unitario=1.0, data_validade=validade,
    )


def test_on_low_stock():
    item = Item(id=3, tenant_id="rest-1", nome="Leite", unidade_base="L")
    alerta = on_low_stock(item, 2, 5)
    assert alerta.tipo == "STOCK_LOW"
    assert alerta.severidade == "HIGH"
    assert alerta.titulo == "Estoque Baixo: Leite"
    assert "2 L" in alerta.mensagem
    assert alerta.dados == {"estoque_atual": 2, "ponto_reposicao": 5}
    assert on_low_stock(item, 0, 5).severidade == "CRITICAL"


def test_on_expiring_batch():
    perto = on_expiring_batch(_lote("2026-03-15"), hoje=HOJE, nome_item="Leite")
    assert perto.tipo == "STOCK_EXPIRING"
    assert perto.severidade == "CRITICAL"
    assert perto.lote_id == 7
    assert perto.dados["dias_para_vencer"] == 5
    assert "vence em 5 dia(s)" in perto.mensagem

    longe = on_expiring_batch(_lote("2026-03-20"), hoje=HOJE)
    assert longe.severidade == "MEDIUM"

    vencido = on_expiring_batch(_lote("2026-03-08"), hoje=HOJE)
    assert vencido.severidade == "CRITICAL"
    assert "venceu há 2 dia(s)" in vencido.mensagem

    with pytest.raises(ValueError):
        on_expiring_batch(_lote(None), hoje=HOJE)


def test_alerta_de_estoque_baixo_no_ledger(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    recebidos = []
    item = criar_item(ESC, "Leite", unidade_base="L", ponto_reposicao_manual=10, db_path=db)
    registrar_movimento(ESC, item.id, "IN", 20, custo_unitario=4.0, alert_sink=recebidos.append, db_path=db)
    assert recebidos == []

    # passa a valer
    registrar_movimento(ESC, item.id, "OUT", 12, alert_sink=recebidos.append, db_path=db)
    assert [a.severidade for a in recebidos] == ["HIGH"]
    assert recebidos[0].dados["estoque_atual"] == 8

    # continua baixo, sem escalar: nada novo
    registrar_movimento(ESC, item.id, "OUT", 1, alert_sink=recebidos.append, db_path=db)
    assert len(recebidos) == 1

    # zerou: escala para CRITICAL
    registrar_movimento(ESC, item.id, "OUT", 7, alert_sink=recebidos.append, db_path=db)
    assert [a.severidade for a in recebidos] == ["HIGH", "CRITICAL"]


def test_falha_no_destino_do_alerta_nao_desfaz_movimento(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")

    def sink_quebrado(alerta):
        raise RuntimeError("push indisponível")

    item = criar_item(ESC, "Leite", ponto_reposicao_manual=10, db_path=db)
    registrar_movimento(ESC, item.id, "IN", 20, custo_unitario=4.0, db_path=db)
    mov = registrar_movimento(ESC, item.id, "OUT", 15, alert_sink=sink_quebrado, db_path=db)
    assert mov.estoque_depois == 5
    assert obter_item(ESC, item.id, db_path=db).estoque_atual == 5
    assert len(listar_movimentos(ESC, item.id, db_path=db)) == 2


def test_varredura_de_lotes_a_vencer(tmp_path):
    db = str(tmp_path / "insumos_test.sqlite")
    hoje = date.today()
    item = criar_item(ESC, "Creme de leite", perecivel=True, db_path=db)
    registrar_movimento(
        ESC, item.id, "IN", 6, custo_unitario=3.0,
        lote=LoteInfo(numero_lote="CL-1", data_validade=(hoje + timedelta(days=2)).isoformat()),
        db_path=db,
    )
    registrar_movimento(
        ESC, item.id, "IN", 6, custo_unitario=3.0,
        lote=LoteInfo(numero_lote="CL-2", data_validade=(hoje + timedelta(days=40)).isoformat()),
        db_path=db,
    )
    recebidos = []
    alertas = alertas_lotes_a_vencer(ESC, dentro_de_dias=15, hoje=hoje, alert_sink=recebidos.append, db_path=db)
    assert alertas == recebidos
    assert len(alertas) == 1
    assert alertas[0].severidade == "CRITICAL"
    assert alertas[0].titulo == "Lote a vencer: Creme de leite"
