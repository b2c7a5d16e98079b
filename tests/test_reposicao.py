from datetime import datetime, timedelta
from math import isclose

import pytest

from insumos.domain.errors import AlreadyConfirmedError, InvalidMovementError, NotFoundError
from insumos.domain.models import Escopo
from insumos.usecases.cadastro import configurar_item, criar_item, desativar_item, obter_item
from insumos.usecases.movimentos import listar_movimentos, reconciliar_contagem, registrar_movimento
from insumos.usecases.reposicao import (
    atualizar_config,
    atualizar_status_lista,
    cancelar_item,
    confirmar_chegada,
    decidir_sugestao,
    gerar_lista_compra,
    gerar_sugestoes,
    listar_listas,
    listar_sugestoes,
    obter_config,
    obter_lista,
)

ESC = Escopo(tenant_id="rest-1", usuario_id="u1")


def _db(tmp_path):
    return str(tmp_path / "insumos_test.sqlite")


def _item_com_estoque(db, nome, estoque, ponto_manual=None, custo=2.0, **kw):
    item = criar_item(ESC, nome, ponto_reposicao_manual=ponto_manual, db_path=db, **kw)
    if estoque:
        registrar_movimento(ESC, item.id, "IN", estoque, custo_unitario=custo, db_path=db)
    return item


# ----------------------
# Lista de compras
# ----------------------

def test_lista_so_inclui_itens_abaixo_do_ponto(tmp_path):
    db = _db(tmp_path)
    abaixo = _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    no_ponto = _item_com_estoque(db, "Feijão", 10, ponto_manual=10)
    sem_ponto = _item_com_estoque(db, "Sal", 1)
    inativo = _item_com_estoque(db, "Fubá", 0, ponto_manual=5)
    desativar_item(ESC, inativo.id, db_path=db)

    lista = gerar_lista_compra(ESC, db_path=db)
    assert lista is not None
    assert lista.status == "ABERTA"
    assert lista.tipo_gatilho == "MANUAL"
    assert lista.descricao == f"Lista de Compras - {datetime.now():%d/%m/%Y}"
    assert [i.item_id for i in lista.itens] == [abaixo.id]
    linha = lista.itens[0]
    assert linha.quantidade_sugerida == 6
    assert linha.ponto_reposicao == 10 and linha.estoque_atual == 4
    assert linha.status == "PENDENTE"
    assert no_ponto.id not in [i.item_id for i in lista.itens]
    assert sem_ponto.id not in [i.item_id for i in lista.itens]


def test_lista_usa_ponto_do_sistema(tmp_path):
    db = _db(tmp_path)
    item = _item_com_estoque(db, "Café", 70)
    # 60 em 60 dias → ponto do sistema 9.1; sobra 10
    registrar_movimento(ESC, item.id, "OUT", 60, db_path=db)
    assert gerar_lista_compra(ESC, db_path=db) is None

    registrar_movimento(ESC, item.id, "OUT", 5, db_path=db)
    ponto = obter_item(ESC, item.id, db_path=db).ponto_reposicao
    lista = gerar_lista_compra(ESC, tipo_gatilho="estoque_critico", descricao="Semanal", db_path=db)
    assert lista.tipo_gatilho == "ESTOQUE_CRITICO"
    assert lista.descricao == "Semanal"
    assert isclose(lista.itens[0].quantidade_sugerida, ponto - 5)


def test_lista_vazia_nao_e_gravada(tmp_path):
    db = _db(tmp_path)
    _item_com_estoque(db, "Arroz", 20, ponto_manual=10)
    assert gerar_lista_compra(ESC, db_path=db) is None
    assert listar_listas(ESC, db_path=db)["total"] == 0
    with pytest.raises(ValueError):
        gerar_lista_compra(ESC, tipo_gatilho="QUALQUER", db_path=db)


def test_ciclo_de_vida_da_lista(tmp_path):
    db = _db(tmp_path)
    arroz = _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    feijao = _item_com_estoque(db, "Feijão", 2, ponto_manual=10)
    lista = gerar_lista_compra(ESC, db_path=db)
    linhas = {i.item_id: i for i in lista.itens}

    it = confirmar_chegada(ESC, linhas[arroz.id].id, 6, preco_compra=3.0, db_path=db)
    assert it.status == "CHEGOU"
    assert it.quantidade_confirmada == 6
    assert it.confirmado_por == "u1"
    assert it.movimento_id is not None
    assert obter_lista(ESC, lista.id, db_path=db).status == "EM_ANDAMENTO"

    a = obter_item(ESC, arroz.id, db_path=db)
    assert a.estoque_atual == 10
    assert a.ultimo_preco_compra == 3.0
    entrada = listar_movimentos(ESC, arroz.id, db_path=db)[-1]
    assert entrada.id == it.movimento_id
    assert entrada.tipo == "IN"
    assert entrada.referencia_tipo == "PURCHASE_LIST"
    assert entrada.referencia_id == str(lista.id)

    with pytest.raises(AlreadyConfirmedError):
        confirmar_chegada(ESC, linhas[arroz.id].id, 6, db_path=db)
    assert len(listar_movimentos(ESC, arroz.id, db_path=db)) == 2

    parcial = confirmar_chegada(ESC, linhas[feijao.id].id, 3, db_path=db)
    assert parcial.status == "PARCIAL"
    final = obter_lista(ESC, lista.id, db_path=db)
    assert final.status == "CONCLUIDA"
    assert final.concluida_em is not None

    # PARCIAL também não aceita segunda confirmação
    with pytest.raises(AlreadyConfirmedError):
        confirmar_chegada(ESC, linhas[feijao.id].id, 5, db_path=db)


def test_confirmacao_invalida(tmp_path):
    db = _db(tmp_path)
    arroz = _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    lista = gerar_lista_compra(ESC, db_path=db)
    with pytest.raises(InvalidMovementError):
        confirmar_chegada(ESC, lista.itens[0].id, 0, db_path=db)
    with pytest.raises(NotFoundError):
        confirmar_chegada(ESC, 999, 1, db_path=db)
    with pytest.raises(NotFoundError):
        confirmar_chegada(Escopo("rest-2"), lista.itens[0].id, 1, db_path=db)
    assert obter_item(ESC, arroz.id, db_path=db).estoque_atual == 4


def test_cancelamento_de_itens(tmp_path):
    db = _db(tmp_path)
    arroz = _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    feijao = _item_com_estoque(db, "Feijão", 2, ponto_manual=10)
    lista = gerar_lista_compra(ESC, db_path=db)
    linhas = {i.item_id: i for i in lista.itens}

    cancelado = cancelar_item(ESC, linhas[feijao.id].id, db_path=db)
    assert cancelado.status == "CANCELADO"
    # ainda há pendente e a lista não saiu de ABERTA
    assert obter_lista(ESC, lista.id, db_path=db).status == "ABERTA"
    # cancelar de novo não muda nada
    assert cancelar_item(ESC, linhas[feijao.id].id, db_path=db).status == "CANCELADO"
    with pytest.raises(InvalidMovementError):
        confirmar_chegada(ESC, linhas[feijao.id].id, 8, db_path=db)

    confirmar_chegada(ESC, linhas[arroz.id].id, 6, db_path=db)
    assert obter_lista(ESC, lista.id, db_path=db).status == "CONCLUIDA"
    with pytest.raises(AlreadyConfirmedError):
        cancelar_item(ESC, linhas[arroz.id].id, db_path=db)


def test_cancelar_ultimo_pendente_conclui_lista(tmp_path):
    db = _db(tmp_path)
    _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    lista = gerar_lista_compra(ESC, db_path=db)
    cancelar_item(ESC, lista.itens[0].id, db_path=db)
    assert obter_lista(ESC, lista.id, db_path=db).status == "CONCLUIDA"


def test_lista_cancelada_nao_recebe(tmp_path):
    db = _db(tmp_path)
    _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    lista = gerar_lista_compra(ESC, db_path=db)
    assert atualizar_status_lista(ESC, lista.id, "cancelada", db_path=db).status == "CANCELADA"
    with pytest.raises(InvalidMovementError):
        confirmar_chegada(ESC, lista.itens[0].id, 6, db_path=db)
    with pytest.raises(ValueError):
        atualizar_status_lista(ESC, lista.id, "PERDIDA", db_path=db)


def test_listagem_paginada(tmp_path):
    db = _db(tmp_path)
    arroz = _item_com_estoque(db, "Arroz", 4, ponto_manual=10)
    for _ in range(3):
        gerar_lista_compra(ESC, db_path=db)
    configurar_item(ESC, arroz.id, ponto_reposicao_manual=20, db_path=db)
    gerar_lista_compra(ESC, tipo_gatilho="DATA_FIXA", db_path=db)

    pagina = listar_listas(ESC, pagina=1, limite=2, db_path=db)
    assert pagina["total"] == 4
    assert pagina["paginas"] == 2
    assert len(pagina["listas"]) == 2
    assert pagina["listas"][0]["total_itens"] == 1
    assert listar_listas(ESC, tipo_gatilho="DATA_FIXA", db_path=db)["total"] == 1
    assert listar_listas(Escopo("rest-2"), db_path=db)["total"] == 0


# ----------------------
# Sugestões
# ----------------------

def _cenario_sugestao(db, nome="Farinha", lead_time=3):
    agora = datetime.now()
    item = criar_item(ESC, nome, unidade_base="KG", lead_time_dias=lead_time, db_path=db)
    registrar_movimento(ESC, item.id, "IN", 325, custo_unitario=3.0, data_movimento=agora - timedelta(days=20), db_path=db)
    registrar_movimento(ESC, item.id, "OUT", 300, data_movimento=agora - timedelta(days=10), db_path=db)
    return item, agora


def test_sugestao_pelo_consumo(tmp_path):
    db = _db(tmp_path)
    item, agora = _cenario_sugestao(db)
    sugestoes = gerar_sugestoes(ESC, agora=agora, db_path=db)
    assert len(sugestoes) == 1
    s = sugestoes[0]
    assert s.item_id == item.id
    assert s.consumo_medio_diario == 10
    assert s.ponto_reposicao == 36
    assert s.quantidade_sugerida == 45
    assert s.prioridade == "HIGH"
    assert s.unidade_sugerida == "KG"
    assert s.lead_time_dias == 3
    assert s.confianca == 0.8
    assert s.justificativa == "Consumo: 10.00/dia. Estoque: 25. Sugiro 45."
    assert s.data_ruptura_estimada == (agora + timedelta(days=2.5)).isoformat(timespec="seconds")
    assert s.id is not None


def test_sugestao_ignora_itens_acima_do_ponto_e_sem_consumo(tmp_path):
    db = _db(tmp_path)
    agora = datetime.now()
    cheio = criar_item(ESC, "Açúcar", lead_time_dias=3, db_path=db)
    registrar_movimento(ESC, cheio.id, "IN", 400, custo_unitario=1.0, data_movimento=agora - timedelta(days=20), db_path=db)
    registrar_movimento(ESC, cheio.id, "OUT", 300, data_movimento=agora - timedelta(days=10), db_path=db)
    parado = criar_item(ESC, "Sal", db_path=db)
    registrar_movimento(ESC, parado.id, "IN", 1, custo_unitario=1.0, db_path=db)
    revenda = criar_item(ESC, "Refrigerante lata", materia_prima=False, db_path=db)
    registrar_movimento(ESC, revenda.id, "IN", 30, custo_unitario=1.0, data_movimento=agora - timedelta(days=20), db_path=db)
    registrar_movimento(ESC, revenda.id, "OUT", 30, data_movimento=agora - timedelta(days=10), db_path=db)

    assert gerar_sugestoes(ESC, agora=agora, db_path=db) == []


def test_regerar_substitui_pendentes_e_preserva_decididas(tmp_path):
    db = _db(tmp_path)
    _, agora = _cenario_sugestao(db, "Farinha")
    _cenario_sugestao(db, "Fermento")
    primeiras = gerar_sugestoes(ESC, agora=agora, db_path=db)
    assert len(primeiras) == 2

    aceita = decidir_sugestao(ESC, primeiras[0].id, True, db_path=db)
    assert aceita.aceita is True
    assert aceita.decidida_em is not None
    with pytest.raises(InvalidMovementError):
        decidir_sugestao(ESC, primeiras[0].id, False, db_path=db)

    novas = gerar_sugestoes(ESC, agora=agora, db_path=db)
    pendentes = listar_sugestoes(ESC, db_path=db)
    assert sorted(s.id for s in pendentes) == sorted(s.id for s in novas)
    assert primeiras[1].id not in [s.id for s in pendentes]
    assert primeiras[0].id not in [s.id for s in pendentes]

    with pytest.raises(NotFoundError):
        decidir_sugestao(ESC, 999, True, db_path=db)


def test_sugestoes_ordenadas_por_prioridade(tmp_path):
    db = _db(tmp_path)
    agora = datetime.now()
    _cenario_sugestao(db, "Farinha")
    urgente = criar_item(ESC, "Manteiga", lead_time_dias=3, db_path=db)
    registrar_movimento(ESC, urgente.id, "IN", 305, custo_unitario=1.0, data_movimento=agora - timedelta(days=20), db_path=db)
    registrar_movimento(ESC, urgente.id, "OUT", 300, data_movimento=agora - timedelta(days=10), db_path=db)

    sugestoes = gerar_sugestoes(ESC, agora=agora, db_path=db)
    assert [s.prioridade for s in sugestoes] == ["URGENT", "HIGH"]
    assert [s.prioridade for s in listar_sugestoes(ESC, db_path=db)] == ["URGENT", "HIGH"]


# ----------------------
# Política de compras
# ----------------------

def test_config_padrao_e_atualizacao(tmp_path):
    db = _db(tmp_path)
    cfg = obter_config(ESC, db_path=db)
    assert cfg.janela_consumo_dias == 30
    assert cfg.fator_seguranca == 0.2
    assert cfg.cobertura_alvo_dias == 7
    assert cfg.recorrencia == "NENHUM"
    assert not cfg.gatilho_pos_inventario

    cfg = atualizar_config(ESC, cobertura_alvo_dias=14, recorrencia="semanal", dias_semana=[4, 1, 1], db_path=db)
    assert cfg.recorrencia == "SEMANAL"
    assert cfg.dias_semana == [1, 4]
    relido = obter_config(ESC, db_path=db)
    assert relido.cobertura_alvo_dias == 14
    assert relido.dias_semana == [1, 4]

    _, agora = _cenario_sugestao(db)
    # 10/dia × 14 − 25
    assert gerar_sugestoes(ESC, agora=agora, db_path=db)[0].quantidade_sugerida == 115


@pytest.mark.parametrize("campos", [
    {"recorrencia": "DIARIA"},
    {"dias_semana": [7]},
    {"dias_mes": [0]},
    {"percentual_estoque_critico": 120},
    {"janela_consumo_dias": 0},
    {"confianca": 1.5},
    {"campo_inexistente": 1},
])
def test_config_invalida(tmp_path, campos):
    db = _db(tmp_path)
    with pytest.raises(ValueError):
        atualizar_config(ESC, db_path=db, **campos)
    assert obter_config(ESC, db_path=db).recorrencia == "NENHUM"


def test_contagem_com_gatilho_pos_inventario(tmp_path):
    db = _db(tmp_path)
    arroz = _item_com_estoque(db, "Arroz", 12, ponto_manual=10)
    atualizar_config(ESC, gatilho_pos_inventario=True, db_path=db)

    resumo = reconciliar_contagem(ESC, [{"item_id": arroz.id, "quantidade_contada": 7}], db_path=db)
    assert resumo["itens_ajustados"] == 1
    lista = obter_lista(ESC, resumo["lista_compra_id"], db_path=db)
    assert lista.tipo_gatilho == "POS_INVENTARIO"
    assert lista.itens[0].quantidade_sugerida == 3
