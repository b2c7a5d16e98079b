import pandas as pd
import pytest

from insumos.adapters.loader import _normalize_columns, _slug, _to_datetime_iso, _to_float, load_movimentos_normalizados


def test_utilitarios_de_normalizacao():
    assert _slug("  Preço Unitário ") == "preco unitario"
    assert _to_float("1,5") == 1.5
    assert _to_float("1.234,56") == 1234.56
    assert _to_float("2.75") == 2.75
    assert _to_float("abc") is None
    assert _to_float("") is None
    assert _to_datetime_iso("15/01/2026") == "2026-01-15T00:00:00"
    assert _to_datetime_iso("2026-01-15 08:30") == "2026-01-15T08:30:00"
    assert _to_datetime_iso("ontem") is None

    df = _normalize_columns(pd.DataFrame(columns=["Produto", "Qtd", "Valor Unitário", "Data de Entrada", "Obs"]))
    assert list(df.columns) == ["nome_item", "quantidade", "custo_unitario", "data", "obs"]


def test_csv_com_ponto_e_virgula_e_decimal_com_virgula(tmp_path):
    path = tmp_path / "entradas.csv"
    path.write_text(
        "Produto;Categoria;Qtd;Unidade;Preço unitário;Data entrada\n"
        "Leite integral;Laticínios;12;l;4,59;15/01/2026\n"
        ";;;;;\n"
        "Queijo muçarela;;1,5;kg;38;\n",
        encoding="utf-8",
    )
    linhas = load_movimentos_normalizados(str(path))
    assert len(linhas) == 2
    assert linhas[0] == {
        "nome_item": "Leite integral",
        "categoria": "Laticínios",
        "quantidade": 12.0,
        "unidade": "L",
        "custo_unitario": 4.59,
        "data": "2026-01-15T00:00:00",
    }
    assert linhas[1]["quantidade"] == 1.5
    assert linhas[1]["categoria"] is None
    assert linhas[1]["data"] is None


def test_xlsx(tmp_path):
    path = tmp_path / "entradas.xlsx"
    pd.DataFrame({
        "Item": ["Farinha de trigo", "Fermento"],
        "Quantidade": ["25", "0,5"],
        "Unidade": ["KG", "KG"],
        "Custo": ["3.2", "40"],
        "Data": ["2026-02-01", "2026-02-02"],
    }).to_excel(path, index=False)

    linhas = load_movimentos_normalizados(str(path))
    assert [l["nome_item"] for l in linhas] == ["Farinha de trigo", "Fermento"]
    assert linhas[0]["quantidade"] == 25.0
    assert linhas[0]["custo_unitario"] == 3.2
    assert linhas[1]["quantidade"] == 0.5
    assert linhas[1]["data"] == "2026-02-02T00:00:00"


def test_arquivo_sem_colunas_obrigatorias(tmp_path):
    path = tmp_path / "ruim.csv"
    path.write_text("Fornecedor,Total\nACME,10\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_movimentos_normalizados(str(path))
    with pytest.raises(ValueError):
        load_movimentos_normalizados(str(tmp_path / "entradas.json"))
