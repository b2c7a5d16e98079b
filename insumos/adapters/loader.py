# insumos/adapters/loader.py
"""
Loader de movimentos já normalizados (CSV ou XLSX) para importação.

Essas funções:
- leem o arquivo usando pandas;
- normalizam cabeçalhos (acentos, variações, sinônimos);
- retornam listas de dicionários no formato esperado por
  ``registrar_importacao``: nome_item, categoria, quantidade, unidade,
  custo_unitario, data.

Observações:
- A interpretação da planilha original (abas, layout do fornecedor) é de
  um importador externo; aqui só entram linhas já uma-por-movimento.
- Quantidade e custo aceitam vírgula decimal ("1,5").
- Datas são normalizadas para ISO (YYYY-MM-DDTHH:MM:SS) quando possível.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd


# ---------------------------
# utilitários de normalização
# ---------------------------

def _slug(s: str) -> str:
    """Normaliza cabeçalhos: minúsculas, sem acentos, sem não-alfanumérico."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüç", "aaaaaeeeeiiiiooooouuuuc"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key):
    """Lê um valor da linha do pandas tratando NA como None."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    val = str(val).strip()
    return val or None


def _to_float(val: Any) -> Optional[float]:
    if val is None:
        return None
    s = str(val).strip().replace(" ", "")
    if not s:
        return None
    # "1.234,56" -> "1234.56"; "1,5" -> "1.5"
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    try:
        return float(s)
    except ValueError:
        return None


def _to_datetime_iso(val: Any) -> Optional[str]:
    """Converte valor para ISO (data e hora) se possível."""
    if val is None:
        return None
    s = str(val).strip()
    if not s:
        return None
    iso = re.match(r"^\d{4}-\d{2}-\d{2}", s) is not None
    d = pd.to_datetime(s, dayfirst=not iso, errors="coerce")
    if pd.isna(d):
        return None
    return d.to_pydatetime().replace(microsecond=0).isoformat()


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomeia colunas com base em sinônimos/variações."""
    aliases = {
        "item": "nome_item",
        "nome": "nome_item",
        "nome item": "nome_item",
        "produto": "nome_item",
        "insumo": "nome_item",
        "descricao": "nome_item",

        "categoria": "categoria",
        "grupo": "categoria",

        "quantidade": "quantidade",
        "qtde": "quantidade",
        "qtd": "quantidade",

        "unidade": "unidade",
        "un": "unidade",
        "unid": "unidade",

        "custo": "custo_unitario",
        "custo unitario": "custo_unitario",
        "valor unitario": "custo_unitario",
        "preco": "custo_unitario",
        "preco unitario": "custo_unitario",

        "data": "data",
        "data entrada": "data",
        "data de entrada": "data",
        "data compra": "data",
    }

    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = aliases.get(key, key.replace(" ", "_"))
    return df.rename(columns=new_cols)


def _read(path: str) -> pd.DataFrame:
    suffix = Path(path).suffix.lower()
    if suffix in (".xlsx", ".xlsm", ".xls"):
        return pd.read_excel(path, dtype="string")
    if suffix == ".csv":
        return pd.read_csv(path, dtype="string", sep=None, engine="python")
    raise ValueError(f"formato não suportado: {suffix or path}")


# ---------------------------
# loader público
# ---------------------------

def load_movimentos_normalizados(path: str) -> List[Dict[str, Any]]:
    """Lê CSV/XLSX de movimentos normalizados.

    Campos de saída (chaves do dict por linha):
      - nome_item: str
      - categoria: str | None
      - quantidade: float | None
      - unidade: str | None (maiúsculas)
      - custo_unitario: float | None
      - data: ISO datetime | None

    Linhas sem nome de item são descartadas (linhas em branco da planilha).
    """
    df = _normalize_columns(_read(path))
    if "nome_item" not in df.columns or "quantidade" not in df.columns:
        raise ValueError("arquivo precisa das colunas de item e quantidade")

    out: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        nome = _safe_get(row, "nome_item")
        if not nome:
            continue
        unidade = _safe_get(row, "unidade")
        out.append({
            "nome_item": nome,
            "categoria": _safe_get(row, "categoria"),
            "quantidade": _to_float(_safe_get(row, "quantidade")),
            "unidade": unidade.upper() if unidade else None,
            "custo_unitario": _to_float(_safe_get(row, "custo_unitario")),
            "data": _to_datetime_iso(_safe_get(row, "data")),
        })
    return out
