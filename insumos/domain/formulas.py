"""
Mathematical formulas for stock valuation and replenishment.

These functions implement the arithmetic behind the ledger (signed
quantities, weighted-average cost) and behind the consumption-velocity
replenishment model (daily demand, reorder point, target cover).

All functions are pure: they depend solely on their inputs and do
not modify any external state. This makes them safe to unit test
individually.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from math import ceil
from typing import Optional, Union

from insumos.domain.models import (
    IN,
    OUT,
    PRODUCTION,
    RETURN,
    TIPOS_MOVIMENTO,
    WASTE,
)

Number = Union[int, float]

# Tolerância para comparações de quantidade em ponto flutuante
EPS = 1e-9
CASAS = 6


def arredonda(x: Number) -> float:
    """Round to the precision persisted in the database."""
    v = round(float(x), CASAS)
    # evita "-0.0" no ledger
    return 0.0 if v == 0 else v


def sentido_movimento(tipo: str, direcao: Optional[str] = None) -> int:
    """Return the stock sign (+1/-1) of a movement type.

    IN and RETURN always add; OUT and WASTE always remove. PRODUCTION
    defaults to consumption (``'out'``) and may be an output of a
    production step (``'in'``). ADJUSTMENT has no fixed sign, so the
    direction is mandatory.
    """
    if tipo not in TIPOS_MOVIMENTO:
        raise ValueError(f"tipo de movimento desconhecido: {tipo!r}")
    d = (direcao or "").strip().lower() or None
    if d not in (None, "in", "out"):
        raise ValueError(f"direção inválida: {direcao!r} (use 'in' ou 'out')")
    if tipo in (IN, RETURN, OUT, WASTE):
        if d is not None:
            raise ValueError(f"direção não se aplica a movimentos {tipo}")
        return 1 if tipo in (IN, RETURN) else -1
    if tipo == PRODUCTION:
        return 1 if d == "in" else -1
    # ADJUSTMENT
    if d is None:
        raise ValueError("ajuste exige direção ('in' ou 'out')")
    return 1 if d == "in" else -1


def custo_medio_ponderado(
    estoque_antes: Number,
    custo_medio_antes: Number,
    quantidade: Number,
    custo_unitario: Number,
) -> float:
    """Weighted-average unit cost after an incoming purchase.

        novo = (estoque_antes * custo_antes + quantidade * custo_unitario)
               / (estoque_antes + quantidade)

    When the resulting stock is not positive the previous cost is kept.
    """
    estoque_depois = float(estoque_antes) + float(quantidade)
    if estoque_depois <= EPS:
        return float(custo_medio_antes)
    valor = float(estoque_antes) * float(custo_medio_antes) + float(quantidade) * float(custo_unitario)
    return valor / estoque_depois


def consumo_medio_diario(consumo_total: Number, janela_dias: Number) -> float:
    """Average daily consumption over a trailing window."""
    if janela_dias is None or float(janela_dias) <= 0:
        raise ValueError("janela_dias must be positive")
    return float(consumo_total) / float(janela_dias)


def ponto_reposicao_seguranca(media_diaria: Number, lead_time_dias: Number, fator_seguranca: Number) -> float:
    """Reorder point covering the lead time plus a proportional safety buffer.

        rop = media * lead_time + media * fator * lead_time
    """
    media = float(media_diaria)
    lt = float(lead_time_dias)
    return media * lt + media * float(fator_seguranca) * lt


def ponto_reposicao_ciclo(media_diaria: Number, ciclo_dias: Number, margem: Number) -> float:
    """System reorder point recomputed after consumption: one cycle plus margin."""
    return float(media_diaria) * float(ciclo_dias) * (1.0 + float(margem))


def quantidade_sugerida(media_diaria: Number, estoque_atual: Number, cobertura_dias: Number) -> int:
    """Quantity that restores ``cobertura_dias`` days of cover, rounded up."""
    alvo = float(media_diaria) * float(cobertura_dias) - float(estoque_atual)
    # arredonda antes do ceil para não transformar 45.0000000001 em 46
    return int(ceil(round(alvo, CASAS)))


def dias_restantes(estoque_atual: Number, media_diaria: Number) -> float:
    """Days until stock runs out at the current consumption rate."""
    media = float(media_diaria)
    if media <= 0:
        raise ValueError("media_diaria must be positive")
    return float(estoque_atual) / media


def data_ruptura(agora: datetime, dias: Number) -> datetime:
    """Estimated runout timestamp."""
    return agora + timedelta(days=float(dias))
