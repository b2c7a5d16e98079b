"""
Políticas de classificação do ledger e da reposição.

Este módulo contém funções que encapsulam regras de negócio de
classificação: ponto de reposição efetivo, prioridade de sugestões,
severidade de alertas e status das listas de compra. São utilizadas
pelos casos de uso ao registrar movimentos e ao gerar reposições.
"""

from __future__ import annotations

from typing import Optional

from insumos.domain.models import CHEGOU, PARCIAL


def ponto_reposicao_efetivo(manual: Optional[float], sistema: Optional[float]) -> float:
    """Retorna o ponto de reposição que vale para o item.

    O valor manual (definido pelo operador) tem precedência quando
    presente; senão usa o calculado pelo sistema; na falta de ambos, 0.
    """
    if manual is not None:
        return float(manual)
    if sistema is not None:
        return float(sistema)
    return 0.0


def estoque_baixo(estoque: float, limite: float) -> bool:
    """Condição de estoque baixo: ``estoque <= limite``."""
    return float(estoque) <= float(limite)


def severidade_estoque_baixo(estoque: float) -> str:
    """``'CRITICAL'`` quando zerado, ``'HIGH'`` caso contrário."""
    return "CRITICAL" if float(estoque) <= 0 else "HIGH"


def prioridade_por_dias(dias_restantes: float) -> str:
    """Classifica a urgência de uma sugestão pelos dias até a ruptura.

    Regras:
        - ``<= 1`` → ``'URGENT'``
        - ``<= 3`` → ``'HIGH'``
        - ``<= 5`` → ``'MEDIUM'``
        - demais  → ``'LOW'``
    """
    if dias_restantes <= 1:
        return "URGENT"
    if dias_restantes <= 3:
        return "HIGH"
    if dias_restantes <= 5:
        return "MEDIUM"
    return "LOW"


ORDEM_PRIORIDADE = {"URGENT": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}


def severidade_vencimento(dias_para_vencer: int, dias_critico: int) -> str:
    """Lotes vencidos ou dentro de ``dias_critico`` são ``'CRITICAL'``."""
    return "CRITICAL" if dias_para_vencer <= dias_critico else "MEDIUM"


def status_item_confirmado(quantidade_confirmada: float, quantidade_sugerida: float) -> str:
    """``CHEGOU`` quando atende a sugestão, ``PARCIAL`` quando fica abaixo."""
    if float(quantidade_confirmada) >= float(quantidade_sugerida):
        return CHEGOU
    return PARCIAL


def status_lista(pendentes: int) -> str:
    """Status da lista após uma confirmação ou cancelamento."""
    return "CONCLUIDA" if pendentes == 0 else "EM_ANDAMENTO"
