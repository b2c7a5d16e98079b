# insumos/config.py
"""
Configurações globais e valores padrão do ledger de insumos.
"""

import os
from dataclasses import dataclass


# Caminho padrão do banco de dados SQLite
DB_PATH = os.environ.get("INSUMOS_DB", os.path.join(os.getcwd(), "insumos.db"))


@dataclass
class DefaultConfig:
    """Valores padrão para parâmetros do sistema."""
    # Sugestões por velocidade de consumo
    janela_consumo_dias: int = 30      # janela de consumo considerada
    fator_seguranca: float = 0.2       # 20% de margem sobre o lead time
    cobertura_alvo_dias: int = 7       # cobertura alvo da sugestão (1 semana)
    confianca: float = 0.8             # heurística fixa do modelo linear

    # Recalculo do ponto de reposição do sistema após OUT/WASTE
    janela_ponto_reposicao_dias: int = 60
    ciclo_reposicao_dias: int = 7
    margem_ponto_reposicao: float = 0.3

    # Lotes
    janela_vencimento_dias: int = 15   # janela padrão para alertas de validade
    dias_vencimento_critico: int = 7   # abaixo disso o alerta é CRITICAL

    # SQLite / concorrência
    busy_timeout_s: float = 30.0
    max_tentativas: int = 3            # retries de conflito de versão


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()
