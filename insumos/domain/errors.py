# insumos/domain/errors.py
"""
Erros de domínio do ledger de insumos.

Todos derivam de ``EstoqueError`` e são propagados ao chamador, que decide
como apresentá-los. Nenhum deles implica escrita parcial: a transação é
desfeita antes de a exceção sair do caso de uso.
"""

from __future__ import annotations

from typing import Any, Optional


class EstoqueError(Exception):
    """Base dos erros de domínio."""


class NotFoundError(EstoqueError):
    """Entidade inexistente ou fora do escopo do tenant."""

    def __init__(self, entidade: str, ident: Any):
        self.entidade = entidade
        self.ident = ident
        super().__init__(f"{entidade} não encontrado: {ident}")


class InsufficientStockError(EstoqueError):
    """O movimento levaria o estoque a ficar negativo."""

    def __init__(self, item_id: int, estoque_atual: float, solicitado: float, unidade: Optional[str] = None):
        self.item_id = item_id
        self.estoque_atual = estoque_atual
        self.solicitado = solicitado
        un = f" {unidade}" if unidade else ""
        super().__init__(
            f"Estoque insuficiente para o item {item_id}. "
            f"Atual: {estoque_atual}{un}, solicitado: {solicitado}{un}"
        )


class InvalidMovementError(EstoqueError):
    """Quantidade não positiva, tipo desconhecido ou dados de lote inválidos."""


class AlreadyConfirmedError(EstoqueError):
    """Item de lista de compras já confirmado como recebido."""

    def __init__(self, item_lista_id: int):
        self.item_lista_id = item_lista_id
        super().__init__(f"Item {item_lista_id} já foi confirmado")


class ConcurrencyConflictError(EstoqueError):
    """A versão do item mudou entre a leitura e a escrita."""

    def __init__(self, item_id: int, versao_esperada: int):
        self.item_id = item_id
        self.versao_esperada = versao_esperada
        super().__init__(
            f"Conflito de concorrência no item {item_id} (versão esperada {versao_esperada})"
        )
