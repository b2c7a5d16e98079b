"""
Logging do ledger de insumos.

Um arquivo por assunto em ``LOGS_DIR``:
- transactions.log: resultado (ou falha) de cada caso de uso de escrita
- movimentos.log:   movimentos gravados no ledger
- reposicao.log:    listas de compra, sugestões e política de compras
- database.log:     operações pontuais de banco (lotes, cadastro, views)
- system.log:       eventos gerais, alertas e importações

Tudo fica desligado até ``INSUMOS_LOGGING`` ou ``INSUMOS_OUTPUT`` ser
ligado no ambiente; com as flags desligadas as funções ``log_*`` retornam
sem tocar em disco.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "sim", "yes"}


ENABLE_LOGGING = _env_flag("INSUMOS_LOGGING")
ENABLE_OUTPUT = _env_flag("INSUMOS_OUTPUT")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class _LazyDirFileHandler(logging.FileHandler):
    """FileHandler que cria o diretório de logs apenas ao abrir o arquivo."""

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Cria (ou reconfigura) o logger ``name`` gravando em ``log_file``.

    O arquivo só é aberto na primeira mensagem (``delay=True``), então
    importar este módulo não cria nada em disco.

    Args:
        name: Nome do logger
        log_file: Caminho do arquivo
        level: Nível mínimo registrado

    Returns:
        Logger pronto para uso
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    # reconfiguração (ex.: testes) não duplica handlers
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    handler = _LazyDirFileHandler(log_file, encoding='utf-8', delay=True)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(handler)
    return logger


BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = Path(os.environ.get("INSUMOS_LOGS_DIR", str(BASE_DIR / "logs")))

_ARQUIVOS = {
    "transactions": "transactions.log",
    "movimentos": "movimentos.log",
    "reposicao": "reposicao.log",
    "database": "database.log",
    "system": "system.log",
}

transaction_logger = setup_logger('insumos.transactions', str(LOGS_DIR / _ARQUIVOS["transactions"]))
movimento_logger = setup_logger('insumos.movimentos', str(LOGS_DIR / _ARQUIVOS["movimentos"]))
reposicao_logger = setup_logger('insumos.reposicao', str(LOGS_DIR / _ARQUIVOS["reposicao"]))
database_logger = setup_logger('insumos.database', str(LOGS_DIR / _ARQUIVOS["database"]))
system_logger = setup_logger('insumos.system', str(LOGS_DIR / _ARQUIVOS["system"]))


def _habilitado() -> bool:
    return ENABLE_LOGGING or ENABLE_OUTPUT


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Resultado de um caso de uso de escrita.

    Args:
        operation: Nome do caso de uso (registrar_movimento, reconciliar, ...)
        data: Parâmetros relevantes da chamada
        result: O que foi gravado (ids, resumo)
        error: Mensagem quando a operação falhou e foi desfeita
    """
    if not _habilitado():
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")


def log_movimento(action: str, item_id: Any, tipo: str, quantidade: float, **kwargs) -> None:
    """Uma linha por movimento aplicado (``insert``) ou lote de entradas (``bulk``)."""
    if not _habilitado():
        return
    dados = {"action": action, "item_id": item_id, "tipo": tipo, "quantidade": quantidade, **kwargs}
    movimento_logger.info(f"MOVIMENTO_{action.upper()}: {dados}")


def log_reposicao(action: str, tenant_id: str, **kwargs) -> None:
    if not _habilitado():
        return
    dados = {"action": action, "tenant_id": tenant_id, **kwargs}
    reposicao_logger.info(f"REPOSICAO_{action.upper()}: {dados}")


def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Operação pontual no banco.

    Args:
        table: Tabela ou view
        operation: INSERT, UPDATE, SELECT, CONSUME, ...
        affected_rows: Linhas afetadas ou lidas
    """
    if not _habilitado():
        return
    dados = {"table": table, "operation": operation, "affected_rows": affected_rows, **kwargs}
    database_logger.info(f"DB_{operation}: {dados}")


def log_system_event(event: str, details: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
    """Evento geral; ``level`` escolhe o método do logger (info, warning, error)."""
    if not _habilitado():
        return
    dados = {"event": event, "details": details or {}}
    emitir = getattr(system_logger, level.lower(), system_logger.info)
    emitir(f"SYSTEM_EVENT: {event} - {dados}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """Leitura de arquivo de importação."""
    if not _habilitado():
        return
    dados = {"operation": operation, "file_path": file_path, "rows_processed": rows_processed, **kwargs}
    system_logger.info(f"FILE_{operation.upper()}: {dados}")


def get_log_summary(log_type: str = "transactions", lines: int = 100) -> Optional[str]:
    """
    Últimas ``lines`` linhas de um dos arquivos de log.

    Retorna ``None`` com o logging desligado e uma mensagem curta quando o
    arquivo ainda não existe.
    """
    if not _habilitado():
        return None

    nome = _ARQUIVOS.get(log_type)
    log_file = LOGS_DIR / nome if nome else None
    if log_file is None or not log_file.exists():
        return f"Log {log_type} não encontrado."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            return ''.join(f.readlines()[-lines:])
    except OSError as e:
        return f"Erro ao ler log {log_type}: {e}"
