# insumos/adapters/cli.py
"""
CLI do ledger de insumos (Typer).

Comandos principais:
- migrate                       -> aplica migrações e cria views
- item criar/listar/config/desativar
- mov registrar/requisicao/inventario/importar/historico
- lotes vencendo/item/alertas
- compras gerar-lista/listas/lista/confirmar/cancelar/status
- compras sugestoes/gerar-sugestoes/decidir
- compras config show/set
- rel resumo/autonomia/desperdicio/categorias

Todos os comandos aceitam --db, --tenant e --usuario. Erros de domínio
saem com código 1.
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from insumos.config import DB_PATH
from insumos.domain.errors import EstoqueError
from insumos.domain.models import Escopo, LoteInfo
from insumos.infra.logger import log_file_operation
from insumos.infra.migrations import apply_migrations
from insumos.infra.views import create_views
from insumos.adapters.loader import load_movimentos_normalizados
from insumos.usecases import alertas, cadastro, lotes, movimentos, relatorios, reposicao


app = typer.Typer(help="Insumos: ledger de estoque e reposição")
console = Console()

# opções comuns
DB_OPT = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")
TENANT_OPT = typer.Option("default", "--tenant", envvar="INSUMOS_TENANT", help="Tenant (organização / centro de custo)")
USUARIO_OPT = typer.Option(None, "--usuario", envvar="INSUMOS_USUARIO", help="Usuário responsável")


# -----------------------
# util
# -----------------------

def _escopo(tenant: str, usuario: Optional[str]) -> Escopo:
    return Escopo(tenant_id=tenant, usuario_id=usuario)


def _executar(fn: Callable[[], Any]) -> Any:
    """Executa o caso de uso convertendo erros de domínio em saída 1."""
    try:
        return fn()
    except (EstoqueError, ValueError) as e:
        console.print(f"[bold red]Erro:[/] {e}")
        raise typer.Exit(code=1)


def _print_json(obj) -> None:
    """Fallback para impressão de JSON quando necessário."""
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _fmt(val: Any) -> str:
    if isinstance(val, bool):
        return "sim" if val else "não"
    if isinstance(val, (int, float)):
        if isinstance(val, int):
            return str(val)
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    if isinstance(val, datetime):
        return val.strftime("%d/%m/%Y %H:%M")
    if val is None:
        return ""
    return str(val)


def _as_rows(data: Any) -> Any:
    if is_dataclass(data):
        return asdict(data)
    if isinstance(data, list) and data and is_dataclass(data[0]):
        return [asdict(d) for d in data]
    return data


def _display_table(data: Any, title: str = "Resultado") -> None:
    """Exibe os dados em tabelas formatadas usando Rich."""
    # relatórios tabulares: (colunas, linhas, mensagem)
    if isinstance(data, tuple) and len(data) == 3:
        columns, rows, msg = data
        if not rows:
            console.print(Panel(msg or "Nenhum dado encontrado", title=title, border_style="yellow"))
            return
        table = Table(title=title, box=box.ROUNDED)
        for col in columns:
            table.add_column(str(col))
        for row in rows:
            table.add_row(*[_fmt(v) for v in row])
        console.print(table)
        return

    data = _as_rows(data)
    if not data:
        console.print(Panel("Nenhum dado encontrado", title=title, border_style="yellow"))
        return

    if isinstance(data, list) and isinstance(data[0], dict):
        table = Table(title=title, box=box.ROUNDED)
        columns = [c for c in data[0].keys() if not isinstance(data[0][c], (list, dict))]
        for column in columns:
            if column in ("quantidade", "estoque_atual", "custo_unitario", "custo_total", "valor", "quantidade_restante"):
                table.add_column(column, justify="right")
            else:
                table.add_column(column)
        for row in data:
            values = []
            for col in columns:
                val = row.get(col, "")
                if col in ("prioridade", "severidade", "status") and val in ("URGENT", "CRITICAL", "CANCELADO"):
                    values.append(f"[bold red]{val}[/]")
                elif col in ("prioridade", "severidade", "status") and val in ("HIGH", "PARCIAL", "EM_ANDAMENTO"):
                    values.append(f"[bold yellow]{val}[/]")
                else:
                    values.append(_fmt(val))
            table.add_row(*values)
        console.print(table)
        return

    if isinstance(data, dict):
        table = Table(title=title, box=box.ROUNDED, show_header=False)
        table.add_column("Campo", style="bold")
        table.add_column("Valor")
        aninhados = {}
        for k, v in data.items():
            if isinstance(v, list):
                aninhados[k] = v
                continue
            table.add_row(k, _fmt(v))
        console.print(table)
        for k, v in aninhados.items():
            if v:
                _display_table(v, title=k)
        return

    # Fallback para outros formatos de dados - usar JSON
    _print_json(data)


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = DB_OPT):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


# -----------------------
# itens
# -----------------------

item_app = typer.Typer(help="Cadastro de itens (insumos)")
app.add_typer(item_app, name="item")


@item_app.command("criar")
def cmd_item_criar(
    nome: str = typer.Argument(..., help="Nome do item"),
    unidade: str = typer.Option("UN", help="Unidade base (KG, L, UN, ...)"),
    categoria: Optional[str] = typer.Option(None, help="Categoria"),
    ponto_manual: Optional[float] = typer.Option(None, help="Ponto de reposição manual"),
    lead_time: int = typer.Option(1, help="Lead time do fornecedor em dias"),
    perecivel: bool = typer.Option(False, "--perecivel/--nao-perecivel"),
    materia_prima: bool = typer.Option(True, "--materia-prima/--revenda"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Cria um item com estoque zero."""
    item = _executar(lambda: cadastro.criar_item(
        _escopo(tenant, usuario), nome,
        unidade_base=unidade, categoria=categoria, ponto_reposicao_manual=ponto_manual,
        lead_time_dias=lead_time, perecivel=perecivel, materia_prima=materia_prima,
        db_path=db_path,
    ))
    typer.echo(f">> Item criado: {item.id} - {item.nome}")


@item_app.command("listar")
def cmd_item_listar(
    todos: bool = typer.Option(False, "--todos", help="Inclui itens inativos"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Lista os itens do tenant."""
    itens = cadastro.listar_itens(_escopo(tenant, usuario), apenas_ativos=not todos, db_path=db_path)
    rows = [
        {
            "id": i.id, "nome": i.nome, "categoria": i.categoria or "", "unidade": i.unidade_base,
            "estoque_atual": i.estoque_atual, "custo_medio": i.custo_medio,
            "ponto_reposicao": i.ponto_reposicao_manual if i.ponto_reposicao_manual is not None else i.ponto_reposicao,
            "ativo": i.ativo,
        }
        for i in itens
    ]
    _display_table(rows, title="Itens")


@item_app.command("config")
def cmd_item_config(
    item_id: int = typer.Argument(...),
    nome: Optional[str] = typer.Option(None),
    categoria: Optional[str] = typer.Option(None),
    ponto_manual: Optional[float] = typer.Option(None, help="Define o ponto de reposição manual"),
    limpar_ponto: bool = typer.Option(False, "--limpar-ponto", help="Remove o ponto manual"),
    lead_time: Optional[int] = typer.Option(None),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Atualiza dados de cadastro e de reposição do item."""
    campos: Dict[str, Any] = {}
    if nome is not None:
        campos["nome"] = nome
    if categoria is not None:
        campos["categoria"] = categoria
    if ponto_manual is not None:
        campos["ponto_reposicao_manual"] = ponto_manual
    if limpar_ponto:
        campos["ponto_reposicao_manual"] = None
    if lead_time is not None:
        campos["lead_time_dias"] = lead_time
    if not campos:
        typer.echo("Nada a alterar. Informe pelo menos um campo.")
        raise typer.Exit(code=1)
    item = _executar(lambda: cadastro.configurar_item(_escopo(tenant, usuario), item_id, db_path=db_path, **campos))
    _display_table(item, title=f"Item {item.id}")


@item_app.command("desativar")
def cmd_item_desativar(
    item_id: int = typer.Argument(...),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Desativa o item (o histórico é mantido)."""
    _executar(lambda: cadastro.desativar_item(_escopo(tenant, usuario), item_id, db_path=db_path))
    typer.echo(f">> Item {item_id} desativado.")


# -----------------------
# movimentos
# -----------------------

mov_app = typer.Typer(help="Movimentos de estoque (ledger)")
app.add_typer(mov_app, name="mov")


def _alerta_no_console(alerta) -> None:
    cor = "red" if alerta.severidade == "CRITICAL" else "yellow"
    console.print(Panel(alerta.mensagem, title=alerta.titulo, border_style=cor))
    alertas.registrar_no_log(alerta)


@mov_app.command("registrar")
def cmd_mov_registrar(
    item_id: int = typer.Argument(...),
    tipo: str = typer.Argument(..., help="IN | OUT | ADJUSTMENT | WASTE | RETURN | PRODUCTION"),
    quantidade: float = typer.Argument(...),
    custo: Optional[float] = typer.Option(None, help="Custo unitário"),
    unidade: Optional[str] = typer.Option(None),
    direcao: Optional[str] = typer.Option(None, help="in | out (ADJUSTMENT e PRODUCTION)"),
    lote: Optional[str] = typer.Option(None, help="Número do lote (IN)"),
    validade: Optional[str] = typer.Option(None, help="Validade do lote YYYY-MM-DD (IN)"),
    lote_id: Optional[int] = typer.Option(None, help="Lote a consumir primeiro (saídas)"),
    fornecedor: Optional[str] = typer.Option(None),
    nf: Optional[str] = typer.Option(None, help="Nota fiscal"),
    obs: Optional[str] = typer.Option(None, help="Observação"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Registra um movimento de estoque."""
    info = None
    if lote or validade or lote_id:
        info = LoteInfo(numero_lote=lote, data_validade=validade, lote_id=lote_id)
    mov = _executar(lambda: movimentos.registrar_movimento(
        _escopo(tenant, usuario), item_id, tipo, quantidade,
        unidade=unidade, custo_unitario=custo, lote=info, direcao=direcao,
        fornecedor_id=fornecedor, nota_fiscal=nf, observacao=obs,
        alert_sink=_alerta_no_console, db_path=db_path,
    ))
    _display_table(mov, title=f"Movimento {mov.id}")


@mov_app.command("inventario")
def cmd_mov_inventario(
    item_id: int = typer.Argument(...),
    contada: float = typer.Argument(..., help="Quantidade contada"),
    obs: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Concilia o estoque do item com a contagem física."""
    mov = _executar(lambda: movimentos.reconciliar(
        _escopo(tenant, usuario), item_id, contada, observacao=obs,
        alert_sink=_alerta_no_console, db_path=db_path,
    ))
    if mov is None:
        typer.echo(">> Sem diferença. Nenhum ajuste registrado.")
        return
    _display_table(mov, title=f"Ajuste de inventário {mov.id}")


def _linhas_requisicao(itens: List[str]) -> List[Dict[str, Any]]:
    """``ITEM:QTD`` ou ``ITEM:QTD:LOTE`` -> linhas da requisição."""
    linhas = []
    for bruto in itens:
        partes = bruto.split(":")
        if len(partes) not in (2, 3):
            raise ValueError(f"item da requisição inválido: {bruto!r} (use ITEM:QTD ou ITEM:QTD:LOTE)")
        linha: Dict[str, Any] = {"item_id": int(partes[0]), "quantidade": float(partes[1])}
        if len(partes) == 3:
            linha["lote_id"] = int(partes[2])
        linhas.append(linha)
    return linhas


@mov_app.command("requisicao")
def cmd_mov_requisicao(
    itens: List[str] = typer.Argument(..., help="ITEM:QTD[:LOTE] por item requisitado"),
    centro_custo: Optional[str] = typer.Option(None, "--centro-custo", help="Setor que requisita"),
    solicitante: Optional[str] = typer.Option(None, help="Quem requisita"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Saída de vários itens numa única requisição (tudo ou nada)."""
    res = _executar(lambda: movimentos.registrar_requisicao(
        _escopo(tenant, usuario), _linhas_requisicao(itens),
        centro_custo=centro_custo, solicitante=solicitante,
        alert_sink=_alerta_no_console, db_path=db_path,
    ))
    rows = [
        {"movimento": m.id, "item_id": m.item_id, "quantidade": m.quantidade,
         "lote_id": m.lote_id or "", "estoque_depois": m.estoque_depois}
        for m in res["movimentos"]
    ]
    _display_table(rows, title=f"Requisição {res['requisicao_id']}")


@mov_app.command("importar")
def cmd_mov_importar(
    path: str = typer.Argument(..., help="CSV/XLSX com movimentos normalizados"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Importa entradas de um arquivo normalizado."""
    log_file_operation("import", path)
    linhas = _executar(lambda: load_movimentos_normalizados(path))
    log_file_operation("import", path, rows_processed=len(linhas))
    res = _executar(lambda: movimentos.registrar_importacao(_escopo(tenant, usuario), linhas, db_path=db_path))
    console.print(Panel(
        "\n".join([
            f"Total de linhas: {res['linhas']}",
            f"Movimentos gravados: {len(res['movimentos'])}",
            f"Itens criados: {len(res['itens_criados'])}",
        ]),
        title="Importação",
    ))


@mov_app.command("historico")
def cmd_mov_historico(
    item_id: int = typer.Argument(...),
    limite: Optional[int] = typer.Option(None, help="Últimos N movimentos"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Histórico de movimentos do item."""
    movs = _executar(lambda: movimentos.listar_movimentos(_escopo(tenant, usuario), item_id, limite=limite, db_path=db_path))
    rows = [
        {
            "id": m.id, "criado_em": m.criado_em, "tipo": m.tipo, "quantidade": m.sentido * m.quantidade,
            "custo_unitario": m.custo_unitario, "estoque_antes": m.estoque_antes,
            "estoque_depois": m.estoque_depois, "lote_id": m.lote_id or "", "referencia": m.referencia_tipo or "",
        }
        for m in movs
    ]
    _display_table(rows, title=f"Histórico do item {item_id}")


# -----------------------
# lotes
# -----------------------

lotes_app = typer.Typer(help="Lotes perecíveis")
app.add_typer(lotes_app, name="lotes")


@lotes_app.command("vencendo")
def cmd_lotes_vencendo(
    dias: int = typer.Option(15, help="Janela em dias"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Lotes com saldo que vencem dentro da janela."""
    res = _executar(lambda: lotes.listar_lotes_a_vencer(_escopo(tenant, usuario), dias, db_path=db_path))
    _display_table(res, title=f"Lotes a vencer (próximos {dias} dias)")


@lotes_app.command("item")
def cmd_lotes_item(
    item_id: int = typer.Argument(...),
    todos: bool = typer.Option(False, "--todos", help="Inclui lotes esgotados"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Lotes de um item."""
    res = _executar(lambda: lotes.listar_lotes_item(_escopo(tenant, usuario), item_id, apenas_com_saldo=not todos, db_path=db_path))
    _display_table(res, title=f"Lotes do item {item_id}")


@lotes_app.command("alertas")
def cmd_lotes_alertas(
    dias: int = typer.Option(15, help="Janela em dias"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Emite alertas de vencimento para os lotes da janela."""
    res = _executar(lambda: alertas.alertas_lotes_a_vencer(_escopo(tenant, usuario), dias, db_path=db_path))
    rows = [
        {"lote_id": a.lote_id, "item_id": a.item_id, "severidade": a.severidade, "mensagem": a.mensagem}
        for a in res
    ]
    _display_table(rows, title="Alertas de vencimento")


# -----------------------
# compras (reposição)
# -----------------------

compras_app = typer.Typer(help="Listas de compra e sugestões")
app.add_typer(compras_app, name="compras")


@compras_app.command("gerar-lista")
def cmd_compras_gerar_lista(
    gatilho: str = typer.Option("MANUAL", help="MANUAL | ESTOQUE_CRITICO | DATA_FIXA | POS_INVENTARIO"),
    descricao: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Gera a lista de compras pelo ponto de reposição."""
    lista = _executar(lambda: reposicao.gerar_lista_compra(
        _escopo(tenant, usuario), tipo_gatilho=gatilho, descricao=descricao, observacao=obs, db_path=db_path,
    ))
    if lista is None:
        typer.echo(">> Nenhum item abaixo do ponto de reposição.")
        return
    _display_table(lista.itens, title=f"{lista.descricao} (#{lista.id})")


@compras_app.command("listas")
def cmd_compras_listas(
    status: Optional[str] = typer.Option(None),
    gatilho: Optional[str] = typer.Option(None),
    pagina: int = typer.Option(1),
    limite: int = typer.Option(20),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Listas de compra do tenant (mais recentes primeiro)."""
    res = reposicao.listar_listas(
        _escopo(tenant, usuario), status=status, tipo_gatilho=gatilho, pagina=pagina, limite=limite, db_path=db_path,
    )
    _display_table(res["listas"], title=f"Listas de compra (página {res['pagina']}/{max(res['paginas'], 1)})")


@compras_app.command("lista")
def cmd_compras_lista(
    lista_id: int = typer.Argument(...),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Detalhe de uma lista de compras."""
    lista = _executar(lambda: reposicao.obter_lista(_escopo(tenant, usuario), lista_id, db_path=db_path))
    _display_table(lista, title=f"{lista.descricao} [{lista.status}]")


@compras_app.command("confirmar")
def cmd_compras_confirmar(
    item_lista_id: int = typer.Argument(...),
    quantidade: float = typer.Argument(...),
    preco: Optional[float] = typer.Option(None, help="Preço unitário pago"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Confirma a chegada de um item da lista (gera a entrada no estoque)."""
    it = _executar(lambda: reposicao.confirmar_chegada(
        _escopo(tenant, usuario), item_lista_id, quantidade, preco_compra=preco, db_path=db_path,
    ))
    typer.echo(f">> Item {it.id} {it.status} (movimento {it.movimento_id}).")


@compras_app.command("cancelar")
def cmd_compras_cancelar(
    item_lista_id: int = typer.Argument(...),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Cancela um item da lista."""
    it = _executar(lambda: reposicao.cancelar_item(_escopo(tenant, usuario), item_lista_id, db_path=db_path))
    typer.echo(f">> Item {it.id} {it.status}.")


@compras_app.command("status")
def cmd_compras_status(
    lista_id: int = typer.Argument(...),
    status: str = typer.Argument(..., help="ABERTA | EM_ANDAMENTO | CONCLUIDA | CANCELADA"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Altera o status de uma lista."""
    lista = _executar(lambda: reposicao.atualizar_status_lista(_escopo(tenant, usuario), lista_id, status, db_path=db_path))
    typer.echo(f">> Lista {lista.id}: {lista.status}")


@compras_app.command("sugestoes")
def cmd_compras_sugestoes(
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Sugestões de compra pendentes."""
    res = reposicao.listar_sugestoes(_escopo(tenant, usuario), db_path=db_path)
    _display_table(res, title="Sugestões de compra")


@compras_app.command("gerar-sugestoes")
def cmd_compras_gerar_sugestoes(
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Recalcula as sugestões pela velocidade de consumo."""
    res = _executar(lambda: reposicao.gerar_sugestoes(_escopo(tenant, usuario), db_path=db_path))
    _display_table(res, title="Sugestões de compra")


@compras_app.command("decidir")
def cmd_compras_decidir(
    sugestao_id: int = typer.Argument(...),
    aceitar: bool = typer.Option(True, "--aceitar/--recusar"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Aceita ou recusa uma sugestão."""
    sug = _executar(lambda: reposicao.decidir_sugestao(_escopo(tenant, usuario), sugestao_id, aceitar, db_path=db_path))
    typer.echo(f">> Sugestão {sug.id} {'aceita' if sug.aceita else 'recusada'}.")


config_app = typer.Typer(help="Política de compras do tenant")
compras_app.add_typer(config_app, name="config")


@config_app.command("show")
def cmd_config_show(
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Exibe a política de compras efetiva."""
    cfg = reposicao.obter_config(_escopo(tenant, usuario), db_path=db_path)
    out = asdict(cfg)
    out["dias_semana"] = ",".join(str(d) for d in cfg.dias_semana)
    out["dias_mes"] = ",".join(str(d) for d in cfg.dias_mes)
    _display_table(out, title="Política de compras")
    console.print(f"[dim]Banco de dados: {db_path}[/dim]")


def _lista_int(s: Optional[str]) -> Optional[List[int]]:
    if s is None:
        return None
    return [int(x) for x in s.replace(";", ",").split(",") if x.strip()]


@config_app.command("set")
def cmd_config_set(
    pos_inventario: Optional[bool] = typer.Option(None, "--pos-inventario/--sem-pos-inventario"),
    estoque_critico: Optional[bool] = typer.Option(None, "--estoque-critico/--sem-estoque-critico"),
    percentual_critico: Optional[float] = typer.Option(None),
    datas_fixas: Optional[bool] = typer.Option(None, "--datas-fixas/--sem-datas-fixas"),
    recorrencia: Optional[str] = typer.Option(None, help="NENHUM | SEMANAL | MENSAL"),
    dias_semana: Optional[str] = typer.Option(None, help="Ex.: 1,3,5 (0=domingo)"),
    dias_mes: Optional[str] = typer.Option(None, help="Ex.: 1,15"),
    janela_consumo: Optional[int] = typer.Option(None, help="Janela de consumo em dias"),
    fator_seguranca: Optional[float] = typer.Option(None),
    cobertura_alvo: Optional[int] = typer.Option(None, help="Dias de cobertura alvo"),
    confianca: Optional[float] = typer.Option(None),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Atualiza a política de compras (apenas os campos informados)."""
    campos = {
        "gatilho_pos_inventario": pos_inventario,
        "gatilho_estoque_critico": estoque_critico,
        "percentual_estoque_critico": percentual_critico,
        "gatilho_datas_fixas": datas_fixas,
        "recorrencia": recorrencia,
        "dias_semana": _lista_int(dias_semana),
        "dias_mes": _lista_int(dias_mes),
        "janela_consumo_dias": janela_consumo,
        "fator_seguranca": fator_seguranca,
        "cobertura_alvo_dias": cobertura_alvo,
        "confianca": confianca,
    }
    campos = {k: v for k, v in campos.items() if v is not None}
    if not campos:
        typer.echo("Nada a alterar. Informe pelo menos um parâmetro.")
        raise typer.Exit(code=1)
    _executar(lambda: reposicao.atualizar_config(_escopo(tenant, usuario), db_path=db_path, **campos))
    typer.echo(">> Política de compras atualizada.")


# -----------------------
# relatórios
# -----------------------

rel_app = typer.Typer(help="Relatórios de estoque")
app.add_typer(rel_app, name="rel")


@rel_app.command("resumo")
def rel_resumo(
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Resumo do estoque (valor, itens baixos, entradas e saídas)."""
    res = relatorios.resumo_estoque(_escopo(tenant, usuario), db_path=db_path)
    _display_table(res, title="Resumo do estoque")


@rel_app.command("autonomia")
def rel_autonomia(
    horizonte: int = typer.Option(7, help="Dias de cobertura máxima"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Itens com baixa autonomia ou abaixo do ponto de reposição."""
    res = relatorios.relatorio_baixa_autonomia(_escopo(tenant, usuario), horizonte_dias=horizonte, db_path=db_path)
    _display_table(res, title=f"Baixa autonomia (até {horizonte} dias)")


@rel_app.command("desperdicio")
def rel_desperdicio(
    dias: int = typer.Option(30, help="Período em dias"),
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Perdas registradas no período."""
    res = relatorios.relatorio_desperdicio(_escopo(tenant, usuario), dias=dias, db_path=db_path)
    console.print(Panel(
        f"Registros: {res['total_registros']}\nValor total: {_fmt(res['valor_total'])}",
        title=f"Desperdício (últimos {dias} dias)",
    ))
    _display_table(res["top_itens"], title="Top itens por valor")


@rel_app.command("categorias")
def rel_categorias(
    db_path: str = DB_OPT,
    tenant: str = TENANT_OPT,
    usuario: Optional[str] = USUARIO_OPT,
):
    """Valor em estoque por categoria."""
    res = relatorios.valor_por_categoria(_escopo(tenant, usuario), db_path=db_path)
    _display_table(res, title="Valor por categoria")


# Entry point opcional:
def main():
    app()


if __name__ == "__main__":
    main()
