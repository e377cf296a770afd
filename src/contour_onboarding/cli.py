"""CLI entry point using Hydra.

Usage examples:
  contour-onboarding mode=serve port=3000
  contour-onboarding mode=chat customer_id=acme customer_name="Acme Corp" \
      stakeholder_name=Dana stakeholder_role=Controller
  contour-onboarding mode=chat session_id=<id>
  contour-onboarding mode=show session_id=<id>
  contour-onboarding mode=approve session_id=<id>
  contour-onboarding mode=export session_id=<id>
"""

from __future__ import annotations

import sys
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_azure_fallbacks, apply_service_fallbacks
from .errors import OnboardingError
from .logging_config import RichCallbacks, console, setup_logging
from .models import AgentConfig, ContourMap, HierarchyNode
from .tools.contour_store import completeness_score, count_nodes

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic AgentConfig bridge
# ---------------------------------------------------------------------------


def _to_agent_config(cfg: DictConfig) -> AgentConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``AgentConfig``.

    CLI-only keys (``mode``, ``session_id``, etc.) are stripped before validation.
    Azure and collaborator env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = AgentConfig.model_validate(container)
    return apply_service_fallbacks(apply_azure_fallbacks(config))


def _build_service(config: AgentConfig, *, verbose: bool = False):
    from .service import OnboardingService
    from .tools.scraper import SecFilingsScraper
    from .tools.system_clients import SystemClients

    return OnboardingService(
        config,
        clients=SystemClients.from_config(config),
        scraper=SecFilingsScraper(timeout=config.lookup_timeout),
        callbacks=RichCallbacks(verbose=verbose),
    )


def _require_session_id(cfg: DictConfig) -> str:
    session_id = cfg.get("session_id")
    if not session_id:
        console.print(f"[red]session_id is required for {cfg.get('mode')} mode[/]")
        sys.exit(1)
    return str(session_id)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _add_display_children(tree: Tree, children: list[dict[str, Any]]) -> None:
    for child in children:
        branch = tree.add(str(child.get("name", "")))
        _add_display_children(branch, child.get("children") or [])


def render_rich_content(item: dict[str, Any]) -> None:
    """Print one table, hierarchy or comparison payload."""
    kind = item.get("type")
    if kind == "table":
        table = Table(title=item.get("title") or None)
        for header in item.get("headers", []):
            table.add_column(str(header))
        for row in item.get("rows", []):
            table.add_row(*[str(cell) for cell in row])
        console.print(table)
    elif kind == "hierarchy":
        root = item.get("root") or {}
        tree = Tree(f"[bold]{item.get('title') or 'Hierarchy'}[/]")
        branch = tree.add(str(root.get("name", "")))
        _add_display_children(branch, root.get("children") or [])
        console.print(tree)
    elif kind == "comparison":
        table = Table(title=f"Comparison: {item.get('dimension', '')}")
        table.add_column("System")
        table.add_column("Value")
        table.add_column("Match")
        for entry in item.get("systems", []):
            mark = "[green]yes[/]" if entry.get("is_match") else "[red]no[/]"
            table.add_row(str(entry.get("system", "")), str(entry.get("value", "")), mark)
        console.print(table)


def _node_tree(tree: Tree, nodes: list[HierarchyNode]) -> None:
    for node in nodes:
        branch = tree.add(f"{node.name} [dim]({node.type.value}, {node.confidence:.0%})[/]")
        _node_tree(branch, node.children)


def render_contour_summary(contour_map: ContourMap) -> None:
    meta = contour_map.metadata
    console.print(Panel(
        f"Version: {meta.version}\n"
        f"Completeness: {completeness_score(contour_map)}%\n"
        f"Hierarchy nodes: {count_nodes(contour_map.organizational_hierarchy)}\n"
        f"Systems of record: {len(contour_map.sor_authority_map)}\n"
        f"Conflicts: {len(contour_map.conflict_register)}\n"
        f"Vocabulary terms: {len(contour_map.vocabulary_map)}\n"
        f"Priority queries: {len(contour_map.priority_queries)}\n"
        f"Follow-up tasks: {len(contour_map.follow_up_tasks)}",
        title="Contour map",
    ))
    if contour_map.organizational_hierarchy:
        tree = Tree("[bold]Organizational hierarchy[/]")
        _node_tree(tree, contour_map.organizational_hierarchy)
        console.print(tree)
    if contour_map.sor_authority_map:
        table = Table(title="System of record authority")
        table.add_column("Dimension")
        table.add_column("System")
        table.add_column("Confidence")
        for entry in contour_map.sor_authority_map:
            table.add_row(entry.dimension, entry.system, f"{entry.confidence:.0%}")
        console.print(table)
    for task in contour_map.follow_up_tasks:
        console.print(f"  [yellow]follow-up[/] [{task.section or '-'}] {task.description}")


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _serve_mode(cfg: DictConfig) -> None:
    import uvicorn

    from .api import create_app

    config = _to_agent_config(cfg)
    service = _build_service(config, verbose=cfg.get("verbose", False))
    console.print(f"[bold]Serving contour onboarding on {config.host}:{config.port}[/]")
    uvicorn.run(create_app(service), host=config.host, port=config.port)


def _chat_mode(cfg: DictConfig) -> None:
    config = _to_agent_config(cfg)
    service = _build_service(config, verbose=cfg.get("verbose", False))

    session_id = cfg.get("session_id")
    try:
        if session_id:
            session = service.get_session(str(session_id))
        else:
            session = service.create_session(
                str(cfg.get("customer_id") or ""),
                str(cfg.get("customer_name") or ""),
                str(cfg.get("stakeholder_name") or ""),
                str(cfg.get("stakeholder_role") or ""),
            )
            console.print(f"[green]Created session {session.id}[/]")
    except OnboardingError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)

    console.print(f"[bold]Interview with {session.stakeholder_name} ({session.customer_name})[/]")
    console.print("[dim]Type /quit to leave, /contour to show the map.[/]")
    while True:
        try:
            content = console.input("[bold cyan]you>[/] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        command = content.strip()
        if command in ("/quit", "/exit"):
            break
        if command == "/contour":
            render_contour_summary(service.get_contour(session.id))
            continue
        if not command:
            continue
        try:
            result = service.send_message(session.id, content)
        except OnboardingError as exc:
            console.print(f"[red]{exc}[/]")
            continue
        console.print(f"[bold magenta]agent>[/] {result.agent_message}")
        for item in result.rich_content:
            render_rich_content(item)
        console.print(
            f"[dim]section {result.section.value} · {result.session_status.value} · "
            f"{result.contour_completeness}% complete[/]"
        )
        if result.session_status.value == "COMPLETE":
            console.print("[bold green]Interview complete.[/]")
            break


def _show_mode(cfg: DictConfig) -> None:
    config = _to_agent_config(cfg)
    service = _build_service(config)
    try:
        session = service.get_session(_require_session_id(cfg))
    except OnboardingError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)
    console.print(
        f"[bold]{session.customer_name}[/] / {session.stakeholder_name} "
        f"({session.status.value}, section {session.current_section.value})"
    )
    render_contour_summary(session.contour_map)


def _approve_mode(cfg: DictConfig) -> None:
    config = _to_agent_config(cfg)
    service = _build_service(config)
    try:
        contour_map = service.approve_contour(_require_session_id(cfg))
    except OnboardingError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)
    console.print(f"[bold green]Contour map approved (version {contour_map.metadata.version}).[/]")


def _export_mode(cfg: DictConfig) -> None:
    config = _to_agent_config(cfg)
    service = _build_service(config)
    try:
        result = service.export_contour(_require_session_id(cfg))
    except OnboardingError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)
    if result.success:
        console.print(f"[bold green]Exported to graph {result.graph_id}[/]")
        console.print(f"  Nodes: {result.nodes_created}  Edges: {result.edges_created}")
        for warning in result.warnings:
            console.print(f"  [yellow]{warning}[/]")
    else:
        console.print(f"[bold red]Export failed:[/] {result.error}")
        sys.exit(1)


_MODE_DISPATCH: dict[str, Any] = {
    "serve": _serve_mode,
    "chat": _chat_mode,
    "show": _show_mode,
    "approve": _approve_mode,
    "export": _export_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "serve")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
