#!/usr/bin/env python3
"""
Knowledge Relation Discovery - scheduler entry point
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from relation_discovery.config import load_config, load_env_file
from relation_discovery.discovery import DiscoveryTaskProcessor, RelationDiscoveryService
from relation_discovery.discovery.models import DiscoveryResult, TaskOutcome
from relation_discovery.exceptions import ConfigurationError, KnowledgeNotFoundError
from relation_discovery.kb import KnowledgeRepositoryClient
from relation_discovery.models.llm_manager import LLMManager

# Setup logger
logger = logging.getLogger(__name__)


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    log_level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers = [logging.StreamHandler()]
    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers)


class RelationDiscoverySystem:
    """Wires the repository client, LLM manager and discovery components together."""

    def __init__(self, config: dict):
        self.config = config
        self.console = Console()

        self.repository = KnowledgeRepositoryClient(config.get("repository", {}))
        self.llm_manager = LLMManager(config.get("llm", {}))
        self.discovery = RelationDiscoveryService(
            config.get("discovery", {}), self.repository, self.llm_manager
        )
        self.processor = DiscoveryTaskProcessor(
            config.get("tasks", {}), self.repository, self.discovery
        )

    async def close(self):
        await self.repository.close()
        await self.llm_manager.close()

    def display_discovery(self, result: DiscoveryResult):
        table = Table(title=f"Relation Discovery: {result.knowledge_id}")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Candidates Analyzed", str(result.candidates_analyzed))
        table.add_row("Relations Found", str(result.relations_found))
        table.add_row("Relations Saved", str(result.relations_saved))
        self.console.print(table)

    def display_outcomes(self, outcomes: List[TaskOutcome]):
        if not outcomes:
            self.console.print("[green]No pending discovery tasks.[/green]")
            return

        table = Table(title="Discovery Tasks")
        table.add_column("Task", style="cyan")
        table.add_column("Knowledge", style="white")
        table.add_column("Status", style="green")
        table.add_column("Found", style="blue")
        table.add_column("Saved", style="magenta")
        table.add_column("Time (ms)", style="dim")

        for outcome in outcomes:
            result = outcome.result
            table.add_row(
                outcome.task_id,
                outcome.knowledge_id,
                outcome.status.value,
                str(result.relations_found) if result else "-",
                str(result.relations_saved) if result else "-",
                str(outcome.processing_time_ms),
            )
        self.console.print(table)

        for outcome in outcomes:
            if outcome.error:
                self.console.print(f"  • [red]{outcome.task_id}[/red]: {outcome.error}")


def build_system(ctx) -> RelationDiscoverySystem:
    try:
        return RelationDiscoverySystem(ctx.obj['config'])
    except ConfigurationError as e:
        raise click.ClickException(f"Configuration error: {e}")


@click.group()
@click.option('--config', '-c', default='config/config.yaml', help='Configuration file path')
@click.option('--debug', '-d', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, debug):
    """Knowledge relation discovery CLI."""
    # Load environment variables first
    load_env_file()

    try:
        loaded = load_config(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if debug:
        loaded.setdefault("logging", {})["level"] = "DEBUG"
    setup_logging(loaded)

    ctx.ensure_object(dict)
    ctx.obj['config'] = loaded


@cli.command()
@click.argument('knowledge_id')
@click.pass_context
def discover(ctx, knowledge_id):
    """Discover relations for a single knowledge item."""
    system = build_system(ctx)

    async def run_discover():
        try:
            return await system.discovery.discover_relations_for_knowledge(knowledge_id)
        finally:
            await system.close()

    try:
        result = asyncio.run(run_discover())
    except KnowledgeNotFoundError as e:
        raise click.ClickException(str(e))
    system.display_discovery(result)


@cli.command()
@click.option('--limit', '-l', type=int, default=None, help='Maximum number of tasks to process')
@click.pass_context
def process_tasks(ctx, limit: Optional[int]):
    """Process pending relation discovery tasks."""
    system = build_system(ctx)

    async def run_batch():
        try:
            return await system.processor.process_pending_tasks(limit)
        finally:
            await system.close()

    outcomes = asyncio.run(run_batch())
    system.display_outcomes(outcomes)


@cli.command()
@click.pass_context
def health(ctx):
    """Check that the knowledge repository API is reachable."""
    async def run_check():
        async with KnowledgeRepositoryClient(ctx.obj['config'].get("repository", {})) as repository:
            return await repository.health_check()

    console = Console()
    if asyncio.run(run_check()):
        console.print("[green]✅ Knowledge repository is reachable[/green]")
    else:
        console.print("[red]❌ Knowledge repository is not reachable[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
