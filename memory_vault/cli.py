"""Command-line interface for Memory Vault AI.

A thin front end over ``AIService``: it plays the part of the UI layer,
rendering whatever comes back, including degraded results.

Built with Click for commands and Rich for terminal output.

Usage:
    memory-vault status
    memory-vault analyze "I had an amazing trip with my family"
    memory-vault transcribe ./note.wav
    memory-vault insights ./memories.json
    memory-vault config set-key groq
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from memory_vault import __version__
from memory_vault.ai.service import AIService, TranscriptionError, build_provider
from memory_vault.config import (
    PROVIDER_PREFERENCE,
    APIKeyManager,
    APIKeyNotFoundError,
    AppConfig,
    ConfigurationError,
    KeyStorageBackend,
    ProviderName,
    configure_api_key,
    get_api_key,
    get_config,
    get_key_manager,
)
from memory_vault.models import AnalysisResult, CollectionInsight, MemoryRecord
from memory_vault.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()

PROVIDER_CHOICE = click.Choice([p.value for p in PROVIDER_PREFERENCE])

KEY_SIGNUP_URLS = {
    ProviderName.GROQ: "https://console.groq.com/keys",
    ProviderName.GEMINI: "https://aistudio.google.com/app/apikey",
    ProviderName.HUGGINGFACE: "https://huggingface.co/settings/tokens",
}


# =============================================================================
# Helper Functions
# =============================================================================


def print_header(text: str) -> None:
    console.print()
    console.print(Panel(text, style="bold blue", expand=False))
    console.print()


def print_success(text: str) -> None:
    console.print(f"[green]✓[/green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[red]✗[/red] {text}")


def print_info(text: str) -> None:
    console.print(f"[blue]ℹ[/blue] {text}")


def _config_path(ctx: click.Context) -> Path:
    return ctx.obj.get("config_path") or AppConfig.get_default_config_path()


def _load_config(ctx: click.Context) -> AppConfig:
    return get_config(_config_path(ctx))


def _run(coro: Any) -> Any:
    return asyncio.run(coro)


async def _with_service(config: AppConfig, action: Any) -> Any:
    async with AIService(config) as service:
        return service, await action(service)


def _render_analysis(result: AnalysisResult, provider_name: str) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Sentiment", result.sentiment.value)
    table.add_row("Mood", result.mood.value)
    table.add_row("Tags", ", ".join(result.suggested_tags) or "-")
    table.add_row("Keywords", ", ".join(result.keywords) or "-")
    table.add_row("Themes", ", ".join(result.themes) or "-")
    table.add_row("Tone", result.emotional_tone)
    table.add_row("Summary", result.summary)
    table.add_row("Confidence", f"{result.confidence:.2f}")

    console.print(Panel(table, title=f"Analysis ({provider_name})", expand=False))
    if result.is_fallback:
        print_warning("Basic analysis only. Configure an AI provider for richer insights.")


def _render_insights(insights: list[CollectionInsight]) -> None:
    table = Table(show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Description")
    table.add_column("Confidence", justify="right")

    for insight in insights:
        table.add_row(
            insight.kind.value,
            insight.title,
            insight.description,
            f"{insight.confidence:.2f}",
        )
    console.print(table)


def _load_memories(path: Path) -> list[MemoryRecord]:
    """Read a JSON array of memories.

    Raises:
        click.ClickException: If the file is not a valid memory list.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Could not read memories from {path}: {e}")

    if isinstance(data, dict) and "memories" in data:
        data = data["memories"]
    if not isinstance(data, list):
        raise click.ClickException("Memories file must contain a JSON array")

    try:
        return [MemoryRecord.model_validate(item) for item in data]
    except ValidationError as e:
        raise click.ClickException(f"Invalid memory record: {e.errors()[0]['msg']}")


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="Memory Vault AI")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Path to config file")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs (keys redacted) to this file",
)
@click.pass_context
def cli(
    ctx: click.Context, verbose: bool, config_path: Path | None, log_file: Path | None
) -> None:
    """Memory Vault AI - transcribe, analyze and explore your voice memories.

    Quick start:
        memory-vault config set-key groq
        memory-vault analyze "Today I went hiking with friends"

    For more information on a command:
        memory-vault COMMAND --help
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path

    setup_logging("DEBUG" if verbose else "WARNING", log_file=log_file)


# =============================================================================
# Service Commands
# =============================================================================


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the active AI provider and available features."""
    service = AIService(_load_config(ctx))
    try:
        state = service.get_configuration_status()
    finally:
        _run(service.aclose())

    print_header("Memory Vault AI")
    console.print(f"Provider: [bold]{state.provider_name}[/bold]")

    table = Table(show_header=True)
    table.add_column("Feature", style="cyan")
    table.add_column("Available")
    for feature, available in state.features.model_dump().items():
        table.add_row(feature.capitalize(), "[green]yes[/green]" if available else "[dim]no[/dim]")
    console.print(table)

    if not state.has_ai_provider:
        print_warning("No AI provider configured. Using basic analysis.")
        console.print("  Run: [bold]memory-vault config set-key groq[/bold]")


@cli.command()
@click.argument("content")
@click.option("--title", "-t", help="Optional memory title")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(ctx: click.Context, content: str, title: str | None, as_json: bool) -> None:
    """Analyze the text of a memory."""
    service, result = _run(
        _with_service(_load_config(ctx), lambda s: s.analyze(content, title))
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    _render_analysis(result, result.provider or service.provider_name)


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mime-type", default=None, help="Audio MIME type (guessed from extension)")
@click.pass_context
def transcribe(ctx: click.Context, audio_file: Path, mime_type: str | None) -> None:
    """Transcribe a voice recording."""
    mime_type = mime_type or {
        ".wav": "audio/wav",
        ".mp3": "audio/mpeg",
        ".m4a": "audio/mp4",
        ".ogg": "audio/ogg",
        ".flac": "audio/flac",
    }.get(audio_file.suffix.lower(), "audio/webm")

    audio = audio_file.read_bytes()
    try:
        _, text = _run(
            _with_service(_load_config(ctx), lambda s: s.transcribe(audio, mime_type))
        )
    except TranscriptionError as e:
        print_error(str(e))
        ctx.exit(1)

    click.echo(text)


@cli.command()
@click.argument("memories_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print insights as JSON")
@click.pass_context
def insights(ctx: click.Context, memories_file: Path, as_json: bool) -> None:
    """Generate insights over a JSON file of memories."""
    memories = _load_memories(memories_file)
    _, results = _run(_with_service(_load_config(ctx), lambda s: s.summarize(memories)))

    if as_json:
        click.echo(json.dumps([insight.to_dict() for insight in results], indent=2))
        return
    _render_insights(results)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Manage configuration and API keys."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration (API keys are never shown)."""
    print_header("Current Configuration")

    app_config = _load_config(ctx)

    table = Table(show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in app_config.ai.model_dump().items():
        table.add_row(f"ai.{key}", str(value))
    table.add_row("speech.enabled", str(app_config.speech.enabled))
    table.add_row("speech.language", app_config.speech.language)
    table.add_row("privacy.local_only_mode", str(app_config.privacy.local_only_mode))
    table.add_row("key_storage_backend", app_config.key_storage_backend.value)
    console.print(table)

    console.print()
    for provider in PROVIDER_PREFERENCE:
        manager = get_key_manager(app_config, provider)
        if manager.is_key_configured():
            print_success(f"{provider.value} API key is configured")
        else:
            print_info(f"{provider.value} API key not configured")


@config.command("set-key")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.option(
    "--backend",
    type=click.Choice([b.value for b in KeyStorageBackend]),
    default=None,
    help="Where to store the key (defaults to the configured backend)",
)
@click.pass_context
def config_set_key(ctx: click.Context, provider: str, backend: str | None) -> None:
    """Securely store an API key for PROVIDER."""
    provider_name = ProviderName(provider)
    print_header(f"Configure {provider_name.value} API Key")
    url = KEY_SIGNUP_URLS[provider_name]
    console.print(f"Get a key at: [link={url}]{url}[/link]")
    console.print()

    api_key = Prompt.ask(f"Enter your {provider_name.value} API key", password=True)
    if not api_key:
        print_error("No API key provided.")
        ctx.exit(1)

    config_path = _config_path(ctx)
    storage = KeyStorageBackend(backend) if backend else get_config(config_path).key_storage_backend

    try:
        configure_api_key(provider_name, api_key.strip(), storage, config_path)
    except ConfigurationError as e:
        print_error(f"Failed to store API key: {e}")
        ctx.exit(1)

    print_success("API key stored successfully!")
    console.print(f"  Storage: {storage.value}")
    if storage == KeyStorageBackend.ENV:
        env_var = APIKeyManager.ENV_VAR_NAMES[provider_name]
        print_info(f"Export {env_var} in your shell to keep it across sessions.")


@config.command("delete-key")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def config_delete_key(ctx: click.Context, provider: str) -> None:
    """Remove the stored API key for PROVIDER."""
    app_config = _load_config(ctx)
    try:
        get_key_manager(app_config, ProviderName(provider)).delete_key()
    except ConfigurationError as e:
        print_error(str(e))
        ctx.exit(1)
    print_success(f"{provider} API key removed.")


@config.command("test-key")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def config_test_key(ctx: click.Context, provider: str) -> None:
    """Validate the stored key for PROVIDER with a small analysis call."""
    app_config = _load_config(ctx)
    provider_name = ProviderName(provider)
    try:
        key = get_api_key(provider_name, app_config)
    except APIKeyNotFoundError as e:
        print_error(str(e))
        ctx.exit(1)

    async def verify_key() -> AnalysisResult:
        remote = build_provider(provider_name, key, app_config.ai)
        async with AIService(app_config, provider=remote) as service:
            return await service.analyze("Testing my memory vault connection.")

    with console.status("[bold cyan]Making test API call..."):
        result = _run(verify_key())

    if result.is_fallback:
        print_error(f"{provider} test call failed. Check the key and your connection.")
        ctx.exit(1)
    print_success(f"{provider} API key is valid.")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value.

    Example:
        memory-vault config set ai.provider gemini
        memory-vault config set privacy.local_only_mode true
    """
    config_path = _config_path(ctx)
    try:
        updated = get_config(config_path).set_value(key, value)
        updated.save_to_yaml(config_path)
    except ConfigurationError as e:
        print_error(str(e))
        ctx.exit(1)
    print_success(f"Set {key} = {value}")


@config.command("reset")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Reset configuration to defaults."""
    if not yes and not Confirm.ask("Reset all configuration to defaults?", default=False):
        print_info("Cancelled.")
        return

    config_path = _config_path(ctx)
    if config_path.exists():
        config_path.unlink()
        print_success("Configuration reset to defaults.")
    else:
        print_info("No custom configuration found.")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print()
        print_info("Interrupted.")
        sys.exit(130)
    except Exception as e:
        error_msg = str(e).replace("[", "\\[").replace("]", "\\]")
        print_error(f"Unexpected error: {error_msg}")
        logger.exception("Unexpected error")
        sys.exit(1)


if __name__ == "__main__":
    main()
