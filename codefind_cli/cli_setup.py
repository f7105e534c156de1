"""LLM provider commands: ``set-llm`` and ``show-llm``."""

from __future__ import annotations

import typer

from . import config_manager
from .config_manager import ALL_PROVIDERS


def print_success(message: str):
    """Print success message in green."""
    typer.echo(typer.style(f"✓ {message}", fg=typer.colors.GREEN))


def print_error(message: str):
    """Print error message in red."""
    typer.echo(typer.style(f"✗ {message}", fg=typer.colors.RED), err=True)


def print_info(message: str):
    """Print info message in blue."""
    typer.echo(typer.style(f"ℹ {message}", fg=typer.colors.BLUE))


def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: openai, openrouter, groq, ollama"),
    model: str = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="Custom chat endpoint URL."),
    no_validate: bool = typer.Option(False, "--no-validate", help="Skip API key validation."),
):
    """Choose the LLM used for AI re-ranking.

    Examples:
        cf set-llm openai -k YOUR_API_KEY
        cf set-llm openrouter -k YOUR_API_KEY -m openai/gpt-4o-mini
        cf set-llm ollama -m qwen2.5-coder:7b
    """
    provider = provider.lower().strip()

    if provider not in ALL_PROVIDERS:
        print_error(f"Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}")
        raise typer.Exit(code=1)

    current = config_manager.load_config()
    defaults = config_manager.get_provider_config(provider)

    resolved_model = model or defaults["model"]
    resolved_endpoint = endpoint or defaults["endpoint"]
    resolved_api_key = api_key or ""

    if provider != "ollama" and not resolved_api_key:
        if current.get("provider") == provider and current.get("api_key"):
            resolved_api_key = current["api_key"]
            print_info(f"Reusing existing API key for {provider}")
        else:
            resolved_api_key = typer.prompt(f"Enter your {provider} API key", hide_input=True)

    if not no_validate:
        if provider == "ollama":
            typer.echo("⏳ Checking Ollama connection...")
            ok = config_manager.validate_ollama_connection(resolved_endpoint.replace("/api/chat", ""))
            message = "Cannot connect to Ollama!"
        else:
            typer.echo("⏳ Validating API key...")
            ok, message = config_manager.validate_api_key(provider, resolved_api_key, resolved_endpoint)
        if not ok:
            print_error(f"Validation failed: {message}")
            if not typer.confirm("Save anyway?", default=False):
                raise typer.Exit(code=1)

    if not config_manager.save_config(provider, resolved_model, resolved_api_key, resolved_endpoint):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)

    print_success(f"LLM provider set to: {provider}")
    typer.echo(f"  Provider: {typer.style(provider, fg=typer.colors.CYAN)}")
    typer.echo(f"  Model:    {typer.style(resolved_model, fg=typer.colors.CYAN)}")
    typer.echo(f"  Endpoint: {resolved_endpoint}")


def show_llm():
    """Show the LLM configuration used for AI re-ranking."""
    cfg = config_manager.load_config()

    provider = cfg.get("provider", "openai")
    defaults = config_manager.get_provider_config(provider)
    model = cfg.get("model") or defaults["model"]
    endpoint = cfg.get("endpoint") or defaults["endpoint"]
    api_key = cfg.get("api_key", "")

    typer.echo("")
    typer.echo(typer.style("  🔍 LLM Configuration", bold=True))
    typer.echo(f"  Provider  {typer.style(f' {provider.upper()} ', bg=typer.colors.CYAN, fg=typer.colors.WHITE, bold=True)}")
    typer.echo(f"  Model     {typer.style(model, bold=True)}")
    typer.echo(f"  Endpoint  {typer.style(endpoint, dim=True)}")
    if api_key:
        masked = api_key[:8] + "•" * min(max(len(api_key) - 8, 0), 16)
        typer.echo(f"  API Key   {masked}")
    else:
        typer.echo(f"  API Key   {typer.style('(not set)', dim=True)}")
    typer.echo(f"  Config    {typer.style(str(config_manager.CONFIG_FILE), dim=True)}")
    typer.echo("")
