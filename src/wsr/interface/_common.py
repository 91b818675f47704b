"""Helpers shared by CLI commands."""

import logging
from pathlib import Path
from typing import Annotated, Any

import typer

from wsr.application.config import AppConfig, resolve_config

VaultOption = Annotated[
    Path | None,
    typer.Option("--vault", help="Vault root. Defaults to 'vault_root' in config, or CWD."),
]


def configure_logging(verbose: int) -> None:
    """0 = warnings only, 1 = info, 2+ = debug."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


def _resolve_with_overrides(ctx: typer.Context | None = None, **overrides: Any) -> AppConfig:
    """
    Resolve config with CLI values layered on top; unset (None) values are ignored.

    Each global -v raises the configured verbosity by one.
    """
    config = resolve_config({k: v for k, v in overrides.items() if v is not None})
    bonus = (ctx.obj or {}).get("verbose_bonus", 0) if ctx is not None else 0
    if bonus:
        config = config.model_copy(update={"verbose": config.verbose + bonus})
    configure_logging(config.verbose)
    return config
