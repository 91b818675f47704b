from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from wsr.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    DISMISS_TAG,
    REVIEW_TAG,
    SCAN_BATCH_SIZE,
)

CONFIG_FILE = Path.home() / ".config/wsr/config.toml"


class AppConfig(BaseSettings):
    """
    Configuration model for wsr.
    Supports loading from:
    1. Config file (~/.config/wsr/config.toml)
    2. Environment variables (WSR_*)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="WSR_",
        toml_file=CONFIG_FILE,
        extra="ignore",
    )

    # Paths
    vault_root: Path | None = None
    items_folder: str = ""
    priority_file: str = "priority.md"
    state_dir: Path | None = None

    # Scheduler
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    enable_fuzz: bool = True
    fuzz_seed: int = 0
    learning_steps: list[str] = Field(default_factory=lambda: list(DEFAULT_LEARNING_STEPS))
    relearning_steps: list[str] = Field(default_factory=lambda: list(DEFAULT_RELEARNING_STEPS))

    # Sessions
    deck_order: Literal[
        "Sequential", "LevelOrder", "PrevDeckComplete_Sequential", "Random"
    ] = "PrevDeckComplete_Sequential"
    card_order: Literal[
        "Sequential",
        "DueFirstSequential",
        "NewFirstSequential",
        "Random",
        "DueFirstRandom",
        "NewFirstRandom",
    ] = "DueFirstSequential"
    iterator_seed: int | None = None
    clear_postponed_on_new_day: bool = True

    # Corpus
    scan_batch_size: int = Field(default=SCAN_BATCH_SIZE, ge=1)
    review_tag: str = REVIEW_TAG
    dismiss_tag: str = DISMISS_TAG
    extract_folder: str = "extracted"

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        if CONFIG_FILE.exists():
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=CONFIG_FILE),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("vault_root", "state_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path | None:
        if v is None or v == "":
            return None
        return Path(v).expanduser().resolve()

    @field_validator("desired_retention")
    @classmethod
    def check_retention(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("desired_retention must be between 0 and 1")
        return v

    @field_validator("learning_steps", "relearning_steps", mode="before")
    @classmethod
    def split_steps(cls, v: Any) -> Any:
        # "1m,10m" from env or CLI
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("learning_steps", "relearning_steps")
    @classmethod
    def check_steps(cls, v: list[str]) -> list[str]:
        from wsr.application.scheduling import parse_step

        for step in v:
            parse_step(step)
        return v

    @field_validator("review_tag", "dismiss_tag")
    @classmethod
    def strip_hash(cls, v: str) -> str:
        return v.strip().lstrip("#")

    @property
    def items_root(self) -> Path:
        return (self.vault_root or Path.cwd()) / self.items_folder

    @property
    def postponement_file(self) -> Path:
        base = self.state_dir or (self.vault_root or Path.cwd()) / ".wsr"
        return base / "postponed.json"


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/wsr/config.toml (if exists)
    3. Environment variables (WSR_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes every option; drop the ones the user did not set
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.vault_root is None:
        config.vault_root = Path.cwd()

    return config
