"""Configuration management for Agent Relay."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.agent-relay/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

DEFAULT_LINTERS = [
    "govet",
    "staticcheck",
    "errcheck",
    "gosimple",
    "ineffassign",
    "typecheck",
]


class OllamaConfig(BaseModel):
    """Inference service configuration."""

    base_url: str = "http://localhost:11434/api"
    timeout: float = 300.0
    default_model: str = "llama3.1"


class ChainConfig(BaseModel):
    """Agent chain defaults."""

    # Chain turns and direct requests fall back to different context sizes.
    default_tokens: int = 2048
    direct_default_tokens: int = 16384


class StorageConfig(BaseModel):
    """Flat-file persistence locations."""

    agents_path: str = "./agents.json"
    chats_path: str = "./chats"
    tool_usage_path: str = "./tool_usages.json"


class GoCheckToolConfig(BaseModel):
    """Go code checker configuration."""

    go_binary: str = "go"
    gofmt_binary: str = "gofmt"
    golangci_lint_binary: str = "golangci-lint"
    linters: list[str] = Field(default_factory=lambda: list(DEFAULT_LINTERS))
    module_name: str = "lintcheck"
    timeout: int = 120


class ToolsConfig(BaseModel):
    """Tools configuration."""

    go_check: GoCheckToolConfig = Field(default_factory=GoCheckToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Agent Relay."""

    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment wins over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def resolved_path(self, raw: str, runtime_base: Path | str | None = None) -> Path:
        """Resolve a storage path, anchoring relative paths to runtime base/cwd."""
        candidate = Path(raw).expanduser()
        if candidate.is_absolute():
            return candidate.resolve()
        anchor = Path(runtime_base).expanduser().resolve() if runtime_base is not None else Path.cwd().resolve()
        return (anchor / candidate).resolve()


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
