from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class Settings(BaseSettings):
    """Process settings for the webhook receiver.

    Built once per process (``get_settings()`` or the caller of
    ``create_app()``) and kept on ``app.state.settings``; request handlers
    read that instance. Sources, highest priority first:

      • constructor kwargs (tests)
      • environment variables with the ``GITSAVER_`` prefix
      • a ``.env`` file in the working directory
      • a ``config.toml`` file in the working directory
      • the secrets directory, if configured

    Example ``config.toml``::

        port = 8080
        github_app_id = 1044603
        github_installation_id = 56702972
        github_private_key_path = "private-key.pem"
        backups_directory = "/var/lib/gitsaver/backups"

    The webhook secret may be empty at startup; the handler answers 500
    until it is configured.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITSAVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        toml_file="config.toml",
        case_sensitive=False,
        extra="ignore",
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
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Webhook: shared secret configured on the GitHub App.
    webhook_secret: str = ""

    # GitHub App: the private key is read from a PEM file at startup.
    github_app_id: int = 0
    github_installation_id: int = 0
    github_private_key_path: str = "private-key.pem"
    github_api_url: str = "https://api.github.com"

    # Backups
    backups_directory: str = "./backups"

    # Clone hosts the installation token may be sent to.
    allowed_clone_hosts: list[str] = ["github.com"]

    # 0 means a full clone; anything else is passed as --depth.
    clone_depth: int = 0

    # Timeouts (seconds) for outbound calls.
    http_timeout_seconds: float = 30.0
    clone_timeout_seconds: float = 300.0

    # Sentry: leave blank to disable error capture.
    sentry_dsn: str = ""

    # App
    debug: bool = False

    @field_validator("github_api_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("clone_depth", mode="after")
    @classmethod
    def non_negative_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("clone_depth must be >= 0")
        return v


def get_settings() -> Settings:
    return Settings()
