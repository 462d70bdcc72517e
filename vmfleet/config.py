"""
Configuration management for vmfleet.

Uses Pydantic's BaseSettings to read connection and execution settings from
``VCENTER_*`` environment variables and an optional ``.env`` file. Command
line options override environment values.
"""
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from vmfleet.vcenter.models import ConnectionConfig


class SettingsError(Exception):
    """Settings are missing or invalid."""
    pass


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables.
    """

    # vCenter connection
    HOST: str | None = None
    USERNAME: str | None = None
    PASSWORD: SecretStr | None = None
    PORT: int | None = None
    VERIFY_TLS: bool = True

    # Timeouts (seconds)
    TIMEOUT_S: float = Field(30.0, gt=0)
    AUTH_TIMEOUT_S: float = Field(30.0, gt=0)

    # Execution
    MAX_CONCURRENT: int = Field(10, ge=1)
    FAIL_FAST: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="VCENTER_",
        extra="ignore",
    )

    def connection_config(self) -> ConnectionConfig:
        """
        Build the connection config consumed by ``SessionClient.connect``.

        Raises:
            SettingsError: Host or credentials are missing.
        """
        missing = []
        if not self.HOST:
            missing.append("VCENTER_HOST")
        if not self.USERNAME:
            missing.append("VCENTER_USERNAME")
        if self.PASSWORD is None or not self.PASSWORD.get_secret_value():
            missing.append("VCENTER_PASSWORD")
        if missing:
            raise SettingsError(
                "Missing vCenter connection settings: "
                + ", ".join(missing)
                + ". Set them in the environment, a .env file, or pass --host/--username/--password."
            )
        try:
            return ConnectionConfig(
                host=self.HOST,
                username=self.USERNAME,
                password=self.PASSWORD,
                port=self.PORT,
                verify_tls=self.VERIFY_TLS,
            )
        except ValidationError as e:
            problems = "; ".join(err["msg"] for err in e.errors())
            raise SettingsError(f"Invalid vCenter connection settings: {problems}") from e


def load_settings(**overrides) -> Settings:
    """
    Load settings, letting non-None keyword overrides win over the environment.

    Raises:
        SettingsError: A value failed validation.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"VCENTER_{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise SettingsError(f"Invalid configuration: {problems}") from e
