import os

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from venuebook.core.entities.scheduling_config import SchedulingConfig


class Settings(BaseSettings):
    """
    Application settings. Environment variables (``VENUEBOOK_*``) win over the optional YAML file
    named by ``VENUEBOOK_CONFIG_FILE`` (default ``venuebook.yaml`` in the working directory).
    """
    model_config = SettingsConfigDict(
        env_prefix="VENUEBOOK_",
        yaml_file=os.getenv("VENUEBOOK_CONFIG_FILE", "venuebook.yaml"),
        extra="ignore",
    )

    database_url: str = "sqlite+pysqlite:///:memory:"
    log_level: str = "INFO"

    opening_time: str = "07:00"
    closing_time: str = "23:00"
    max_occurrences: int = 366

    notification_service_url: str = ""
    notification_timeout: float = 10.0

    @classmethod
    def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, env_settings, YamlConfigSettingsSource(settings_cls), file_secret_settings

    def scheduling_config(self) -> SchedulingConfig:
        return SchedulingConfig(
            opening_time=self.opening_time,
            closing_time=self.closing_time,
            max_occurrences=self.max_occurrences,
        )


settings = Settings()
