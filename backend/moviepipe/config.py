"""moviepipe settings: backend keys, pipeline limits and storage paths.

Values come from MOVIEPIPE_* environment variables, then config.yaml, then
the defaults below.
"""

from pathlib import Path
from typing import ClassVar, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Reads config.yaml from the working directory, if present."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Missing file means defaults only
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class KieConfig(BaseModel):
    """Kie media API credentials and hosts.

    api_key is normally supplied via .env (MOVIEPIPE_KIE__API_KEY).
    """

    api_key: Optional[str] = None
    main_api: str = "https://api.kie.ai/api/v1"
    file_api: str = "https://kieai.redpandaai.co"
    video_model: str = "veo3_fast"
    image_model: str = "seedream_4.0"
    image_edit_model: str = "seedream_4.0_edit"
    music_model: str = "suno-v4"


class GoogleConfig(BaseModel):
    """Google Gemini API configuration."""

    api_key: Optional[str] = None
    planner_model: str = "gemini-2.5-pro"
    image_model: str = "gemini-2.5-flash-image"
    image_edit_model: str = "gemini-2.5-flash-image"
    video_model: str = "veo-3.1-fast-generate-001"


class BackendsConfig(BaseModel):
    """Which implementation serves each external capability."""

    planner: Literal["template", "gemini"] = "template"
    image: Literal["kie", "gemini"] = "kie"
    video: Literal["kie", "gemini"] = "kie"
    audio: Literal["kie"] = "kie"


class PipelineConfig(BaseModel):
    """Scene limits, retry budgets and polling intervals for a movie job."""

    default_aspect_ratio: str = "16:9"
    base_seed: int = 12345
    min_scenes: int = 2
    max_scenes: int = 10
    video_poll_interval: float = 10.0
    video_poll_max: float = 420.0
    image_poll_interval: float = 5.0
    image_poll_max: float = 120.0
    audio_poll_interval: float = 5.0
    audio_poll_max: float = 120.0
    video_dispatch_stagger: float = 0.1
    music_duration: int = 20
    music_volume: float = 0.3
    voice_volume: float = 1.0
    fade_seconds: float = 1.0
    voice_profile: str = "en-us-neutral-1"
    crossfade_seconds: float = 0.0
    clip_duration: float = 8.0
    max_prompt_length: int = 10000


class StorageConfig(BaseModel):
    """Where job files and the history database live."""

    database_url: str = "sqlite+aiosqlite:///moviepipe.db"
    tmp_dir: Path = Field(default=Path("tmp"))
    history_limit: int = 50

    @field_validator("tmp_dir", mode="before")
    @classmethod
    def convert_tmp_dir_to_path(cls, v):
        """Accept tmp_dir as a plain string."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class Settings(BaseSettings):
    """Top-level moviepipe settings.

    Highest priority first:
    1. Environment variables (prefix: MOVIEPIPE_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="MOVIEPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    kie: KieConfig = Field(default_factory=KieConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    backends: BackendsConfig = Field(default_factory=BackendsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Put config.yaml between environment variables and defaults.

        Priority order (highest to lowest):
        1. Init settings (explicit overrides, used by tests)
        2. Environment variables
        3. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
