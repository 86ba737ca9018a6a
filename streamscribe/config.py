"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots for session isolation.
"""

from pathlib import Path
from typing import Dict, List, Optional
import json
import os

from .types import ConfigSnapshot, FormatterConfig


TRANSCRIPTION_PROVIDERS = ("whisper", "cloud", "openai")

# Defaults
DEFAULT_CONFIG = {
    # Transcription
    "transcription_provider": "whisper",
    "language": "auto",
    "vocabulary": [],
    "replacements": {},

    # Offline engine
    "whisper_model": "base",

    # Generic API backend
    "openai_endpoint": "https://api.openai.com/v1/audio/transcriptions",
    "openai_model": "whisper-1",

    # Cloud backend
    "cloud_endpoint": "https://api.streamscribe.app",

    # Formatting
    "ollama_url": "http://localhost:11434",
    "custom_instructions": "",
    "formatting_style": "formal",

    # Metrics
    "metrics_enabled": True,
}

# Environment variable -> attribute
ENV_KEYS = {
    "OPENAI_API_KEY": "openai_api_key",
    "GROQ_API_KEY": "groq_api_key",
    "OPENROUTER_API_KEY": "openrouter_api_key",
    "STREAMSCRIBE_TOKEN": "cloud_token",
    "STREAMSCRIBE_API_ENDPOINT": "cloud_endpoint",
    "OLLAMA_URL": "ollama_url",
}


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for session
    """

    def __init__(self):
        # Transcription
        self.transcription_provider: str = "whisper"
        self.language: Optional[str] = "auto"
        self.vocabulary: List[str] = []
        self.replacements: Dict[str, str] = {}

        # Offline engine
        self.whisper_model: str = "base"

        # Generic API backend
        self.openai_endpoint: str = DEFAULT_CONFIG["openai_endpoint"]
        self.openai_model: str = "whisper-1"

        # Cloud backend
        self.cloud_endpoint: str = DEFAULT_CONFIG["cloud_endpoint"]

        # Formatting (replaced as a whole, never merged)
        self.formatter: FormatterConfig = FormatterConfig()
        self.ollama_url: str = DEFAULT_CONFIG["ollama_url"]
        self.custom_instructions: str = ""
        self.formatting_style: str = "formal"

        # API Keys / tokens
        self.openai_api_key: str = ""
        self.groq_api_key: str = ""
        self.openrouter_api_key: str = ""
        self.cloud_token: str = ""

        # Metrics
        self.metrics_enabled: bool = True

        # Paths
        self.data_dir: Path = Path.home() / ".streamscribe"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"
        self.settings_file: Path = self.data_dir / "settings.json"
        self.env_file: Path = self.data_dir / ".env"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls()
        if data_dir is not None:
            config._set_data_dir(Path(data_dir))
        config._load_settings()
        config._load_env()
        return config

    def _set_data_dir(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self.metrics_file = data_dir / "metrics.jsonl"
        self.settings_file = data_dir / "settings.json"
        self.env_file = data_dir / ".env"

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Load API keys from .env files and environment."""
        env_file = Path(".env")
        if env_file.exists():
            self._parse_env_file(env_file)

        if self.env_file.exists():
            self._parse_env_file(self.env_file)

        # Environment variables override file values
        for env_key, attr in ENV_KEYS.items():
            setattr(self, attr, os.getenv(env_key, getattr(self, attr)))

    def _parse_env_file(self, env_file: Path) -> None:
        """Parse a .env file and extract known keys."""
        try:
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip("'\"")

                    if key in ENV_KEYS:
                        setattr(self, ENV_KEYS[key], value)
        except OSError as e:
            print(f"Error loading {env_file}: {e}")

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        # Project root first, then ~/.streamscribe/settings.json (overrides)
        project_settings = Path("settings.json")
        if project_settings.exists():
            self._apply_settings_file(project_settings)

        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error loading {settings_file}: {e}")
            return

        if not isinstance(data, dict):
            print(f"Error loading {settings_file}: expected a JSON object")
            return

        self.apply_settings(data)

    def apply_settings(self, data: Dict) -> None:
        """Apply a settings dict with type validation. Bad entries are skipped."""
        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            value = data[key]
            try:
                if isinstance(default, list):
                    value = [str(v) for v in value]
                elif isinstance(default, dict):
                    value = {str(k): str(v) for k, v in dict(value).items()}
                elif key == "language" and value is None:
                    value = None
                else:
                    value = type(default)(value)
            except (TypeError, ValueError) as e:
                print(f"Ignoring invalid setting {key}={value!r}: {e}")
                continue
            setattr(self, key, value)

        if self.transcription_provider not in TRANSCRIPTION_PROVIDERS:
            print(f"Unknown transcription provider '{self.transcription_provider}', using whisper")
            self.transcription_provider = "whisper"

        if "formatter" in data:
            if isinstance(data["formatter"], dict):
                self.set_formatter_config(FormatterConfig.from_dict(data["formatter"]))
            else:
                print(f"Ignoring invalid formatter setting: {data['formatter']!r}")

    def set_formatter_config(self, formatter: FormatterConfig) -> None:
        """Replace the formatter config as a whole."""
        self.formatter = formatter

    def save_settings(self) -> None:
        """Save current settings to settings.json (API keys excluded)."""
        data = {
            "transcription_provider": self.transcription_provider,
            "language": self.language,
            "vocabulary": self.vocabulary,
            "replacements": self.replacements,
            "whisper_model": self.whisper_model,
            "openai_endpoint": self.openai_endpoint,
            "openai_model": self.openai_model,
            "cloud_endpoint": self.cloud_endpoint,
            "formatter": self.formatter.to_dict(),
            "ollama_url": self.ollama_url,
            "custom_instructions": self.custom_instructions,
            "formatting_style": self.formatting_style,
            "metrics_enabled": self.metrics_enabled,
        }

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def snapshot(self) -> ConfigSnapshot:
        """Return immutable copy for session isolation."""
        return ConfigSnapshot(
            transcription_provider=self.transcription_provider,
            language=self.language,
            vocabulary=tuple(self.vocabulary),
            replacements=tuple(self.replacements.items()),
            whisper_model=self.whisper_model,
            openai_api_key=self.openai_api_key,
            openai_endpoint=self.openai_endpoint,
            openai_model=self.openai_model,
            cloud_endpoint=self.cloud_endpoint,
            cloud_token=self.cloud_token,
            formatter=self.formatter,
            groq_api_key=self.groq_api_key,
            openrouter_api_key=self.openrouter_api_key,
            ollama_url=self.ollama_url,
            custom_instructions=self.custom_instructions,
            formatting_style=self.formatting_style,
            metrics_enabled=self.metrics_enabled,
            metrics_file=str(self.metrics_file),
        )
