"""Simple YAML configuration loader for VoiceTrigger."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_INSTRUCTION = (
    'You are a transcription service with one critical rule. When you detect the '
    'word "{phrase}" or any phonetically similar sound, your only output MUST be '
    'the keyword "{token}". Do not transcribe anything else at that moment. '
    'Transcribe all other audio normally.'
)

DEFAULTS: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "frame_size": 4096,
        "channels": 1,
        "send_queue_size": 32,
    },
    "monitor": {
        "refresh_hz": 30,
        "window_size": 256,
    },
    "trigger": {
        "token": "_squat_",
        "phrase": "mãe",
    },
    "gemini": {
        "model": "gemini-2.5-flash-native-audio-preview-09-2025",
        "api_key": None,
        "credentials_path": None,
        "project": None,
        "location": "us-central1",
        "connect_timeout_seconds": 15.0,
        "system_instruction": None,
    },
    "session": {
        "close_timeout_seconds": 5.0,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/voicetrigger.log",
        "console_output": True,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class VoiceTriggerConfig:
    """VoiceTrigger configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, only the built-in
                        defaults are used.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
        else:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = self._load_config()

        self._validate_trigger_token()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "VoiceTriggerConfig":
        """Build a configuration from an in-memory dictionary merged over the defaults."""
        config = cls()
        config.config = _deep_merge(DEFAULTS, values)
        config._validate_trigger_token()
        return config

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        config = _deep_merge(DEFAULTS, loaded)

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        # Resolve Google credentials path
        creds_path = config['gemini'].get('credentials_path')
        if creds_path and not os.path.isabs(creds_path):
            config['gemini']['credentials_path'] = str(config_dir / creds_path)

        # Resolve log file path
        log_path = config['logging'].get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def _validate_trigger_token(self) -> None:
        token = self.get('trigger.token')
        if not token or not str(token).strip():
            raise ValueError("trigger.token must be a non-empty string")
        if str(token).isalpha():
            logger.warning(f"Trigger token '{token}' is a plain word and may occur in "
                           f"ordinary speech; prefer a reserved marker such as '_{token}_'")

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'gemini.model').

        Args:
            key_path: Dot-separated key path (e.g., 'audio.sample_rate')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'trigger.token')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_api_key(self) -> Optional[str]:
        """Get the Gemini API key from config, falling back to the environment."""
        key = self.get('gemini.api_key')
        if not key:
            key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        return key.strip() if key else None

    def get_google_credentials_path(self) -> Optional[str]:
        """Get Google service-account credentials path, if configured."""
        creds_path = self.get('gemini.credentials_path')
        if not creds_path:
            return None

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_system_instruction(self) -> str:
        """Get the instruction sent to the remote model when the session opens."""
        instruction = self.get('gemini.system_instruction')
        if instruction:
            return instruction
        return DEFAULT_SYSTEM_INSTRUCTION.format(
            phrase=self.get('trigger.phrase'),
            token=str(self.get('trigger.token')).upper(),
        )
