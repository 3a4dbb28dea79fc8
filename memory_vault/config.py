"""Configuration and API key management for Memory Vault AI.

This module handles all configuration, API key management, and privacy settings.
The orchestration service reads it exactly once, at construction, to decide
which analysis provider is active.

Security notes:
- API keys are never logged or printed
- Encrypted file backend uses Fernet symmetric encryption
- Keyring backend leverages OS-level credential storage
"""

import base64
import hashlib
import os
import platform
import secrets
from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field


# =============================================================================
# Exceptions
# =============================================================================


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class APIKeyNotFoundError(Exception):
    """Raised when API key is not configured or cannot be retrieved."""

    pass


# =============================================================================
# Enums
# =============================================================================


class KeyStorageBackend(str, Enum):
    """Backend options for storing API keys securely.

    Attributes:
        ENV: Store in environment variable (e.g. GROQ_API_KEY)
        KEYRING: Use system keyring (OS credential manager)
        ENCRYPTED_FILE: Store in Fernet-encrypted local file
    """

    ENV = "env"
    KEYRING = "keyring"
    ENCRYPTED_FILE = "encrypted_file"


class ProviderName(str, Enum):
    """Remote providers that can hold a credential."""

    GROQ = "groq"
    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"


# Order in which ``auto`` selection looks for a usable credential
PROVIDER_PREFERENCE: tuple[ProviderName, ...] = (
    ProviderName.GROQ,
    ProviderName.GEMINI,
    ProviderName.HUGGINGFACE,
)


# =============================================================================
# Configuration Models
# =============================================================================


class PrivacySettings(BaseModel):
    """Privacy settings for controlling what data leaves the machine.

    Attributes:
        local_only_mode: If True, refuse all remote provider calls
        max_content_chars: Maximum characters of memory content sent remotely
    """

    local_only_mode: bool = False
    max_content_chars: int = Field(default=4000, ge=100, le=20000)


class SpeechSettings(BaseModel):
    """Settings for the local speech recognition fallback.

    Attributes:
        enabled: Whether to try local recognition when remote transcription fails
        language: Recognition language tag
    """

    enabled: bool = True
    language: str = "en-US"


class AISettings(BaseModel):
    """Settings for provider selection, models, and retry behavior.

    Attributes:
        provider: ``auto`` or the name of the provider to use
        groq_model: Chat model used by the Groq provider
        groq_transcription_model: Whisper model used by the Groq provider
        gemini_model: Gemini model name
        huggingface_sentiment_model: Hugging Face sentiment classifier
        huggingface_transcription_model: Hugging Face speech model
        temperature: Sampling temperature (0.0-2.0)
        max_tokens: Maximum tokens in a response
        transcription_timeout_seconds: Timeout for one transcription attempt
        transcription_max_attempts: Attempts against the primary provider
        retry_base_delay: Linear backoff unit between transcription attempts
        analysis_timeout_seconds: Timeout for analysis and insight calls
        local_speech_timeout_seconds: Bound on local speech recognition
        insight_sample_size: Memories sent to the remote insight endpoint
        milestone_threshold: Collection size above which a milestone is emitted
    """

    provider: Literal["auto", "groq", "gemini", "huggingface", "basic"] = "auto"
    groq_model: str = "llama3-8b-8192"
    groq_transcription_model: str = "whisper-large-v3"
    gemini_model: str = "gemini-1.5-flash"
    huggingface_sentiment_model: str = "cardiffnlp/twitter-roberta-base-sentiment-latest"
    huggingface_transcription_model: str = "openai/whisper-large-v3"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=100, le=100000)
    transcription_timeout_seconds: float = Field(default=15.0, gt=0, le=600)
    transcription_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0, le=60.0)
    analysis_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    local_speech_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    insight_sample_size: int = Field(default=5, ge=1, le=10)
    milestone_threshold: int = Field(default=5, ge=0)


class AppConfig(BaseModel):
    """Main application configuration.

    Can be loaded from and saved to YAML files.

    Attributes:
        ai: Provider and retry settings
        speech: Local speech recognition settings
        privacy: Privacy and data handling settings
        key_storage_backend: How API keys are stored
        encrypted_key_file_path: Directory or file stem for encrypted keys
    """

    ai: AISettings = Field(default_factory=AISettings)
    speech: SpeechSettings = Field(default_factory=SpeechSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)
    key_storage_backend: KeyStorageBackend = KeyStorageBackend.ENV
    encrypted_key_file_path: Path | None = None

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the platform-appropriate default configuration path.

        Returns:
            Path to the default config file location:
            - Windows: %APPDATA%/memory-vault/config.yaml
            - macOS: ~/Library/Application Support/memory-vault/config.yaml
            - Linux: ~/.config/memory-vault/config.yaml
        """
        system = platform.system()

        if system == "Windows":
            base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        elif system == "Darwin":
            base = Path.home() / "Library" / "Application Support"
        else:
            xdg_config = os.environ.get("XDG_CONFIG_HOME")
            base = Path(xdg_config) if xdg_config else Path.home() / ".config"

        return base / "memory-vault" / "config.yaml"

    @classmethod
    def load_from_yaml(cls, path: Path) -> "AppConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Loaded AppConfig instance.

        Raises:
            ConfigurationError: If file cannot be read or parsed.
        """
        try:
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")

            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            if data is None:
                return cls()
            if not isinstance(data, dict):
                raise ConfigurationError("Configuration root must be a mapping")

            return cls.model_validate(data)

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def save_to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file.

        Creates parent directories if they don't exist.

        Raises:
            ConfigurationError: If file cannot be written.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = self.model_dump(mode="json")

            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

        except Exception as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")

    def set_value(self, dotted_key: str, value: str) -> "AppConfig":
        """Return a copy with one setting changed.

        Args:
            dotted_key: Setting path such as ``ai.provider``.
            value: New value as text; pydantic coerces it to the field type.

        Raises:
            ConfigurationError: If the key is unknown or the value is invalid.
        """
        data = self.model_dump(mode="json")
        node = data
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                raise ConfigurationError(f"Unknown setting: {dotted_key}")
            node = node[part]
        if parts[-1] not in node:
            raise ConfigurationError(f"Unknown setting: {dotted_key}")

        node[parts[-1]] = yaml.safe_load(value) if value else value
        try:
            return AppConfig.model_validate(data)
        except Exception as e:
            raise ConfigurationError(f"Invalid value for {dotted_key}: {e}")


# =============================================================================
# API Key Manager
# =============================================================================


class APIKeyManager:
    """Secure manager for one provider's API key.

    Supports multiple storage backends:
    - ENV: Environment variable (GROQ_API_KEY, GEMINI_API_KEY, HUGGINGFACE_API_KEY)
    - KEYRING: OS-level credential storage
    - ENCRYPTED_FILE: Fernet-encrypted local file

    An environment variable, when set, always wins over the configured backend
    so deployments can inject keys without touching stored credentials.

    Attributes:
        provider: Provider the key belongs to
        backend: The storage backend to use
        encrypted_file_path: Path to encrypted key file (for ENCRYPTED_FILE backend)
    """

    SERVICE_NAME = "memory-vault-ai"
    ENV_VAR_NAMES = {
        ProviderName.GROQ: "GROQ_API_KEY",
        ProviderName.GEMINI: "GEMINI_API_KEY",
        ProviderName.HUGGINGFACE: "HUGGINGFACE_API_KEY",
    }
    PLACEHOLDER_MARKERS = ("your_", "_here", "changeme", "<", ">")
    MIN_KEY_LENGTH = 10
    MAX_KEY_LENGTH = 256

    def __init__(
        self,
        provider: ProviderName,
        backend: KeyStorageBackend = KeyStorageBackend.ENV,
        encrypted_file_path: Path | None = None,
    ) -> None:
        """Initialize the API key manager.

        Args:
            provider: Provider whose key is managed.
            backend: Storage backend to use.
            encrypted_file_path: Path for encrypted file storage.
                Required if backend is ENCRYPTED_FILE.

        Raises:
            ConfigurationError: If encrypted file backend selected without path.
        """
        self.provider = ProviderName(provider)
        self.backend = backend
        self.encrypted_file_path = encrypted_file_path

        if backend == KeyStorageBackend.ENCRYPTED_FILE and not encrypted_file_path:
            raise ConfigurationError("encrypted_file_path required for ENCRYPTED_FILE backend")

    @property
    def env_var_name(self) -> str:
        return self.ENV_VAR_NAMES[self.provider]

    @property
    def keyring_username(self) -> str:
        return f"{self.provider.value}_api_key"

    def _validate_key_format(self, key: str) -> None:
        """Validate API key format without exposing the key.

        Raises:
            ConfigurationError: If key format is invalid.
        """
        if not key or not isinstance(key, str):
            raise ConfigurationError("API key must be a non-empty string")
        if len(key) < self.MIN_KEY_LENGTH:
            raise ConfigurationError(
                f"API key too short (minimum {self.MIN_KEY_LENGTH} characters)"
            )
        if len(key) > self.MAX_KEY_LENGTH:
            raise ConfigurationError(f"API key too long (maximum {self.MAX_KEY_LENGTH} characters)")
        if not key.strip() == key:
            raise ConfigurationError("API key should not have leading/trailing whitespace")

    @classmethod
    def is_usable_key(cls, key: str | None) -> bool:
        """Check whether a key looks like a real credential.

        Rejects empty values, template placeholders such as
        ``your_groq_api_key_here``, and values shorter than the minimum length.
        """
        if not key:
            return False
        key = key.strip()
        if len(key) < cls.MIN_KEY_LENGTH:
            return False
        lowered = key.lower()
        return not any(marker in lowered for marker in cls.PLACEHOLDER_MARKERS)

    def _get_machine_key(self) -> bytes:
        """Derive an encryption key from machine-specific data.

        Returns:
            32-byte encryption key suitable for Fernet.
        """
        identifiers = [
            platform.node(),
            platform.machine(),
            os.environ.get("USERNAME", os.environ.get("USER", "default")),
        ]

        combined = ":".join(identifiers).encode("utf-8")
        key_bytes = hashlib.sha256(combined).digest()

        # Fernet requires URL-safe base64-encoded 32-byte key
        return base64.urlsafe_b64encode(key_bytes)

    def _get_fernet(self) -> Fernet:
        return Fernet(self._get_machine_key())

    def store_key(self, key: str) -> None:
        """Store the provider API key securely.

        Raises:
            ConfigurationError: If key format is invalid or storage fails.
        """
        self._validate_key_format(key)

        if self.backend == KeyStorageBackend.ENV:
            # Only affects the current process; users should export it in their shell
            os.environ[self.env_var_name] = key

        elif self.backend == KeyStorageBackend.KEYRING:
            try:
                import keyring

                keyring.set_password(self.SERVICE_NAME, self.keyring_username, key)
            except Exception as e:
                raise ConfigurationError(f"Failed to store key in keyring: {e}")

        elif self.backend == KeyStorageBackend.ENCRYPTED_FILE:
            if not self.encrypted_file_path:
                raise ConfigurationError("Encrypted file path not configured")

            try:
                fernet = self._get_fernet()
                encrypted = fernet.encrypt(key.encode("utf-8"))

                self.encrypted_file_path.parent.mkdir(parents=True, exist_ok=True)
                self.encrypted_file_path.write_bytes(encrypted)

                if platform.system() != "Windows":
                    os.chmod(self.encrypted_file_path, 0o600)

            except Exception as e:
                raise ConfigurationError(f"Failed to store encrypted key: {e}")

    def retrieve_key(self) -> str | None:
        """Retrieve the stored API key.

        Returns:
            The API key if found, None otherwise.

        Raises:
            ConfigurationError: If decryption or retrieval fails.
        """
        env_value = os.environ.get(self.env_var_name)
        if env_value or self.backend == KeyStorageBackend.ENV:
            return env_value

        if self.backend == KeyStorageBackend.KEYRING:
            try:
                import keyring

                return keyring.get_password(self.SERVICE_NAME, self.keyring_username)
            except Exception:
                return None

        elif self.backend == KeyStorageBackend.ENCRYPTED_FILE:
            if not self.encrypted_file_path or not self.encrypted_file_path.exists():
                return None

            try:
                fernet = self._get_fernet()
                encrypted = self.encrypted_file_path.read_bytes()
                decrypted = fernet.decrypt(encrypted)
                return decrypted.decode("utf-8")
            except InvalidToken:
                raise ConfigurationError("Failed to decrypt API key - encryption key mismatch")
            except Exception as e:
                raise ConfigurationError(f"Failed to retrieve encrypted key: {e}")

        return None

    def delete_key(self) -> None:
        """Remove the stored API key.

        Raises:
            ConfigurationError: If deletion fails.
        """
        if self.backend == KeyStorageBackend.ENV:
            if self.env_var_name in os.environ:
                del os.environ[self.env_var_name]

        elif self.backend == KeyStorageBackend.KEYRING:
            import keyring
            from keyring.errors import PasswordDeleteError

            try:
                keyring.delete_password(self.SERVICE_NAME, self.keyring_username)
            except PasswordDeleteError:
                pass  # Key may not exist

        elif self.backend == KeyStorageBackend.ENCRYPTED_FILE:
            if self.encrypted_file_path and self.encrypted_file_path.exists():
                try:
                    # Overwrite with random data before deletion
                    self.encrypted_file_path.write_bytes(secrets.token_bytes(64))
                    self.encrypted_file_path.unlink()
                except Exception as e:
                    raise ConfigurationError(f"Failed to delete encrypted key file: {e}")

    def is_key_configured(self) -> bool:
        """Check if a usable API key is configured.

        Returns:
            True if a key is stored, retrievable, and not a placeholder.
        """
        try:
            return self.is_usable_key(self.retrieve_key())
        except ConfigurationError:
            return False


# =============================================================================
# Module-Level Functions
# =============================================================================


def get_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a path (or the default path) or return defaults.

    A missing or corrupted file yields the default configuration.
    """
    config_path = path or AppConfig.get_default_config_path()

    if config_path.exists():
        try:
            return AppConfig.load_from_yaml(config_path)
        except ConfigurationError:
            return AppConfig()

    return AppConfig()


def encrypted_key_path(config: AppConfig, provider: ProviderName) -> Path:
    """Resolve the encrypted credential file for a provider."""
    base = config.encrypted_key_file_path or AppConfig.get_default_config_path().parent
    if base.suffix:
        base = base.parent
    return base / f"credentials-{ProviderName(provider).value}.enc"


def get_key_manager(config: AppConfig, provider: ProviderName) -> APIKeyManager:
    """Build the key manager for a provider using the configured backend."""
    encrypted_path = None
    if config.key_storage_backend == KeyStorageBackend.ENCRYPTED_FILE:
        encrypted_path = encrypted_key_path(config, provider)
    return APIKeyManager(provider, config.key_storage_backend, encrypted_path)


def configure_api_key(
    provider: ProviderName,
    key: str,
    backend: KeyStorageBackend,
    config_path: Path | None = None,
) -> None:
    """Store an API key and persist the chosen backend.

    Raises:
        ConfigurationError: If storage fails.
    """
    config_path = config_path or AppConfig.get_default_config_path()
    config = get_config(config_path)
    config.key_storage_backend = backend

    manager = get_key_manager(config, provider)
    manager.store_key(key)

    config.save_to_yaml(config_path)


def get_api_key(provider: ProviderName, config: AppConfig | None = None) -> str:
    """Retrieve the configured API key for a provider.

    Raises:
        APIKeyNotFoundError: If no usable key is configured.
    """
    config = config or get_config()
    manager = get_key_manager(config, provider)

    try:
        key = manager.retrieve_key()
    except ConfigurationError as e:
        raise APIKeyNotFoundError(str(e))

    if not APIKeyManager.is_usable_key(key):
        raise APIKeyNotFoundError(
            f"No {ProviderName(provider).value} API key configured. "
            f"Run 'memory-vault config set-key {ProviderName(provider).value}' to set up."
        )

    return key.strip()
