"""
Settings for SQL Index Health

Values come from, in increasing priority: defaults, INDEXHEALTH_*
environment variables (nested with "__", e.g.
INDEXHEALTH_SCAN__FIRST_THRESHOLD=20) and the JSON settings file.
The password is only ever read from the environment.
"""

import sys
import os
import json
from pathlib import Path
from typing import Optional, List, Annotated

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from indexhealth.core.constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_MAX_WORKERS,
    AuthMethod,
    AbortAfterWait,
    DataCompression,
    IndexKind,
    IndexOperation,
    ScanMode,
)
from indexhealth.core.exceptions import ConfigurationError
from indexhealth.models.filter_criteria import FilterCriteria, MaintenancePolicy

APP_SUBDIRS = ('config', 'logs')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def get_app_dir() -> Path:
    """Per-user data directory; INDEXHEALTH_HOME overrides it (service accounts, CI)"""
    override = os.environ.get('INDEXHEALTH_HOME')
    if override:
        return Path(override).expanduser()

    folder = APP_NAME.replace(' ', '')
    if sys.platform == 'win32':
        return Path(os.environ.get('LOCALAPPDATA', Path.home() / 'AppData' / 'Local')) / folder
    if sys.platform == 'darwin':
        return Path.home() / 'Library' / 'Application Support' / folder
    return Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config')) / folder


def ensure_app_dirs() -> Path:
    app_dir = get_app_dir()
    for name in APP_SUBDIRS:
        (app_dir / name).mkdir(parents=True, exist_ok=True)
    return app_dir


class DatabaseSettings(BaseSettings):
    """Database execution settings"""

    model_config = SettingsConfigDict(env_prefix='INDEXHEALTH_DATABASE__')

    command_timeout: int = Field(default=DEFAULT_COMMAND_TIMEOUT, ge=0, le=86400)
    connection_timeout: int = Field(default=DEFAULT_CONNECTION_TIMEOUT, ge=1, le=120)
    max_pool_size: int = Field(default=5, ge=1, le=20)
    pool_recycle: int = Field(default=3600, ge=60)
    echo_sql: bool = Field(default=False)


class ConnectionSettings(BaseSettings):
    """Target server (password comes from the environment, never from disk)"""

    model_config = SettingsConfigDict(env_prefix='INDEXHEALTH_CONNECTION__')

    server: str = Field(default="localhost")
    port: int = Field(default=1433, ge=1, le=65535)
    database: str = Field(default="master")
    auth_method: AuthMethod = Field(default=AuthMethod.WINDOWS)
    username: str = Field(default="")
    password: SecretStr = Field(default=SecretStr(""))
    driver: Optional[str] = Field(default=None)
    encrypt: bool = Field(default=True)
    trust_server_certificate: bool = Field(default=False)
    application_name: str = Field(default=APP_NAME)


class ScanSettings(BaseSettings):
    """Filters applied when scanning a database"""

    model_config = SettingsConfigDict(env_prefix='INDEXHEALTH_SCAN__')

    first_threshold: float = Field(default=15.0, ge=0.0, le=100.0)
    second_threshold: float = Field(default=30.0, ge=0.0, le=100.0)
    min_index_size_mb: float = Field(default=6.0, ge=0.0)
    max_index_size_mb: float = Field(default=8192.0, ge=0.0)
    predescribe_size_mb: float = Field(default=25.0, ge=0.0)
    scan_mode: ScanMode = Field(default=ScanMode.LIMITED)

    scan_heap: bool = Field(default=True)
    scan_clustered_index: bool = Field(default=True)
    scan_nonclustered_index: bool = Field(default=True)
    scan_clustered_columnstore: bool = Field(default=True)
    scan_nonclustered_columnstore: bool = Field(default=True)
    scan_missing_index: bool = Field(default=False)

    ignore_read_only_filegroups: bool = Field(default=True)
    ignore_permissions: bool = Field(default=True)

    include_schemas: Annotated[List[str], NoDecode] = Field(default_factory=list)
    exclude_schemas: Annotated[List[str], NoDecode] = Field(default_factory=list)
    include_objects: Annotated[List[str], NoDecode] = Field(default_factory=list)
    exclude_objects: Annotated[List[str], NoDecode] = Field(default_factory=list)

    @field_validator('include_schemas', 'exclude_schemas', 'include_objects', 'exclude_objects',
                     mode='before')
    @classmethod
    def split_list(cls, v):
        # Env vars arrive as "dbo;sales"
        if isinstance(v, str):
            return [part.strip() for part in v.replace(',', ';').split(';') if part.strip()]
        return v

    def selected_kinds(self) -> frozenset:
        flags = {
            IndexKind.HEAP: self.scan_heap,
            IndexKind.CLUSTERED: self.scan_clustered_index,
            IndexKind.NONCLUSTERED: self.scan_nonclustered_index,
            IndexKind.CLUSTERED_COLUMNSTORE: self.scan_clustered_columnstore,
            IndexKind.NONCLUSTERED_COLUMNSTORE: self.scan_nonclustered_columnstore,
        }
        return frozenset(kind for kind, enabled in flags.items() if enabled)

    def to_filter_criteria(self) -> FilterCriteria:
        return FilterCriteria(
            first_threshold=self.first_threshold,
            second_threshold=self.second_threshold,
            min_index_size_mb=self.min_index_size_mb,
            max_index_size_mb=self.max_index_size_mb,
            predescribe_size_mb=self.predescribe_size_mb,
            include_schemas=tuple(self.include_schemas),
            exclude_schemas=tuple(self.exclude_schemas),
            include_objects=tuple(self.include_objects),
            exclude_objects=tuple(self.exclude_objects),
            scan_mode=self.scan_mode,
            index_kinds=self.selected_kinds(),
            scan_missing_index=self.scan_missing_index,
            ignore_read_only_filegroups=self.ignore_read_only_filegroups,
            ignore_permissions=self.ignore_permissions,
        )


class MaintenanceSettings(BaseSettings):
    """Operation preferences and DDL options"""

    model_config = SettingsConfigDict(env_prefix='INDEXHEALTH_MAINTENANCE__')

    first_operation: IndexOperation = Field(default=IndexOperation.REORGANIZE)
    second_operation: IndexOperation = Field(default=IndexOperation.REBUILD)
    data_compression: DataCompression = Field(default=DataCompression.NONE)
    online: bool = Field(default=False)

    max_dop: int = Field(default=0, ge=0, le=64)
    fill_factor: int = Field(default=0, ge=0, le=100)
    pad_index: bool = Field(default=False)
    sort_in_tempdb: bool = Field(default=False)
    lob_compaction: bool = Field(default=True)
    stats_sample_percent: int = Field(default=100, ge=1, le=100)
    no_recompute: bool = Field(default=False)

    wait_at_low_priority: bool = Field(default=False)
    max_duration: int = Field(default=1, ge=1, le=71582)
    abort_after_wait: AbortAfterWait = Field(default=AbortAfterWait.NONE)

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, le=32)

    @field_validator('first_operation', 'second_operation')
    @classmethod
    def validate_tier_operation(cls, v: IndexOperation) -> IndexOperation:
        # Tier operations are maintenance actions; drop/create are chosen per object
        if v.is_destructive or v == IndexOperation.CREATE_INDEX:
            raise ValueError(f"{v.value} cannot be used as a threshold operation")
        return v

    @field_validator('data_compression')
    @classmethod
    def validate_compression(cls, v: DataCompression) -> DataCompression:
        if not v.is_rowstore:
            raise ValueError("data_compression must be NONE, ROW or PAGE")
        return v

    def to_policy(self, scan: ScanSettings) -> MaintenancePolicy:
        return MaintenancePolicy(
            first_threshold=scan.first_threshold,
            second_threshold=scan.second_threshold,
            first_operation=self.first_operation,
            second_operation=self.second_operation,
            data_compression=self.data_compression,
            online=self.online,
            max_dop=self.max_dop,
            fill_factor=self.fill_factor,
            pad_index=self.pad_index,
            sort_in_tempdb=self.sort_in_tempdb,
            lob_compaction=self.lob_compaction,
            stats_sample_percent=self.stats_sample_percent,
            no_recompute=self.no_recompute,
            wait_at_low_priority=self.wait_at_low_priority,
            max_duration=self.max_duration,
            abort_after_wait=self.abort_after_wait,
            scan_mode=scan.scan_mode,
        )


class LoggingSettings(BaseSettings):
    """Console level and rotating file"""

    model_config = SettingsConfigDict(env_prefix='INDEXHEALTH_LOGGING__')

    level: str = Field(default="INFO")
    file_enabled: bool = Field(default=True)
    retention_days: int = Field(default=7, ge=1, le=30)

    @field_validator('level')
    @classmethod
    def normalize_level(cls, v: str) -> str:
        # Unknown names fall back to INFO rather than failing startup
        v = str(v).upper()
        return v if v in LOG_LEVELS else 'INFO'


class Settings(BaseSettings):
    """All settings sections plus the on-disk location"""

    model_config = SettingsConfigDict(
        env_prefix='INDEXHEALTH_',
        env_nested_delimiter='__',
        extra='ignore',
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_dir: Path = Field(default_factory=get_app_dir)

    @model_validator(mode='after')
    def check_thresholds(self) -> 'Settings':
        if self.scan.first_threshold >= self.scan.second_threshold:
            raise ValueError("scan.first_threshold must be lower than scan.second_threshold")
        return self

    @property
    def config_dir(self) -> Path:
        return self.app_dir / 'config'

    @property
    def logs_dir(self) -> Path:
        return self.app_dir / 'logs'

    @property
    def settings_file(self) -> Path:
        return self.config_dir / CONFIG_FILE

    def filter_criteria(self) -> FilterCriteria:
        return self.scan.to_filter_criteria()

    def maintenance_policy(self) -> MaintenancePolicy:
        return self.maintenance.to_policy(self.scan)

    def save(self) -> None:
        """Write settings as JSON; the password is never persisted"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        payload = self.model_dump(
            mode='json',
            exclude={'app_dir': True, 'connection': {'password'}},
        )
        self.settings_file.write_text(json.dumps(payload, indent=2), encoding='utf-8')

    @classmethod
    def load(cls, settings_file: Optional[Path] = None) -> 'Settings':
        """
        Build settings from a JSON file (default: the app config dir).
        A missing file means defaults; an unreadable or invalid one raises
        ConfigurationError.
        """
        path = settings_file or ensure_app_dirs() / 'config' / CONFIG_FILE
        if not path.exists():
            return cls()

        try:
            return cls(**json.loads(path.read_text(encoding='utf-8')))
        except (OSError, ValueError) as e:
            # pydantic's ValidationError and JSONDecodeError are ValueErrors
            raise ConfigurationError(f"Invalid settings file: {e}", {"path": str(path)}) from e


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use"""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings() -> Settings:
    """Replace the settings file with defaults (used by --init-config)"""
    global _settings
    _settings = Settings()
    _settings.save()
    return _settings
