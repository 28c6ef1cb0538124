"""API services built on the request pipeline.

Each service maps one family of PocketBase endpoints onto methods; none of
them talks to the network directly.
"""

from .backup_service import BackupService
from .base_service import BaseService
from .collection_service import CollectionService
from .crud_service import CrudService
from .cron_service import CronService
from .file_service import FileService
from .health_service import HealthService
from .log_service import LogService
from .record_service import RecordService, password_refresh_handler, token_refresh_handler
from .settings_service import SettingsService

__all__ = [
    "BackupService",
    "BaseService",
    "CollectionService",
    "CronService",
    "CrudService",
    "FileService",
    "HealthService",
    "LogService",
    "RecordService",
    "SettingsService",
    "password_refresh_handler",
    "token_refresh_handler",
]
