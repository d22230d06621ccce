from .config import URMSConfig, DatabaseConfig, BackupConfig, RetentionPolicy
from .backup import BackupOrchestrator

__version__ = "0.3.1"
__author__ = "URMS Platform Team"
