"""Change logging package."""

from finledger.audit.logger import (
    ChangeLogger,
    configure_log_level,
    create_correlation_id,
)

__all__ = ["ChangeLogger", "configure_log_level", "create_correlation_id"]
