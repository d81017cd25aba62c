"""
Base utilities shared by the CTPGA Manager routers.

This module provides:
- Logging configuration
- Structured event, user action and error logging
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ctpga_manager.config import get_settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)


class BaseService:
    """Base service with common logging helpers."""

    def __init__(self, service_name: str = "ctpga-manager"):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)

    def log_event(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Log an event."""
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "event": event_name,
            "data": data or {},
        }
        self.logger.info(f"EVENT: {json.dumps(log_data, default=str)}")
        return log_data

    def log_user_action(self, user_id: Optional[str], action: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Log an action performed by an authenticated user."""
        return self.log_event("user.action", {
            "user_id": user_id,
            "action": action,
            "details": details or {},
        })

    def log_auth_error(self, reason: str, path: Optional[str] = None) -> Dict[str, Any]:
        """Log a rejected authentication attempt. Never pass the token itself."""
        auth_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "reason": reason,
            "path": path,
        }
        self.logger.warning(f"AUTH: {json.dumps(auth_data)}")
        return auth_data

    def log_error(self, error: Exception, context: Optional[str] = None) -> Dict[str, Any]:
        """Log an error with optional context."""
        error_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "error": str(error),
            "error_type": error.__class__.__name__,
            "context": context or "unknown",
        }
        self.logger.error(f"ERROR: {json.dumps(error_data)}")
        return error_data


# Shared instance for use throughout the app
base_service = BaseService()
