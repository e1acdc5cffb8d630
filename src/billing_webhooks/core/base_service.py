"""
Service base class
"""
import logging
from typing import Any, Dict

from billing_webhooks.core.interfaces import IBillingStore
from billing_webhooks.core.responses import BusinessException


class BaseService:

    def __init__(self, store: IBillingStore):
        self.store = store
        self.logger = logging.getLogger(self.__class__.__name__)

    async def best_effort(self, operation_name: str, operation_func, *args, **kwargs) -> Dict[str, Any]:
        """Run a step whose failure must not undo or block earlier committed writes"""
        try:
            result = await operation_func(*args, **kwargs)
            return {"success": True, "data": result}
        except BusinessException as e:
            self.logger.warning(f"{operation_name} skipped: {e.message}")
            return {"success": False, "error": e.message, "error_code": e.error_code}
        except Exception as e:
            self.logger.error(f"{operation_name} failed: {e}")
            return {"success": False, "error": str(e)}
