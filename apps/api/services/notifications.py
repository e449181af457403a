"""
Notification Service

Delivers the user-facing alert raised when a critical insight is generated.
This is the only side effect of the analytics pipeline.

Alerts go to a Supabase edge function, which owns fan-out (in-app toast,
email, coach notification). Delivery is best effort: failures are logged
and reported as False, never raised into the analytics request.
"""

from typing import Iterable, List, Optional, Protocol
import logging

import requests

from core.config import settings
from services.insight_generator import Insight, InsightSeverity, to_dict

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: str, insight: Insight) -> bool:
        ...


class SupabaseAlertNotifier:
    """Posts critical insights to the alert edge function."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        function_name: Optional[str] = None,
        timeout: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        self.service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.function_name = function_name or settings.ALERT_FUNCTION_NAME
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/functions/v1/{self.function_name}"

    def notify(self, user_id: str, insight: Insight) -> bool:
        """
        Send one alert.

        Returns True if the edge function accepted it, False otherwise.
        """
        if not self.enabled:
            logger.info(f"Notifications disabled, would alert user {user_id}: {insight.id}")
            return False
        if not self.base_url or not self.service_key:
            logger.info(f"Supabase not configured, skipping alert for user {user_id}: {insight.id}")
            return False

        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "user_id": user_id,
            "alert_type": "critical_insight",
            "insight": to_dict(insight),
        }

        try:
            r = requests.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            r.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(f"Failed to deliver alert {insight.id} for user {user_id}: {e}")
            return False

        logger.info(f"Delivered critical alert {insight.id} for user {user_id}")
        return True


def dispatch_critical_alerts(user_id: str, insights: Iterable[Insight], notifier: Notifier) -> List[str]:
    """
    Alert the user once per critical insight.

    Returns the ids of insights that were delivered.
    """
    delivered = []
    for insight in insights:
        if insight.severity != InsightSeverity.CRITICAL:
            continue
        if notifier.notify(user_id, insight):
            delivered.append(insight.id)
    return delivered
