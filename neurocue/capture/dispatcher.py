"""
Automation Dispatcher

Runs approved automations by posting them to the configured workflow
webhook.

Lifecycle driven here:
    pending -> approved -> triggered -> completed (external id kept)
                                     -> failed (error kept)

Without a webhook URL an approved record stays approved and nothing is
sent; its later status changes are then up to the caller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..common.config import AutomationConfig
from ..common.schemas import AutomationRecord, AutomationStatus
from .store import ArtifactStore

logger = logging.getLogger("neurocue.capture.dispatcher")


class WebhookError(Exception):
    """The workflow webhook did not accept the automation"""


class AutomationDispatcher:
    """Approves automations and hands them to the workflow webhook."""

    def __init__(
        self,
        store: ArtifactStore,
        webhook_url: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._store = store
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: AutomationConfig,
        store: ArtifactStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AutomationDispatcher":
        return cls(
            store,
            webhook_url=config.webhook_url,
            timeout=config.webhook_timeout,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def approve(
        self,
        record_id: str,
        edited_parameters: Optional[Dict[str, Any]] = None,
    ) -> AutomationRecord:
        """
        Approve a pending automation and run it.

        Args:
            record_id: Automation to approve
            edited_parameters: Approver's corrections; used instead of the
                refined parameters when non-empty

        Returns:
            The record in its final status for this call

        Raises:
            KeyError: unknown record id
            InvalidTransitionError: record is not pending
        """
        record = await self._store.update_status(
            record_id, AutomationStatus.APPROVED, edited_parameters=edited_parameters,
        )
        if not self.is_configured:
            logger.warning(
                "[%s] No webhook URL configured, automation %s left approved",
                record.conversation_id, record_id,
            )
            return record
        return await self.trigger(record)

    async def trigger(self, record: AutomationRecord) -> AutomationRecord:
        """Post an approved record to the webhook and settle its status."""
        await self._store.update_status(record.id, AutomationStatus.TRIGGERED)
        try:
            external_id = await self._post(record)
        except WebhookError as e:
            logger.error("[%s] Automation %s failed: %s", record.conversation_id, record.id, e)
            return await self._store.update_status(record.id, AutomationStatus.FAILED, error=str(e))

        logger.info(
            "[%s] Automation %s completed (external id: %s)",
            record.conversation_id, record.id, external_id or "none",
        )
        return await self._store.update_status(
            record.id, AutomationStatus.COMPLETED, external_id=external_id,
        )

    def build_payload(self, record: AutomationRecord) -> Dict[str, Any]:
        return {
            "automation_id": record.id,
            "conversation_id": record.conversation_id,
            "intent": record.intent_kind,
            "parameters": record.effective_parameters,
            "trigger": {
                "text": record.trigger_text,
                "speaker": record.speaker,
                "source_chunk_id": record.source_chunk_id,
                "approved_at": datetime.now(timezone.utc).isoformat(),
            },
        }

    async def _post(self, record: AutomationRecord) -> Optional[str]:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(self._webhook_url, json=self.build_payload(record))
        except httpx.HTTPError as e:
            raise WebhookError(f"webhook request failed: {e}") from e

        if response.status_code >= 400:
            raise WebhookError(f"webhook returned {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        external_id = data.get("id") or data.get("executionId") or data.get("execution_id")
        return str(external_id) if external_id is not None else None
