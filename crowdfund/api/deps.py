"""
Shared API dependencies: the wired-up ledger system and the caller identity
"""

from typing import Optional
from fastapi import Header

from ..audit import AuditTrail, AuditEventType
from ..campaigns import CampaignLedger
from ..config import CrowdfundConfig, get_config
from ..events import EventDispatcher
from ..storage import create_storage
from ..token_client import HttpTokenClient, InMemoryTokenLedger, TokenTransferService


class CrowdfundSystem:
    """Campaign ledger with storage, audit trail, notifications and token service wired together"""

    def __init__(self, config: CrowdfundConfig, token_service: Optional[TokenTransferService] = None, clock=None):
        self.config = config
        self.storage = create_storage(config.database_url)
        self.audit_trail = AuditTrail(self.storage) if config.enable_audit_logging else None
        self.event_dispatcher = EventDispatcher()
        self.token_service = token_service or self._create_token_service()

        self.ledger = CampaignLedger(
            storage=self.storage,
            token_service=self.token_service,
            audit_trail=self.audit_trail,
            event_dispatcher=self.event_dispatcher,
            clock=clock,
            ledger_account=config.ledger_account,
            max_duration=config.max_campaign_duration
        )

        if self.audit_trail is not None:
            self.audit_trail.log_event(
                event_type=AuditEventType.SYSTEM_START,
                entity_type="system",
                entity_id="crowdfund",
                metadata={"database_url": config.database_url}
            )

    def _create_token_service(self) -> TokenTransferService:
        """Create token service client based on configuration"""
        if not self.config.token_service_url:
            return InMemoryTokenLedger(account=self.config.ledger_account)

        return HttpTokenClient(
            base_url=self.config.token_service_url,
            account=self.config.ledger_account,
            timeout=self.config.token_service_timeout,
            api_key=self.config.token_service_api_key or None
        )

    def close(self) -> None:
        if isinstance(self.token_service, HttpTokenClient):
            self.token_service.close()
        self.storage.close()


_system: Optional[CrowdfundSystem] = None


def get_system() -> CrowdfundSystem:
    """Dependency returning the process-wide system, created on first use"""
    global _system
    if _system is None:
        _system = CrowdfundSystem(get_config())
    return _system


def get_caller(x_account_id: str = Header(..., alias="X-Account-Id")) -> str:
    """Identity of the account making the request"""
    return x_account_id
