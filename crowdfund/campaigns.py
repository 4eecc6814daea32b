"""
Campaign Ledger Module

Owns campaign records and per-backer pledge balances and enforces the
campaign lifecycle: launch, cancel, pledge, unpledge, claim and refund.
Every operation runs as one atomic section against storage; value moves
through an external token transfer service.

State that gates a payout (the ``claimed`` flag, a zeroed pledge entry) is
written to storage before the token service is called, so a call that
re-enters the ledger from inside the transfer sees the payout-safe state.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .clock import SystemClock
from .config import THIRTY_DAYS
from .errors import (
    CrowdfundError, ExternalDependencyError,
    InvalidWindow, WindowTooLong, InvalidAmount, TimestampOutOfRange,
    NotCreator, NotStarted, Ended, NotEnded, AlreadyStarted,
    GoalNotMet, GoalMet, AlreadyClaimed, InsufficientPledge,
    NotFound, TransferFailed
)
from .events import DomainEvent, EventDispatcher, EventPayload, create_campaign_event
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .token_client import TokenTransferService


MAX_AMOUNT = 2 ** 256 - 1
MAX_TIMESTAMP = 2 ** 32 - 1


class CampaignPhase(Enum):
    """Phases derived from the campaign window; never stored"""
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Campaign(StorageRecord):
    """One fundraising effort with a goal, a time window and a creator"""
    id: int
    creator: str
    goal: int
    pledged: int
    start_at: int
    end_at: int
    claimed: bool = False

    def phase_at(self, now: int) -> CampaignPhase:
        if now < self.start_at:
            return CampaignPhase.NOT_STARTED
        if now <= self.end_at:
            return CampaignPhase.ACTIVE
        if self.pledged >= self.goal:
            return CampaignPhase.SUCCEEDED
        return CampaignPhase.FAILED

    @property
    def goal_reached(self) -> bool:
        return self.pledged >= self.goal


@dataclass
class PledgeEntry:
    """Accumulated pledge of one backer to one campaign"""
    campaign_id: int
    backer: str
    amount: int = 0

    @property
    def key(self) -> str:
        return pledge_key(self.campaign_id, self.backer)

    def to_dict(self) -> Dict:
        return {
            "campaign_id": self.campaign_id,
            "backer": self.backer,
            "amount": self.amount
        }


def pledge_key(campaign_id: int, backer: str) -> str:
    return f"{campaign_id}:{backer}"


def _is_uint(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _require_amount(value, name: str = "amount") -> None:
    if not _is_uint(value) or value > MAX_AMOUNT:
        raise InvalidAmount(f"{name} must be an unsigned integer up to 2**256-1, got {value!r}")


class CampaignLedger:
    """
    Campaign store plus pledge ledger

    All public operations are serialized by one re-entrant lock and run
    inside ``storage.atomic()``; any failure leaves storage, the audit trail
    and the notification stream untouched. Notifications are buffered per
    atomic section and published once the outermost section commits.
    """

    def __init__(
        self,
        storage: StorageInterface,
        token_service: TokenTransferService,
        audit_trail: Optional[AuditTrail] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock=None,
        ledger_account: str = "crowdfund-ledger",
        max_duration: int = THIRTY_DAYS
    ):
        self.storage = storage
        self.token_service = token_service
        self.audit_trail = audit_trail
        self.event_dispatcher = event_dispatcher or EventDispatcher()
        self.clock = clock or SystemClock()
        if max_duration <= 0:
            raise ValueError(f"max_duration must be positive, got {max_duration}")
        self.ledger_account = ledger_account
        self.max_duration = max_duration

        self.campaigns_table = "campaigns"
        self.pledges_table = "pledges"
        self.meta_table = "ledger_meta"

        self.logger = get_logger("crowdfund.campaigns")
        self._lock = threading.RLock()
        # One buffer per open operation, innermost last
        self._pending_events: List[List[EventPayload]] = []

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def launch(self, goal: int, start_offset: int, end_offset: int, caller: str) -> int:
        """
        Launch a new campaign

        Args:
            goal: Target amount in token base units
            start_offset: Seconds from now until the campaign opens
            end_offset: Seconds from now until the campaign closes
            caller: Account launching the campaign (becomes the creator)

        Returns:
            The new campaign id (1-based, sequential)

        Raises:
            InvalidAmount: goal is not an unsigned integer
            InvalidWindow: end_offset <= start_offset, or a negative offset
            WindowTooLong: end_offset exceeds the maximum campaign duration
            TimestampOutOfRange: start_at or end_at overflows 32 bits
        """
        with self._operation("launch", None, caller):
            _require_amount(goal, "goal")
            if not (_is_uint(start_offset) and _is_uint(end_offset)):
                raise InvalidWindow(f"Offsets must be non-negative integers, got {start_offset!r}, {end_offset!r}")
            if end_offset <= start_offset:
                raise InvalidWindow(f"end_offset {end_offset} must be greater than start_offset {start_offset}")
            if end_offset > self.max_duration:
                raise WindowTooLong(f"end_offset {end_offset} exceeds maximum duration {self.max_duration}")

            now = self.clock.now()
            start_at = now + start_offset
            end_at = now + end_offset
            if end_at > MAX_TIMESTAMP:
                raise TimestampOutOfRange(f"end_at {end_at} does not fit a 32-bit timestamp")

            campaign_id = self._allocate_id()
            created = datetime.now(timezone.utc)
            campaign = Campaign(
                id=campaign_id,
                created_at=created,
                updated_at=created,
                creator=caller,
                goal=goal,
                pledged=0,
                start_at=start_at,
                end_at=end_at,
                claimed=False
            )
            self._save_campaign(campaign)

            self._audit(AuditEventType.CAMPAIGN_LAUNCHED, campaign_id, caller, {
                "goal": goal,
                "start_at": start_at,
                "end_at": end_at
            })
            self._emit(DomainEvent.LAUNCHED, campaign_id,
                       creator=caller, goal=goal, start_at=start_at, end_at=end_at)
            log_action(
                self.logger, "info", f"Campaign {campaign_id} launched",
                user_id=caller, action="launch", resource=f"campaign:{campaign_id}",
                extra={"goal": goal, "start_at": start_at, "end_at": end_at}
            )

        return campaign_id

    def cancel(self, campaign_id: int, caller: str) -> None:
        """
        Cancel a campaign that has not started yet, deleting its record

        Raises:
            NotFound: no such campaign
            NotCreator: caller did not launch the campaign
            AlreadyStarted: the campaign window has opened
        """
        with self._operation("cancel", campaign_id, caller):
            campaign = self._require_campaign(campaign_id)
            if caller != campaign.creator:
                raise NotCreator(campaign_id=campaign_id)
            if self.clock.now() >= campaign.start_at:
                raise AlreadyStarted(campaign_id=campaign_id)

            self.storage.delete(self.campaigns_table, str(campaign_id))

            self._audit(AuditEventType.CAMPAIGN_CANCELLED, campaign_id, caller, {})
            self._emit(DomainEvent.CANCELLED, campaign_id)
            log_action(
                self.logger, "info", f"Campaign {campaign_id} cancelled",
                user_id=caller, action="cancel", resource=f"campaign:{campaign_id}"
            )

    def pledge(self, campaign_id: int, amount: int, caller: str) -> None:
        """
        Pledge tokens to an active campaign

        The ledger is credited first and the tokens are then pulled from the
        caller with ``transfer_from``; a failed pull undoes the credit.

        Raises:
            InvalidAmount: amount is not an unsigned integer
            NotFound: no such campaign
            NotStarted: now < start_at
            Ended: now > end_at
            TransferFailed: the token service refused the transfer
        """
        with self._operation("pledge", campaign_id, caller):
            _require_amount(amount)
            campaign = self._require_campaign(campaign_id)
            now = self.clock.now()
            if now < campaign.start_at:
                raise NotStarted(campaign_id=campaign_id)
            if now > campaign.end_at:
                raise Ended(campaign_id=campaign_id)
            if campaign.pledged + amount > MAX_AMOUNT:
                raise InvalidAmount(f"Pledging {amount} would overflow the campaign total", campaign_id=campaign_id)

            entry = self._load_entry(campaign_id, caller)
            campaign.pledged += amount
            entry.amount += amount
            self._save_campaign(campaign)
            self._save_entry(entry)
            self._audit(AuditEventType.PLEDGE_ADDED, campaign_id, caller, {
                "amount": amount,
                "pledged": campaign.pledged
            })

            self._move_tokens(
                campaign_id, f"transfer_from({caller}, {self.ledger_account}, {amount})",
                self.token_service.transfer_from, caller, self.ledger_account, amount
            )

            self._emit(DomainEvent.PLEDGED, campaign_id, caller=caller, amount=amount)
            log_action(
                self.logger, "info", f"Pledged {amount} to campaign {campaign_id}",
                user_id=caller, action="pledge", resource=f"campaign:{campaign_id}",
                extra={"amount": amount, "pledged": campaign.pledged}
            )

    def unpledge(self, campaign_id: int, amount: int, caller: str) -> None:
        """
        Withdraw part or all of a pledge before the campaign ends

        Allowed before the campaign opens; only the end of the window is checked.

        Raises:
            InvalidAmount: amount is not an unsigned integer
            NotFound: no such campaign
            Ended: now > end_at
            InsufficientPledge: amount exceeds the caller's pledge
            TransferFailed: the token service refused the transfer
        """
        with self._operation("unpledge", campaign_id, caller):
            _require_amount(amount)
            campaign = self._require_campaign(campaign_id)
            if self.clock.now() > campaign.end_at:
                raise Ended(campaign_id=campaign_id)

            entry = self._load_entry(campaign_id, caller)
            if entry.amount < amount or campaign.pledged < amount:
                raise InsufficientPledge(
                    f"Cannot unpledge {amount}, pledged balance is {entry.amount}",
                    campaign_id=campaign_id
                )

            campaign.pledged -= amount
            entry.amount -= amount
            self._save_campaign(campaign)
            self._save_entry(entry)
            self._audit(AuditEventType.PLEDGE_WITHDRAWN, campaign_id, caller, {
                "amount": amount,
                "pledged": campaign.pledged
            })

            self._move_tokens(campaign_id, f"transfer({caller}, {amount})", self.token_service.transfer, caller, amount)

            self._emit(DomainEvent.UNPLEDGED, campaign_id, caller=caller, amount=amount)
            log_action(
                self.logger, "info", f"Unpledged {amount} from campaign {campaign_id}",
                user_id=caller, action="unpledge", resource=f"campaign:{campaign_id}",
                extra={"amount": amount, "pledged": campaign.pledged}
            )

    def claim(self, campaign_id: int, caller: str) -> int:
        """
        Pay all pledged funds to the creator of a successful campaign

        Returns:
            The amount paid out

        Raises:
            NotFound, NotCreator, NotEnded, GoalNotMet, AlreadyClaimed
            (checked in that order), TransferFailed
        """
        with self._operation("claim", campaign_id, caller):
            campaign = self._require_campaign(campaign_id)
            if caller != campaign.creator:
                raise NotCreator(campaign_id=campaign_id)
            if self.clock.now() <= campaign.end_at:
                raise NotEnded(campaign_id=campaign_id)
            if campaign.pledged < campaign.goal:
                raise GoalNotMet(
                    f"Pledged {campaign.pledged} is below goal {campaign.goal}",
                    campaign_id=campaign_id
                )
            if campaign.claimed:
                raise AlreadyClaimed(campaign_id=campaign_id)

            # claimed must be stored before the transfer call
            campaign.claimed = True
            self._save_campaign(campaign)
            self._audit(AuditEventType.CAMPAIGN_CLAIMED, campaign_id, caller, {
                "amount": campaign.pledged
            })

            self._move_tokens(
                campaign_id, f"transfer({caller}, {campaign.pledged})",
                self.token_service.transfer, caller, campaign.pledged
            )

            self._emit(DomainEvent.CLAIMED, campaign_id)
            log_action(
                self.logger, "info", f"Campaign {campaign_id} claimed",
                user_id=caller, action="claim", resource=f"campaign:{campaign_id}",
                extra={"amount": campaign.pledged}
            )

        return campaign.pledged

    def refund(self, campaign_id: int, caller: str) -> int:
        """
        Return a backer's pledge after a failed campaign

        The backer's entry is zeroed and the campaign total lowered by the
        same amount. A backer with nothing pledged gets a zero-amount transfer
        and notification rather than an error.

        Returns:
            The amount refunded

        Raises:
            NotFound, NotEnded, GoalMet, TransferFailed
        """
        with self._operation("refund", campaign_id, caller):
            campaign = self._require_campaign(campaign_id)
            if self.clock.now() <= campaign.end_at:
                raise NotEnded(campaign_id=campaign_id)
            if campaign.pledged >= campaign.goal:
                raise GoalMet(campaign_id=campaign_id)

            entry = self._load_entry(campaign_id, caller)
            balance = entry.amount
            # zeroed entry must be stored before the transfer call
            entry.amount = 0
            campaign.pledged -= balance
            self._save_entry(entry)
            self._save_campaign(campaign)
            self._audit(AuditEventType.PLEDGE_REFUNDED, campaign_id, caller, {
                "amount": balance,
                "pledged": campaign.pledged
            })

            self._move_tokens(campaign_id, f"transfer({caller}, {balance})", self.token_service.transfer, caller, balance)

            self._emit(DomainEvent.REFUNDED, campaign_id, caller=caller, amount=balance)
            log_action(
                self.logger, "info", f"Refunded {balance} from campaign {campaign_id}",
                user_id=caller, action="refund", resource=f"campaign:{campaign_id}",
                extra={"amount": balance}
            )

        return balance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_campaign(self, campaign_id: int) -> Campaign:
        """Get a campaign by id, raising NotFound if absent or cancelled"""
        with self._lock:
            return self._require_campaign(campaign_id)

    def find_campaign(self, campaign_id: int) -> Optional[Campaign]:
        with self._lock:
            return self._load_campaign(campaign_id)

    def pledged_amount(self, campaign_id: int, backer: str) -> int:
        """Current pledge of ``backer`` to the campaign (0 if never pledged)"""
        with self._lock:
            return self._load_entry(campaign_id, backer).amount

    def campaign_count(self) -> int:
        """Number of campaigns ever launched, cancelled ones included"""
        with self._lock:
            record = self.storage.load(self.meta_table, "campaign_count")
            return record["value"] if record else 0

    def get_phase(self, campaign_id: int) -> CampaignPhase:
        with self._lock:
            return self._require_campaign(campaign_id).phase_at(self.clock.now())

    def list_campaigns(self) -> List[Campaign]:
        """Live campaigns ordered by id"""
        with self._lock:
            campaigns = [self._campaign_from_dict(data) for data in self.storage.load_all(self.campaigns_table)]
        return sorted(campaigns, key=lambda c: c.id)

    def get_backers(self, campaign_id: int) -> Dict[str, int]:
        """Pledge ledger entries of one campaign, zeroed entries included"""
        with self._lock:
            records = self.storage.find(self.pledges_table, {"campaign_id": campaign_id})
        return {record["backer"]: record["amount"] for record in records}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, action: str, campaign_id: Optional[int], caller: str):
        """
        Run one ledger operation atomically, publishing its notifications on success

        Notifications are published before the ledger lock is released, so
        observers see operations in commit order across threads.
        """
        with self._lock:
            self._pending_events.append([])
            try:
                with self.storage.atomic():
                    yield
            except CrowdfundError as e:
                self._pending_events.pop()
                level = "error" if isinstance(e, ExternalDependencyError) else "warning"
                log_action(
                    self.logger, level, f"{action} rejected: {e.code}",
                    user_id=caller, action=action,
                    resource=f"campaign:{campaign_id}" if campaign_id is not None else None,
                    extra={"error": e.code, "detail": e.message}
                )
                raise
            except BaseException:
                self._pending_events.pop()
                raise

            events = self._pending_events.pop()
            if self._pending_events:
                # Nested inside another operation; publish when the outer one commits
                self._pending_events[-1].extend(events)
                return

            for event in events:
                self.event_dispatcher.publish(event)

    def _move_tokens(self, campaign_id: int, description: str, call, *args) -> None:
        """Call the token service, turning a refusal or an exception into TransferFailed"""
        try:
            succeeded = call(*args)
        except CrowdfundError:
            raise
        except Exception as e:
            raise TransferFailed(f"{description} raised {e!r}", campaign_id=campaign_id) from e
        if not succeeded:
            raise TransferFailed(f"{description} failed", campaign_id=campaign_id)

    def _emit(self, event_type: DomainEvent, campaign_id: int, **data) -> None:
        self._pending_events[-1].append(create_campaign_event(event_type, campaign_id, **data))

    def _audit(self, event_type: AuditEventType, campaign_id: int, caller: str, metadata: Dict) -> None:
        if self.audit_trail is None:
            return
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="campaign",
            entity_id=str(campaign_id),
            metadata=metadata,
            user_id=caller
        )

    def _allocate_id(self) -> int:
        campaign_id = self.campaign_count() + 1
        self.storage.save(self.meta_table, "campaign_count", {"value": campaign_id})
        return campaign_id

    def _require_campaign(self, campaign_id: int) -> Campaign:
        campaign = self._load_campaign(campaign_id)
        if campaign is None:
            raise NotFound(f"Campaign {campaign_id} not found", campaign_id=campaign_id)
        return campaign

    def _load_campaign(self, campaign_id: int) -> Optional[Campaign]:
        data = self.storage.load(self.campaigns_table, str(campaign_id))
        if data is None:
            return None
        return self._campaign_from_dict(data)

    def _campaign_from_dict(self, data: Dict) -> Campaign:
        return Campaign.from_dict(data)

    def _save_campaign(self, campaign: Campaign) -> None:
        campaign.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.campaigns_table, str(campaign.id), campaign.to_dict())

    def _load_entry(self, campaign_id: int, backer: str) -> PledgeEntry:
        data = self.storage.load(self.pledges_table, pledge_key(campaign_id, backer))
        if data is None:
            return PledgeEntry(campaign_id=campaign_id, backer=backer)
        return PledgeEntry(**data)

    def _save_entry(self, entry: PledgeEntry) -> None:
        self.storage.save(self.pledges_table, entry.key, entry.to_dict())
