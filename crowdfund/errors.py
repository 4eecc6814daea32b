"""
Error Hierarchy Module

Every failed ledger operation raises one of these. Errors are grouped by
category so callers (the API layer in particular) can map them without
knowing each individual case:

- ValidationError: bad launch parameters or amounts
- AuthorizationError: caller is not allowed to act on the campaign
- TimingError: operation attempted outside its time window
- BusinessRuleError: goal / claim / balance rules violated
- NotFoundError: campaign does not exist (never launched or cancelled)
- ExternalDependencyError: the token transfer service reported failure
"""

from typing import Optional


class CrowdfundError(Exception):
    """Base class for all ledger errors"""

    code = "CrowdfundError"
    default_message = "Crowdfund operation failed"

    def __init__(self, message: Optional[str] = None, campaign_id: Optional[int] = None):
        self.message = message or self.default_message
        self.campaign_id = campaign_id
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serializable form used by the API error handler"""
        return {"error": self.code, "detail": self.message}


# Categories

class ValidationError(CrowdfundError):
    code = "ValidationError"


class AuthorizationError(CrowdfundError):
    code = "AuthorizationError"


class TimingError(CrowdfundError):
    code = "TimingError"


class BusinessRuleError(CrowdfundError):
    code = "BusinessRuleError"


class NotFoundError(CrowdfundError):
    code = "NotFoundError"


class ExternalDependencyError(CrowdfundError):
    code = "ExternalDependencyError"


# Validation errors

class InvalidWindow(ValidationError):
    code = "InvalidWindow"
    default_message = "End offset must be greater than start offset"


class WindowTooLong(ValidationError):
    code = "WindowTooLong"
    default_message = "Campaign window exceeds the maximum duration"


class InvalidAmount(ValidationError):
    code = "InvalidAmount"
    default_message = "Amount must be an unsigned integer"


class TimestampOutOfRange(ValidationError):
    code = "TimestampOutOfRange"
    default_message = "Campaign timestamps do not fit the 32-bit timestamp range"


# Authorization errors

class NotCreator(AuthorizationError):
    code = "NotCreator"
    default_message = "Caller is not the campaign creator"


# Timing errors

class NotStarted(TimingError):
    code = "NotStarted"
    default_message = "Campaign has not started"


class Ended(TimingError):
    code = "Ended"
    default_message = "Campaign has ended"


class NotEnded(TimingError):
    code = "NotEnded"
    default_message = "Campaign has not ended"


class AlreadyStarted(TimingError):
    code = "AlreadyStarted"
    default_message = "Campaign has already started"


# Business rule errors

class GoalNotMet(BusinessRuleError):
    code = "GoalNotMet"
    default_message = "Pledged amount is below the goal"


class GoalMet(BusinessRuleError):
    code = "GoalMet"
    default_message = "Campaign reached its goal, refunds are not available"


class AlreadyClaimed(BusinessRuleError):
    code = "AlreadyClaimed"
    default_message = "Campaign funds were already claimed"


class InsufficientPledge(BusinessRuleError):
    code = "InsufficientPledge"
    default_message = "Unpledge amount exceeds the pledged balance"


# Not found

class NotFound(NotFoundError):
    code = "NotFound"
    default_message = "Campaign not found"


# External dependency

class TransferFailed(ExternalDependencyError):
    code = "TransferFailed"
    default_message = "Token transfer failed"
