"""
Token Transfer Service Module

Interface to the external fungible-token service the ledger moves value
through, with a REST client for a deployed token service and an in-memory
balance book for tests and local development.
"""

import httpx
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger("crowdfund.token")


class TokenTransferService(ABC):
    """
    Operations the ledger needs from the token service

    Both calls report success as a boolean. They act on behalf of the ledger's
    own account: ``transfer`` pays out of it, ``transfer_from`` pulls into it
    (or elsewhere) using an allowance granted by ``from_account``.
    """

    @abstractmethod
    def transfer(self, to: str, amount: int) -> bool:
        """Move ``amount`` from the ledger account to ``to``"""

    @abstractmethod
    def transfer_from(self, from_account: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``from_account`` to ``to``"""


class HttpTokenClient(TokenTransferService):
    """REST client for a token transfer service"""

    def __init__(
        self,
        base_url: str,
        account: str,
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.account = account
        self.timeout = timeout
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict) -> bool:
        """POST a transfer request; any failure is reported as False"""
        try:
            response = self._client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.error(f"Token service request to {path} failed: {e}")
            return False

        if response.status_code // 100 != 2:
            logger.warning(f"Token service returned {response.status_code}: {response.text}")
            return False

        if not response.content:
            return True
        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Token service returned a non-JSON body for {path}")
            return False
        return bool(body.get("success", True)) if isinstance(body, dict) else bool(body)

    def transfer(self, to: str, amount: int) -> bool:
        return self._post("/transfer", {
            "from": self.account,
            "to": to,
            "amount": str(amount)
        })

    def transfer_from(self, from_account: str, to: str, amount: int) -> bool:
        return self._post("/transfer-from", {
            "spender": self.account,
            "from": from_account,
            "to": to,
            "amount": str(amount)
        })

    def health_check(self) -> bool:
        """Check if the token service is healthy"""
        try:
            r = self._client.get(f"{self.base_url}/health", headers=self._headers())
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    def close(self):
        """Close the HTTP client"""
        self._client.close()


class InMemoryTokenLedger(TokenTransferService):
    """Balance book with ERC-20 style allowances, held in process memory"""

    def __init__(self, account: str = "crowdfund-ledger"):
        self.account = account
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[tuple, int] = {}
        self._lock = threading.RLock()

    def mint(self, to: str, amount: int) -> None:
        with self._lock:
            self._balances[to] = self._balances.get(to, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        with self._lock:
            self._allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def _move(self, source: str, to: str, amount: int) -> bool:
        if amount < 0 or self._balances.get(source, 0) < amount:
            return False
        self._balances[source] = self._balances.get(source, 0) - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        return True

    def transfer(self, to: str, amount: int) -> bool:
        with self._lock:
            return self._move(self.account, to, amount)

    def transfer_from(self, from_account: str, to: str, amount: int) -> bool:
        with self._lock:
            allowed = self._allowances.get((from_account, self.account), 0)
            if allowed < amount:
                logger.warning(f"Allowance of {from_account} for {self.account} is {allowed}, needed {amount}")
                return False
            if not self._move(from_account, to, amount):
                return False
            self._allowances[(from_account, self.account)] = allowed - amount
            return True
