"""
Abstract settlement provider interface.

The settlement provider converts stablecoins to fiat and pays out to a bank
or mobile-money institution. PaycrestProvider wraps the real REST API;
MockSettlementProvider is a swappable fake with the same contract for tests
and local development.

All methods raise ProviderError (or a subclass) from app.engine.retry on
failure. Translation into domain errors happens in the engine clients.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Recipient:
    """Payout destination for an order."""

    institution: str
    account_identifier: str
    account_name: str
    currency: str
    memo: str = ""


@dataclass
class ProviderOrderRequest:
    """Order payload submitted to the provider."""

    amount: str  # Decimal string in token units
    token: str
    network: str
    recipient: Recipient
    reference: str
    rate: Optional[str] = None
    return_address: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "amount": self.amount,
            "token": self.token,
            "network": self.network,
            "recipient": {
                "institution": self.recipient.institution,
                "accountIdentifier": self.recipient.account_identifier,
                "accountName": self.recipient.account_name,
                "currency": self.recipient.currency,
                "memo": self.recipient.memo,
            },
            "reference": self.reference,
        }
        if self.rate is not None:
            payload["rate"] = self.rate
        if self.return_address:
            payload["returnAddress"] = self.return_address
        return payload


@dataclass
class ProviderOrder:
    """Order record as reported by the provider."""

    id: str
    status: str  # "pending", "processing", "completed", "failed", "expired"
    reference: str = ""
    amount: str = ""
    token: str = ""
    network: str = ""
    receive_address: Optional[str] = None
    valid_until: Optional[str] = None
    sender_fee: Optional[str] = None
    transaction_fee: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    transaction_hash: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "ProviderOrder":
        return cls(
            id=str(data.get("id") or data.get("orderId") or ""),
            status=str(data.get("status") or "pending"),
            reference=data.get("reference") or "",
            amount=str(data.get("amount") or ""),
            token=data.get("token") or "",
            network=data.get("network") or "",
            receive_address=data.get("receiveAddress"),
            valid_until=data.get("validUntil"),
            sender_fee=_opt_str(data.get("senderFee")),
            transaction_fee=_opt_str(data.get("transactionFee")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            transaction_hash=data.get("transactionHash"),
        )


@dataclass
class Currency:
    code: str
    name: str
    symbol: str = ""
    type: str = "fiat"
    networks: list[str] = field(default_factory=list)


@dataclass
class Institution:
    code: str
    name: str
    type: str = "bank"
    currency: str = ""


@dataclass
class AccountVerification:
    account_name: str
    account_identifier: str
    institution: str
    verified: bool = True


def _opt_str(value) -> Optional[str]:
    return None if value is None else str(value)


class SettlementProvider(ABC):
    """Abstract base class for settlement providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'paycrest')."""
        ...

    @abstractmethod
    async def fetch_rate(self, token: str, amount: str, currency: str, network: str) -> str:
        """Return the raw rate string (fiat units per token) for the conversion."""
        ...

    @abstractmethod
    async def list_currencies(self) -> list[Currency]:
        ...

    @abstractmethod
    async def list_institutions(self, currency: str) -> list[Institution]:
        ...

    @abstractmethod
    async def create_order(self, request: ProviderOrderRequest) -> ProviderOrder:
        """
        Submit an order to the provider.

        Raises:
            ProviderError: On transient failure.
            PermanentError: When the provider rejects the order.
        """
        ...

    @abstractmethod
    async def fetch_order(self, order_id: str) -> ProviderOrder:
        """
        Look up an order.

        Raises:
            ProviderError: status_code 404 when the provider has no record.
        """
        ...

    @abstractmethod
    async def verify_account(self, institution: str, account_identifier: str) -> AccountVerification:
        ...

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
        return None
