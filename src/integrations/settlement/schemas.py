from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.shared.utils.money import to_wire_amount


class TransferInstruction(BaseModel):
    """
    Funds transfer request for the core banking switch.

    Debit side (TXN*) is the parent's account, credit side (OFFSET*) the
    school's collection account. Field names follow the wire format.
    """

    model_config = ConfigDict(populate_by_name=True)

    SOURCE: str
    USERID: str
    BRANCH: str
    PROD: str
    BRN: str

    TXNCCY: str
    TXNBRN: str
    TXNACC: str

    OFFSETCCY: str
    OFFSETBRN: str
    OFFSETACC: str

    TXNAMT: Decimal
    NARRATION: str
    TXNDATE: str  # YYYY-MM-DD

    ACCOUNT_NUMBER: str | None = None
    BENEF_NAME: str | None = None
    BRANCH_CODE: str | None = None
    CUSTOMERS_BANK_NAME: str | None = None
    MSGID: str | None = None
    CORRELID: str | None = None

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        payload["TXNAMT"] = to_wire_amount(self.TXNAMT)
        return payload


class _BancResponse(BaseModel):
    response: str | None = None
    message: str | None = None
    value: Any = None


class TokenResponse(BaseModel):
    """{"bancabc_reponse": {"response": "00", "message": "...", "value": "<token>"}}"""

    # The switch misspells "response" in its envelope key
    bancabc_reponse: _BancResponse | None = None

    @property
    def code(self) -> str | None:
        return self.bancabc_reponse.response if self.bancabc_reponse else None

    @property
    def message(self) -> str | None:
        return self.bancabc_reponse.message if self.bancabc_reponse else None

    @property
    def token(self) -> str | None:
        if not self.bancabc_reponse or not isinstance(self.bancabc_reponse.value, str):
            return None
        return self.bancabc_reponse.value.strip() or None


class SettlementResponse(BaseModel):
    """
    Transfer result. The payload is a list of [key, value] pairs, e.g.
    [["MSGSTAT", "SUCCESS"], ["XREF", "120FT2601800001"]].
    """

    response: str | None = None
    message: str | None = None
    pairs: list[tuple[str, str | None]] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)
    http_status: int | None = None

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any], http_status: int | None = None
    ) -> SettlementResponse:
        envelope = payload.get("bancabc_reponse") if isinstance(payload, dict) else None
        if not isinstance(envelope, dict):
            raise ValueError("Settlement response has no bancabc_reponse envelope")

        raw_pairs = envelope.get("value")
        if raw_pairs is None:
            raw_pairs = []
        elif not isinstance(raw_pairs, list):
            raise ValueError("Settlement response value is not a list of pairs")

        pairs: list[tuple[str, str | None]] = []
        for item in raw_pairs:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                key, value = item
                pairs.append((str(key), None if value is None else str(value)))

        return cls(
            response=None if envelope.get("response") is None else str(envelope.get("response")),
            message=envelope.get("message"),
            pairs=pairs,
            raw=payload,
            http_status=http_status,
        )

    def response_value(self, key: str) -> str | None:
        """First value recorded for key, or None."""
        for k, v in self.pairs:
            if k == key:
                return v
        return None

    def is_success(self, success_code: str = "00", success_status: str = "SUCCESS") -> bool:
        status = self.response_value("MSGSTAT")
        return (
            self.response == success_code
            and status is not None
            and status.upper() == success_status.upper()
        )

    @property
    def settlement_reference(self) -> str | None:
        xref = self.response_value("XREF")
        return xref if xref is not None else self.response_value("FCCREF")

    def describe(self) -> str:
        return "Response: %s, Message: %s, MSGSTAT: %s" % (
            self.response,
            self.message,
            self.response_value("MSGSTAT"),
        )
