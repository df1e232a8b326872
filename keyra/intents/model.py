"""SignalIntent: the memo a client attaches to a signed transaction."""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import MalformedIntent


class IntentAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    REKEY = "rekey"


# Fields each action must carry (model attribute names)
REQUIRED_FIELDS: dict[IntentAction, tuple[str, ...]] = {
    IntentAction.ADD: ("user_identity", "cid"),
    IntentAction.UPDATE: ("user_identity", "old_cid", "new_cid"),
    IntentAction.DELETE: ("user_identity", "cid"),
    IntentAction.REKEY: ("user_identity", "new_shielded_identity"),
}

WIRE_NAMES = {
    "user_identity": "userIdentity",
    "cid": "cid",
    "old_cid": "oldCid",
    "new_cid": "newCid",
    "new_shielded_identity": "newShieldedIdentity",
}

# Every accepted spelling of the CID fields, dropped from rekey payloads
_CID_KEYS = ("cid", "oldCid", "old_cid", "newCid", "new_cid")


class SignalIntent(BaseModel):
    """A requested mutation of the owner's CID index. Untrusted until validated."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    action: IntentAction
    user_identity: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("userIdentity", "userMainPubkey", "user_identity"),
        serialization_alias="userIdentity",
    )
    cid: Optional[str] = None
    old_cid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("oldCid", "old_cid"),
        serialization_alias="oldCid",
    )
    new_cid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("newCid", "new_cid"),
        serialization_alias="newCid",
    )
    new_shielded_identity: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "newShieldedIdentity", "newLpv2ShieldedPubkey", "new_shielded_identity"
        ),
        serialization_alias="newShieldedIdentity",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_cids_for_rekey(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("action") in (IntentAction.REKEY, "rekey"):
            return {k: v for k, v in data.items() if k not in _CID_KEYS}
        return data

    @field_validator("user_identity", "cid", "old_cid", "new_cid", "new_shielded_identity", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @model_validator(mode="after")
    def _check_required_fields(self) -> "SignalIntent":
        missing = [
            WIRE_NAMES[name]
            for name in REQUIRED_FIELDS[self.action]
            if getattr(self, name) is None
        ]
        if missing:
            raise ValueError(f"'{self.action.value}' intent is missing {', '.join(missing)}")
        return self

    # --- Constructors used by the client ---

    @classmethod
    def add(cls, user_identity: str, cid: str) -> "SignalIntent":
        return cls(action=IntentAction.ADD, user_identity=user_identity, cid=cid)

    @classmethod
    def update(cls, user_identity: str, old_cid: str, new_cid: str) -> "SignalIntent":
        return cls(
            action=IntentAction.UPDATE,
            user_identity=user_identity,
            old_cid=old_cid,
            new_cid=new_cid,
        )

    @classmethod
    def delete(cls, user_identity: str, cid: str) -> "SignalIntent":
        return cls(action=IntentAction.DELETE, user_identity=user_identity, cid=cid)

    @classmethod
    def rekey(cls, user_identity: str, new_shielded_identity: str) -> "SignalIntent":
        return cls(
            action=IntentAction.REKEY,
            user_identity=user_identity,
            new_shielded_identity=new_shielded_identity,
        )

    # --- Wire format ---

    @classmethod
    def from_payload(cls, payload: Any) -> "SignalIntent":
        """Validate a decoded memo object. Raises MalformedIntent."""
        if not isinstance(payload, dict):
            raise MalformedIntent("Memo payload is not a JSON object")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            errors = "; ".join(err["msg"] for err in e.errors())
            raise MalformedIntent(f"Invalid signal intent: {errors}") from e

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_memo(self) -> str:
        """Compact UTF-8 JSON for the memo instruction."""
        return json.dumps(self.to_payload(), separators=(",", ":"))


def is_signal_payload(payload: Any) -> bool:
    """True if a decoded memo looks like it was meant as a signal intent."""
    return isinstance(payload, dict) and "action" in payload

