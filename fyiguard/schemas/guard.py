from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from fyiguard.guards.types import GuardAction, GuardContext, UserRole


class EvaluateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_email: EmailStr = Field(alias="userEmail")
    user_role: UserRole = Field(alias="userRole")
    org_id: Optional[str] = Field(default=None, alias="orgId")
    action: Optional[GuardAction] = None
    payload: Optional[Dict[str, Any]] = None
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    session_ip: Optional[str] = Field(default=None, alias="sessionIp")
    text_inputs: Optional[List[str]] = Field(default=None, alias="textInputs")
    headers: Optional[Dict[str, str]] = None

    def to_context(self, *, client_ip: Optional[str] = None) -> GuardContext:
        return GuardContext(
            user_email=self.user_email,
            user_role=self.user_role,
            org_id=self.org_id,
            action=self.action.value if self.action is not None else None,
            payload=self.payload,
            session_token=self.session_token,
            session_ip=self.session_ip or client_ip,
            text_inputs=tuple(self.text_inputs) if self.text_inputs is not None else None,
            headers=self.headers,
        )


class CheckInputRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_email: EmailStr = Field(alias="userEmail")
    text_inputs: List[str] = Field(alias="textInputs", min_length=1)
    headers: Optional[Dict[str, str]] = None

    def to_context(self) -> GuardContext:
        return GuardContext(
            user_email=self.user_email,
            user_role=UserRole.MEMBER,
            text_inputs=tuple(self.text_inputs),
            headers=self.headers,
        )


__all__ = ["CheckInputRequest", "EvaluateRequest"]
