from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

ApprovalMode = Literal["sequential", "parallel", "quorum"]
RequireComments = Literal["never", "on_reject", "always"]


class ResponseOption(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    label: str = Field(..., min_length=1, max_length=100)


def _check_sla(sla_hours: Optional[int], sla_warning_hours: Optional[int]) -> None:
    if sla_hours is not None and sla_warning_hours is not None and sla_warning_hours >= sla_hours:
        raise ValueError("sla_warning_hours must be less than sla_hours")


def _check_response_options(options: Optional[List[ResponseOption]]) -> None:
    if options is None:
        return
    codes = [o.code for o in options]
    if len(codes) != len(set(codes)):
        raise ValueError("response_options codes must be unique")


class ApprovalTypeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    target_table: Optional[str] = Field(None, max_length=100)
    trigger_conditions: Optional[dict] = None
    approval_mode: ApprovalMode = "sequential"
    quorum_percentage: Optional[int] = Field(None, ge=0, le=100)
    hierarchy_levels: Optional[int] = Field(None, ge=1, le=20)
    approver_config: dict
    response_options: Optional[List[ResponseOption]] = Field(None, min_length=1, max_length=20)
    require_comments: RequireComments = "on_reject"
    allow_delegate: bool = True
    allow_recall: bool = True
    escalation_config: Optional[dict] = None
    sla_hours: Optional[int] = Field(None, ge=1)
    sla_warning_hours: Optional[int] = Field(None, ge=1)
    notification_config: Optional[dict] = None
    is_active: bool = True

    @model_validator(mode="after")
    def _validate(self):
        _check_sla(self.sla_hours, self.sla_warning_hours)
        _check_response_options(self.response_options)
        return self


class ApprovalTypeUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    target_table: Optional[str] = Field(None, max_length=100)
    trigger_conditions: Optional[dict] = None
    approval_mode: Optional[ApprovalMode] = None
    quorum_percentage: Optional[int] = Field(None, ge=0, le=100)
    hierarchy_levels: Optional[int] = Field(None, ge=1, le=20)
    approver_config: Optional[dict] = None
    response_options: Optional[List[ResponseOption]] = Field(None, min_length=1, max_length=20)
    require_comments: Optional[RequireComments] = None
    allow_delegate: Optional[bool] = None
    allow_recall: Optional[bool] = None
    escalation_config: Optional[dict] = None
    sla_hours: Optional[int] = Field(None, ge=1)
    sla_warning_hours: Optional[int] = Field(None, ge=1)
    notification_config: Optional[dict] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _validate(self):
        _check_sla(self.sla_hours, self.sla_warning_hours)
        _check_response_options(self.response_options)
        return self


class ApprovalTypeResponse(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    code: str
    name: str
    description: Optional[str] = None
    target_table: Optional[str] = None
    trigger_conditions: Optional[dict] = None
    approval_mode: str
    quorum_percentage: Optional[int] = None
    hierarchy_levels: Optional[int] = None
    approver_config: dict
    response_options: list
    require_comments: str
    allow_delegate: bool
    allow_recall: bool
    escalation_config: Optional[dict] = None
    sla_hours: Optional[int] = None
    sla_warning_hours: Optional[int] = None
    notification_config: Optional[dict] = None
    source: str
    is_active: bool
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
