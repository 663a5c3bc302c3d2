from typing import List, Optional
from pydantic import BaseModel, Field


class ApprovalRequestCreate(BaseModel):
    approval_type_id: str
    target_table: str = Field(..., min_length=1, max_length=100)
    target_record_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    requested_action: Optional[str] = Field(None, max_length=50)
    target_record_snapshot: Optional[dict] = None
    changes_summary: Optional[dict] = None
    requestor_comments: Optional[str] = Field(None, max_length=2000)


class RespondBody(BaseModel):
    response: str = Field(..., min_length=1, max_length=50)
    response_comments: Optional[str] = Field(None, max_length=2000)


class DelegateBody(BaseModel):
    delegate_to: str
    reason: Optional[str] = Field(None, max_length=1000)


class CancelBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ApprovalRequestResponse(BaseModel):
    id: str
    tenant_id: str
    approval_type_id: str
    target_table: str
    target_record_id: str
    title: str
    description: Optional[str] = None
    requested_action: Optional[str] = None
    target_record_snapshot: Optional[dict] = None
    changes_summary: Optional[dict] = None
    requestor_comments: Optional[str] = None
    status: str
    final_response: Optional[str] = None
    final_response_at: Optional[str] = None
    final_responder_id: Optional[str] = None
    requested_by: str
    due_at: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class ApprovalAssignmentResponse(BaseModel):
    id: str
    approval_request_id: str
    approver_id: str
    approver_role: Optional[str] = None
    sequence_order: int
    status: str
    response: Optional[str] = None
    response_comments: Optional[str] = None
    responded_at: Optional[str] = None
    notified_at: Optional[str] = None
    delegated_from_id: Optional[str] = None
    delegated_to: Optional[str] = None
    delegated_at: Optional[str] = None
    delegation_reason: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class ApprovalHistoryResponse(BaseModel):
    id: str
    approval_request_id: str
    assignment_id: Optional[str] = None
    action: str
    action_by: Optional[str] = None
    action_at: str
    action_data: Optional[dict] = None

    model_config = {"from_attributes": True}


class ApprovalRequestDetailResponse(ApprovalRequestResponse):
    assignments: List[ApprovalAssignmentResponse] = []
    history: List[ApprovalHistoryResponse] = []


class PendingApprovalItem(BaseModel):
    assignment: ApprovalAssignmentResponse
    request: ApprovalRequestResponse


class PendingApprovalList(BaseModel):
    items: List[PendingApprovalItem] = []
