from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cloudvault.auth_utils import get_current_user
from cloudvault.db import get_db
from cloudvault.models.user import User
from cloudvault.schemas.api_key import ApiKeyCreatedResponse, ApiKeyCreateRequest, ApiKeyResponse, ApiKeyRevealResponse
from cloudvault.services.api_key_gate import ApiKeyGate

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def get_api_key_gate(db: Session = Depends(get_db)) -> ApiKeyGate:
    return ApiKeyGate(db)


@router.get("", response_model=list[ApiKeyResponse])
def list_api_keys(gate: ApiKeyGate = Depends(get_api_key_gate), current_user: User = Depends(get_current_user)):
    return gate.list_keys(current_user.id)


@router.post("", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_api_key(request: ApiKeyCreateRequest, gate: ApiKeyGate = Depends(get_api_key_gate), current_user: User = Depends(get_current_user)):
    api_key, token = gate.issue_key(current_user.id, request.name)
    return ApiKeyCreatedResponse.model_validate({**ApiKeyResponse.model_validate(api_key).model_dump(), "token": token})


@router.get("/{key_id}/reveal", response_model=ApiKeyRevealResponse)
def reveal_api_key(key_id: UUID, gate: ApiKeyGate = Depends(get_api_key_gate), current_user: User = Depends(get_current_user)):
    return ApiKeyRevealResponse(id=key_id, token=gate.reveal_key(key_id, current_user.id))


@router.delete("/{key_id}", response_model=ApiKeyResponse)
def revoke_api_key(key_id: UUID, gate: ApiKeyGate = Depends(get_api_key_gate), current_user: User = Depends(get_current_user)):
    return gate.revoke_key(key_id, current_user.id)
