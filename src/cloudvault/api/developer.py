from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cloudvault.auth_utils import get_current_user
from cloudvault.db import get_db
from cloudvault.models.user import User
from cloudvault.schemas.api_key import DeveloperApplicationRequest, DeveloperApplicationResponse
from cloudvault.services.developer_service import DeveloperService

router = APIRouter(prefix="/developer", tags=["developer"])


def get_developer_service(db: Session = Depends(get_db)) -> DeveloperService:
    return DeveloperService(db)


@router.post("/applications", response_model=DeveloperApplicationResponse, status_code=status.HTTP_201_CREATED)
def submit_application(
    request: DeveloperApplicationRequest,
    service: DeveloperService = Depends(get_developer_service),
    current_user: User = Depends(get_current_user),
):
    return service.submit_application(
        current_user.id,
        request.system_name,
        request.system_description,
        request.expected_usage,
        str(request.website_url) if request.website_url else None,
    )


@router.get("/applications", response_model=list[DeveloperApplicationResponse])
def list_applications(service: DeveloperService = Depends(get_developer_service), current_user: User = Depends(get_current_user)):
    return service.list_applications(current_user.id)
