"""Project type API endpoints."""

from fastapi import APIRouter, Depends

from schemas import ProjectTypeCreate, ProjectTypeResponse
from services import contractor_directory
from services.auth import require_manager
from storage import DirectoryStorage, get_storage

router = APIRouter()


@router.get("", response_model=list[ProjectTypeResponse])
async def list_project_types(storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.list_project_types(storage)


@router.post("", response_model=ProjectTypeResponse, status_code=201, dependencies=[Depends(require_manager)])
async def create_project_type(data: ProjectTypeCreate, storage: DirectoryStorage = Depends(get_storage)):
    return await contractor_directory.create_project_type(storage, data)
