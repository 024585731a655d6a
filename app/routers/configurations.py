from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db, require_admin_key
from app.schemas.configuration import ConfigurationIn, ConfigurationListOut, ConfigurationOut
from app.services.runtime import Runtime, get_runtime

router = APIRouter(prefix="/configurations", tags=["configurations"], dependencies=[Depends(require_admin_key)])


@router.get(
    "",
    response_model=ConfigurationListOut,
    summary="List configuration values",
    responses=error_responses(403, 500, path="/configurations"),
)
def list_configurations(db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)):
    rows = runtime.config.list_all(db)
    return ConfigurationListOut(
        items=[ConfigurationOut(path=row.path, value=row.value, updated_at=row.updated_at) for row in rows]
    )


@router.get(
    "/{path}",
    response_model=ConfigurationOut,
    summary="Get configuration value",
    responses=error_responses(403, 404, 500, resource="Configuration", path="/configurations"),
)
def get_configuration(path: str, db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)):
    value = runtime.config.get(db, path)
    if value is None:
        raise HTTPException(status_code=404, detail="Configuration not found")
    return ConfigurationOut(path=path, value=value)


@router.put(
    "/{path}",
    response_model=ConfigurationOut,
    summary="Create or replace configuration value",
    responses=error_responses(403, 422, 500, path="/configurations"),
)
def put_configuration(
    path: str,
    payload: ConfigurationIn,
    db: Session = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    row = runtime.config.set(db, path, payload.value)
    return ConfigurationOut(path=row.path, value=row.value, updated_at=row.updated_at)
