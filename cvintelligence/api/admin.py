# ============================================================================
# api/admin.py - Admin Routes
# ============================================================================

from typing import Any, Dict, List, Literal
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.database import get_db
from cvintelligence.api.deps import get_admin_user
from cvintelligence.schemas.admin import DashboardData, TestEmailRequest, UserStatsBucket
from cvintelligence.schemas.payment import ProductPackageRequest, ProductPackageResponse
from cvintelligence.services.admin import AdminService
from cvintelligence.services.email import EmailService
from cvintelligence.services.packages import PackageService
from cvintelligence.services.settings_store import SettingsStore

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(get_admin_user)])


def setting_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


@router.get("/settings", response_model=Dict[str, str])
async def get_settings(db: AsyncSession = Depends(get_db)):
    return await SettingsStore(db).all()


@router.post("/settings", response_model=Dict[str, str])
async def update_settings(values: Dict[str, Any], db: AsyncSession = Depends(get_db)):
    store = SettingsStore(db)
    await store.set_many({key: setting_value(value) for key, value in values.items()})
    return await store.all()


@router.delete("/settings/{key}")
async def delete_setting(key: str, db: AsyncSession = Depends(get_db)):
    await SettingsStore(db).delete(key)
    return {"message": "Configuração removida"}


@router.get("/dashboard-data", response_model=DashboardData)
async def dashboard_data(db: AsyncSession = Depends(get_db)):
    return await AdminService(db).dashboard_data()


@router.get("/user-stats", response_model=List[UserStatsBucket])
async def user_stats(period: Literal["day", "week", "month"] = "day", db: AsyncSession = Depends(get_db)):
    return await AdminService(db).user_stats(period)


@router.get("/db-status")
async def db_status(db: AsyncSession = Depends(get_db)):
    ok, message = await AdminService(db).db_status()
    if not ok:
        return JSONResponse(status_code=503, content={"message": message})
    return {"status": "ok", "message": message}


@router.post("/test-email")
async def test_email(data: TestEmailRequest, db: AsyncSession = Depends(get_db)):
    sent = await EmailService(SettingsStore(db)).send_test(data.to)
    return {"sent": sent}


@router.get("/product-packages", response_model=List[ProductPackageResponse])
async def list_packages(db: AsyncSession = Depends(get_db)):
    return await PackageService(db).list()


@router.post("/product-packages", response_model=ProductPackageResponse, status_code=201)
async def create_package(data: ProductPackageRequest, db: AsyncSession = Depends(get_db)):
    return await PackageService(db).create(data)


@router.put("/product-packages/{package_id}", response_model=ProductPackageResponse)
async def update_package(package_id: int, data: ProductPackageRequest, db: AsyncSession = Depends(get_db)):
    return await PackageService(db).update(package_id, data)


@router.delete("/product-packages/{package_id}")
async def delete_package(package_id: int, db: AsyncSession = Depends(get_db)):
    await PackageService(db).delete(package_id)
    return {"message": "Pacote removido"}
