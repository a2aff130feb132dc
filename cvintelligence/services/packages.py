from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.errors import NotFound
from cvintelligence.models.package import ProductPackage
from cvintelligence.schemas.payment import ProductPackageRequest


class PackageService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, active_only: bool = False) -> List[ProductPackage]:
        stmt = select(ProductPackage).order_by(ProductPackage.credits, ProductPackage.id)
        if active_only:
            stmt = stmt.where(ProductPackage.is_active.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, package_id: int) -> ProductPackage:
        package = await self.db.get(ProductPackage, package_id)
        if package is None:
            raise NotFound("Pacote não encontrado")
        return package

    async def create(self, data: ProductPackageRequest) -> ProductPackage:
        package = ProductPackage(**data.model_dump())
        self.db.add(package)
        await self.db.commit()
        await self.db.refresh(package)
        return package

    async def update(self, package_id: int, data: ProductPackageRequest) -> ProductPackage:
        package = await self.get(package_id)
        for field, value in data.model_dump().items():
            setattr(package, field, value)
        await self.db.commit()
        await self.db.refresh(package)
        return package

    async def delete(self, package_id: int) -> None:
        package = await self.get(package_id)
        await self.db.delete(package)
        await self.db.commit()
