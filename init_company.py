"""
初始化演示公司
创建 demo 公司、应用 API key、一台 SEQUESTER 设备，并设置挂单价格
"""
import asyncio
from decimal import Decimal

from credit_server.infrastructure.database import get_session, init_db
from credit_server.modules.companies import CompanyService
from credit_server.modules.devices import DeviceService, DeviceType
from credit_server.modules.marketplace import MarketplaceService

DEMO_WALLET = "0x0000000000000000000000000000000000c0ffee"
DEMO_DEVICE_ID = "sequester-demo-001"


async def create_demo_company():
    """创建演示公司"""
    await init_db()

    async for db in get_session():
        companies = CompanyService.with_session(db)

        existing = await companies.get_by_wallet(DEMO_WALLET)
        if existing:
            print(f"演示公司已存在: {existing.id}")
            return

        company = await companies.register_company(
            name="Demo Carbon Co",
            wallet_address=DEMO_WALLET,
            location="Shenzhen",
        )
        application = await companies.create_application(company.id, "demo-gateway")
        await DeviceService.with_session(db).register_device(
            company_id=company.id,
            device_type=DeviceType.SEQUESTER,
            device_id=DEMO_DEVICE_ID,
            application_id=application.id,
            name="Demo sequester",
        )
        await MarketplaceService.with_session(db).set_offer_price(company.id, Decimal("2.00"))
        await db.commit()

        print(f"演示公司创建成功: {company.id}")
        print(f"API key: {application.api_key}")
        print(f"设备: {DEMO_DEVICE_ID}")


if __name__ == "__main__":
    asyncio.run(create_demo_company())
