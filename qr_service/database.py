from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

def get_database(request: Request) -> AsyncIOMotorDatabase: #type: ignore
    return request.app.mongodb

async def ensure_indexes(db: AsyncIOMotorDatabase):
    await db.qr_codes.create_index("slug", unique=True)
    await db.qr_codes.create_index("customer_id")
    await db.order_assets.create_index([("order_id", 1), ("item_id", 1)], unique=True)
