import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import get_settings
from database import SHOPS, USERS, connect, disconnect, get_db
from logging_config import setup_logging
from schemas import ADMIN_ROLE, RoleOut, Shop, ShopPage, ShopStatus, User, UserPage

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.client, app.state.db = await connect(settings)
    logger.info("Mobilesebaa is running on port: %s", settings.port)
    yield
    await disconnect(app.state.client)


# App setup
app = FastAPI(title="Mobile Sebaa API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers

def serialize(value):
    """Render ObjectIds inside a document as hex strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def parse_page(page: Optional[str]) -> int:
    try:
        number = int(page)
    except (TypeError, ValueError):
        return 1
    return number if number >= 1 else 1


def parse_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid shop id")


def insert_result(res) -> dict:
    return {"acknowledged": res.acknowledged, "insertedId": serialize(res.inserted_id)}


def update_result(res) -> dict:
    return {
        "acknowledged": res.acknowledged,
        "matchedCount": res.matched_count,
        "modifiedCount": res.modified_count,
        "upsertedId": serialize(res.upserted_id),
        "upsertedCount": 0 if res.upserted_id is None else 1,
    }


def delete_result(res) -> dict:
    return {"acknowledged": res.acknowledged, "deletedCount": res.deleted_count}


async def insert_unique(collection, doc: dict, key: str, label: str) -> dict:
    # The pre-check and insert are two round trips; the unique index (when
    # present) catches the requests that slip between them.
    duplicate = {"message": f"{label} already exists", "insertedId": None}
    if await collection.find_one({key: doc.get(key)}):
        logger.info("Rejected duplicate %s with %s=%r", label, key, doc.get(key))
        return duplicate
    try:
        res = await collection.insert_one(doc)
    except DuplicateKeyError:
        logger.info("Unique index rejected duplicate %s with %s=%r", label, key, doc.get(key))
        return duplicate
    logger.info("Inserted %s %s", label, res.inserted_id)
    return insert_result(res)


async def fetch_page(collection, query: dict, sort_field: str, page: int):
    skip = (page - 1) * settings.page_size
    # _id breaks ties so skip/limit pages never overlap
    keys = [(sort_field, 1)]
    if sort_field != "_id":
        keys.append(("_id", 1))
    cursor = collection.find(query).sort(keys).skip(skip).limit(settings.page_size)
    docs, total = await asyncio.gather(
        cursor.to_list(),
        collection.count_documents(query),
    )
    return [serialize(d) for d in docs], total

# Routes
@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Mobilesebaa Server is Running"

@app.get("/test")
async def test_database(db=Depends(get_db)):
    try:
        collections = await db.list_collection_names()
        return {"backend": "ok", "database": "ok", "collections": collections}
    except PyMongoError as e:
        return {"backend": "ok", "database": f"error: {str(e)[:80]}"}

# Users
@app.get("/users", response_model=UserPage)
async def list_users(page: Optional[str] = None, db=Depends(get_db)):
    users, total = await fetch_page(db[USERS], {}, settings.users_sort_field, parse_page(page))
    return {"users": users, "countUser": total}

@app.get("/users/role/{email}", response_model=RoleOut)
async def user_role(email: str, db=Depends(get_db)):
    user = await db[USERS].find_one({"email": email})
    return {"admin": bool(user) and user.get("role") == ADMIN_ROLE}

@app.post("/users")
async def create_user(payload: User, db=Depends(get_db)):
    doc = payload.model_dump(exclude_unset=True)
    return await insert_unique(db[USERS], doc, "email", "user")

# Shops
@app.get("/shops", response_model=ShopPage)
async def list_shops(page: Optional[str] = None, db=Depends(get_db)):
    shops, total = await fetch_page(
        db[SHOPS], {"status": ShopStatus.APPROVED.value}, "selectedDistrict", parse_page(page)
    )
    return {"shops": shops, "countShop": total}

# Must stay above /shops/{town_name}, which would otherwise match "request".
@app.get("/shops/request")
async def pending_shops(db=Depends(get_db)):
    docs = await db[SHOPS].find({"status": ShopStatus.PENDING.value}).to_list()
    return [serialize(d) for d in docs]

@app.get("/shops/{town_name}")
async def search_shops(town_name: str, db=Depends(get_db)):
    query = {
        "status": ShopStatus.APPROVED.value,
        "selectedTown": {"$regex": re.escape(town_name), "$options": "i"},
    }
    docs = await db[SHOPS].find(query).to_list()
    return [serialize(d) for d in docs]

@app.post("/shops")
async def create_shop(payload: Shop, db=Depends(get_db)):
    doc = payload.model_dump(exclude_unset=True)
    return await insert_unique(db[SHOPS], doc, "mobile", "shop")

@app.patch("/shop/{shop_id}")
async def approve_shop(shop_id: str, db=Depends(get_db)):
    res = await db[SHOPS].update_one(
        {"_id": parse_object_id(shop_id)},
        {"$set": {"status": ShopStatus.APPROVED.value}},
    )
    logger.info("Approve shop %s: matched=%s modified=%s", shop_id, res.matched_count, res.modified_count)
    return update_result(res)

@app.delete("/shops/{shop_id}")
async def delete_shop(shop_id: str, db=Depends(get_db)):
    res = await db[SHOPS].delete_one({"_id": parse_object_id(shop_id)})
    logger.info("Delete shop %s: deleted=%s", shop_id, res.deleted_count)
    return delete_result(res)


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
