import os
import sys
import time
import hashlib
import hmac
import secrets
from contextlib import asynccontextmanager
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from loguru import logger
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import db, get_db, create_document, get_documents, serialize, ensure_indexes, reset_wines
from schemas import (
    Wine,
    User as UserSchema,
    Secret as SecretSchema,
    WineCreateRequest,
    WineUpdateRequest,
    WineFilter,
    CredentialsRequest,
    SecretCreateRequest,
    FieldError,
    validate_wine,
    validate_description,
    validate_user,
    build_wine_query,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
RESET_DB = os.getenv("RESET_DB", "").lower() in ("1", "true", "yes")

logger.remove()
logger.add(sys.stderr, level=LOG_LEVEL)

SEED_WINES = [
    {"name": "Chateau Margaux 2015", "description": "Structured Bordeaux blend with cassis and cedar.", "price": 950, "variety": "Cabernet Sauvignon", "country": "France"},
    {"name": "Cloudy Bay", "description": "Zesty and tropical, a benchmark Marlborough white.", "price": 32, "variety": "Sauvignon Blanc", "country": "New Zealand"},
    {"name": "Whispering Angel", "description": "Pale, dry Provence rose with red berry notes.", "price": 24, "variety": "Grenache rose", "country": "France"},
    {"name": "Barolo Riserva", "description": "Firm tannins, tar and roses.", "price": 85, "variety": "Nebbiolo red", "country": "Italy"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting wine catalog API")
    if db is not None:
        # reset runs first and must succeed before requests are accepted
        if RESET_DB:
            created = reset_wines(db, SEED_WINES)
            logger.info(f"Wine collection reset, seeded {created} wines")
        try:
            ensure_indexes(db)
        except PyMongoError as e:
            logger.warning(f"Index creation failed: {e}")
    else:
        logger.warning("DATABASE_URL not set, running without a database")
    yield
    logger.info("Shutting down wine catalog API")


app = FastAPI(title="Wine Catalog API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = (time.time() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.opt(exception=exc).error(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


# Utilities

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), 120_000)
    return salt + "$" + dk.hex()


def verify_password(password: str, stored: str) -> bool:
    try:
        salt, _ = stored.split("$")
        return hmac.compare_digest(hash_password(password, salt), stored)
    except ValueError:
        return False


def generate_token() -> str:
    return secrets.token_hex(128)


DUMMY_HASH = hash_password(secrets.token_hex(8))


def parse_object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid id: {value}")
    return ObjectId(value)


def validation_failed(message: str, errors: List[FieldError]) -> HTTPException:
    logger.warning(f"{message}: {[e.model_dump() for e in errors]}")
    return HTTPException(
        status_code=400,
        detail={"message": message, "errors": [e.model_dump() for e in errors]},
    )


def account_response(user: dict) -> dict:
    return {"username": user["username"], "id": str(user["_id"]), "accessToken": user["access_token"]}


# Auth gate

def get_current_user(authorization: Optional[str] = Header(None), database: Database = Depends(get_db)) -> dict:
    token = (authorization or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token:
        logger.warning("Rejected request without access token")
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user = database["user"].find_one({"access_token": token})
    except PyMongoError as e:
        logger.warning(f"Token lookup failed: {e}")
        user = None
    if not user:
        logger.warning("Rejected request with unknown access token")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return serialize(user)


@app.get("/")
def read_root():
    endpoints = [
        {"path": route.path, "methods": sorted(route.methods)}
        for route in app.routes
        if isinstance(route, APIRoute)
    ]
    return {"message": "Wine Catalog Backend Running", "data": endpoints}


@app.get("/test")
def test_database():
    """Report store configuration and per-collection document counts."""
    status = {
        "configured": db is not None,
        "database_name": os.getenv("DATABASE_NAME", "project-wine"),
        "reset_on_start": RESET_DB,
        "connected": False,
        "counts": {},
    }
    if db is None:
        return status
    try:
        status["counts"] = {name: db[name].estimated_document_count() for name in ("wine", "user", "secret")}
        status["connected"] = True
    except PyMongoError as e:
        status["error"] = str(e)[:80]
    return status


# Wine endpoints
@app.post("/wines", status_code=201)
def create_wine(payload: WineCreateRequest, database: Database = Depends(get_db)):
    errors = validate_wine(payload)
    if errors:
        raise validation_failed("Could not create wine", errors)
    if database["wine"].find_one({"name": payload.name}):
        raise validation_failed("Could not create wine", [FieldError(field="name", message="Name already exists")])
    wine = Wine(**{k: v for k, v in payload.model_dump().items() if v is not None})
    try:
        wine_id = create_document(database, "wine", wine)
    except DuplicateKeyError:
        raise validation_failed("Could not create wine", [FieldError(field="name", message="Name already exists")])
    return {"id": wine_id, **wine.model_dump()}


@app.get("/wines")
def list_wines(variety: Optional[str] = None, price: Optional[float] = None, database: Database = Depends(get_db)) -> List[dict]:
    try:
        query = build_wine_query(WineFilter(variety=variety, price=price))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [serialize(d) for d in get_documents(database, "wine", query)]


@app.get("/wines/{wine_id}")
def get_wine(wine_id: str, database: Database = Depends(get_db)):
    doc = database["wine"].find_one({"_id": parse_object_id(wine_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Wine not found")
    return serialize(doc)


@app.patch("/wines/{wine_id}")
def update_wine(wine_id: str, payload: WineUpdateRequest, database: Database = Depends(get_db)):
    oid = parse_object_id(wine_id)
    errors = validate_description(payload.newDescription)
    if errors:
        raise validation_failed("Could not update wine", errors)
    doc = database["wine"].find_one_and_update(
        {"_id": oid},
        {"$set": {"description": payload.newDescription.strip()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(status_code=404, detail="Wine not found")
    return serialize(doc)


@app.delete("/wines/{wine_id}")
def delete_wine(wine_id: str, database: Database = Depends(get_db)):
    doc = database["wine"].find_one_and_delete({"_id": parse_object_id(wine_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Wine not found")
    return serialize(doc)


# Account endpoints
@app.post("/register", status_code=201)
def register(payload: CredentialsRequest, database: Database = Depends(get_db)):
    errors = validate_user(payload.username, payload.password)
    if errors:
        raise validation_failed("Could not create user", errors)
    if database["user"].find_one({"username": payload.username}):
        raise validation_failed("Could not create user", [FieldError(field="username", message="Username already taken")])
    user = UserSchema(
        username=payload.username,
        password_hash=hash_password(payload.password),
        access_token=generate_token(),
    )
    try:
        user_id = create_document(database, "user", user)
    except DuplicateKeyError:
        raise validation_failed("Could not create user", [FieldError(field="username", message="Username already taken")])
    logger.info(f"Registered user {user.username}")
    return {"username": user.username, "id": user_id, "accessToken": user.access_token}


@app.post("/login")
def login(payload: CredentialsRequest, database: Database = Depends(get_db)):
    try:
        user = database["user"].find_one({"username": payload.username}) if payload.username else None
    except PyMongoError:
        logger.exception("Login lookup failed")
        raise HTTPException(status_code=500, detail="Could not log in")
    # unknown users still pay for a hash check
    stored = user.get("password_hash", "") if user else DUMMY_HASH
    password_ok = verify_password(payload.password or "", stored)
    if not user or not password_ok:
        raise HTTPException(status_code=404, detail="User not found or password incorrect")
    return account_response(user)


# Secret endpoints
@app.get("/secrets")
def list_secrets(user: dict = Depends(get_current_user), database: Database = Depends(get_db)) -> List[dict]:
    return [serialize(d) for d in get_documents(database, "secret", {"user": user["id"]})]


@app.post("/secrets", status_code=201)
def create_secret(payload: SecretCreateRequest, user: dict = Depends(get_current_user), database: Database = Depends(get_db)):
    secret = SecretSchema(message=payload.message, user=user["id"])
    secret_id = create_document(database, "secret", secret)
    return {"id": secret_id, **secret.model_dump()}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
