import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import BSONError, InvalidId
from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo import DESCENDING
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import (
    BOOKINGS,
    SERVICES,
    USERS,
    close_db,
    connect_db,
    create_document,
    get_db,
    get_documents,
    utcnow,
)
from logging_config import setup_logging
from schemas import Booking, Service, User

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING)]
HOME_SERVICES_LIMIT = 6

# Driver faults plus the BSON encoding errors raised before a request reaches the server
STORAGE_ERRORS = (PyMongoError, BSONError, OverflowError)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    try:
        await connect_db(settings)
    except PyMongoError:
        logger.exception("MongoDB connection failed")
        raise
    yield
    await close_db()


app = FastAPI(title="HomeHero API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------
# Utility helpers
# ---------------------------

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID format")


def _to_json(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            # pymongo hands back naive datetimes that are already UTC
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    return _to_json(dict(doc))


def insert_result(result) -> Dict[str, Any]:
    return {"acknowledged": result.acknowledged, "insertedId": str(result.inserted_id)}


def update_result(result) -> Dict[str, Any]:
    upserted_id = result.upserted_id
    return {
        "acknowledged": result.acknowledged,
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedCount": 0 if upserted_id is None else 1,
        "upsertedId": None if upserted_id is None else str(upserted_id),
    }


def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def storage_failure(message: str) -> HTTPException:
    """Log the active storage exception and build the 500 reported to the client."""
    logger.exception(message)
    return HTTPException(status_code=500, detail=message)


# ---------------------------
# Error responses
# ---------------------------

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def _is_blank(error: Dict[str, Any]) -> bool:
    """True when the failing value is absent, null, empty or a zero price."""
    if error["type"] in ("missing", "string_too_short"):
        return True
    value = error.get("input")
    if value is None or value == "":
        return True
    return error["type"] == "greater_than" and value == 0 and not isinstance(value, bool)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    missing = any(_is_blank(e) for e in errors)
    message = "All fields required" if missing else "Invalid request data"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# ---------------------------
# Models (requests)
# ---------------------------
class UserUpsertRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    photoURL: Optional[str] = None


class ServiceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    provider_name: str = Field(..., min_length=1)
    provider_email: EmailStr


class ServiceUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    image: Optional[str] = None


class BookingCreateRequest(BaseModel):
    serviceId: str = Field(..., min_length=1)
    bookingDate: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    userEmail: EmailStr


class BookingUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    bookingDate: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    status: Optional[str] = None


def _body_fields(payload: Optional[BaseModel]) -> Dict[str, Any]:
    """Fields the client actually sent; a missing body counts as an empty object."""
    if payload is None:
        return {}
    fields = payload.model_dump(exclude_unset=True)
    fields.pop("_id", None)
    return fields


def _update_fields(payload: Optional[BaseModel]) -> Dict[str, Any]:
    fields = _body_fields(payload)
    fields["updated_at"] = utcnow()
    return fields


# ---------------------------
# Health & Utility
# ---------------------------
@app.get("/", response_class=PlainTextResponse)
async def read_root():
    return "HomeHero Simple CRUD Server Running (Users, Services, Bookings)"


@app.get("/health")
async def health():
    return envelope(message="Server is healthy ✅")


@app.get("/test")
async def test_database(db: AsyncDatabase = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "✅ Available",
        "database_name": db.name,
        "connection_status": "Connected",
        "collections": [],
    }
    try:
        collections = await db.list_collection_names()
        response["collections"] = collections[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database diagnostics failed: %s", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        response["connection_status"] = "Error"
    return envelope(data=response)


# ---------------------------
# Users
# ---------------------------
@app.put("/users/{email}")
async def save_user(
    email: str,
    payload: Optional[UserUpsertRequest] = Body(None),
    db: AsyncDatabase = Depends(get_db),
):
    fields = _body_fields(payload)
    fields.pop("lastLogin", None)
    fields["email"] = email
    user = User(**fields)
    try:
        result = await db[USERS].update_one({"email": email}, {"$set": user.model_dump()}, upsert=True)
    except STORAGE_ERRORS:
        raise storage_failure("Failed to save user")
    return envelope(data=update_result(result), message="User saved successfully")


@app.get("/users")
async def list_users(db: AsyncDatabase = Depends(get_db)):
    try:
        users = await get_documents(db, USERS)
    except STORAGE_ERRORS:
        raise storage_failure("Failed to fetch users")
    return envelope(data=[serialize(u) for u in users])


@app.get("/users/{email}")
async def get_user(email: str, db: AsyncDatabase = Depends(get_db)):
    try:
        user = await db[USERS].find_one({"email": email})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to get user")
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return envelope(data=serialize(user))


# ---------------------------
# Services
# ---------------------------
@app.post("/services")
async def create_service(payload: ServiceCreateRequest, db: AsyncDatabase = Depends(get_db)):
    service = Service(**payload.model_dump())
    try:
        result = await create_document(db, SERVICES, service.model_dump())
    except STORAGE_ERRORS:
        raise storage_failure("Failed to add service")
    return envelope(data=insert_result(result), message="Service added successfully")


@app.get("/services")
async def list_services(db: AsyncDatabase = Depends(get_db)):
    try:
        services = await get_documents(db, SERVICES, sort=NEWEST_FIRST)
    except STORAGE_ERRORS:
        raise storage_failure("Failed to fetch services")
    return envelope(data=[serialize(s) for s in services])


@app.get("/home-services")
async def list_home_services(db: AsyncDatabase = Depends(get_db)):
    try:
        services = await get_documents(db, SERVICES, sort=NEWEST_FIRST, limit=HOME_SERVICES_LIMIT)
    except STORAGE_ERRORS:
        raise storage_failure("Failed to load home services")
    return envelope(data=[serialize(s) for s in services])


@app.get("/services/{service_id}")
async def get_service(service_id: str, db: AsyncDatabase = Depends(get_db)):
    oid = to_object_id(service_id)
    try:
        svc = await db[SERVICES].find_one({"_id": oid})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to get service")
    if not svc:
        raise HTTPException(status_code=404, detail="Service not found")
    return envelope(data=serialize(svc))


@app.patch("/services/{service_id}")
async def update_service(
    service_id: str,
    payload: Optional[ServiceUpdateRequest] = Body(None),
    db: AsyncDatabase = Depends(get_db),
):
    oid = to_object_id(service_id)
    try:
        result = await db[SERVICES].update_one({"_id": oid}, {"$set": _update_fields(payload)})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to update service")
    return envelope(data=update_result(result), message="Service updated successfully")


@app.delete("/services/{service_id}")
async def delete_service(service_id: str, db: AsyncDatabase = Depends(get_db)):
    oid = to_object_id(service_id)
    try:
        result = await db[SERVICES].delete_one({"_id": oid})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to delete service")
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Service not found")
    return envelope(message="Service deleted successfully")


# ---------------------------
# Bookings
# ---------------------------
@app.post("/bookings")
async def create_booking(payload: BookingCreateRequest, db: AsyncDatabase = Depends(get_db)):
    booking = Booking(**payload.model_dump())
    try:
        result = await create_document(db, BOOKINGS, booking.model_dump())
    except STORAGE_ERRORS:
        raise storage_failure("Failed to create booking")
    return envelope(data=insert_result(result), message="Booking created successfully")


@app.get("/bookings")
async def list_bookings(db: AsyncDatabase = Depends(get_db)):
    try:
        bookings = await get_documents(db, BOOKINGS, sort=NEWEST_FIRST)
    except STORAGE_ERRORS:
        raise storage_failure("Failed to fetch bookings")
    return envelope(data=[serialize(b) for b in bookings])


@app.get("/bookings/{booking_id}")
async def get_booking(booking_id: str, db: AsyncDatabase = Depends(get_db)):
    oid = to_object_id(booking_id)
    try:
        bk = await db[BOOKINGS].find_one({"_id": oid})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to get booking")
    if not bk:
        raise HTTPException(status_code=404, detail="Booking not found")
    return envelope(data=serialize(bk))


@app.patch("/bookings/{booking_id}")
async def update_booking(
    booking_id: str,
    payload: Optional[BookingUpdateRequest] = Body(None),
    db: AsyncDatabase = Depends(get_db),
):
    oid = to_object_id(booking_id)
    try:
        result = await db[BOOKINGS].update_one({"_id": oid}, {"$set": _update_fields(payload)})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to update booking")
    return envelope(data=update_result(result), message="Booking updated successfully")


@app.delete("/bookings/{booking_id}")
async def delete_booking(booking_id: str, db: AsyncDatabase = Depends(get_db)):
    oid = to_object_id(booking_id)
    try:
        result = await db[BOOKINGS].delete_one({"_id": oid})
    except STORAGE_ERRORS:
        raise storage_failure("Failed to delete booking")
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Booking not found")
    return envelope(message="Booking deleted successfully")


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    uvicorn.run(app, host=settings.host, port=settings.port)
