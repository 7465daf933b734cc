import os
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AuthService, public_user
from cart import CartService
from catalog import CatalogService
from config import Settings
from database import connect, serialize_document
from errors import PharmacyError
from logs import configure_logging
from orders import OrderService
from prescriptions import PrescriptionService
from repositories import Repositories
from schemas import (
    AddToCartRequest,
    CreateOrderRequest,
    LoginRequest,
    Medicine,
    PrescriptionResponseRequest,
    RegisterRequest,
    RequestStatusUpdate,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
from uploads import ImageStore

logger = structlog.get_logger(__name__)


class Services:
    def __init__(self, db: Database, settings: Settings):
        repos = Repositories(db)
        self.auth = AuthService(repos.users, settings)
        self.catalog = CatalogService(repos.medicines)
        self.cart = CartService(repos.carts, repos.medicines)
        self.orders = OrderService(repos.orders, repos.carts, repos.medicines, repos.users)
        self.prescriptions = PrescriptionService(
            repos.prescriptions,
            ImageStore(settings.upload_dir, max_files=settings.max_upload_files),
            repos.users,
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_user(authorization: Optional[str] = Header(None), services: Services = Depends(get_services)) -> dict:
    return services.auth.user_from_token(authorization)


def ok(data=None, message: Optional[str] = None, **extra) -> dict:
    if isinstance(data, list):
        data = [serialize_document(d) for d in data]
    elif isinstance(data, dict) and "_id" in data:
        data = serialize_document(data)
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(extra)
    body["data"] = data
    return body


router = APIRouter()


@router.get("/")
def root():
    return {"status": "ok", "service": "online-pharmacy-api"}


@router.get("/schema")
def schema_overview():
    return {
        "collections": ["user", "medicine", "cart", "order", "prescriptionrequest"],
    }


@router.get("/test")
def test_database(request: Request):
    status = {
        "backend": "running",
        "database": "not-configured",
    }
    try:
        request.app.state.db.list_collection_names()
        status["database"] = "connected"
    except Exception:
        status["database"] = "error"
    return status


# Auth Endpoints
@router.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, services: Services = Depends(get_services)):
    return ok(services.auth.register(payload), "User registered")


@router.post("/api/auth/login")
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    return ok(services.auth.login(payload))


@router.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return ok(public_user(user))


# Medicine Endpoints
@router.get("/api/medicines")
def list_medicines(category: Optional[str] = None, q: Optional[str] = None, services: Services = Depends(get_services)):
    medicines = services.catalog.list(category=category, q=q)
    return ok(medicines, count=len(medicines))


@router.get("/api/medicines/{medicine_id}")
def get_medicine(medicine_id: str, services: Services = Depends(get_services)):
    return ok(services.catalog.get(medicine_id))


@router.post("/api/medicines", status_code=201)
def create_medicine(payload: Medicine, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.catalog.create(user, payload), "Medicine created")


# Cart Endpoints
@router.get("/api/cart")
def get_cart(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.get(str(user["_id"])))


@router.post("/api/cart", status_code=201)
def add_to_cart(payload: AddToCartRequest, user=Depends(get_current_user), services: Services = Depends(get_services)):
    cart = services.cart.add_item(str(user["_id"]), payload.medicine_id, payload.quantity)
    return ok(cart, "Item added to cart")


@router.delete("/api/cart")
def clear_cart(user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.clear(str(user["_id"])), "Cart cleared")


@router.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: UpdateCartItemRequest, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.update_item(str(user["_id"]), item_id, payload.quantity), "Cart updated")


@router.delete("/api/cart/{item_id}")
def remove_from_cart(item_id: str, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.cart.remove_item(str(user["_id"]), item_id), "Item removed from cart")


# Orders
@router.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderRequest, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.orders.place_order(user, payload), "Order created successfully")


@router.get("/api/orders")
def user_orders(user=Depends(get_current_user), services: Services = Depends(get_services)):
    orders = services.orders.list_for_user(user)
    return ok(orders, count=len(orders))


@router.get("/api/orders/all")
def all_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    result = services.orders.list_all(user, status=status, page=page, limit=limit)
    return ok(result.pop("data"), **result)


@router.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.orders.get(user, order_id))


@router.put("/api/orders/{order_id}")
def update_order_status(order_id: str, payload: UpdateOrderStatusRequest, user=Depends(get_current_user), services: Services = Depends(get_services)):
    order = services.orders.update_status(user, order_id, payload.order_status, payload.tracking_number)
    return ok(order, "Order status updated successfully")


@router.patch("/api/orders/{order_id}")
def cancel_order(order_id: str, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.orders.cancel(user, order_id), "Order cancelled successfully")


# Prescription requests
@router.post("/api/prescriptions/requests", status_code=201)
def create_prescription_request(
    symptoms: str = Form(""),
    description: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    request = services.prescriptions.create(user, symptoms, description, images or [])
    return ok(request, "Prescription request submitted successfully")


@router.get("/api/prescriptions/patient/requests")
def patient_requests(user=Depends(get_current_user), services: Services = Depends(get_services)):
    requests = services.prescriptions.list_for_patient(user)
    return ok(requests, count=len(requests))


@router.get("/api/prescriptions/pharmacist/requests")
def pharmacist_requests(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    result = services.prescriptions.list_all(user, status=status, page=page, limit=limit)
    return ok(result.pop("data"), **result)


@router.get("/api/prescriptions/requests/{request_id}")
def get_prescription_request(request_id: str, user=Depends(get_current_user), services: Services = Depends(get_services)):
    return ok(services.prescriptions.get(user, request_id))


@router.put("/api/prescriptions/requests/{request_id}")
def respond_to_prescription_request(
    request_id: str,
    payload: PrescriptionResponseRequest,
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    request = services.prescriptions.respond(user, request_id, payload)
    return ok(request, "Prescription request updated successfully")


@router.patch("/api/prescriptions/requests/{request_id}/status")
def update_prescription_status(
    request_id: str,
    payload: RequestStatusUpdate,
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    request = services.prescriptions.update_status(user, request_id, payload.status)
    return ok(request, "Request status updated successfully")


# Error envelopes
def pharmacy_error_handler(request: Request, exc: PharmacyError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=400, content={"success": False, "message": message})


def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)})


def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    db = database if database is not None else connect(settings.database_url, settings.database_name)

    app = FastAPI(title="Online Pharmacy API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.db = db
    app.state.services = Services(db, settings)

    app.add_exception_handler(PharmacyError, pharmacy_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
