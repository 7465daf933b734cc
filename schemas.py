"""
Database Schemas for the Online Pharmacy

Each Pydantic model correlates to a MongoDB collection. The collection name is the lowercase of the class name.
- User -> "user"
- Medicine -> "medicine"
- Cart -> "cart"
- Order -> "order"
- Prescriptionrequest -> "prescriptionrequest"

These models are used for request/response validation and for documenting schema via /schema endpoint.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["patient", "pharmacist", "admin"]
PaymentMethod = Literal["card", "cash_on_delivery", "upi"]
PaymentStatus = Literal["pending", "completed", "failed"]
OrderStatus = Literal["pending", "confirmed", "packed", "shipped", "delivered", "cancelled"]
RequestStatus = Literal["pending", "in_review", "completed"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Field("patient", description="patient | pharmacist | admin")
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None


class Medicine(BaseModel):
    name: str = Field(..., description="Commercial name")
    usage: str = Field("", description="What the medicine treats")
    price: float = Field(..., ge=0, description="List price")
    discount_price: Optional[float] = Field(None, ge=0, description="Discounted price, used when lower than price")
    currency: str = "INR"
    stock: int = Field(0, ge=0, description="Units in stock")
    category: Optional[str] = None
    dosage: Optional[str] = None
    manufacturer: Optional[str] = None
    expiry_date: Optional[datetime] = None
    side_effects: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list, description="Image URLs")
    requires_prescription: bool = False


class CartItem(BaseModel):
    item_id: str = Field(..., description="Line item id")
    medicine_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price snapshot at add time")


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class OrderItem(BaseModel):
    medicine_id: str
    name: str = Field(..., description="Medicine name snapshot")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price snapshot")
    total: float = Field(..., ge=0, description="price x quantity")


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class Order(BaseModel):
    order_id: str = Field(..., description="Human readable order number")
    user_id: str = Field(..., description="User placing the order")
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    order_status: OrderStatus = "pending"
    subtotal: float
    shipping_fee: float = 0.0
    tax: float = 0.0
    total_amount: float
    delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None


class SuggestedMedicine(BaseModel):
    name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    instructions: Optional[str] = None


class Prescriptionrequest(BaseModel):
    patient_id: str
    symptoms: str
    description: str
    images: List[str] = Field(default_factory=list, description="Stored upload paths")
    status: RequestStatus = "pending"
    pharmacist_notes: Optional[str] = None
    suggested_medicines: List[SuggestedMedicine] = Field(default_factory=list)
    responded_by: Optional[str] = None
    responded_at: Optional[datetime] = None


# Lightweight request models
class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    role: Literal["patient", "pharmacist"] = "patient"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AddToCartRequest(BaseModel):
    medicine_id: str
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    quantity: int


class OrderLineRequest(BaseModel):
    medicine_id: str
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    cart_items: Optional[List[OrderLineRequest]] = None


class UpdateOrderStatusRequest(BaseModel):
    order_status: str
    tracking_number: Optional[str] = None


class PrescriptionResponseRequest(BaseModel):
    pharmacist_notes: str = ""
    suggested_medicines: List[SuggestedMedicine] = Field(default_factory=list)


class RequestStatusUpdate(BaseModel):
    status: str
