"""
Database Schemas for the Pharmacy E-commerce backend

Each Pydantic model represents a MongoDB collection. The collection name is the lowercase of the class name.

- User -> "user"
- Session -> "session"
- Category -> "category"
- Product -> "product"
- Cart -> "cart"
- Order -> "order"
- Review -> "review"

References between documents are stored as string ids.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["user", "admin"]
DosageForm = Literal[
    "tablet", "capsule", "liquid", "cream", "ointment", "injection",
    "inhaler", "drops", "suppository", "patch", "other",
]
PregnancyCategory = Literal["A", "B", "C", "D", "X", "N/A"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled", "refunded"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["credit_card", "paypal", "bank_transfer", "cash_on_delivery"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class PrescriptionRecord(BaseModel):
    medication: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class User(BaseModel):
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: EmailStr = Field(..., description="Email address (unique, lowercased)")
    password_hash: str = Field(..., description="BCrypt hash of the user's password")
    phone: Optional[str] = Field(None, description="Phone number")
    address: Optional[Address] = None
    role: Role = Field("user")
    is_verified: bool = Field(False)
    avatar: str = Field("")
    date_of_birth: Optional[datetime] = None
    medical_conditions: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    prescriptions: List[PrescriptionRecord] = Field(default_factory=list)


class Session(BaseModel):
    token: str
    user_id: str
    purpose: Literal["auth", "reset"] = "auth"
    expires_at: datetime


class Category(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., description="URL-safe identifier, derived once from name")
    description: Optional[str] = None
    image: str = ""
    icon: Optional[str] = None
    parent_id: Optional[str] = Field(None, description="Parent category id")
    is_active: bool = True
    sort_order: int = 0
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None


class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str
    description: str
    short_description: Optional[str] = None
    brand: str
    category_id: str
    subcategory_id: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    stock_quantity: int = Field(0, ge=0)
    low_stock_threshold: int = 10
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    # pharmaceutical
    active_ingredient: Optional[str] = None
    strength: Optional[str] = None
    dosage_form: Optional[DosageForm] = None
    prescription_required: bool = False
    controlled_substance: bool = False
    expiry_date: Optional[datetime] = None
    storage_conditions: Optional[str] = None
    side_effects: List[str] = Field(default_factory=list)
    contraindications: List[str] = Field(default_factory=list)
    drug_interactions: List[str] = Field(default_factory=list)
    pregnancy_category: PregnancyCategory = "N/A"
    # status
    is_active: bool = True
    is_featured: bool = False
    is_on_sale: bool = False
    sale_percentage: Optional[float] = Field(None, ge=0, le=100)
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    # maintained by the review recompute only
    average_rating: float = Field(0, ge=0, le=5)
    total_reviews: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    requires_cold_storage: bool = False
    fragile: bool = False


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0, description="Unit price snapshot")


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []
    subtotal: float = Field(0, ge=0)
    total: float = Field(0, ge=0)


class ShippingAddress(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class BillingAddress(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    total: float = Field(..., ge=0)


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: PaymentMethod
    shipping_address: ShippingAddress
    billing_address: Optional[BillingAddress] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    prescription_required: bool = False
    prescription_image: Optional[str] = None
    prescription_approved: bool = False


class Review(BaseModel):
    user_id: str
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=1000)
    is_verified: bool = False
