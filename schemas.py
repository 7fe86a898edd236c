"""
Database Schemas for the Salon Back-Office

Stored documents live in MongoDB collections: users, packages, bills,
inventory and dailyExpenses. Field names are camelCase on the wire and in
the database. Every business document carries a `userId` owner reference
that is set server-side and never taken from the client.

Request models are kept lenient where the API reports its own validation
messages (bills, inventory); plain pydantic constraints cover the rest.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, StringConstraints

Gender = Literal["men", "women"]
ServiceLevel = Literal["basic", "advance"]
PaymentMethod = Literal["UPI", "CARD", "CASH"]
PaymentStatus = Literal["Paid", "Unpaid"]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class StoredModel(BaseModel):
    """Base for documents written as-is; lets ObjectId references through."""
    model_config = ConfigDict(arbitrary_types_allowed=True)


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------

class User(BaseModel):
    """Salon owner account. Owns every other document."""
    email: str = Field(..., description="Login email, unique")
    password: str = Field(..., description="bcrypt hash")
    isVerified: bool = Field(False, description="Set once the signup OTP is confirmed")
    otp: Optional[str] = Field(None, description="Pending one-time code")
    otpExpiry: Optional[datetime] = None


class SignupRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SigninRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class VerifyOtpRequest(BaseModel):
    email: str = Field(..., min_length=1)
    otp: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None
    otp: Optional[str] = None


# ---------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------

class PricingTier(BaseModel):
    basic: Optional[float] = Field(None, gt=0)
    advance: Optional[float] = Field(None, gt=0)


class Package(BaseModel):
    """Service offering. Priced either flat (price + type) or per gender."""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0, description="Legacy flat price")
    type: Optional[Literal["Basic", "Premium"]] = Field(None, description="Legacy flat package type")
    menPricing: Optional[PricingTier] = None
    womenPricing: Optional[PricingTier] = None


# ---------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------

class InventoryItem(BaseModel):
    """Stocked product. `total` is computed server-side."""
    name: Optional[str] = None
    brandName: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[int] = Field(None, description="Current stock")
    shadesCode: Optional[str] = None
    stockIn: Optional[int] = Field(None, description="Original lot size")
    pricePerUnit: Optional[float] = None
    expiryDate: Optional[datetime] = None
    paymentStatus: PaymentStatus = "Unpaid"


# ---------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------

class BillItem(StoredModel):
    """Snapshot of a package at the time of billing."""
    packageId: ObjectId
    packageName: str
    packagePrice: float
    packageType: str
    gender: Optional[Gender] = None
    serviceLevel: Optional[ServiceLevel] = None


class ProductSaleLine(StoredModel):
    """Snapshot of an inventory-backed sale line."""
    inventoryId: Optional[ObjectId] = None
    productName: str
    brandName: str = ""
    quantitySold: int
    pricePerUnit: float
    totalPrice: float = Field(..., description="quantitySold * pricePerUnit")


class ExpenditureLine(BaseModel):
    name: str
    price: float = 0
    complimentary: bool = Field(False, description="Entered without a price")
    description: Optional[str] = None


class Bill(StoredModel):
    """Point-of-sale transaction as stored."""
    userId: ObjectId
    items: List[BillItem]
    totalAmount: float
    clientName: str
    customerMobile: Optional[str] = None
    upiAmount: float = 0
    cardAmount: float = 0
    cashAmount: float = 0
    paymentMethod: PaymentMethod = "CASH"
    attendantBy: str
    productSale: float = Field(0, description="Sum of productSales, legacy aggregate")
    productSales: List[ProductSaleLine] = Field(default_factory=list)
    expenditures: List[ExpenditureLine] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime


class ProductSale(BaseModel):
    """Sale line as resubmitted when a bill is edited."""
    inventoryId: Optional[str] = None
    productName: str
    brandName: str = ""
    quantitySold: int = Field(..., gt=0)
    pricePerUnit: float = Field(..., ge=0)
    totalPrice: Optional[float] = Field(None, description="Recomputed as quantitySold * pricePerUnit")


class Expenditure(BaseModel):
    name: Name
    price: Optional[float] = Field(None, ge=0, description="Missing means complimentary")
    description: Optional[str] = None


class ServiceSelection(BaseModel):
    packageId: str
    gender: Optional[Gender] = None
    serviceLevel: Optional[ServiceLevel] = None


class ProductSaleRequest(BaseModel):
    inventoryId: str
    quantitySold: int = Field(..., gt=0)


class BillRequestBase(BaseModel):
    services: List[ServiceSelection] = Field(default_factory=list)
    packageIds: List[str] = Field(default_factory=list, description="Shorthand for services without gender/level")
    clientName: Optional[str] = None
    customerMobile: Optional[str] = None
    attendantBy: Optional[str] = None
    expenditures: List[Expenditure] = Field(default_factory=list)
    paymentMethod: Optional[PaymentMethod] = None
    upiAmount: float = 0
    cardAmount: float = 0
    cashAmount: float = 0

    def selections(self) -> List[ServiceSelection]:
        return list(self.services) + [ServiceSelection(packageId=pid) for pid in self.packageIds]


class CreateBillRequest(BillRequestBase):
    productSales: List[ProductSaleRequest] = Field(default_factory=list)


class UpdateBillRequest(BillRequestBase):
    productSales: List[ProductSale] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Daily expenses
# ---------------------------------------------------------------------

class DailyExpense(BaseModel):
    """Informal operating expense (tea, snacks, ...)."""
    itemName: Optional[str] = None
    price: Optional[float] = None
    date: Optional[datetime] = Field(None, description="Business date; defaults to now")
