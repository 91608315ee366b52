"""
Database Schemas for the HesapDurağı storefront

Each Pydantic model describes the documents of one MongoDB collection.
Attributes are snake_case in Python; documents and API payloads use the
camelCase aliases (``original_price`` is stored as ``originalPrice``).
"""
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

AccountStatus = Literal['available', 'sold', 'pending', 'suspended']
CategoryType = Literal['account', 'license']
CategoryStatus = Literal['active', 'inactive']
Role = Literal['user', 'admin']
UserStatus = Literal['active', 'suspended', 'banned']
OrderStatus = Literal['pending', 'processing', 'completed', 'cancelled', 'refunded']
PaymentStatus = Literal['pending', 'paid', 'failed', 'refunded']
LogLevel = Literal['info', 'warning', 'error', 'debug']
LogCategory = Literal['auth', 'payment', 'system', 'user', 'admin', 'api']
TicketCategory = Literal['technical', 'payment', 'account', 'general']
TicketPriority = Literal['low', 'medium', 'high', 'urgent']
TicketStatus = Literal['open', 'in-progress', 'resolved', 'closed']
BlogStatus = Literal['draft', 'published', 'archived']
BlogCategory = Literal['Oyun Rehberleri', 'Güvenlik', 'Sosyal Medya', 'Dijital Hizmetler', 'PC Oyunları']


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Catalog
class Account(Document):
    title: str = Field(..., min_length=1)
    description: str = ""
    game: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    original_price: float = Field(0, ge=0)
    discount_percentage: float = Field(0, ge=0, le=100)
    is_on_sale: bool = False
    is_featured: bool = False
    is_weekly_deal: bool = False
    category: str = Field(..., min_length=1)
    subcategory: str = ""
    features: List[str] = Field(default_factory=list)
    emoji: str = "🎮"
    images: List[str] = Field(default_factory=list)
    status: AccountStatus = 'available'
    level: Union[str, int] = "1"
    rank: str = "Unranked"
    rating: float = Field(0, ge=0, le=5)
    reviews: int = Field(0, ge=0)
    stock: int = Field(1, ge=0)


class AccountUpdate(Document):
    """Partial update; only the fields actually sent are applied."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    game: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    is_on_sale: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_weekly_deal: Optional[bool] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    features: Optional[List[str]] = None
    emoji: Optional[str] = None
    images: Optional[List[str]] = None
    status: Optional[AccountStatus] = None
    level: Optional[Union[str, int]] = None
    rank: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews: Optional[int] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)


class Subcategory(Document):
    name: str = Field(..., min_length=1)
    slug: str
    description: str = ""
    is_active: bool = True
    order: int = 0


class Category(Document):
    title: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    type: CategoryType
    status: CategoryStatus = 'active'
    item_count: int = 0
    subcategories: List[Subcategory] = Field(default_factory=list)


# People
class User(Document):
    name: str = Field(..., min_length=2, max_length=80)
    email: EmailStr
    hashed_password: str
    role: Role = 'user'
    status: UserStatus = 'active'
    verified: bool = False
    balance: float = 0
    total_purchases: int = 0
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    last_login: Optional[datetime] = None


# Commerce
class OrderParty(Document):
    id: str = Field(..., alias="_id")
    name: str
    email: str


class OrderAccount(Document):
    id: str = Field(..., alias="_id")
    title: str
    game: str


class Order(Document):
    order_id: str
    buyer: OrderParty
    seller: OrderParty
    account: OrderAccount
    amount: float = Field(..., ge=0)
    commission: float = Field(0, ge=0)
    status: OrderStatus = 'pending'
    payment_status: PaymentStatus = 'pending'
    payment_method: str = 'manual'
    notes: Optional[str] = None


class CartItem(Document):
    user_id: str
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    category: str = ""
    game: str = ""
    rank: str = ""
    level: Union[str, int] = ""
    image: Optional[str] = None
    added_at: datetime


class Notification(Document):
    user_id: str
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: str = 'cart_reminder'
    status: Literal['sent', 'failed'] = 'sent'
    delivery_methods: List[str] = Field(default_factory=lambda: ['email', 'push'])
    sent_at: datetime
    read_at: Optional[datetime] = None


# Audit trail
class Log(Document):
    timestamp: datetime
    level: LogLevel
    category: LogCategory
    message: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Optional[dict] = None


# Support
class Support(Document):
    ticket_id: str
    user_id: str
    user_name: str
    user_email: str
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    category: TicketCategory = 'general'
    priority: TicketPriority = 'medium'
    status: TicketStatus = 'open'
    admin_response: Optional[str] = Field(None, max_length=2000)
    admin_id: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    resolved_at: Optional[datetime] = None


# Content
class Blog(Document):
    title: str = Field(..., min_length=1, max_length=200)
    slug: str
    excerpt: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    author: str = 'HD Dijital'
    category: BlogCategory
    tags: List[str] = Field(default_factory=list)
    featured_image: str = ""
    images: List[str] = Field(default_factory=list)
    status: BlogStatus = 'draft'
    read_time: str = '5 dakika'
    views: int = 0
    likes: int = 0
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    keywords: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None
    created_by: str
    updated_by: Optional[str] = None


class PopularCategory(Document):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    button_text: str = 'SATIN AL'
    button_link: str = Field(..., min_length=1)
    background_image: str = Field(..., min_length=1)
    gradient_from: str = 'from-orange-600'
    gradient_to: str = 'to-red-800'
    text_color: str = 'text-white'
    is_active: bool = True
    order: int = 0


class SliderIcon(Document):
    type: str
    x: float
    y: float
    rotation: float = 0


class SliderItem(Document):
    id: int
    title: str
    subtitle: str = ""
    description: str = ""
    button_text: str = ""
    link: str = "/products"
    background_color: str = ""
    background_image: str = ""
    icons: List[SliderIcon] = Field(default_factory=list)


class Testimonial(Document):
    id: Union[int, str]
    name: str
    avatar: str = ""
    rating: int = Field(5, ge=1, le=5)
    comment: str
    game: str = ""
    date: str = ""
    verified: bool = True


class NotificationRates(Document):
    """Pre-aggregated delivery figures; nothing in this service computes them."""
    delivery_rate: float = 0
    open_rate: float = 0
    click_rate: float = 0
    conversion_rate: float = 0


class SystemSettings(Document):
    site_name: str = 'HesapDurağı'
    site_description: str = ""
    contact_email: str = ""
    support_email: str = ""
    maintenance_mode: bool = False
    registration_enabled: bool = True
    default_currency: str = 'TRY'
    commission_rate: float = Field(5, ge=0, le=100)
    min_withdraw_amount: float = Field(50, ge=0)
    auto_approve_orders: bool = False
    email_verification_required: bool = False
    session_timeout: int = Field(30, ge=1)
    max_file_upload_size: int = Field(5, ge=1)
    enable_notifications: bool = True
    enable_sms: bool = False
    log_retention_days: int = Field(30, ge=1)
    backup_frequency: str = 'daily'
    notification_rates: NotificationRates = Field(default_factory=NotificationRates)


# Reviews
class Review(Document):
    """A buyer's rating of an account; only approved reviews count towards the account's rating."""
    user_id: str
    user_name: str
    account_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=500)
    is_anonymous: bool = False
    is_approved: bool = False


class HelpContent(Document):
    type: Literal['faq', 'general']
    key: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    category: Optional[str] = None
    order: int = 0
    is_active: bool = True
