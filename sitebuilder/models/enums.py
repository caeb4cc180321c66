# sitebuilder/models/enums.py
"""
Closed value sets stored as strings.

Unknown values are rejected when a request is parsed (pydantic) or a row
is loaded (SQLAlchemy Enum), never deep inside business logic.
"""
from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserType(str, Enum):
    USER = "user"
    CUSTOMER = "customer"
    GUEST = "guest"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    @classmethod
    def _missing_(cls, value):
        # Older clients send "value" for a fixed-amount discount.
        if isinstance(value, str) and value.lower() == "value":
            return cls.FIXED
        return None


class ProductAttributeType(str, Enum):
    ATTRIBUTE = "attribute"
    BADGE = "badge"


class OrderStatus(str, Enum):
    DRAFT = "draft"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    COMMITTED = "committed"
    FAILED = "failed"
    ABANDONED = "abandoned"
    NEEDS_RECONCILIATION = "needs_reconciliation"


class Courier(str, Enum):
    POST = "post"
    TIPAX = "tipax"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class CallVerifyUrl(str, Enum):
    CHARGE_CREDIT_VERIFY = "charge_credit_verify"
    UPGRADE_PLAN_VERIFY = "upgrade_plan_verify"
    CREATE_ORDER_VERIFY = "create_order_verify"


class GatewayKind(str, Enum):
    SAMAN = "saman"
    MELLAT = "mellat"
    PARSIAN = "parsian"
    PASARGAD = "pasargad"
    IRAN_KISH = "iran_kish"
    MELLI = "melli"
    ASAN_PARDAKHT = "asan_pardakht"
    SEPEHR = "sepehr"
    ZARINPAL = "zarinpal"
    PAY_IR = "pay_ir"
    ID_PAY = "id_pay"
    YEK_PAY = "yek_pay"
    PAY_PING = "pay_ping"
    PARBAD_VIRTUAL = "parbad_virtual"


class CreditKind(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    AI = "ai"
    AI_IMAGE = "ai_image"
    STORAGE_MB = "storage_mb"


class UsageKind(str, Enum):
    ARTICLE = "article"
    PRODUCT = "product"
    HEADER_FOOTER = "header_footer"


class HeaderFooterType(str, Enum):
    HEADER = "header"
    FOOTER = "footer"


class ProductFilter(str, Enum):
    PRICE_RANGE = "price_range"
    RATING_RANGE = "rating_range"
    SELLING_RANGE = "selling_range"
    VISITED_RANGE = "visited_range"
    REVIEW_RANGE = "review_range"
    WEIGHT_RANGE = "weight_range"
    ADDED_RANGE = "added_range"
    UPDATED_RANGE = "updated_range"
    CATEGORY_IDS = "category_ids"
    PRODUCT_IDS = "product_ids"
    FREE_SEND = "free_send"
    BADGES = "badges"
    PRODUCT_ATTRIBUTES = "product_attributes"
    PRODUCT_VARIANT = "product_variant"
    COUPON_RANGE = "coupon_range"


class ProductSort(str, Enum):
    PRICE_LOW_TO_HIGH = "price_low_to_high"
    PRICE_HIGH_TO_LOW = "price_high_to_low"
    COUPON_HIGH_TO_LOW = "coupon_high_to_low"
    NAME_A_Z = "name_a_z"
    NAME_Z_A = "name_z_a"
    RECENTLY_ADDED = "recently_added"
    RECENTLY_UPDATED = "recently_updated"
    MOST_SELLING = "most_selling"
    MOST_VISITED = "most_visited"
    MOST_RATED = "most_rated"
    MOST_REVIEWED = "most_reviewed"
    LEAST_SELLING = "least_selling"
    LEAST_VISITED = "least_visited"
    LEAST_RATED = "least_rated"
    LEAST_REVIEWED = "least_reviewed"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
