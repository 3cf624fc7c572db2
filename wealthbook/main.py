import logging
import os
import secrets
from datetime import date, datetime, timedelta, timezone
from decimal import Context, Decimal

import bcrypt
from fastapi import FastAPI, HTTPException, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.types import TypeDecorator

from wealthbook.currency_conversion import (
    compute_balance_in_base,
    normalize_currency,
)
from wealthbook.deposit_maturity import calculate_maturity_value
from wealthbook.net_worth_engine import (
    BalanceSnapshot,
    build_category_trend,
    build_net_worth_trend,
    summarize_net_worth,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="Wealthbook")

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./wealthbook.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()


def get_system_base_currency() -> str:
    raw = os.getenv("BASE_CURRENCY", "USD")
    try:
        return normalize_currency(raw)
    except ValueError:
        return "USD"


SYSTEM_BASE_CURRENCY = get_system_base_currency()
SESSION_TTL = timedelta(days=int(os.getenv("SESSION_TTL_DAYS", "30")))


class PreciseDecimal(TypeDecorator):
    """Fixed-scale decimal column that round-trips exactly on SQLite.

    SQLite keeps NUMERIC as REAL, so values are stored there as fixed-point
    text instead.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int, scale: int, **kwargs):
        super().__init__(**kwargs)
        self.precision = precision
        self.scale = scale
        self._numeric = Numeric(precision, scale, asdecimal=True)
        self._quantum = Decimal(1).scaleb(-scale)
        self._context = Context(prec=precision + 2)

    @property
    def python_type(self) -> type[Decimal]:
        return Decimal

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(self._numeric)

    def quantize(self, value) -> Decimal:
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(self._quantum, context=self._context)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = self.quantize(value)
        if dialect.name == "sqlite":
            return format(value, f".{self.scale}f")
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.quantize(value)


users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("base_currency", String(3), nullable=False, server_default=SYSTEM_BASE_CURRENCY),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("token", String(128), unique=True, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("expires_at", DateTime, nullable=False),
)

addresses = Table(
    "addresses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("type", String(20), nullable=False),
    Column("line1", String(255), nullable=False),
    Column("line2", String(255)),
    Column("city", String(120), nullable=False),
    Column("state", String(120), nullable=False),
    Column("postal_code", String(20), nullable=False),
    Column("country", String(120), nullable=False),
    Column("from_date", Date, nullable=False),
    Column("to_date", Date),
    Column("is_current", Boolean, nullable=False, default=False),
    Column("latitude", Float),
    Column("longitude", Float),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

identity_documents = Table(
    "identity_documents",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("doc_type", String(30), nullable=False),
    Column("doc_number", String(100), nullable=False),
    Column("issue_date", Date),
    Column("expiry_date", Date),
    Column("issuing_authority", String(255)),
    Column("is_primary", Boolean, nullable=False, default=False),
    Column("scan_path", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "doc_type", "doc_number", name="uq_identity_documents_user_doc"),
)

asset_categories = Table(
    "asset_categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("type", String(20), nullable=False),
    Column("parent_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "name", name="uq_asset_categories_user_name"),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("nickname", String(255), nullable=False),
    Column("account_type", String(20), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("bank_name", String(255)),
    Column("branch", String(255)),
    Column("account_number", String(100)),
    Column("ifsc_swift", String(50)),
    Column("linked_address_id", Integer, ForeignKey("addresses.id")),
    Column("linked_phone_number", String(50)),
    Column("online_login_username", String(255)),
    Column("online_login_password_hint", String(255)),
    Column("two_factor_method", String(100)),
    Column("asset_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

balance_entries = Table(
    "balance_entries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("entry_date", Date, nullable=False),
    Column("balance_original", PreciseDecimal(18, 4), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("exchange_rate_to_base", PreciseDecimal(18, 8)),
    Column("balance_in_base", PreciseDecimal(36, 12)),
    Column("locked", Boolean, nullable=False, default=False),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("account_id", "entry_date", name="uq_balance_entries_account_month"),
)

credit_cards = Table(
    "credit_cards",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("nickname", String(255), nullable=False),
    Column("card_type", String(20), nullable=False),
    Column("last_four_digits", String(4), nullable=False),
    Column("issuing_bank", String(255), nullable=False),
    Column("credit_limit", PreciseDecimal(14, 2), nullable=False),
    Column("expiry_date", Date, nullable=False),
    Column("billing_address_id", Integer, ForeignKey("addresses.id")),
    Column("asset_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

fixed_deposits = Table(
    "fixed_deposits",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("bank_name", String(255), nullable=False),
    Column("branch", String(255)),
    Column("fd_account_number", String(100)),
    Column("principal_amount", PreciseDecimal(14, 2), nullable=False),
    Column("interest_rate", PreciseDecimal(7, 4), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("maturity_date", Date, nullable=False),
    Column("payout_frequency", String(20), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("asset_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("linked_account_id", Integer, ForeignKey("accounts.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

mutual_funds = Table(
    "mutual_funds",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("fund_name", String(255), nullable=False),
    Column("folio_number", String(100)),
    Column("purchase_date", Date),
    Column("units_held", PreciseDecimal(18, 6), nullable=False),
    Column("average_cost_per_unit", PreciseDecimal(14, 4), nullable=False),
    Column("current_nav", PreciseDecimal(14, 4)),
    Column("currency", String(3), nullable=False),
    Column("asset_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("linked_account_id", Integer, ForeignKey("accounts.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

pension_profiles = Table(
    "pension_profiles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("country", String(20), nullable=False),
    Column("employer_name", String(255)),
    Column("account_number", String(100)),
    Column("contribution_to_date", PreciseDecimal(14, 2)),
    Column("employee_share_percent", PreciseDecimal(5, 2)),
    Column("employer_share_percent", PreciseDecimal(5, 2)),
    Column("projected_payout", PreciseDecimal(14, 2)),
    Column("asset_category_id", Integer, ForeignKey("asset_categories.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

# Every table that may point at an asset category.
CATEGORY_REFERENCING_TABLES = (
    accounts,
    credit_cards,
    fixed_deposits,
    mutual_funds,
    pension_profiles,
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "path": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


class ChoiceSet:
    values: set[str] = set()
    label = "value"

    @classmethod
    def validate(cls, value: str | None) -> str:
        normalized = (value or "").strip().upper()
        if normalized not in cls.values:
            raise ValueError(f"Invalid {cls.label}.")
        return normalized


class AssetType(ChoiceSet):
    values = {"ASSET", "LIABILITY"}
    label = "category type"


class AccountType(ChoiceSet):
    values = {"SAVINGS", "CHECKING", "DEMAT", "NRI", "LIABILITY", "OTHER"}
    label = "account type"


class AddressType(ChoiceSet):
    values = {"HOME", "WORK", "MAILING", "OTHER"}
    label = "address type"


class IdentityDocumentType(ChoiceSet):
    values = {"PASSPORT", "NATIONAL_ID", "DRIVING_LICENSE", "TAX_ID", "VOTER_ID", "OTHER"}
    label = "document type"


class CreditCardType(ChoiceSet):
    values = {"VISA", "MASTERCARD", "AMEX", "RUPAY", "DISCOVER", "OTHER"}
    label = "card type"


class PayoutFrequency(ChoiceSet):
    values = {"ON_MATURITY", "MONTHLY", "QUARTERLY", "HALF_YEARLY", "YEARLY"}
    label = "payout frequency"


class PensionCountry(ChoiceSet):
    values = {"INDIA", "JAPAN", "OTHER"}
    label = "pension country"


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def normalize_values(
    values: dict,
    required_text: dict[str, str] | None = None,
    optional_text: tuple[str, ...] = (),
    required: dict[str, str] | None = None,
) -> dict:
    """Strip text fields and reject blanks or nulls on required fields.

    Only keys present in ``values`` are touched, so the same rules serve full
    creates and partial updates.
    """
    for field_name, label in (required_text or {}).items():
        if field_name in values:
            cleaned = clean_text(values[field_name])
            if cleaned is None:
                raise ValueError(f"{label} is required.")
            values[field_name] = cleaned
    for field_name in optional_text:
        if field_name in values:
            values[field_name] = clean_text(values[field_name])
    for field_name, label in (required or {}).items():
        if field_name in values and values[field_name] is None:
            raise ValueError(f"{label} is required.")
    return values


def normalize_currency_value(values: dict) -> dict:
    if "currency" in values:
        if values["currency"] is None:
            raise ValueError("Currency is required.")
        values["currency"] = normalize_currency(values["currency"])
    return values


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    base_currency: str
    created_at: datetime | None = None


class SessionResponse(BaseModel):
    token: str
    expires_at: datetime
    user: UserResponse


class UserSettingsPayload(BaseModel):
    base_currency: str | None = None


class CategoryRef(BaseModel):
    id: int
    name: str


class CategorySummary(CategoryRef):
    type: str


class AddressSummary(BaseModel):
    id: int
    line1: str
    city: str
    country: str


class AccountSummary(BaseModel):
    id: int
    nickname: str
    account_type: str
    currency: str


class AddressPayload(BaseModel):
    type: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str
    from_date: date
    to_date: date | None = None
    is_current: bool = False
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "type" in values:
            values["type"] = AddressType.validate(values["type"])
        return normalize_values(
            values,
            required_text={
                "line1": "Address line 1",
                "city": "City",
                "state": "State",
                "postal_code": "Postal code",
                "country": "Country",
            },
            optional_text=("line2",),
            required={"from_date": "From date", "is_current": "Current flag"},
        )


class AddressUpdatePayload(BaseModel):
    type: str | None = None
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    from_date: date | None = None
    to_date: date | None = None
    is_current: bool | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class AddressResponse(BaseModel):
    id: int
    user_id: int
    type: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str
    from_date: date
    to_date: date | None = None
    is_current: bool
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime | None = None


class IdentityDocumentPayload(BaseModel):
    doc_type: str
    doc_number: str
    issue_date: date | None = None
    expiry_date: date | None = None
    issuing_authority: str | None = None
    is_primary: bool = False
    scan_path: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "doc_type" in values:
            values["doc_type"] = IdentityDocumentType.validate(values["doc_type"])
        return normalize_values(
            values,
            required_text={"doc_number": "Document number"},
            optional_text=("issuing_authority", "scan_path"),
            required={"is_primary": "Primary flag"},
        )


class IdentityDocumentUpdatePayload(BaseModel):
    doc_type: str | None = None
    doc_number: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    issuing_authority: str | None = None
    is_primary: bool | None = None
    scan_path: str | None = None


class IdentityDocumentResponse(BaseModel):
    id: int
    user_id: int
    doc_type: str
    doc_number: str
    issue_date: date | None = None
    expiry_date: date | None = None
    issuing_authority: str | None = None
    is_primary: bool
    scan_path: str | None = None
    created_at: datetime | None = None


class AssetCategoryPayload(BaseModel):
    name: str
    type: str
    parent_category_id: int | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "type" in values:
            values["type"] = AssetType.validate(values["type"])
        return normalize_values(values, required_text={"name": "Category name"})


class AssetCategoryUpdatePayload(BaseModel):
    name: str | None = None
    type: str | None = None
    parent_category_id: int | None = None


class AssetCategoryResponse(BaseModel):
    id: int
    user_id: int
    name: str
    type: str
    parent_category_id: int | None = None
    parent_category: CategoryRef | None = None
    sub_categories: list[CategoryRef] = []
    created_at: datetime | None = None


class AccountPayload(BaseModel):
    nickname: str
    account_type: str
    currency: str
    bank_name: str | None = None
    branch: str | None = None
    account_number: str | None = None
    ifsc_swift: str | None = None
    linked_address_id: int | None = None
    linked_phone_number: str | None = None
    online_login_username: str | None = None
    online_login_password_hint: str | None = None
    two_factor_method: str | None = None
    asset_category_id: int | None = None
    notes: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "account_type" in values:
            values["account_type"] = AccountType.validate(values["account_type"])
        normalize_currency_value(values)
        return normalize_values(
            values,
            required_text={"nickname": "Nickname"},
            optional_text=(
                "bank_name",
                "branch",
                "account_number",
                "ifsc_swift",
                "linked_phone_number",
                "online_login_username",
                "online_login_password_hint",
                "two_factor_method",
                "notes",
            ),
        )


class AccountUpdatePayload(BaseModel):
    nickname: str | None = None
    account_type: str | None = None
    currency: str | None = None
    bank_name: str | None = None
    branch: str | None = None
    account_number: str | None = None
    ifsc_swift: str | None = None
    linked_address_id: int | None = None
    linked_phone_number: str | None = None
    online_login_username: str | None = None
    online_login_password_hint: str | None = None
    two_factor_method: str | None = None
    asset_category_id: int | None = None
    notes: str | None = None


class AccountResponse(BaseModel):
    id: int
    user_id: int
    nickname: str
    account_type: str
    currency: str
    bank_name: str | None = None
    branch: str | None = None
    account_number: str | None = None
    ifsc_swift: str | None = None
    linked_address_id: int | None = None
    linked_phone_number: str | None = None
    online_login_username: str | None = None
    online_login_password_hint: str | None = None
    two_factor_method: str | None = None
    asset_category_id: int | None = None
    notes: str | None = None
    asset_category: CategorySummary | None = None
    linked_address: AddressSummary | None = None
    created_at: datetime | None = None


class BalanceEntryPayload(BaseModel):
    account_id: int
    entry_date: date
    balance_original: Decimal = Field(..., max_digits=18, decimal_places=4)
    currency: str
    exchange_rate_to_base: Decimal | None = Field(None, gt=0, max_digits=18, decimal_places=8)
    notes: str | None = None
    locked: bool = False

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        normalize_currency_value(values)
        return normalize_values(
            values,
            optional_text=("notes",),
            required={"balance_original": "Original balance", "entry_date": "Entry date"},
        )


class BalanceEntryUpdatePayload(BaseModel):
    balance_original: Decimal | None = Field(None, max_digits=18, decimal_places=4)
    exchange_rate_to_base: Decimal | None = Field(None, gt=0, max_digits=18, decimal_places=8)
    notes: str | None = None
    locked: bool | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        # A null amount or lock flag means "leave as is"; a null rate clears it.
        for field_name in ("balance_original", "locked"):
            if field_name in values and values[field_name] is None:
                del values[field_name]
        return normalize_values(values, optional_text=("notes",))


class BalanceEntryResponse(BaseModel):
    id: int
    user_id: int
    account_id: int
    entry_date: date
    balance_original: Decimal
    currency: str
    exchange_rate_to_base: Decimal | None = None
    balance_in_base: Decimal | None = None
    locked: bool
    notes: str | None = None
    account: AccountSummary | None = None
    created_at: datetime | None = None


class CreditCardPayload(BaseModel):
    nickname: str
    card_type: str
    last_four_digits: str
    issuing_bank: str
    credit_limit: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    expiry_date: date
    billing_address_id: int | None = None
    asset_category_id: int | None = None
    notes: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "card_type" in values:
            values["card_type"] = CreditCardType.validate(values["card_type"])
        if "last_four_digits" in values:
            digits = (values["last_four_digits"] or "").strip()
            if len(digits) != 4 or not digits.isdigit():
                raise ValueError("Last four digits must be exactly 4 digits.")
            values["last_four_digits"] = digits
        return normalize_values(
            values,
            required_text={"nickname": "Nickname", "issuing_bank": "Issuing bank"},
            optional_text=("notes",),
            required={"credit_limit": "Credit limit", "expiry_date": "Expiry date"},
        )


class CreditCardUpdatePayload(BaseModel):
    nickname: str | None = None
    card_type: str | None = None
    last_four_digits: str | None = None
    issuing_bank: str | None = None
    credit_limit: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    expiry_date: date | None = None
    billing_address_id: int | None = None
    asset_category_id: int | None = None
    notes: str | None = None


class CreditCardResponse(BaseModel):
    id: int
    user_id: int
    nickname: str
    card_type: str
    last_four_digits: str
    issuing_bank: str
    credit_limit: Decimal
    expiry_date: date
    billing_address_id: int | None = None
    asset_category_id: int | None = None
    notes: str | None = None
    asset_category: CategorySummary | None = None
    billing_address: AddressSummary | None = None
    created_at: datetime | None = None


class FixedDepositPayload(BaseModel):
    bank_name: str
    branch: str | None = None
    fd_account_number: str | None = None
    principal_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    interest_rate: Decimal = Field(..., gt=0, max_digits=7, decimal_places=4)
    start_date: date
    maturity_date: date
    payout_frequency: str
    currency: str
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "payout_frequency" in values:
            values["payout_frequency"] = PayoutFrequency.validate(values["payout_frequency"])
        normalize_currency_value(values)
        return normalize_values(
            values,
            required_text={"bank_name": "Bank name"},
            optional_text=("branch", "fd_account_number", "notes"),
            required={
                "principal_amount": "Principal amount",
                "interest_rate": "Interest rate",
                "start_date": "Start date",
                "maturity_date": "Maturity date",
            },
        )


class FixedDepositUpdatePayload(BaseModel):
    bank_name: str | None = None
    branch: str | None = None
    fd_account_number: str | None = None
    principal_amount: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    interest_rate: Decimal | None = Field(None, gt=0, max_digits=7, decimal_places=4)
    start_date: date | None = None
    maturity_date: date | None = None
    payout_frequency: str | None = None
    currency: str | None = None
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None


class FixedDepositResponse(BaseModel):
    id: int
    user_id: int
    bank_name: str
    branch: str | None = None
    fd_account_number: str | None = None
    principal_amount: Decimal
    interest_rate: Decimal
    start_date: date
    maturity_date: date
    payout_frequency: str
    currency: str
    maturity_value: Decimal
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None
    asset_category: CategorySummary | None = None
    linked_account: AccountSummary | None = None
    created_at: datetime | None = None


class MutualFundPayload(BaseModel):
    fund_name: str
    folio_number: str | None = None
    purchase_date: date | None = None
    units_held: Decimal = Field(..., gt=0, max_digits=18, decimal_places=6)
    average_cost_per_unit: Decimal = Field(..., gt=0, max_digits=14, decimal_places=4)
    current_nav: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=4)
    currency: str
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        normalize_currency_value(values)
        return normalize_values(
            values,
            required_text={"fund_name": "Fund name"},
            optional_text=("folio_number", "notes"),
            required={
                "units_held": "Units held",
                "average_cost_per_unit": "Average cost per unit",
            },
        )


class MutualFundUpdatePayload(BaseModel):
    fund_name: str | None = None
    folio_number: str | None = None
    purchase_date: date | None = None
    units_held: Decimal | None = Field(None, gt=0, max_digits=18, decimal_places=6)
    average_cost_per_unit: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=4)
    current_nav: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=4)
    currency: str | None = None
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None


class MutualFundResponse(BaseModel):
    id: int
    user_id: int
    fund_name: str
    folio_number: str | None = None
    purchase_date: date | None = None
    units_held: Decimal
    average_cost_per_unit: Decimal
    current_nav: Decimal | None = None
    current_value: Decimal | None = None
    currency: str
    asset_category_id: int | None = None
    linked_account_id: int | None = None
    notes: str | None = None
    asset_category: CategorySummary | None = None
    linked_account: AccountSummary | None = None
    created_at: datetime | None = None


class PensionProfilePayload(BaseModel):
    country: str
    employer_name: str | None = None
    account_number: str | None = None
    contribution_to_date: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    employee_share_percent: Decimal | None = Field(
        None, ge=0, le=100, max_digits=5, decimal_places=2
    )
    employer_share_percent: Decimal | None = Field(
        None, ge=0, le=100, max_digits=5, decimal_places=2
    )
    projected_payout: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    asset_category_id: int | None = None
    notes: str | None = None

    @classmethod
    def validate_values(cls, values: dict) -> dict:
        if "country" in values:
            values["country"] = PensionCountry.validate(values["country"])
        return normalize_values(
            values,
            optional_text=("employer_name", "account_number", "notes"),
        )


class PensionProfileUpdatePayload(BaseModel):
    country: str | None = None
    employer_name: str | None = None
    account_number: str | None = None
    contribution_to_date: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    employee_share_percent: Decimal | None = Field(
        None, ge=0, le=100, max_digits=5, decimal_places=2
    )
    employer_share_percent: Decimal | None = Field(
        None, ge=0, le=100, max_digits=5, decimal_places=2
    )
    projected_payout: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    asset_category_id: int | None = None
    notes: str | None = None


class PensionProfileResponse(BaseModel):
    id: int
    user_id: int
    country: str
    employer_name: str | None = None
    account_number: str | None = None
    contribution_to_date: Decimal | None = None
    employee_share_percent: Decimal | None = None
    employer_share_percent: Decimal | None = None
    projected_payout: Decimal | None = None
    asset_category_id: int | None = None
    notes: str | None = None
    asset_category: CategorySummary | None = None
    created_at: datetime | None = None


class NetWorthTrendPoint(BaseModel):
    date: date
    total_assets: float
    total_liabilities: float
    net_worth: float


class CategoryTrendPoint(BaseModel):
    date: date
    totals: dict[str, float]


class CategoryBreakdownTrendResponse(BaseModel):
    trend_data: list[CategoryTrendPoint]
    categories: list[str]


class NetWorthSummaryResponse(BaseModel):
    total_assets: float
    total_liabilities: float
    net_worth: float
    last_updated_date: date | None = None
    accounts_considered: int
    accounts_counted: int
    base_currency: str


ACCOUNT_REFERENCES = {
    "asset_category_id": (asset_categories, "Invalid Asset Category ID."),
    "linked_address_id": (addresses, "Invalid Linked Address ID."),
}
CREDIT_CARD_REFERENCES = {
    "asset_category_id": (asset_categories, "Invalid Asset Category ID."),
    "billing_address_id": (addresses, "Invalid Billing Address ID."),
}
HOLDING_REFERENCES = {
    "asset_category_id": (asset_categories, "Invalid Asset Category ID."),
    "linked_account_id": (accounts, "Invalid Linked Account ID."),
}
PENSION_REFERENCES = {
    "asset_category_id": (asset_categories, "Invalid Asset Category ID."),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def parse_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing session.")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid session.")
    return token


def get_user_id(authorization: str | None) -> int:
    token = parse_bearer_token(authorization)
    expired = False
    with engine.begin() as conn:
        row = conn.execute(
            select(sessions.c.user_id, sessions.c.expires_at).where(sessions.c.token == token)
        ).mappings().first()
        if row and row["expires_at"] <= utcnow():
            conn.execute(sessions.delete().where(sessions.c.token == token))
            expired = True
    if not row:
        raise HTTPException(status_code=401, detail="Invalid session.")
    if expired:
        raise HTTPException(status_code=401, detail="Session expired.")
    return row["user_id"]


def resolve_base_currency(conn, user_id: int) -> str:
    base_currency = conn.execute(
        select(users.c.base_currency).where(users.c.id == user_id)
    ).scalar_one_or_none()
    if base_currency:
        try:
            return normalize_currency(base_currency)
        except ValueError:
            pass
    return SYSTEM_BASE_CURRENCY


def month_start(value: date) -> date:
    return value.replace(day=1)


def differs_from_stored(column: Column, requested, stored) -> bool:
    if requested is None or stored is None:
        return requested is not stored
    return column.type.quantize(requested) != stored


def fetch_owned(conn, table: Table, record_id: int, user_id: int):
    return conn.execute(
        select(table).where(table.c.id == record_id, table.c.user_id == user_id)
    ).mappings().first()


def ensure_references_owned(conn, user_id: int, values: dict, references: dict) -> None:
    for field_name, (table, message) in references.items():
        record_id = values.get(field_name)
        if record_id is None:
            continue
        if not fetch_owned(conn, table, record_id, user_id):
            raise HTTPException(status_code=400, detail=message)


def apply_changes(conn, table: Table, record_id: int, user_id: int, changes: dict):
    if not changes:
        return fetch_owned(conn, table, record_id, user_id)
    return conn.execute(
        update(table)
        .where(table.c.id == record_id, table.c.user_id == user_id)
        .values(**changes)
        .returning(*table.c)
    ).mappings().first()


def category_summaries(conn, user_id: int) -> dict[int, CategorySummary]:
    rows = conn.execute(
        select(asset_categories.c.id, asset_categories.c.name, asset_categories.c.type).where(
            asset_categories.c.user_id == user_id
        )
    ).mappings().all()
    return {row["id"]: CategorySummary(**row) for row in rows}


def address_summaries(conn, user_id: int) -> dict[int, AddressSummary]:
    rows = conn.execute(
        select(addresses.c.id, addresses.c.line1, addresses.c.city, addresses.c.country).where(
            addresses.c.user_id == user_id
        )
    ).mappings().all()
    return {row["id"]: AddressSummary(**row) for row in rows}


def account_summaries(conn, user_id: int) -> dict[int, AccountSummary]:
    rows = conn.execute(
        select(
            accounts.c.id,
            accounts.c.nickname,
            accounts.c.account_type,
            accounts.c.currency,
        ).where(accounts.c.user_id == user_id)
    ).mappings().all()
    return {row["id"]: AccountSummary(**row) for row in rows}


def category_in_use(conn, user_id: int, category_id: int) -> bool:
    for table in CATEGORY_REFERENCING_TABLES:
        match = conn.execute(
            select(table.c.id)
            .where(table.c.user_id == user_id, table.c.asset_category_id == category_id)
            .limit(1)
        ).first()
        if match:
            return True
    return False


def creates_category_cycle(conn, user_id: int, category_id: int, parent_id: int) -> bool:
    """True when ``parent_id`` sits below ``category_id`` in the tree."""
    seen: set[int] = set()
    cursor = parent_id
    while cursor is not None and cursor not in seen:
        if cursor == category_id:
            return True
        seen.add(cursor)
        cursor = conn.execute(
            select(asset_categories.c.parent_category_id).where(
                asset_categories.c.id == cursor, asset_categories.c.user_id == user_id
            )
        ).scalar_one_or_none()
    return False


def build_category_response(conn, row) -> AssetCategoryResponse:
    parent = None
    if row["parent_category_id"] is not None:
        parent_row = conn.execute(
            select(asset_categories.c.id, asset_categories.c.name).where(
                asset_categories.c.id == row["parent_category_id"]
            )
        ).mappings().first()
        if parent_row:
            parent = CategoryRef(**parent_row)
    children = conn.execute(
        select(asset_categories.c.id, asset_categories.c.name)
        .where(asset_categories.c.parent_category_id == row["id"])
        .order_by(asset_categories.c.name.asc())
    ).mappings().all()
    return AssetCategoryResponse(
        **row,
        parent_category=parent,
        sub_categories=[CategoryRef(**child) for child in children],
    )


def build_account_response(row, categories: dict, address_lookup: dict) -> AccountResponse:
    return AccountResponse(
        **row,
        asset_category=categories.get(row["asset_category_id"]),
        linked_address=address_lookup.get(row["linked_address_id"]),
    )


def build_balance_entry_response(row, account_lookup: dict) -> BalanceEntryResponse:
    return BalanceEntryResponse(**row, account=account_lookup.get(row["account_id"]))


def build_credit_card_response(row, categories: dict, address_lookup: dict) -> CreditCardResponse:
    return CreditCardResponse(
        **row,
        asset_category=categories.get(row["asset_category_id"]),
        billing_address=address_lookup.get(row["billing_address_id"]),
    )


def build_fixed_deposit_response(row, categories: dict, account_lookup: dict) -> FixedDepositResponse:
    maturity_value = calculate_maturity_value(
        row["principal_amount"],
        row["interest_rate"],
        row["start_date"],
        row["maturity_date"],
    )
    return FixedDepositResponse(
        **row,
        maturity_value=maturity_value,
        asset_category=categories.get(row["asset_category_id"]),
        linked_account=account_lookup.get(row["linked_account_id"]),
    )


def build_mutual_fund_response(row, categories: dict, account_lookup: dict) -> MutualFundResponse:
    current_value = None
    if row["current_nav"] is not None:
        current_value = row["units_held"] * row["current_nav"]
    return MutualFundResponse(
        **row,
        current_value=current_value,
        asset_category=categories.get(row["asset_category_id"]),
        linked_account=account_lookup.get(row["linked_account_id"]),
    )


def build_pension_profile_response(row, categories: dict) -> PensionProfileResponse:
    return PensionProfileResponse(**row, asset_category=categories.get(row["asset_category_id"]))


def fetch_balance_snapshots(conn, user_id: int) -> list[BalanceSnapshot]:
    rows = conn.execute(
        select(
            balance_entries.c.account_id,
            balance_entries.c.entry_date,
            balance_entries.c.balance_in_base,
            asset_categories.c.name.label("category_name"),
            asset_categories.c.type.label("category_type"),
        )
        .select_from(
            balance_entries.join(accounts, balance_entries.c.account_id == accounts.c.id).outerjoin(
                asset_categories, accounts.c.asset_category_id == asset_categories.c.id
            )
        )
        .where(balance_entries.c.user_id == user_id)
        .order_by(balance_entries.c.entry_date.asc())
    ).mappings().all()
    return [BalanceSnapshot(**row) for row in rows]


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    if not email or "@" not in email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password required.")
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(email=email, hashed_password=hashed_password, base_currency=SYSTEM_BASE_CURRENCY)
        .returning(users.c.id, users.c.email, users.c.base_currency, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    logger.info("Created user %s", row["id"])
    return UserResponse(**row)


@app.post("/auth/login", response_model=SessionResponse)
def login(payload: CredentialsPayload) -> SessionResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()
        if not row or not verify_password(payload.password, row["hashed_password"]):
            raise HTTPException(status_code=401, detail="Invalid credentials.")
        now = utcnow()
        conn.execute(sessions.delete().where(sessions.c.expires_at <= now))
        token = secrets.token_urlsafe(32)
        expires_at = now + SESSION_TTL
        conn.execute(
            insert(sessions).values(user_id=row["id"], token=token, expires_at=expires_at)
        )

    return SessionResponse(token=token, expires_at=expires_at, user=UserResponse(**row))


@app.post("/auth/logout")
def logout(authorization: str | None = Header(None)) -> dict:
    token = parse_bearer_token(authorization)
    with engine.begin() as conn:
        result = conn.execute(sessions.delete().where(sessions.c.token == token))
    if result.rowcount == 0:
        raise HTTPException(status_code=401, detail="Invalid session.")
    return {"status": "logged_out"}


@app.get("/users/me/settings", response_model=UserResponse)
def get_user_settings(authorization: str | None = Header(None)) -> UserResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserResponse(**row)


@app.put("/users/me/settings", response_model=UserResponse)
def update_user_settings(
    payload: UserSettingsPayload, authorization: str | None = Header(None)
) -> UserResponse:
    user_id = get_user_id(authorization)
    if payload.base_currency is None:
        raise HTTPException(status_code=400, detail="Base currency required.")
    try:
        normalized_currency = normalize_currency(payload.base_currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(base_currency=normalized_currency)
            .returning(users.c.id, users.c.email, users.c.base_currency, users.c.created_at)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserResponse(**row)


@app.get("/addresses", response_model=list[AddressResponse])
def list_addresses(authorization: str | None = Header(None)) -> list[AddressResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(addresses)
            .where(addresses.c.user_id == user_id)
            .order_by(addresses.c.is_current.desc(), addresses.c.from_date.desc())
        ).mappings().all()
    return [AddressResponse(**row) for row in rows]


@app.post("/addresses", response_model=AddressResponse, status_code=201)
def create_address(
    payload: AddressPayload, authorization: str | None = Header(None)
) -> AddressResponse:
    user_id = get_user_id(authorization)
    try:
        values = AddressPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        # Demoting the previous current address shares the insert's transaction.
        if values["is_current"]:
            conn.execute(
                update(addresses)
                .where(addresses.c.user_id == user_id, addresses.c.is_current.is_(True))
                .values(is_current=False)
            )
        row = conn.execute(
            insert(addresses).values(user_id=user_id, **values).returning(*addresses.c)
        ).mappings().first()

    logger.info("Created address %s", row["id"])
    return AddressResponse(**row)


@app.get("/addresses/{address_id}", response_model=AddressResponse)
def get_address(address_id: int, authorization: str | None = Header(None)) -> AddressResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, addresses, address_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Address not found.")
    return AddressResponse(**row)


@app.put("/addresses/{address_id}", response_model=AddressResponse)
def update_address(
    address_id: int,
    payload: AddressUpdatePayload,
    authorization: str | None = Header(None),
) -> AddressResponse:
    user_id = get_user_id(authorization)
    try:
        changes = AddressPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        existing = fetch_owned(conn, addresses, address_id, user_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Address not found.")
        if changes.get("is_current") and not existing["is_current"]:
            conn.execute(
                update(addresses)
                .where(
                    addresses.c.user_id == user_id,
                    addresses.c.is_current.is_(True),
                    addresses.c.id != address_id,
                )
                .values(is_current=False)
            )
        row = apply_changes(conn, addresses, address_id, user_id, changes)

    logger.info("Updated address %s", address_id)
    return AddressResponse(**row)


@app.delete("/addresses/{address_id}")
def delete_address(address_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        if not fetch_owned(conn, addresses, address_id, user_id):
            raise HTTPException(status_code=404, detail="Address not found.")
        conn.execute(
            update(accounts)
            .where(accounts.c.user_id == user_id, accounts.c.linked_address_id == address_id)
            .values(linked_address_id=None)
        )
        conn.execute(
            update(credit_cards)
            .where(credit_cards.c.user_id == user_id, credit_cards.c.billing_address_id == address_id)
            .values(billing_address_id=None)
        )
        conn.execute(
            addresses.delete().where(addresses.c.id == address_id, addresses.c.user_id == user_id)
        )
    logger.info("Deleted address %s", address_id)
    return {"status": "deleted"}


@app.get("/identity-documents", response_model=list[IdentityDocumentResponse])
def list_identity_documents(
    authorization: str | None = Header(None),
) -> list[IdentityDocumentResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(identity_documents)
            .where(identity_documents.c.user_id == user_id)
            .order_by(identity_documents.c.created_at.desc(), identity_documents.c.id.desc())
        ).mappings().all()
    return [IdentityDocumentResponse(**row) for row in rows]


@app.post("/identity-documents", response_model=IdentityDocumentResponse, status_code=201)
def create_identity_document(
    payload: IdentityDocumentPayload, authorization: str | None = Header(None)
) -> IdentityDocumentResponse:
    user_id = get_user_id(authorization)
    try:
        values = IdentityDocumentPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        with engine.begin() as conn:
            row = conn.execute(
                insert(identity_documents)
                .values(user_id=user_id, **values)
                .returning(*identity_documents.c)
            ).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail="An identity document with this type and number already exists."
        ) from exc

    logger.info("Created identity document %s", row["id"])
    return IdentityDocumentResponse(**row)


@app.get("/identity-documents/{document_id}", response_model=IdentityDocumentResponse)
def get_identity_document(
    document_id: int, authorization: str | None = Header(None)
) -> IdentityDocumentResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, identity_documents, document_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Identity document not found.")
    return IdentityDocumentResponse(**row)


@app.put("/identity-documents/{document_id}", response_model=IdentityDocumentResponse)
def update_identity_document(
    document_id: int,
    payload: IdentityDocumentUpdatePayload,
    authorization: str | None = Header(None),
) -> IdentityDocumentResponse:
    user_id = get_user_id(authorization)
    try:
        changes = IdentityDocumentPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        with engine.begin() as conn:
            row = apply_changes(conn, identity_documents, document_id, user_id, changes)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail="An identity document with this type and number already exists."
        ) from exc

    if not row:
        raise HTTPException(status_code=404, detail="Identity document not found.")
    logger.info("Updated identity document %s", document_id)
    return IdentityDocumentResponse(**row)


@app.delete("/identity-documents/{document_id}")
def delete_identity_document(document_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = identity_documents.delete().where(
        identity_documents.c.id == document_id, identity_documents.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Identity document not found.")
    logger.info("Deleted identity document %s", document_id)
    return {"status": "deleted"}


@app.get("/asset-categories", response_model=list[AssetCategoryResponse])
def list_asset_categories(
    authorization: str | None = Header(None),
) -> list[AssetCategoryResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(asset_categories)
            .where(asset_categories.c.user_id == user_id)
            .order_by(asset_categories.c.name.asc(), asset_categories.c.id.asc())
        ).mappings().all()
        names = {row["id"]: row["name"] for row in rows}
        children: dict[int, list[CategoryRef]] = {}
        for row in rows:
            if row["parent_category_id"] is not None:
                children.setdefault(row["parent_category_id"], []).append(
                    CategoryRef(id=row["id"], name=row["name"])
                )
    return [
        AssetCategoryResponse(
            **row,
            parent_category=(
                CategoryRef(id=row["parent_category_id"], name=names[row["parent_category_id"]])
                if row["parent_category_id"] in names
                else None
            ),
            sub_categories=children.get(row["id"], []),
        )
        for row in rows
    ]


@app.post("/asset-categories", response_model=AssetCategoryResponse, status_code=201)
def create_asset_category(
    payload: AssetCategoryPayload, authorization: str | None = Header(None)
) -> AssetCategoryResponse:
    user_id = get_user_id(authorization)
    try:
        values = AssetCategoryPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        with engine.begin() as conn:
            ensure_references_owned(
                conn,
                user_id,
                values,
                {"parent_category_id": (asset_categories, "Invalid Parent Category ID.")},
            )
            row = conn.execute(
                insert(asset_categories)
                .values(user_id=user_id, **values)
                .returning(*asset_categories.c)
            ).mappings().first()
            response = build_category_response(conn, row)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail="An asset category with this name already exists."
        ) from exc

    logger.info("Created asset category %s", row["id"])
    return response


@app.get("/asset-categories/{category_id}", response_model=AssetCategoryResponse)
def get_asset_category(
    category_id: int, authorization: str | None = Header(None)
) -> AssetCategoryResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, asset_categories, category_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Asset category not found.")
        return build_category_response(conn, row)


@app.put("/asset-categories/{category_id}", response_model=AssetCategoryResponse)
def update_asset_category(
    category_id: int,
    payload: AssetCategoryUpdatePayload,
    authorization: str | None = Header(None),
) -> AssetCategoryResponse:
    user_id = get_user_id(authorization)
    try:
        changes = AssetCategoryPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    parent_id = changes.get("parent_category_id")
    if parent_id is not None and parent_id == category_id:
        raise HTTPException(status_code=400, detail="A category cannot be its own parent.")

    try:
        with engine.begin() as conn:
            if not fetch_owned(conn, asset_categories, category_id, user_id):
                raise HTTPException(status_code=404, detail="Asset category not found.")
            ensure_references_owned(
                conn,
                user_id,
                changes,
                {"parent_category_id": (asset_categories, "Invalid Parent Category ID.")},
            )
            if parent_id is not None and creates_category_cycle(conn, user_id, category_id, parent_id):
                raise HTTPException(
                    status_code=400, detail="A category cannot be moved below its own sub-category."
                )
            row = apply_changes(conn, asset_categories, category_id, user_id, changes)
            response = build_category_response(conn, row)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail="An asset category with this name already exists."
        ) from exc

    logger.info("Updated asset category %s", category_id)
    return response


@app.delete("/asset-categories/{category_id}")
def delete_asset_category(category_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        if not fetch_owned(conn, asset_categories, category_id, user_id):
            raise HTTPException(status_code=404, detail="Asset category not found.")
        has_children = conn.execute(
            select(asset_categories.c.id)
            .where(asset_categories.c.parent_category_id == category_id)
            .limit(1)
        ).first()
        if has_children:
            raise HTTPException(
                status_code=400,
                detail="Cannot delete category: it is a parent to other categories.",
            )
        if category_in_use(conn, user_id, category_id):
            raise HTTPException(status_code=400, detail="Category is in use.")
        conn.execute(
            asset_categories.delete().where(
                asset_categories.c.id == category_id, asset_categories.c.user_id == user_id
            )
        )
    logger.info("Deleted asset category %s", category_id)
    return {"status": "deleted"}


@app.get("/accounts", response_model=list[AccountResponse])
def list_accounts(authorization: str | None = Header(None)) -> list[AccountResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(accounts)
            .where(accounts.c.user_id == user_id)
            .order_by(accounts.c.nickname.asc(), accounts.c.id.asc())
        ).mappings().all()
        categories = category_summaries(conn, user_id)
        address_lookup = address_summaries(conn, user_id)
    return [build_account_response(row, categories, address_lookup) for row in rows]


@app.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    payload: AccountPayload, authorization: str | None = Header(None)
) -> AccountResponse:
    user_id = get_user_id(authorization)
    try:
        values = AccountPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        ensure_references_owned(conn, user_id, values, ACCOUNT_REFERENCES)
        row = conn.execute(
            insert(accounts).values(user_id=user_id, **values).returning(*accounts.c)
        ).mappings().first()
        response = build_account_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )

    logger.info("Created account %s", row["id"])
    return response


@app.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(account_id: int, authorization: str | None = Header(None)) -> AccountResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, accounts, account_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Account not found.")
        return build_account_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )


@app.put("/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: int,
    payload: AccountUpdatePayload,
    authorization: str | None = Header(None),
) -> AccountResponse:
    user_id = get_user_id(authorization)
    try:
        changes = AccountPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not fetch_owned(conn, accounts, account_id, user_id):
            raise HTTPException(status_code=404, detail="Account not found.")
        ensure_references_owned(conn, user_id, changes, ACCOUNT_REFERENCES)
        row = apply_changes(conn, accounts, account_id, user_id, changes)
        response = build_account_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )

    logger.info("Updated account %s", account_id)
    return response


@app.delete("/accounts/{account_id}")
def delete_account(account_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        if not fetch_owned(conn, accounts, account_id, user_id):
            raise HTTPException(status_code=404, detail="Account not found.")
        conn.execute(
            balance_entries.delete().where(
                balance_entries.c.account_id == account_id, balance_entries.c.user_id == user_id
            )
        )
        for table in (fixed_deposits, mutual_funds):
            conn.execute(
                update(table)
                .where(table.c.user_id == user_id, table.c.linked_account_id == account_id)
                .values(linked_account_id=None)
            )
        conn.execute(
            accounts.delete().where(accounts.c.id == account_id, accounts.c.user_id == user_id)
        )
    logger.info("Deleted account %s", account_id)
    return {"status": "deleted"}


@app.get("/balance-entries", response_model=list[BalanceEntryResponse])
def list_balance_entries(
    account_id: int | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    authorization: str | None = Header(None),
) -> list[BalanceEntryResponse]:
    user_id = get_user_id(authorization)
    conditions = [balance_entries.c.user_id == user_id]
    if start_date is not None:
        conditions.append(balance_entries.c.entry_date >= month_start(start_date))
    if end_date is not None:
        conditions.append(balance_entries.c.entry_date <= month_start(end_date))

    with engine.begin() as conn:
        if account_id is not None:
            if not fetch_owned(conn, accounts, account_id, user_id):
                raise HTTPException(status_code=404, detail="Account not found.")
            conditions.append(balance_entries.c.account_id == account_id)
        rows = conn.execute(
            select(balance_entries)
            .where(*conditions)
            .order_by(balance_entries.c.account_id.asc(), balance_entries.c.entry_date.desc())
        ).mappings().all()
        account_lookup = account_summaries(conn, user_id)
    return [build_balance_entry_response(row, account_lookup) for row in rows]


@app.post("/balance-entries", response_model=BalanceEntryResponse, status_code=201)
def create_balance_entry(
    payload: BalanceEntryPayload, authorization: str | None = Header(None)
) -> BalanceEntryResponse:
    user_id = get_user_id(authorization)
    try:
        values = BalanceEntryPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    values["entry_date"] = month_start(values["entry_date"])
    values["balance_in_base"] = compute_balance_in_base(
        values["balance_original"], values["exchange_rate_to_base"]
    )
    try:
        with engine.begin() as conn:
            account = fetch_owned(conn, accounts, values["account_id"], user_id)
            if not account:
                raise HTTPException(status_code=404, detail="Account not found.")
            if account["currency"].upper() != values["currency"]:
                raise HTTPException(
                    status_code=400,
                    detail=(
                        f"Balance currency ({values['currency']}) must match account "
                        f"currency ({account['currency'].upper()})."
                    ),
                )
            row = conn.execute(
                insert(balance_entries)
                .values(user_id=user_id, **values)
                .returning(*balance_entries.c)
            ).mappings().first()
            response = build_balance_entry_response(row, account_summaries(conn, user_id))
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail="A balance entry for this account and month already exists."
        ) from exc

    logger.info("Created balance entry %s for account %s", row["id"], row["account_id"])
    return response


@app.get("/balance-entries/{entry_id}", response_model=BalanceEntryResponse)
def get_balance_entry(
    entry_id: int, authorization: str | None = Header(None)
) -> BalanceEntryResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, balance_entries, entry_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Balance entry not found.")
        return build_balance_entry_response(row, account_summaries(conn, user_id))


@app.put("/balance-entries/{entry_id}", response_model=BalanceEntryResponse)
def update_balance_entry(
    entry_id: int,
    payload: BalanceEntryUpdatePayload,
    authorization: str | None = Header(None),
) -> BalanceEntryResponse:
    user_id = get_user_id(authorization)
    try:
        changes = BalanceEntryUpdatePayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    amount_fields = ("balance_original", "exchange_rate_to_base")
    with engine.begin() as conn:
        existing = fetch_owned(conn, balance_entries, entry_id, user_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Balance entry not found.")

        stays_locked = existing["locked"] and changes.get("locked") is not False
        if stays_locked:
            altered = [
                field_name
                for field_name in amount_fields
                if field_name in changes
                and differs_from_stored(
                    balance_entries.c[field_name], changes[field_name], existing[field_name]
                )
            ]
            if altered:
                raise HTTPException(
                    status_code=403,
                    detail="Entry is locked. Only notes and lock status can be updated.",
                )
            for field_name in amount_fields:
                changes.pop(field_name, None)

        if any(field_name in changes for field_name in amount_fields):
            changes["balance_in_base"] = compute_balance_in_base(
                changes.get("balance_original", existing["balance_original"]),
                changes.get("exchange_rate_to_base", existing["exchange_rate_to_base"]),
            )
        row = apply_changes(conn, balance_entries, entry_id, user_id, changes)
        response = build_balance_entry_response(row, account_summaries(conn, user_id))

    logger.info("Updated balance entry %s", entry_id)
    return response


@app.delete("/balance-entries/{entry_id}")
def delete_balance_entry(entry_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = balance_entries.delete().where(
        balance_entries.c.id == entry_id, balance_entries.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Balance entry not found.")
    logger.info("Deleted balance entry %s", entry_id)
    return {"status": "deleted"}


@app.get("/credit-cards", response_model=list[CreditCardResponse])
def list_credit_cards(authorization: str | None = Header(None)) -> list[CreditCardResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(credit_cards)
            .where(credit_cards.c.user_id == user_id)
            .order_by(credit_cards.c.nickname.asc(), credit_cards.c.id.asc())
        ).mappings().all()
        categories = category_summaries(conn, user_id)
        address_lookup = address_summaries(conn, user_id)
    return [build_credit_card_response(row, categories, address_lookup) for row in rows]


@app.post("/credit-cards", response_model=CreditCardResponse, status_code=201)
def create_credit_card(
    payload: CreditCardPayload, authorization: str | None = Header(None)
) -> CreditCardResponse:
    user_id = get_user_id(authorization)
    try:
        values = CreditCardPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        ensure_references_owned(conn, user_id, values, CREDIT_CARD_REFERENCES)
        row = conn.execute(
            insert(credit_cards).values(user_id=user_id, **values).returning(*credit_cards.c)
        ).mappings().first()
        response = build_credit_card_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )

    logger.info("Created credit card %s", row["id"])
    return response


@app.get("/credit-cards/{card_id}", response_model=CreditCardResponse)
def get_credit_card(card_id: int, authorization: str | None = Header(None)) -> CreditCardResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, credit_cards, card_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Credit card not found.")
        return build_credit_card_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )


@app.put("/credit-cards/{card_id}", response_model=CreditCardResponse)
def update_credit_card(
    card_id: int,
    payload: CreditCardUpdatePayload,
    authorization: str | None = Header(None),
) -> CreditCardResponse:
    user_id = get_user_id(authorization)
    try:
        changes = CreditCardPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not fetch_owned(conn, credit_cards, card_id, user_id):
            raise HTTPException(status_code=404, detail="Credit card not found.")
        ensure_references_owned(conn, user_id, changes, CREDIT_CARD_REFERENCES)
        row = apply_changes(conn, credit_cards, card_id, user_id, changes)
        response = build_credit_card_response(
            row, category_summaries(conn, user_id), address_summaries(conn, user_id)
        )

    logger.info("Updated credit card %s", card_id)
    return response


@app.delete("/credit-cards/{card_id}")
def delete_credit_card(card_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = credit_cards.delete().where(
        credit_cards.c.id == card_id, credit_cards.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Credit card not found.")
    logger.info("Deleted credit card %s", card_id)
    return {"status": "deleted"}


@app.get("/fixed-deposits", response_model=list[FixedDepositResponse])
def list_fixed_deposits(authorization: str | None = Header(None)) -> list[FixedDepositResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(fixed_deposits)
            .where(fixed_deposits.c.user_id == user_id)
            .order_by(fixed_deposits.c.start_date.desc(), fixed_deposits.c.id.desc())
        ).mappings().all()
        categories = category_summaries(conn, user_id)
        account_lookup = account_summaries(conn, user_id)
    return [build_fixed_deposit_response(row, categories, account_lookup) for row in rows]


@app.post("/fixed-deposits", response_model=FixedDepositResponse, status_code=201)
def create_fixed_deposit(
    payload: FixedDepositPayload, authorization: str | None = Header(None)
) -> FixedDepositResponse:
    user_id = get_user_id(authorization)
    try:
        values = FixedDepositPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if values["maturity_date"] <= values["start_date"]:
        raise HTTPException(status_code=400, detail="Maturity date must be after start date.")

    with engine.begin() as conn:
        ensure_references_owned(conn, user_id, values, HOLDING_REFERENCES)
        row = conn.execute(
            insert(fixed_deposits).values(user_id=user_id, **values).returning(*fixed_deposits.c)
        ).mappings().first()
        response = build_fixed_deposit_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )

    logger.info("Created fixed deposit %s", row["id"])
    return response


@app.get("/fixed-deposits/{deposit_id}", response_model=FixedDepositResponse)
def get_fixed_deposit(
    deposit_id: int, authorization: str | None = Header(None)
) -> FixedDepositResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, fixed_deposits, deposit_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Fixed deposit not found.")
        return build_fixed_deposit_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )


@app.put("/fixed-deposits/{deposit_id}", response_model=FixedDepositResponse)
def update_fixed_deposit(
    deposit_id: int,
    payload: FixedDepositUpdatePayload,
    authorization: str | None = Header(None),
) -> FixedDepositResponse:
    user_id = get_user_id(authorization)
    try:
        changes = FixedDepositPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        existing = fetch_owned(conn, fixed_deposits, deposit_id, user_id)
        if not existing:
            raise HTTPException(status_code=404, detail="Fixed deposit not found.")
        start_date = changes.get("start_date", existing["start_date"])
        maturity_date = changes.get("maturity_date", existing["maturity_date"])
        if maturity_date <= start_date:
            raise HTTPException(status_code=400, detail="Maturity date must be after start date.")
        ensure_references_owned(conn, user_id, changes, HOLDING_REFERENCES)
        row = apply_changes(conn, fixed_deposits, deposit_id, user_id, changes)
        response = build_fixed_deposit_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )

    logger.info("Updated fixed deposit %s", deposit_id)
    return response


@app.delete("/fixed-deposits/{deposit_id}")
def delete_fixed_deposit(deposit_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = fixed_deposits.delete().where(
        fixed_deposits.c.id == deposit_id, fixed_deposits.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Fixed deposit not found.")
    logger.info("Deleted fixed deposit %s", deposit_id)
    return {"status": "deleted"}


@app.get("/mutual-funds", response_model=list[MutualFundResponse])
def list_mutual_funds(authorization: str | None = Header(None)) -> list[MutualFundResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(mutual_funds)
            .where(mutual_funds.c.user_id == user_id)
            .order_by(mutual_funds.c.fund_name.asc(), mutual_funds.c.id.asc())
        ).mappings().all()
        categories = category_summaries(conn, user_id)
        account_lookup = account_summaries(conn, user_id)
    return [build_mutual_fund_response(row, categories, account_lookup) for row in rows]


@app.post("/mutual-funds", response_model=MutualFundResponse, status_code=201)
def create_mutual_fund(
    payload: MutualFundPayload, authorization: str | None = Header(None)
) -> MutualFundResponse:
    user_id = get_user_id(authorization)
    try:
        values = MutualFundPayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        ensure_references_owned(conn, user_id, values, HOLDING_REFERENCES)
        row = conn.execute(
            insert(mutual_funds).values(user_id=user_id, **values).returning(*mutual_funds.c)
        ).mappings().first()
        response = build_mutual_fund_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )

    logger.info("Created mutual fund %s", row["id"])
    return response


@app.get("/mutual-funds/{fund_id}", response_model=MutualFundResponse)
def get_mutual_fund(fund_id: int, authorization: str | None = Header(None)) -> MutualFundResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, mutual_funds, fund_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Mutual fund not found.")
        return build_mutual_fund_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )


@app.put("/mutual-funds/{fund_id}", response_model=MutualFundResponse)
def update_mutual_fund(
    fund_id: int,
    payload: MutualFundUpdatePayload,
    authorization: str | None = Header(None),
) -> MutualFundResponse:
    user_id = get_user_id(authorization)
    try:
        changes = MutualFundPayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not fetch_owned(conn, mutual_funds, fund_id, user_id):
            raise HTTPException(status_code=404, detail="Mutual fund not found.")
        ensure_references_owned(conn, user_id, changes, HOLDING_REFERENCES)
        row = apply_changes(conn, mutual_funds, fund_id, user_id, changes)
        response = build_mutual_fund_response(
            row, category_summaries(conn, user_id), account_summaries(conn, user_id)
        )

    logger.info("Updated mutual fund %s", fund_id)
    return response


@app.delete("/mutual-funds/{fund_id}")
def delete_mutual_fund(fund_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = mutual_funds.delete().where(
        mutual_funds.c.id == fund_id, mutual_funds.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Mutual fund not found.")
    logger.info("Deleted mutual fund %s", fund_id)
    return {"status": "deleted"}


@app.get("/pension-profiles", response_model=list[PensionProfileResponse])
def list_pension_profiles(
    authorization: str | None = Header(None),
) -> list[PensionProfileResponse]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        rows = conn.execute(
            select(pension_profiles)
            .where(pension_profiles.c.user_id == user_id)
            .order_by(
                pension_profiles.c.country.asc(),
                pension_profiles.c.employer_name.asc(),
                pension_profiles.c.id.asc(),
            )
        ).mappings().all()
        categories = category_summaries(conn, user_id)
    return [build_pension_profile_response(row, categories) for row in rows]


@app.post("/pension-profiles", response_model=PensionProfileResponse, status_code=201)
def create_pension_profile(
    payload: PensionProfilePayload, authorization: str | None = Header(None)
) -> PensionProfileResponse:
    user_id = get_user_id(authorization)
    try:
        values = PensionProfilePayload.validate_values(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        ensure_references_owned(conn, user_id, values, PENSION_REFERENCES)
        row = conn.execute(
            insert(pension_profiles)
            .values(user_id=user_id, **values)
            .returning(*pension_profiles.c)
        ).mappings().first()
        response = build_pension_profile_response(row, category_summaries(conn, user_id))

    logger.info("Created pension profile %s", row["id"])
    return response


@app.get("/pension-profiles/{profile_id}", response_model=PensionProfileResponse)
def get_pension_profile(
    profile_id: int, authorization: str | None = Header(None)
) -> PensionProfileResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        row = fetch_owned(conn, pension_profiles, profile_id, user_id)
        if not row:
            raise HTTPException(status_code=404, detail="Pension profile not found.")
        return build_pension_profile_response(row, category_summaries(conn, user_id))


@app.put("/pension-profiles/{profile_id}", response_model=PensionProfileResponse)
def update_pension_profile(
    profile_id: int,
    payload: PensionProfileUpdatePayload,
    authorization: str | None = Header(None),
) -> PensionProfileResponse:
    user_id = get_user_id(authorization)
    try:
        changes = PensionProfilePayload.validate_values(payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        if not fetch_owned(conn, pension_profiles, profile_id, user_id):
            raise HTTPException(status_code=404, detail="Pension profile not found.")
        ensure_references_owned(conn, user_id, changes, PENSION_REFERENCES)
        row = apply_changes(conn, pension_profiles, profile_id, user_id, changes)
        response = build_pension_profile_response(row, category_summaries(conn, user_id))

    logger.info("Updated pension profile %s", profile_id)
    return response


@app.delete("/pension-profiles/{profile_id}")
def delete_pension_profile(profile_id: int, authorization: str | None = Header(None)) -> dict:
    user_id = get_user_id(authorization)
    stmt = pension_profiles.delete().where(
        pension_profiles.c.id == profile_id, pension_profiles.c.user_id == user_id
    )
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Pension profile not found.")
    logger.info("Deleted pension profile %s", profile_id)
    return {"status": "deleted"}


@app.get("/dashboard/net-worth-trend", response_model=list[NetWorthTrendPoint])
def net_worth_trend(authorization: str | None = Header(None)) -> list[NetWorthTrendPoint]:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        snapshots = fetch_balance_snapshots(conn, user_id)

    return [
        NetWorthTrendPoint(
            date=point.date,
            total_assets=float(point.total_assets),
            total_liabilities=float(point.total_liabilities),
            net_worth=float(point.net_worth),
        )
        for point in build_net_worth_trend(snapshots)
    ]


@app.get("/dashboard/category-breakdown-trend", response_model=CategoryBreakdownTrendResponse)
def category_breakdown_trend(
    authorization: str | None = Header(None),
) -> CategoryBreakdownTrendResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        snapshots = fetch_balance_snapshots(conn, user_id)

    trend = build_category_trend(snapshots)
    return CategoryBreakdownTrendResponse(
        trend_data=[
            CategoryTrendPoint(
                date=point.date,
                totals={name: float(total) for name, total in point.totals.items()},
            )
            for point in trend.points
        ],
        categories=trend.categories,
    )


@app.get("/dashboard/net-worth-summary", response_model=NetWorthSummaryResponse)
def net_worth_summary(authorization: str | None = Header(None)) -> NetWorthSummaryResponse:
    user_id = get_user_id(authorization)
    with engine.begin() as conn:
        account_ids = conn.execute(
            select(accounts.c.id).where(accounts.c.user_id == user_id)
        ).scalars().all()
        snapshots = fetch_balance_snapshots(conn, user_id)
        base_currency = resolve_base_currency(conn, user_id)

    # Credit cards stay out: a credit limit is not an outstanding balance.
    summary = summarize_net_worth(account_ids, snapshots)
    return NetWorthSummaryResponse(
        total_assets=float(summary.total_assets),
        total_liabilities=float(summary.total_liabilities),
        net_worth=float(summary.net_worth),
        last_updated_date=summary.last_updated,
        accounts_considered=summary.accounts_considered,
        accounts_counted=summary.accounts_counted,
        base_currency=base_currency,
    )
