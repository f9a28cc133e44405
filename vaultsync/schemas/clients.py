"""
vaultsync/schemas/clients.py

Pydantic models for client onboarding: the advisor-driven signup form and
the data-vault (step 1) submission.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Literal, Optional

from vaultsync.schemas.auth import CamelModel, normalize_email

DocumentName = Literal[
    "Funding Application",
    "Business Bank Statements",
    "Business/Personal Tax Returns",
    "Profit & Loss Statement",
    "Balance Sheet",
    "Debt Schedule",
    "A/R Report",
    "Driver's License",
    "Voided Check",
]


class Owner(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    ownership_pct: float = Field(..., ge=0, le=100)


class Loan(BaseModel):
    balance: Optional[float] = None
    lender_name: Optional[str] = None
    term: Optional[str] = None


class OutstandingLoans(BaseModel):
    loan1: Optional[Loan] = None
    loan2: Optional[Loan] = None
    loan3: Optional[Loan] = None

    def positioned(self) -> List[dict]:
        loans = []
        for position, loan in enumerate((self.loan1, self.loan2, self.loan3), start=1):
            if loan is not None:
                loans.append({"position": position, **loan.model_dump()})
        return loans


class ClientSignupRequest(BaseModel):
    """Everything the advisor collects on the onboarding call."""

    # Contact
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str
    phone: Optional[str] = Field(default=None, min_length=7)

    # Company / location
    company_legal_name: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    # Goal / profile
    amount_requested: int = Field(..., gt=0)
    legal_entity_type: str = Field(..., min_length=1)
    industry_1: Optional[str] = None
    industry_2: Optional[str] = None
    industry_3: Optional[str] = None
    business_start_date: Optional[str] = None
    avg_monthly_deposits: Optional[float] = Field(default=None, ge=0)
    annual_revenue: Optional[float] = Field(default=None, ge=0)
    credit_score: Optional[str] = None
    sbss_score: Optional[float] = None
    use_of_funds: Optional[str] = None

    # Owners
    owners_count: Optional[Literal["one", "more"]] = None
    owners: List[Owner] = Field(default_factory=list, max_length=5)

    # Debt
    has_previous_debt: Optional[bool] = None
    outstanding_loans: Optional[OutstandingLoans] = None

    # Risk flags
    defaulted_on_mca: Optional[bool] = None
    mca_was_satisfied: Optional[bool] = None
    reduced_mca_payments: Optional[bool] = None
    owns_real_estate: Optional[bool] = None
    personal_cc_debt_over_75k: Optional[bool] = None
    foreclosures_or_bankruptcies_3y: Optional[bool] = None
    tax_liens: Optional[bool] = None
    judgements: Optional[bool] = None
    has_zbl: Optional[bool] = None

    # Conditional details
    personal_cc_debt_amount: Optional[float] = None
    bk_fc_months_ago: Optional[float] = None
    bk_fc_type: Optional[str] = None
    tax_liens_type: Optional[str] = None
    tax_liens_amount: Optional[float] = None
    tax_liens_on_plan: Optional[bool] = None
    judgements_explain: Optional[str] = None

    # Timing
    how_soon_funds: Optional[str] = None
    employees_count: Optional[int] = Field(default=None, ge=0)
    additional_info: Optional[str] = None

    documents_requested: List[DocumentName] = Field(default_factory=list)

    advisor_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name", "company_legal_name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v

    @field_validator("owners", mode="before")
    @classmethod
    def drop_blank_owners(cls, v: Any) -> Any:
        """The form always posts five owner rows; unused ones are blank."""
        if not isinstance(v, list):
            return v
        return [
            owner for owner in v
            if not isinstance(owner, dict)
            or (str(owner.get("first_name") or "").strip() and str(owner.get("last_name") or "").strip())
        ]

    def risk_flags(self) -> dict:
        return {
            "defaulted_on_mca": bool(self.defaulted_on_mca),
            "mca_was_satisfied": bool(self.mca_was_satisfied),
            "reduced_mca_payments": bool(self.reduced_mca_payments),
            "owns_real_estate": bool(self.owns_real_estate),
            "personal_cc_debt_over_75k": bool(self.personal_cc_debt_over_75k),
            "foreclosures_or_bankruptcies_3y": bool(self.foreclosures_or_bankruptcies_3y),
            "tax_liens": bool(self.tax_liens),
            "tax_liens_on_plan": bool(self.tax_liens_on_plan),
            "judgements": bool(self.judgements),
            "has_zbl": bool(self.has_zbl),
            "has_previous_debt": bool(self.has_previous_debt),
        }


class ClientSignupResponse(BaseModel):
    ok: bool = True
    profile_id: str
    user_id: str
    crm_contact_id: str
    login_url: str
    created: bool
    credentials: dict


class DataVaultSubmission(CamelModel):
    """Onboarding step 1: identifiers and addresses."""
    ein: str = Field(..., min_length=1)
    ssn: str = Field(..., min_length=1)
    industry: str = Field(..., min_length=1)
    home_address: str = Field(..., alias="homeAddress", min_length=1)
    business_address: str = Field(..., alias="businessAddress", min_length=1)

    @field_validator("ein", "ssn", "industry", "home_address", "business_address")
    @classmethod
    def strip_value(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v


class OnboardingStatus(BaseModel):
    has_client_record: bool
    contract_completed: bool
    data_vault_submitted: bool
    onboarding_complete: bool
    vault_submitted: bool


class RuleOverrideRequest(BaseModel):
    """Advisor switch for documents that are optional by default."""
    require_debt_schedule: bool
