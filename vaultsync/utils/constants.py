"""
vaultsync/utils/constants.py

Purpose: Centralized static values

- User roles and their landing dashboards
- Core document catalog seeded at startup
- Fixed CRM tag names

(Prevents hardcoding across the codebase)
"""

# ============================================================
# ROLES
# ============================================================

ROLE_FREE = "free"
ROLE_PREMIUM = "premium"
ROLE_ADVISOR = "advisor"
ROLE_UNDERWRITING = "underwriting"

ROLES = (ROLE_FREE, ROLE_PREMIUM, ROLE_ADVISOR, ROLE_UNDERWRITING)

DASHBOARD_BY_ROLE = {
    ROLE_ADVISOR: "/advisor/dashboard",
    ROLE_UNDERWRITING: "/underwriting/dashboard",
    ROLE_PREMIUM: "/dashboard",
    ROLE_FREE: "/dashboard",
}


# ============================================================
# CRM TAGS
# ============================================================

REQUESTED_TAG_PREFIX = "requested_"
SUBMITTED_TAG_PREFIX = "submitted_"

TAG_VAULT_USER = "vault-user"
TAG_PORTAL_CREATED = "portal_created"
TAG_VAULT_PRE_APPROVAL = "vault_pre_approval"
TAG_VAULT_SUBMITTED = "vault_submitted"
TAG_APPLICATION_SUBMITTED = "application_submitted"
TAG_ADVISOR = "creditbanc-advisor"

REQUESTED_VIA_CRM_WEBHOOK = "crm_webhook"

CONTACT_SOURCE_ADVISOR_SIGNUP = "creditbanc-advisor-signup"
DEFAULT_PRODUCT_TAG = "Pre-Approval"


# ============================================================
# CORE DOCUMENTS
# ============================================================
# Codes are the tag slug of the label so that a "requested_<code>" tag
# for a core document is recognised and never turned into a dynamic one.

CORE_DOCUMENTS = [
    {
        "code": "funding_application",
        "label": "Funding Application",
        "description": "Signed funding application",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 1,
    },
    {
        "code": "business_bank_statements",
        "label": "Business Bank Statements",
        "description": "Most recent 6 months of business bank statements",
        "is_multiple": True,
        "min_files": 6,
        "max_files": 12,
    },
    {
        "code": "businesspersonal_tax_returns",
        "label": "Business/Personal Tax Returns",
        "description": "Last two years of business and personal tax returns",
        "is_multiple": True,
        "min_files": 1,
        "max_files": 6,
    },
    {
        "code": "profit_loss_statement",
        "label": "Profit & Loss Statement",
        "description": "Year-to-date profit and loss statement",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 2,
    },
    {
        "code": "balance_sheet",
        "label": "Balance Sheet",
        "description": "Current business balance sheet",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 2,
    },
    {
        "code": "debt_schedule",
        "label": "Debt Schedule",
        "description": "Schedule of outstanding business debt",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 1,
    },
    {
        "code": "ar_report",
        "label": "A/R Report",
        "description": "Accounts receivable aging report",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 2,
    },
    {
        "code": "drivers_license",
        "label": "Driver's License",
        "description": "Front and back of a valid driver's license",
        "is_multiple": True,
        "min_files": 2,
        "max_files": 2,
    },
    {
        "code": "voided_check",
        "label": "Voided Check",
        "description": "Voided business check",
        "is_multiple": False,
        "min_files": 1,
        "max_files": 1,
    },
]

CORE_DOCUMENT_LABELS = [doc["label"] for doc in CORE_DOCUMENTS]

# Core documents that only count towards "missing" once the latest
# rule_override event of the client sets the named payload flag
CONDITIONAL_DOCUMENTS = {
    "debt_schedule": "require_debt_schedule",
}


# ============================================================
# EVENTS
# ============================================================

EVENT_UPLOAD = "upload"
EVENT_SUBMIT = "submit"
EVENT_RULE_OVERRIDE = "rule_override"


# ============================================================
# SIGNUP ANSWER -> TAG MAPS
# ============================================================

CREDIT_SCORE_TAGS = {
    "700+": "credit-excellent",
    "650-700": "credit-very-good",
    "600-650": "credit-good",
    "550-600": "credit-fair",
    "Below 550": "credit-poor",
}

FUNDING_URGENCY_TAGS = {
    "Immediately": "urgent-funding",
    "1–3 Weeks": "moderate-timeline",
    "1-3 Weeks": "moderate-timeline",
}
FUNDING_URGENCY_DEFAULT_TAG = "flexible-timeline"

RISK_FLAG_TAGS = {
    "defaulted_on_mca": "defaulted-mca",
    "mca_was_satisfied": "mca-satisfied",
    "reduced_mca_payments": "reduced-mca-payments",
    "owns_real_estate": "owns-real-estate",
    "personal_cc_debt_over_75k": "high-personal-debt",
    "foreclosures_or_bankruptcies_3y": "recent-bk-fc",
    "tax_liens": "tax-liens",
    "tax_liens_on_plan": "tax-lien-payment-plan",
    "judgements": "active-judgements",
    "has_zbl": "has-zbl",
    "has_previous_debt": "existing-debt",
}
