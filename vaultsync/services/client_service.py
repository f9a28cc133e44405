"""
vaultsync/services/client_service.py

Purpose: Client onboarding lifecycle

- Advisor-driven client signup (CRM contact, login, business profile)
- Advisor self-signup
- Data vault step 1 (identifiers pushed to CRM custom fields)
- Contract completion and final vault submission
- Audit events
"""

import uuid
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from vaultsync.db.mongo import (
    get_client_data_vault_collection,
    get_business_profiles_collection,
    get_events_collection,
)
from vaultsync.core.config import settings
from vaultsync.core.exceptions import CRMError, ResourceNotFoundError
from vaultsync.core.logging import get_logger, LogContext
from vaultsync.schemas.clients import ClientSignupRequest, DataVaultSubmission
from vaultsync.services.auth_service import AuthService, get_auth_service
from vaultsync.services.crm_service import CRMService, get_crm_service
from vaultsync.utils.constants import (
    ROLE_ADVISOR,
    ROLE_FREE,
    TAG_ADVISOR,
    TAG_APPLICATION_SUBMITTED,
    TAG_PORTAL_CREATED,
    TAG_VAULT_PRE_APPROVAL,
    TAG_VAULT_SUBMITTED,
    TAG_VAULT_USER,
    CONTACT_SOURCE_ADVISOR_SIGNUP,
    CONDITIONAL_DOCUMENTS,
    DEFAULT_PRODUCT_TAG,
    EVENT_RULE_OVERRIDE,
    EVENT_SUBMIT,
)
from vaultsync.utils.date_utils import utcnow
from vaultsync.utils.tag_utils import build_signup_tags

logger = get_logger(__name__)

_PROJECTION = {"_id": 0}

# Step 1 answers -> CRM_CUSTOM_FIELDS keys
STEP_ONE_FIELDS = {
    "EIN": "ein",
    "SSN": "ssn",
    "INDUSTRY": "industry",
    "HOME_ADDRESS": "home_address",
    "BUSINESS_ADDRESS": "business_address",
}


def _yes_no(value: Optional[bool]) -> str:
    return "Yes" if value else "No"


def _blank(value: Any) -> Any:
    return "" if value is None else value


def signup_custom_field_values(form: ClientSignupRequest) -> Dict[str, Any]:
    """Logical CRM field name -> value, for every answer the CRM tracks."""
    values = {
        "FUNDING_GOAL": form.amount_requested,
        "LEGAL_ENTITY": form.legal_entity_type,
        "BUSINESS_START": form.business_start_date,
        "MONTHLY_REV": form.avg_monthly_deposits,
        "ANNUAL_REV": form.annual_revenue,
        "CREDIT_SCORE": form.credit_score,
        "SBSS_SCORE": _blank(form.sbss_score),
        "USE_OF_FUNDS": form.use_of_funds,
        "EMPLOYEES": _blank(form.employees_count),
        "BUSINESS_NAME": form.company_legal_name,
        "ZIP": form.zip,
        "STATE": form.state,
        "PREFERRED_INDUSTRIES": form.industry_1 or "",
        "OWNER_COUNT": str(len(form.owners)),
        "MCA_DEFAULTS": _yes_no(form.defaulted_on_mca),
        "OWNS_REAL_ESTATE": _yes_no(form.owns_real_estate),
        "REDUCED_MCA_PAYMENTS": _yes_no(form.reduced_mca_payments),
        "PERSONAL_DEBT_OVER_75K": _yes_no(form.personal_cc_debt_over_75k),
        "PERSONAL_DEBT_AMOUNT": _blank(form.personal_cc_debt_amount),
        "FORECLOSURES_OR_BANKRUPTCIES_3Y": _yes_no(form.foreclosures_or_bankruptcies_3y),
        "BK_FC_MONTHS_AGO": _blank(form.bk_fc_months_ago),
        "BK_FC_TYPE": _blank(form.bk_fc_type),
        "TAX_LIENS": _yes_no(form.tax_liens),
        "TAX_LIEN_TYPE": _blank(form.tax_liens_type),
        "TAX_LIEN_PAYMENT_PLAN": _yes_no(form.tax_liens_on_plan),
        "HOW_SOON_FUNDS": _blank(form.how_soon_funds),
        "ADDITIONAL_INFO": _blank(form.additional_info),
        "JUDGEMENT_EXPLANATION": _blank(form.judgements_explain),
    }

    ordinals = ("FIRST", "SECOND", "THIRD")
    for index, owner in enumerate(form.owners[:3]):
        values[f"{ordinals[index]}_OWNER"] = f"{owner.first_name} {owner.last_name}"
        values[f"{ordinals[index]}_OWNER_PERCENTAGE"] = owner.ownership_pct

    if form.outstanding_loans is not None:
        for loan in form.outstanding_loans.positioned():
            position = loan["position"]
            values[f"BALANCE_LOAN_{position}"] = loan["balance"]
            values[f"LENDER_LOAN_{position}"] = loan["lender_name"]
            values[f"TERM_LOAN_{position}"] = loan["term"]

    return values


def build_custom_fields(values: Dict[str, Any], field_ids: Dict[str, str]) -> List[Dict[str, Any]]:
    """
    Converts logical values into the CRM customFields list.

    Fields without a configured id are skipped.
    """
    return [
        {"id": field_ids[key], "value": value}
        for key, value in values.items()
        if field_ids.get(key)
    ]


class ClientService:
    """Service for client records, business profiles and onboarding steps."""

    def __init__(
        self,
        clients: Optional[AsyncIOMotorCollection] = None,
        profiles: Optional[AsyncIOMotorCollection] = None,
        events: Optional[AsyncIOMotorCollection] = None,
        auth: Optional[AuthService] = None,
        crm: Optional[CRMService] = None,
    ):
        self._clients = clients
        self._profiles = profiles
        self._events = events
        self._auth = auth
        self._crm = crm

    @property
    def clients(self) -> AsyncIOMotorCollection:
        if self._clients is None:
            self._clients = get_client_data_vault_collection()
        return self._clients

    @property
    def profiles(self) -> AsyncIOMotorCollection:
        if self._profiles is None:
            self._profiles = get_business_profiles_collection()
        return self._profiles

    @property
    def events(self) -> AsyncIOMotorCollection:
        if self._events is None:
            self._events = get_events_collection()
        return self._events

    @property
    def auth(self) -> AuthService:
        if self._auth is None:
            self._auth = get_auth_service()
        return self._auth

    @property
    def crm(self) -> CRMService:
        if self._crm is None:
            self._crm = get_crm_service()
        return self._crm

    # ============================================================
    # LOOKUPS
    # ============================================================

    async def get_client_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.clients.find_one({"user_id": user_id}, _PROJECTION)

    async def get_client_by_contact_id(self, contact_id: str) -> Optional[Dict[str, Any]]:
        return await self.clients.find_one({"crm_contact_id": contact_id}, _PROJECTION)

    async def get_client_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.clients.find_one({"client_email": email.strip().lower()}, _PROJECTION)

    async def get_profile_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.profiles.find_one({"user_id": user_id}, _PROJECTION)

    async def list_advisor_clients(self, advisor_id: str) -> List[Dict[str, Any]]:
        """Clients signed up by `advisor_id`, newest first."""
        cursor = self.clients.find(
            {"advisor_id": advisor_id},
            {"_id": 0, "ssn": 0, "ein": 0},
        ).sort("created_at", -1)
        return await cursor.to_list(length=None)

    async def record_event(
        self,
        event_type: str,
        payload: Dict[str, Any],
        profile_id: Optional[str] = None,
        user_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> None:
        await self.events.insert_one({
            "event_id": str(uuid.uuid4()),
            "profile_id": profile_id,
            "user_id": user_id,
            "type": event_type,
            "payload": payload,
            "actor": actor,
            "created_at": utcnow(),
        })

    # ============================================================
    # SIGNUP
    # ============================================================

    async def signup_client(self, form: ClientSignupRequest) -> Dict[str, Any]:
        """
        Onboards a client on behalf of an advisor.

        Steps run in order as independent upserts; a failure part-way leaves
        the earlier writes in place and re-running the signup converges.

        Raises:
            CRMError: If the CRM contact cannot be created
        """
        custom_fields = build_custom_fields(
            signup_custom_field_values(form),
            settings.CRM_CUSTOM_FIELDS,
        )

        # 1. CRM contact
        contact_id = await self.crm.upsert_contact({
            "firstName": form.first_name,
            "lastName": form.last_name or None,
            "email": form.email,
            "phone": form.phone,
            "companyName": form.company_legal_name,
            "city": form.city,
            "state": form.state,
            "postalCode": form.zip,
            "country": "US",
            "tags": [TAG_VAULT_USER],
            "customFields": custom_fields,
        })

        with LogContext(contact_id=contact_id):
            # 2. Login with the default password
            user, created = await self.auth.ensure_client_account(
                email=form.email,
                first_name=form.first_name,
                last_name=form.last_name,
                company=form.company_legal_name,
            )
            user_id = user["user_id"]

            # 3. User row
            await self.auth.upsert_profile(
                user_id=user_id,
                email=form.email,
                first_name=form.first_name,
                last_name=form.last_name,
                role=ROLE_FREE,
            )

            # 4. Business profile with owners, loans and flags
            profile = await self._upsert_business_profile(user_id, form)
            profile_id = profile["profile_id"]

            # 5. Client record linking the login to the CRM contact
            await self._upsert_client_record(user_id, contact_id, form)

            await self.record_event(
                "client_signup",
                {
                    "amount_requested": form.amount_requested,
                    "legal_entity_type": form.legal_entity_type,
                    "credit_score": form.credit_score,
                },
                profile_id=profile_id,
                user_id=user_id,
                actor=form.advisor_id,
            )

            # 6. Application tags
            tags = build_signup_tags(
                form.risk_flags(),
                credit_score=form.credit_score,
                how_soon_funds=form.how_soon_funds,
                documents_requested=form.documents_requested,
            )
            tags.extend([TAG_PORTAL_CREATED, TAG_VAULT_PRE_APPROVAL])
            await self.crm.add_tags(contact_id, tags)

            await self.record_event(
                "tags_applied",
                {"tags": tags},
                profile_id=profile_id,
                user_id=user_id,
            )

            logger.info(
                f"Client signup complete ({'created' if created else 'existing'} account)",
                extra={"user_id": user_id},
            )

        return {
            "ok": True,
            "profile_id": profile_id,
            "user_id": user_id,
            "crm_contact_id": contact_id,
            "login_url": f"{settings.APP_URL.rstrip('/')}/auth/sign-in",
            "created": created,
            "credentials": {
                "email": form.email,
                "password": settings.DEFAULT_CLIENT_PASSWORD,
            },
        }

    async def _upsert_business_profile(self, user_id: str, form: ClientSignupRequest) -> Dict[str, Any]:
        now = utcnow()
        loans = form.outstanding_loans.positioned() if form.outstanding_loans else []
        flags = form.risk_flags()
        flags.update({
            "personal_cc_debt_amount": form.personal_cc_debt_amount,
            "bk_fc_months_ago": form.bk_fc_months_ago,
            "bk_fc_type": form.bk_fc_type,
            "tax_liens_type": form.tax_liens_type,
            "tax_liens_amount": form.tax_liens_amount,
            "judgements_explain": form.judgements_explain,
            "how_soon_funds": form.how_soon_funds,
            "employees_count": form.employees_count,
            "additional_info": form.additional_info,
        })

        return await self.profiles.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": {
                    "business_name": form.company_legal_name,
                    "industry": form.industry_1,
                    "industries": [i for i in (form.industry_1, form.industry_2, form.industry_3) if i],
                    "legal_entity_type": form.legal_entity_type,
                    "city": form.city,
                    "state": form.state,
                    "zip": form.zip,
                    "phone": form.phone,
                    "business_start_date": form.business_start_date,
                    "credit_score": form.credit_score,
                    "sbss_score": form.sbss_score,
                    "amount_requested": form.amount_requested,
                    "use_of_funds": form.use_of_funds,
                    "avg_monthly_deposits": form.avg_monthly_deposits,
                    "annual_revenue": form.annual_revenue,
                    "owners": [
                        {
                            "full_name": f"{owner.first_name} {owner.last_name}",
                            "ownership_pct": owner.ownership_pct,
                        }
                        for owner in form.owners
                    ],
                    "outstanding_loans": loans,
                    "application_flags": flags,
                    "current_product_tag": DEFAULT_PRODUCT_TAG,
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "profile_id": str(uuid.uuid4()),
                    "user_id": user_id,
                    "created_at": now,
                },
            },
            projection=_PROJECTION,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def _upsert_client_record(self, user_id: str, contact_id: str, form: ClientSignupRequest) -> None:
        now = utcnow()
        await self.clients.update_one(
            {"user_id": user_id},
            {
                "$set": {
                    "crm_contact_id": contact_id,
                    "client_email": form.email,
                    "client_name": f"{form.first_name} {form.last_name}".strip(),
                    "company_name": form.company_legal_name,
                    "advisor_id": form.advisor_id,
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "user_id": user_id,
                    "contract_completed": False,
                    "contract_completed_at": None,
                    "created_at": now,
                },
            },
            upsert=True,
        )

    async def signup_advisor(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Creates an advisor login and registers the advisor as a CRM contact.

        The CRM call is best-effort: an advisor account is usable without it.

        Returns:
            The new user and the CRM contact id (None if the CRM call failed)
        """
        user = await self.auth.create_user(
            email=email,
            password=password,
            role=ROLE_ADVISOR,
            first_name=first_name,
            last_name=last_name,
            metadata={"full_name": f"{first_name} {last_name}".strip()},
        )

        contact_id = None
        try:
            contact_id = await self.crm.upsert_contact({
                "firstName": first_name,
                "lastName": last_name,
                "email": email,
                "source": CONTACT_SOURCE_ADVISOR_SIGNUP,
                "tags": tags or [TAG_ADVISOR],
            })
        except CRMError as e:
            logger.warning(f"Advisor CRM upsert failed: {e.message}", extra={"user_id": user["user_id"]})

        return {"user": user, "crm_contact_id": contact_id}

    # ============================================================
    # ONBOARDING
    # ============================================================

    async def get_onboarding_status(self, user: Dict[str, Any]) -> Dict[str, Any]:
        record = await self.get_client_by_user_id(user["user_id"]) or {}
        metadata = user.get("metadata") or {}
        return {
            "has_client_record": bool(record),
            "contract_completed": bool(record.get("contract_completed")),
            "data_vault_submitted": record.get("data_vault_submitted_at") is not None,
            "onboarding_complete": bool(metadata.get("onboarding_complete")),
            "vault_submitted": record.get("vault_submitted_at") is not None,
        }

    async def submit_step_one(self, user_id: str, submission: DataVaultSubmission) -> None:
        """
        Stores step 1 answers and mirrors them to the CRM.

        Raises:
            ResourceNotFoundError: If the user has no linked CRM contact
            CRMError: If the CRM update or tagging fails
        """
        record = await self.get_client_by_user_id(user_id)
        contact_id = (record or {}).get("crm_contact_id")
        if not contact_id:
            raise ResourceNotFoundError("CRM contact not found for this user")

        with LogContext(user_id=user_id, contact_id=contact_id):
            values = submission.model_dump()
            await self.clients.update_one(
                {"user_id": user_id},
                {"$set": {**values, "data_vault_submitted_at": utcnow(), "updated_at": utcnow()}},
            )

            custom_fields = build_custom_fields(
                {key: values[attr] for key, attr in STEP_ONE_FIELDS.items()},
                settings.CRM_CUSTOM_FIELDS,
            )
            await self.crm.update_contact(contact_id, {"customFields": custom_fields})
            await self.crm.add_tags(contact_id, [TAG_APPLICATION_SUBMITTED])

            await self.auth.update_metadata(user_id, onboarding_complete=True)
            logger.info("Step 1 synced to CRM")

    async def mark_contract_completed(self, email: str, completed_at) -> Dict[str, Any]:
        """
        Marks the client's contract as signed.

        Returns:
            {"client": record, "already_completed": bool}

        Raises:
            ResourceNotFoundError: If no client record has this email
        """
        record = await self.get_client_by_email(email)
        if record is None:
            raise ResourceNotFoundError(
                "Client not found with provided email",
                details={"client_email": email},
            )

        if record.get("contract_completed"):
            return {"client": record, "already_completed": True}

        updated = await self.clients.find_one_and_update(
            {"user_id": record["user_id"]},
            {
                "$set": {
                    "contract_completed": True,
                    "contract_completed_at": completed_at,
                    "updated_at": utcnow(),
                }
            },
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Contract marked completed", extra={"user_id": record["user_id"]})
        return {"client": updated, "already_completed": False}

    async def bypass_contract(self, user_id: str) -> None:
        result = await self.clients.update_one(
            {"user_id": user_id},
            {"$set": {"contract_completed": True, "contract_completed_at": utcnow(), "updated_at": utcnow()}},
        )
        if result.matched_count == 0:
            raise ResourceNotFoundError("Client data not found")

    async def mark_vault_submitted(self, user_id: str) -> Dict[str, Any]:
        """
        Records the final vault submission and tags the CRM contact.

        Callers check for outstanding documents first.

        Returns:
            {"tagged": bool}

        Raises:
            ResourceNotFoundError: If the user has no client record
        """
        record = await self.get_client_by_user_id(user_id)
        if record is None:
            raise ResourceNotFoundError("Client data not found")

        tagged = False
        contact_id = record.get("crm_contact_id")
        if contact_id:
            await self.crm.add_tags(contact_id, [TAG_VAULT_SUBMITTED])
            tagged = True
        else:
            logger.warning("No CRM contact for vault submission", extra={"user_id": user_id})

        await self.clients.update_one(
            {"user_id": user_id},
            {"$set": {"vault_submitted_at": utcnow(), "updated_at": utcnow()}},
        )

        profile = await self.get_profile_by_user_id(user_id)
        await self.record_event(
            EVENT_SUBMIT,
            {"crm_tagged": tagged},
            profile_id=profile["profile_id"] if profile else user_id,
            user_id=user_id,
            actor=user_id,
        )
        return {"tagged": tagged}

    async def set_rule_override(self, user_id: str, flags: Dict[str, bool], actor: str) -> Dict[str, Any]:
        """
        Records an advisor's rule_override for a client.

        Only the most recent override counts, so sending a flag as False
        switches the conditional document off again.

        Raises:
            ResourceNotFoundError: If the user has no client record
        """
        if await self.get_client_by_user_id(user_id) is None:
            raise ResourceNotFoundError("Client data not found")

        known_flags = set(CONDITIONAL_DOCUMENTS.values())
        payload = {flag: bool(value) for flag, value in flags.items() if flag in known_flags}

        profile = await self.get_profile_by_user_id(user_id)
        await self.record_event(
            EVENT_RULE_OVERRIDE,
            payload,
            profile_id=profile["profile_id"] if profile else user_id,
            user_id=user_id,
            actor=actor,
        )
        logger.info(f"Rule override recorded: {payload}", extra={"user_id": user_id})
        return payload


# Global service instance
_client_service: Optional[ClientService] = None


def get_client_service() -> ClientService:
    """Get or create client service instance."""
    global _client_service
    if _client_service is None:
        _client_service = ClientService()
    return _client_service
