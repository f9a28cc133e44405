"""
vaultsync/utils/tag_utils.py

Purpose: CRM tag helpers

- Document name -> tag slug ("Driver's License" -> "drivers_license")
- requested_* / submitted_* conversion
- Normalization of tag lists arriving from webhooks
- Tag generation from signup answers
"""

import re
from typing import Any, Iterable, List, Optional, Union

from vaultsync.utils.constants import (
    REQUESTED_TAG_PREFIX,
    SUBMITTED_TAG_PREFIX,
    CREDIT_SCORE_TAGS,
    FUNDING_URGENCY_TAGS,
    FUNDING_URGENCY_DEFAULT_TAG,
    RISK_FLAG_TAGS,
)


def slugify_document_name(name: str) -> str:
    """
    Converts a document name to its tag-friendly slug.

    Special characters are removed (not replaced), whitespace becomes a single
    underscore, so "Business/Personal Tax Returns" -> "businesspersonal_tax_returns".
    """
    slug = name.strip().lower()
    slug = re.sub(r"[^a-z0-9\s_]", "", slug)
    slug = re.sub(r"\s+", "_", slug)
    slug = re.sub(r"_+", "_", slug)
    return slug.strip("_")


def requested_tag_for(name: str) -> str:
    """Tag the CRM carries while a document is outstanding."""
    return f"{REQUESTED_TAG_PREFIX}{slugify_document_name(name)}"


def is_requested_tag(tag: str) -> bool:
    return tag.startswith(REQUESTED_TAG_PREFIX)


def code_from_requested_tag(tag: str) -> str:
    """
    Derives a document code from a requested_* tag.

    >>> code_from_requested_tag("requested_Bank Statements 2023")
    'bank_statements_2023'
    """
    return slugify_document_name(tag[len(REQUESTED_TAG_PREFIX):])


def label_from_code(code: str) -> str:
    return " ".join(part.capitalize() for part in code.split("_") if part)


def submitted_tag_for(requested_tag: str) -> str:
    """requested_balance_sheet -> submitted_balance_sheet"""
    if is_requested_tag(requested_tag):
        return f"{SUBMITTED_TAG_PREFIX}{requested_tag[len(REQUESTED_TAG_PREFIX):]}"
    return requested_tag


def upload_tag_for(doc_code: str) -> str:
    return f"doc_{doc_code}_uploaded"


def normalize_tags(raw_tags: Union[None, str, Iterable[Any]]) -> List[str]:
    """
    Normalizes a tag payload into a clean list.

    The CRM may send tags as a JSON array or as a comma-separated string.
    Entries are stripped, empty entries dropped and duplicates removed while
    preserving order.
    """
    if raw_tags is None:
        return []

    if isinstance(raw_tags, str):
        candidates = raw_tags.split(",")
    else:
        candidates = [str(tag) for tag in raw_tags if tag is not None]

    seen = set()
    tags = []
    for candidate in candidates:
        tag = candidate.strip().strip("\"'").strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tags


def clean_identifier(value: Optional[Any]) -> Optional[str]:
    """Strips whitespace and wrapping quotes that automation relays add to ids."""
    if value is None:
        return None
    cleaned = re.sub(r"^[\"']|[\"']$", "", str(value).strip())
    return cleaned or None


def build_signup_tags(
    flags: dict,
    credit_score: Optional[str] = None,
    how_soon_funds: Optional[str] = None,
    documents_requested: Iterable[str] = (),
) -> List[str]:
    """
    Builds the CRM tags describing a new client application.

    Args:
        flags: Risk flag answers keyed like RISK_FLAG_TAGS
        credit_score: Credit score bucket ("700+", "650-700", ...)
        how_soon_funds: Funding urgency answer
        documents_requested: Document names requested from the client

    Returns:
        Ordered list of tags (risk flags, credit bucket, urgency, requested docs)
    """
    tags = [tag for field, tag in RISK_FLAG_TAGS.items() if flags.get(field)]

    if credit_score and credit_score in CREDIT_SCORE_TAGS:
        tags.append(CREDIT_SCORE_TAGS[credit_score])

    if how_soon_funds:
        tags.append(FUNDING_URGENCY_TAGS.get(how_soon_funds, FUNDING_URGENCY_DEFAULT_TAG))

    tags.extend(requested_tag_for(doc) for doc in documents_requested)

    return normalize_tags(tags)
