# portal/services/invitations.py
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from portal.core.config import settings
from portal.core.security import hash_password
from portal.repositories import accounts, invitations
from portal.services.credentials import (
    generate_invite_token,
    generate_temporary_password,
    hash_invite_token,
    invite_expiry,
)
from portal.services.mailer import email_sender

logger = logging.getLogger(__name__)


def invite_url(token: str, base_url: Optional[str] = None) -> str:
    base = (base_url or settings.CLIENT_URL).rstrip("/")
    return f"{base}/assessment/invite?token={token}"


def login_url(base_url: Optional[str] = None) -> str:
    return f"{(base_url or settings.CLIENT_URL).rstrip('/')}/assessment-login"


async def invite_candidates(test: Mapping[str, Any], emails: Sequence[str], inviter_id: Optional[str],
                            message: Optional[str] = None, company_name: Optional[str] = None,
                            base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """Issue candidate credentials and a single-use invite link per email, then mail them.

    Credentials are returned to the caller only for recipients whose email
    could not be sent, so they can be delivered another way.
    """
    test_id = str(test["_id"])
    tenant_id = test.get("tenant_id")
    results: List[Dict[str, Any]] = []
    seen = set()
    for raw in emails:
        email = str(raw).strip().lower()
        if not email or email in seen:
            continue
        seen.add(email)

        password = generate_temporary_password()
        candidate = await accounts.upsert_candidate(tenant_id, email, hash_password(password), inviter_id)
        token = generate_invite_token()
        expires_at = invite_expiry()
        await invitations.insert_invitation(
            hash_invite_token(token), test_id, str(candidate["_id"]), email, tenant_id, expires_at, inviter_id,
        )
        link = invite_url(token, base_url)
        sent = await email_sender.send(
            email,
            f"Assessment invitation: {test.get('title')}",
            "test_invitation",
            {
                "name": candidate.get("name"),
                "email": email,
                "password": password,
                "company_name": company_name,
                "test_title": test.get("title"),
                "message": message,
                "invite_url": link,
                "login_url": login_url(base_url),
                "expires_at": expires_at.isoformat(),
            },
        )
        entry: Dict[str, Any] = {
            "email": email,
            "candidate_id": str(candidate["_id"]),
            "expires_at": expires_at.isoformat(),
            "email_sent": sent,
        }
        if not sent:
            entry["credentials"] = {"temporary_password": password, "invite_url": link}
        results.append(entry)
    logger.info("Invited %d candidates to test %s", len(results), test_id)
    return results
