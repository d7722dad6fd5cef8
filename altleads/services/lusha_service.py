"""Lusha service — contact enrichment through the Lusha person API.

- proxy_person_lookup(): relay one lookup with a caller-supplied key.
- enrich_with_rotation(): pick pooled keys least-recently-used first,
  retiring keys that are out of credits (EXHAUSTED) or rejected (INVALID),
  up to LUSHA_MAX_ATTEMPTS tries.
- CancellableEnrichment: run an enrichment on a background thread. Once
  cancelled (or timed out) its result is discarded and never written to
  the master record, even if the HTTP call completes later.

API keys are only ever logged by their last four characters.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests
from flask import current_app
from sqlalchemy import nulls_first
from sqlalchemy.exc import SQLAlchemyError

from altleads.errors import NotFoundError, ValidationError
from altleads.extensions import db
from altleads.models.lusha import LushaApiKey
from altleads.models.rtne import MasterProspect

logger = logging.getLogger(__name__)

CREDITS_HEADER = "x-daily-requests-left"


def _mask(key):
    return f"...{key[-4:]}" if key else "<none>"


def _base_url():
    return current_app.config["LUSHA_API_BASE_URL"].rstrip("/")


# ─── Proxy ───────────────────────────────────────────────────────

def proxy_person_lookup(api_key, params):
    """Forward one person lookup and relay status and body.

    Returns:
        (body, http_status) where body is {status, data, error}. Network
        failures come back as status 0 with HTTP 500.
    """
    if not api_key:
        raise ValidationError("apiKey is required")
    params = params or {}

    query = {"revealPhones": "true", "revealEmails": "true"}
    if params.get("linkedinUrl"):
        query["linkedinUrl"] = params["linkedinUrl"]
    else:
        for name in ("firstName", "lastName", "companyName"):
            if params.get(name):
                query[name] = params[name]
        if len(query) == 2:
            raise ValidationError(
                "params must include linkedinUrl or firstName/lastName/companyName"
            )

    try:
        resp = requests.get(
            f"{_base_url()}/v2/person",
            params=query,
            headers={"api_key": api_key, "Content-Type": "application/json"},
            timeout=current_app.config["LUSHA_TIMEOUT"],
        )
    except requests.RequestException as e:
        logger.error(f"Lusha proxy request with key {_mask(api_key)} failed: {e}")
        return {"status": 0, "data": None, "error": str(e)}, 500

    try:
        data = resp.json()
    except ValueError:
        data = resp.text
    return {
        "status": resp.status_code,
        "data": data,
        "error": None if resp.ok else f"HTTP {resp.status_code}",
    }, 200


# ─── Pooled key rotation ─────────────────────────────────────────

@dataclass
class EnrichmentResult:
    success: bool
    error: str = None
    message: str = None
    phone: str = None
    phone_numbers: list = field(default_factory=list)
    email: str = None
    emails: list = field(default_factory=list)
    full_name: str = None
    company: str = None
    title: str = None
    raw: dict = None

    def to_dict(self):
        if not self.success:
            return {"success": False, "error": self.error, "message": self.message}
        return {
            "success": True,
            "phone": self.phone,
            "phoneNumbers": self.phone_numbers,
            "email": self.email,
            "emails": self.emails,
            "fullName": self.full_name,
            "company": self.company,
            "title": self.title,
            "rawData": self.raw,
        }


def _next_key(category):
    return (
        LushaApiKey.query
        .filter_by(category=category, status="ACTIVE", is_active=True)
        .order_by(nulls_first(LushaApiKey.last_used_at.asc()))
        .first()
    )


def _lusha_properties(params):
    if params.get("linkedinUrl"):
        return {"linkedInUrl": params["linkedinUrl"]}
    props = {}
    if params.get("firstName"):
        props["firstName"] = params["firstName"]
    if params.get("lastName"):
        props["lastName"] = params["lastName"]
    if params.get("companyName"):
        props["company"] = params["companyName"]
    return props


def _extract(category, data):
    result = EnrichmentResult(success=True, raw=data)
    if category == "PHONE_ONLY":
        numbers = data.get("phoneNumbers") or []
        first = numbers[0] if numbers else {}
        result.phone = (
            first.get("e164Format")
            or first.get("internationalFormat")
            or first.get("localFormat")
        )
        result.phone_numbers = numbers
    else:
        emails = data.get("emailAddresses") or []
        result.email = emails[0].get("email") if emails else None
        result.emails = emails
    result.full_name = data.get("name")
    result.company = (data.get("company") or {}).get("name")
    result.title = data.get("title")
    return result


def _parse_credits(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def apply_to_master(master_prospect_id, result):
    """Write an enrichment's phone (or email) onto the master record. Commits."""
    master = db.session.get(MasterProspect, master_prospect_id)
    if master is None:
        logger.warning(f"Enrichment target {master_prospect_id} no longer exists")
        return False
    if result.phone:
        master.prospect_number = result.phone
    elif result.email:
        master.prospect_email = result.email
    else:
        return False
    db.session.commit()
    return True


def validate_enrich_request(category, params):
    if not category:
        raise ValidationError("category is required")
    if category not in LushaApiKey.CATEGORIES:
        raise ValidationError("category must be PHONE_ONLY or EMAIL_ONLY")
    params = params or {}
    if not params.get("linkedinUrl") and not (
        params.get("firstName") and params.get("companyName")
    ):
        raise ValidationError(
            "Either linkedinUrl OR (firstName + companyName) are required"
        )


def enrich_with_rotation(category, params, master_prospect_id=None):
    """Enrich a contact using the pooled keys for ``category``.

    Returns an EnrichmentResult; provider and network failures are
    reported in it rather than raised.
    """
    validate_enrich_request(category, params)
    max_attempts = current_app.config["LUSHA_MAX_ATTEMPTS"]
    properties = _lusha_properties(params)
    last_failure = ("No available API keys", "No enrichment attempts were made")

    for attempt in range(1, max_attempts + 1):
        key = _next_key(category)
        if key is None:
            return EnrichmentResult(
                success=False,
                error="No available API keys",
                message=(
                    "All API keys are exhausted or inactive. Please add more "
                    "keys or wait for credits to reset."
                ),
            )

        try:
            resp = requests.post(
                f"{_base_url()}/person",
                json={"properties": properties},
                headers={"api_key": key.key_value, "Content-Type": "application/json"},
                timeout=current_app.config["LUSHA_TIMEOUT"],
            )
        except requests.RequestException as e:
            logger.error(f"Lusha request with key {key.masked} failed: {e}")
            return EnrichmentResult(success=False, error="Network error", message=str(e))

        credits = _parse_credits(resp.headers.get(CREDITS_HEADER))
        key.last_used_at = datetime.now(timezone.utc)

        if resp.status_code == 200:
            if credits is not None:
                key.credits_remaining = credits
                if credits == 0:
                    key.status = "EXHAUSTED"
            db.session.commit()
            result = _extract(category, resp.json())
            if master_prospect_id:
                apply_to_master(master_prospect_id, result)
            logger.info(f"Lusha {category} enrichment succeeded on attempt {attempt}")
            return result

        if resp.status_code == 429 or credits == 0:
            key.status = "EXHAUSTED"
            key.credits_remaining = 0
            db.session.commit()
            logger.warning(f"Lusha key {key.masked} exhausted, rotating")
            last_failure = ("Rate limit", "All available keys are rate limited")
            continue

        if resp.status_code in (401, 403):
            key.status = "INVALID"
            db.session.commit()
            logger.warning(f"Lusha key {key.masked} rejected ({resp.status_code}), rotating")
            last_failure = ("Invalid key", "All available keys are invalid")
            continue

        db.session.commit()
        return EnrichmentResult(
            success=False,
            error="API error",
            message=f"Lusha API returned {resp.status_code}: {resp.text}",
        )

    error, message = last_failure
    return EnrichmentResult(success=False, error=error, message=message)


# ─── Cancellable background enrichment ───────────────────────────

class CancellableEnrichment:
    """One enrichment running off the request thread.

    ``wait(timeout)`` returns the result, or None if it was cancelled or
    did not finish in time (which cancels it). The HTTP call itself is not
    aborted; only its effect on the master record is suppressed.
    """

    def __init__(self, app, category, params, master_prospect_id=None):
        self._app = app
        self.category = category
        self.params = dict(params or {})
        self.master_prospect_id = master_prospect_id
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._cancelled = False
        self._result = None
        self._error = None
        self._thread = None

    def start(self):
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return self

    def _run(self):
        try:
            with self._app.app_context():
                result = enrich_with_rotation(self.category, self.params)
                with self._lock:
                    if self._cancelled:
                        logger.info(
                            f"Discarding late {self.category} enrichment result"
                        )
                        return
                    if result.success and self.master_prospect_id:
                        apply_to_master(self.master_prospect_id, result)
                    self._result = result
        except (SQLAlchemyError, requests.RequestException, ValidationError) as e:
            logger.error(f"Background enrichment failed: {e}")
            self._error = e
        finally:
            self._done.set()

    def cancel(self):
        with self._lock:
            self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled

    @property
    def done(self):
        return self._done.is_set()

    @property
    def error(self):
        return self._error

    def wait(self, timeout=None):
        if not self._done.wait(timeout):
            self.cancel()
            return None
        with self._lock:
            return None if self._cancelled else self._result


# ─── Key management (admin) ──────────────────────────────────────

def list_keys():
    keys = LushaApiKey.query.order_by(LushaApiKey.category, LushaApiKey.created_at).all()
    return [
        {
            "id": k.id,
            "key": k.masked,
            "category": k.category,
            "credits_remaining": k.credits_remaining,
            "status": k.status,
            "is_active": k.is_active,
            "last_used_at": k.last_used_at.isoformat() if k.last_used_at else None,
        }
        for k in keys
    ]


def add_keys(key_values, category):
    """Add keys to the pool, skipping blanks and duplicates. Returns count added."""
    if category not in LushaApiKey.CATEGORIES:
        raise ValidationError("category must be PHONE_ONLY or EMAIL_ONLY")
    added = 0
    for raw in key_values or []:
        value = (raw or "").strip()
        if not value or LushaApiKey.query.filter_by(key_value=value).first():
            continue
        db.session.add(LushaApiKey(key_value=value, category=category))
        db.session.flush()
        added += 1
    db.session.commit()
    return added


def toggle_key(key_id, is_active):
    key = db.session.get(LushaApiKey, key_id)
    if key is None:
        raise NotFoundError(f"Key {key_id} not found")
    key.is_active = bool(is_active)
    if is_active and key.status in ("EXHAUSTED", "SUSPENDED"):
        key.status = "ACTIVE"
    db.session.commit()
    return key


def delete_key(key_id):
    key = db.session.get(LushaApiKey, key_id)
    if key is None:
        raise NotFoundError(f"Key {key_id} not found")
    db.session.delete(key)
    db.session.commit()
