"""Content gate deciding between the full and the preview rendering of a resource."""

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from codebyte.models.user import User
from codebyte.payments import ledger
from codebyte.payments.gateway import SessionStatus, resource_type_of

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 400


class AccessState(str, enum.Enum):
    LOCKED = 'locked'
    UNLOCKED = 'unlocked'
    CHECKING = 'checking'


class ContentGate:
    """Tracks the access state of one priced resource for one viewer.

    Free resources start unlocked. Priced ones start in ``CHECKING`` while the
    ledger lookup is outstanding and settle with ``resolve``; ``unlock`` covers
    a purchase that was just recorded or a checkout session that was just
    verified.
    """

    def __init__(self, price: float | None):
        self.price = price or 0
        self.reason = 'free' if self.is_free else 'pending'
        self.state = AccessState.UNLOCKED if self.is_free else AccessState.CHECKING

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    @property
    def is_unlocked(self) -> bool:
        return self.state == AccessState.UNLOCKED

    def resolve(self, has_purchase: bool) -> AccessState:
        if self.state == AccessState.CHECKING:
            self.state = AccessState.UNLOCKED if has_purchase else AccessState.LOCKED
            self.reason = 'purchased' if has_purchase else 'not_purchased'
        return self.state

    def unlock(self, reason: str = 'purchased') -> AccessState:
        if self.state != AccessState.UNLOCKED:
            self.state = AccessState.UNLOCKED
            self.reason = reason
        return self.state


@dataclass
class AccessDecision:
    state: AccessState
    reason: str
    price: float | None = None
    currency: str | None = None

    @property
    def is_unlocked(self) -> bool:
        return self.state == AccessState.UNLOCKED

    def as_dict(self) -> dict:
        return {
            'state': self.state.value,
            'reason': self.reason,
            'price': self.price,
            'currency': self.currency,
        }


def _session_unlocks(session: SessionStatus | None, resource_type: str, resource, user: User | None) -> bool:
    if session is None or not session.is_paid:
        return False
    if not session.names_resource(resource_type, resource.id):
        return False
    if user is not None and str(session.metadata.get('user_id')) != str(user.id):
        return False
    return True


def gated_resource(doc):
    """A documentation section is sold with, and gated by, its parent guide."""
    if getattr(doc, 'parent_id', None) is not None and doc.parent is not None:
        return doc.parent
    return doc


def listing_decision(resource) -> AccessDecision:
    """Access for list payloads: priced resources are always listed as previews."""
    gate = ContentGate(resource.price)
    if gate.state == AccessState.CHECKING:
        gate.resolve(False)
        gate.reason = 'preview'
    return AccessDecision(state=gate.state, reason=gate.reason, price=resource.price, currency=resource.currency)


def decide_access(
    resource,
    user: User | None,
    db: Session,
    verified_session: SessionStatus | None = None,
) -> AccessDecision:
    gate = ContentGate(resource.price)

    if gate.state == AccessState.CHECKING:
        resource_type = resource_type_of(resource)
        if _session_unlocks(verified_session, resource_type, resource, user):
            gate.unlock('verified_session')
        elif user is None:
            gate.resolve(False)
            gate.reason = 'anonymous'
        else:
            gate.resolve(ledger.has_purchased(db, user.id, resource_type, resource.id))

    return AccessDecision(state=gate.state, reason=gate.reason, price=resource.price, currency=resource.currency)


def _excerpt(text: str | None, length: int = PREVIEW_LENGTH) -> str:
    """At most ``length`` characters and never more than a third of the text."""
    if not text:
        return ''
    length = min(length, len(text) // 3)
    return text[:length].rsplit(' ', 1)[0].rstrip() + '...'


def apply_gate(payload: dict, decision: AccessDecision) -> dict:
    """Strip a serialised documentation payload down to its preview when locked."""
    payload = {**payload, 'access': decision.as_dict()}
    if decision.is_unlocked:
        return payload

    payload['content'] = _excerpt(payload.get('content'))
    payload['key_features'] = []
    payload['code_examples'] = []
    payload['pro_tip'] = None
    payload['sections'] = [
        {**section, 'content': None}
        for section in payload.get('sections', [])
    ]
    return payload
