"""Status vocabularies of the CRM entities.

Leads, quotes, sites and invoices use a fixed vocabulary; each is an enum with
an explicit ``UNKNOWN`` member so aggregation code can match exhaustively
instead of comparing free text. Project statuses are configured per
organization and are handled by ``ProjectStatusSetting`` and
``sanitize_project_statuses``.
"""
from __future__ import annotations

import enum
import logging
import re
import unicodedata
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from insights import metrics

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "__UNKNOWN__"


def normalize_token(value: str | None) -> str:
    """Accent-stripped, uppercased token with ``_`` between words.

    >>> normalize_token("Non éligible")
    'NON_ELIGIBLE'
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    token = re.sub(r"[^0-9A-Za-z]", "_", stripped)
    token = re.sub(r"_{2,}", "_", token).strip("_")
    return token.upper()


class StatusEnum(str, enum.Enum):
    """Base for the fixed status vocabularies."""

    @classmethod
    def entity(cls) -> str:
        return cls.__name__.removesuffix("Status").lower()

    @classmethod
    def parse(cls, value: str | None):
        """Map a raw column value onto a member, ``UNKNOWN`` when unrecognized."""
        if value is None or not str(value).strip():
            return cls.UNKNOWN  # type: ignore[attr-defined]
        raw = str(value).strip()
        try:
            return cls(raw)
        except ValueError:
            pass
        token = normalize_token(raw)
        for member in cls:
            if member.value != UNKNOWN_STATUS and normalize_token(member.value) == token:
                return member
        logger.warning("Unrecognized %s status %r, using UNKNOWN", cls.entity(), raw)
        metrics.status_fallback(cls.entity())
        return cls.UNKNOWN  # type: ignore[attr-defined]

    @classmethod
    def known(cls) -> list:
        return [member for member in cls if member.value != UNKNOWN_STATUS]

    @property
    def label(self) -> str:
        return _LABELS.get(type(self), {}).get(self, self.value)


class LeadStatus(StatusEnum):
    NON_ELIGIBLE = "Non éligible"
    A_RAPPELER = "À rappeler"
    PHONING = "Phoning"
    A_RECONTACTER = "À recontacter"
    PROGRAMMER_PRE_VISITE = "Programmer pré-visite"
    ELIGIBLE = "Éligible"
    UNKNOWN = UNKNOWN_STATUS


class QuoteStatus(StatusEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    UNKNOWN = UNKNOWN_STATUS


class SiteStatus(StatusEnum):
    PLANIFIE = "PLANIFIE"
    EN_PREPARATION = "EN_PREPARATION"
    EN_COURS = "EN_COURS"
    SUSPENDU = "SUSPENDU"
    TERMINE = "TERMINE"
    LIVRE = "LIVRE"
    UNKNOWN = UNKNOWN_STATUS


class InvoiceStatus(StatusEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    UNKNOWN = UNKNOWN_STATUS


_LABELS: dict[type, dict[StatusEnum, str]] = {
    LeadStatus: {
        LeadStatus.PHONING: "Phoning (script d'appel)",
        LeadStatus.ELIGIBLE: "Éligible (automatique lors de la conversion en projet)",
        LeadStatus.UNKNOWN: "Inconnu",
    },
    QuoteStatus: {
        QuoteStatus.DRAFT: "Brouillon",
        QuoteStatus.SENT: "Envoyé",
        QuoteStatus.ACCEPTED: "Accepté",
        QuoteStatus.REJECTED: "Refusé",
        QuoteStatus.EXPIRED: "Expiré",
        QuoteStatus.UNKNOWN: "Inconnu",
    },
    SiteStatus: {
        SiteStatus.PLANIFIE: "Planifié",
        SiteStatus.EN_PREPARATION: "En préparation",
        SiteStatus.EN_COURS: "En cours",
        SiteStatus.SUSPENDU: "Suspendu",
        SiteStatus.TERMINE: "Terminé",
        SiteStatus.LIVRE: "Livré",
        SiteStatus.UNKNOWN: "Inconnu",
    },
    InvoiceStatus: {
        InvoiceStatus.DRAFT: "Brouillon",
        InvoiceStatus.SENT: "Envoyée",
        InvoiceStatus.PAID: "Payée",
        InvoiceStatus.CANCELLED: "Annulée",
        InvoiceStatus.UNKNOWN: "Inconnue",
    },
}

ACTIVE_LEAD_STATUSES = tuple(s for s in LeadStatus.known() if s is not LeadStatus.NON_ELIGIBLE)
QUALIFIED_LEAD_STATUS = LeadStatus.ELIGIBLE

SITE_ACTIVE_STATUSES = (SiteStatus.PLANIFIE, SiteStatus.EN_PREPARATION, SiteStatus.EN_COURS, SiteStatus.SUSPENDU)
SITE_COMPLETED_STATUSES = (SiteStatus.TERMINE, SiteStatus.LIVRE)


# ----------------- Project statuses (organization-configurable) -----------------

DEFAULT_STATUS_COLOR = "#6B7280"
ACCEPTED_PROJECT_STATUS = "DEVIS_SIGNE"

# Statuses past the signature whose installed products count for surface/energy totals
PROJECT_SURFACE_STATUSES = frozenset(
    {"CHANTIER_EN_COURS", "TERMINE", "LIVRE", "FACTURE_ENVOYEE", "AH", "AAF", "CLOTURE"}
)
PROJECT_COMPLETED_STATUSES = frozenset(
    {"CHANTIER_TERMINE", "LIVRE", "FACTURE_ENVOYEE", "AH", "AAF", "CLOTURE"}
)

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class ProjectStatusSetting(BaseModel):
    """One entry of an organization's project-status list."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    value: str | None = None
    label: str | None = None
    color: str | None = DEFAULT_STATUS_COLOR
    is_active: bool | None = Field(default=None, alias="isActive")


def _status(value: str, label: str, color: str, is_active: bool = True) -> ProjectStatusSetting:
    return ProjectStatusSetting(id=value, value=value, label=label, color=color, is_active=is_active)


DEFAULT_PROJECT_STATUSES: tuple[ProjectStatusSetting, ...] = (
    _status("NOUVEAU", "Nouveau", "#3B82F6"),
    _status("DEVIS_SIGNE", "Devis signé", "#22C55E"),
    _status("CHANTIER_PLANIFIE", "Chantier planifié", "#FACC15"),
    _status("CHANTIER_EN_COURS", "Chantier en cours", "#2563EB"),
    _status("CHANTIER_TERMINE", "Chantier terminé", "#8B5CF6"),
    _status("VISITE_TECHNIQUE", "Visite technique", "#F97316"),
    _status("LIVRE", "Livré", "#14B8A6", is_active=False),
    _status("FACTURE_ENVOYEE", "Facture envoyée", "#F59E0B"),
    _status("AH", "AH", "#0EA5E9"),
    _status("AAF", "AAF", "#F472B6"),
    _status("CLOTURE", "Clôturé", "#475569", is_active=False),
    _status("ANNULE", "Annulé", "#94A3B8", is_active=False),
    _status("ABANDONNE", "Abandonné", "#A855F7", is_active=False),
)


def normalize_status_value(value: str | None) -> str:
    return normalize_token(value) or "STATUT"


def normalize_hex_color(color: str | None) -> str:
    if not color or not isinstance(color, str):
        return DEFAULT_STATUS_COLOR
    match = _HEX_COLOR.match(color.strip())
    if not match:
        return DEFAULT_STATUS_COLOR
    digits = match.group(1).upper()
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits}"


def _prettify_label(label: str | None, fallback_value: str) -> str:
    if label and label.strip():
        return label.strip()
    return " ".join(part.capitalize() for part in fallback_value.replace("_", " ").split())


def _read_setting(raw: ProjectStatusSetting | dict) -> ProjectStatusSetting | None:
    if isinstance(raw, ProjectStatusSetting):
        return raw
    try:
        return ProjectStatusSetting.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Skipping project status entry %r: %d invalid field(s)", raw, exc.error_count())
        metrics.status_fallback("project_setting")
        return None


def sanitize_project_statuses(
    statuses: list[ProjectStatusSetting | dict] | None,
) -> list[ProjectStatusSetting]:
    """Normalize an organization's status list.

    Values become canonical uppercase tokens and collisions get a numeric
    suffix (``DEVIS_SIGNE``, ``DEVIS_SIGNE_2``) so no entry is lost. An empty
    or missing list yields a copy of the defaults, and so does a list whose
    entries are all unreadable. Unreadable entries are logged and skipped.
    """
    seen: set[str] = set()
    sanitized: list[ProjectStatusSetting] = []
    for raw in statuses or ():
        status = _read_setting(raw)
        if status is None:
            continue
        base_value = normalize_status_value(status.value or status.id or status.label)
        value = base_value
        suffix = 1
        while value in seen:
            suffix += 1
            value = f"{base_value}_{suffix}"
        seen.add(value)
        sanitized.append(
            ProjectStatusSetting(
                id=status.id or uuid.uuid4().hex,
                value=value,
                label=_prettify_label(status.label, base_value),
                color=normalize_hex_color(status.color),
                is_active=status.is_active is not False,
            )
        )
    if not sanitized:
        return [status.model_copy() for status in DEFAULT_PROJECT_STATUSES]
    return sanitized
