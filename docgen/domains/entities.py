"""
Entity schemas and field normalization.

Every record leaving the proxy goes through EntitySchema.normalize, which coerces
missing or mistyped fields to a defined default (empty string, zero, empty list,
empty dict) so downstream code never checks for absence.
"""

from __future__ import annotations

from typing import Any, Callable

META_FIELDS = ("id", "created", "updated")

# Local placement of a freshly created record.
APPEND = "append"
PREPEND = "prepend"

# Update failure policy: keep the optimistic value, or restore the snapshot and refetch.
KEEP = "keep"
REVERT = "revert"


def as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def as_number(value: Any) -> float | int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def as_str_list(value: Any) -> list[str]:
    return [str(v) for v in as_list(value) if v is not None]


def as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def as_bool(value: Any) -> bool:
    return bool(value) if value is not None else False


def as_scheduled_items(value: Any) -> list[dict[str, Any]]:
    """Scheduled sub-records: keep dict items, force id/date/label/description to strings."""
    out: list[dict[str, Any]] = []
    for item in as_list(value):
        if not isinstance(item, dict):
            continue
        row = dict(item)
        for key in ("id", "date", "label", "description"):
            row[key] = as_str(item.get(key))
        out.append(row)
    return out


def as_contacts(value: Any) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    for item in as_list(value):
        if not isinstance(item, dict):
            continue
        out.append({k: as_str(item.get(k)) for k in ("id", "name", "role", "email", "phone")})
    return out


def as_generation_status(value: Any) -> str:
    return "success" if value == "success" else "error"


def as_publish_status(value: Any) -> str:
    return "published" if value == "published" else "draft"


class EntitySchema:
    """Collection binding plus per-field coercion for one entity type."""

    def __init__(
        self,
        name: str,
        collection: str,
        fields: dict[str, Callable[[Any], Any]],
        *,
        singular: str,
        plural: str,
        sort: str | None = None,
        scope_field: str | None = None,
        create_order: str = APPEND,
        update_policy: str = KEEP,
    ) -> None:
        self.name = name
        self.collection = collection
        self.fields = fields
        self.singular = singular
        self.plural = plural
        self.sort = sort
        self.scope_field = scope_field
        self.create_order = create_order
        self.update_policy = update_policy

    def normalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        raw = raw if isinstance(raw, dict) else {}
        out: dict[str, Any] = {"id": as_str(raw.get("id"))}
        for key in ("created", "updated"):
            out[key] = as_str(raw.get(key))
        for key, coerce in self.fields.items():
            out[key] = coerce(raw.get(key))
        return out

    def to_payload(self, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only declared, present fields; meta fields are owned by the server."""
        return {k: v for k, v in (data or {}).items() if k in self.fields}

    def error_message(self, operation: str) -> str:
        if operation == "list":
            return f"Unable to load the {self.plural}."
        if operation == "create":
            return f"Unable to create the {self.singular}."
        if operation == "update":
            return f"Unable to update the {self.singular}."
        if operation == "delete":
            return f"Unable to delete the {self.singular}."
        if operation == "replace":
            return f"Unable to synchronize the {self.plural}."
        if operation == "reset":
            return f"Unable to reset the {self.plural}."
        return f"Unable to process the {self.plural}."

    def __repr__(self) -> str:
        return f"EntitySchema({self.name!r}, collection={self.collection!r})"


CLIENTS = EntitySchema(
    "clients",
    "clients",
    {
        "code_client": as_str,
        "nom": as_str,
        "type_structure": as_str,
        "ville": as_str,
        "statut": as_str,
        "data_salesforce": lambda v: v,
    },
    singular="client",
    plural="clients",
    sort="nom",
)

CONTACTS = EntitySchema(
    "contacts",
    "contacts_clients",
    {
        "code_client": as_str,
        "nom": as_str,
        "prenom": as_str,
        "email": as_str,
        "telephone": as_str,
        "poste": as_str,
    },
    singular="client contact",
    plural="client contacts",
    sort="nom",
    scope_field="code_client",
)

NOTES = EntitySchema(
    "notes",
    "notes_clients",
    {"code_client": as_str, "contenu": as_str, "tags": as_str_list},
    singular="note",
    plural="client notes",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

ACTIVITY = EntitySchema(
    "activity",
    "client_activity_events",
    {
        "code_client": as_str,
        "type_event": lambda v: as_str(v) or "system",
        "description": as_str,
        "created_by": as_str,
    },
    singular="activity event",
    plural="client activity",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

EVALUATIONS = EntitySchema(
    "evaluations",
    "client_satisfaction_evaluations",
    {"code_client": as_str, "score": as_number, "periode": as_str, "commentaire": as_str},
    singular="evaluation",
    plural="satisfaction evaluations",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

INVOICES = EntitySchema(
    "invoices",
    "client_finance_invoices",
    {"code_client": as_str, "montant": as_number, "date": as_str, "statut": as_str},
    singular="invoice",
    plural="invoices",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

PAYMENTS = EntitySchema(
    "payments",
    "client_finance_payments",
    {"code_client": as_str, "montant": as_number, "date": as_str},
    singular="payment",
    plural="payments",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

COMMANDES = EntitySchema(
    "commandes",
    "commandes",
    {
        "code_client": as_str,
        "code_projet": as_str,
        "statut": as_str,
        "montant_total": as_number,
    },
    singular="order",
    plural="orders",
    sort="-created",
    scope_field="code_client",
    create_order=PREPEND,
)

PRESTATIONS = EntitySchema(
    "prestations",
    "prestations",
    {
        "label": as_str,
        "type": as_str,
        "tarif_presentiel": as_number,
        "tarif_distanciel": as_number,
    },
    singular="service",
    plural="services",
    sort="label",
)

TEMPLATES = EntitySchema(
    "templates",
    "templates",
    {
        "name": as_str,
        "type": lambda v: as_str(v) or "DOCX",
        "project_type_id": as_str,
        "content": as_str,
        "email_subject": as_str,
        "file_name": as_str,
        "variables": as_str_list,
        "linked_template_ids": as_str_list,
        "status": as_publish_status,
    },
    singular="template",
    plural="templates",
    sort="-updated",
    create_order=PREPEND,
    update_policy=REVERT,
)

PROJECT_TYPES = EntitySchema(
    "project_types",
    "project_types",
    {
        "name": as_str,
        "code": as_str,
        "description": as_str,
        "tags": as_str_list,
        "options": as_list,
        "questions": as_list,
        "document_rules": as_list,
        "email_rules": as_list,
        "email_schedule": as_list,
        "document_schedule": as_list,
        "question_schedule": as_list,
        "pack_ids": as_str_list,
        "status": as_publish_status,
    },
    singular="project type",
    plural="project types",
    sort="name",
    update_policy=REVERT,
)

VARIABLES = EntitySchema(
    "variables",
    "variables",
    {"key": as_str, "label": as_str, "scope": as_str},
    singular="variable",
    plural="variables",
    sort="key",
    scope_field="scope",
    update_policy=REVERT,
)

PROJETS = EntitySchema(
    "projets",
    "projets",
    {
        "code_client": as_str,
        "code_projet": as_str,
        "client_name": as_str,
        "project_type_id": as_str,
        "generation_status": as_generation_status,
        "deployment_date": as_str,
        "selected_option_ids": as_str_list,
        "answers": as_dict,
        "files_generated": as_list,
        "scheduled_emails": as_scheduled_items,
        "scheduled_documents": as_scheduled_items,
        "scheduled_questions": as_scheduled_items,
        "sent_email_ids": as_str_list,
        "sent_document_ids": as_str_list,
        "sent_question_ids": as_str_list,
        "contacts": as_contacts,
    },
    singular="project",
    plural="projects",
    sort="-created",
    create_order=PREPEND,
    update_policy=REVERT,
)

# Scheduled-item category -> (items field, resolved-identifier field) on a projet.
SCHEDULE_FIELDS: dict[str, tuple[str, str]] = {
    "email": ("scheduled_emails", "sent_email_ids"),
    "document": ("scheduled_documents", "sent_document_ids"),
    "question": ("scheduled_questions", "sent_question_ids"),
}

ALL_SCHEMAS: dict[str, EntitySchema] = {
    s.name: s
    for s in (
        CLIENTS,
        CONTACTS,
        NOTES,
        ACTIVITY,
        EVALUATIONS,
        INVOICES,
        PAYMENTS,
        COMMANDES,
        PRESTATIONS,
        TEMPLATES,
        PROJECT_TYPES,
        VARIABLES,
        PROJETS,
    )
}
