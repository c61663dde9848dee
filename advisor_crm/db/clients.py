"""
Client persistence used by the import pipeline.

``ClientRepository`` is the client store collaborator: it looks clients up by
normalized email/phone, creates new clients with their typed contact points,
and merges imported values into existing clients.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, insert, or_, select, update

from advisor_crm.core.config import settings
from advisor_crm.db.session import get_engine
from advisor_crm.db.tables import client_emails, client_phones, clients, ensure_tables
from advisor_crm.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

SOURCE_MANUAL = "manual"
SOURCE_IMPORT = "import"


class ClientNotFoundError(LookupError):
    """Raised when an update targets a client that no longer exists."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Client '{record_id}' not found")


@dataclass
class ClientFields:
    """
    Values to write to a client.

    ``emails`` and ``phones`` map contact type (HOME, WORK, ...) to value; the
    first entry of a new client becomes its primary contact point. Empty
    values are ignored by both create and update.
    """
    name: Optional[str] = None
    client_id: Optional[str] = None
    status: Optional[str] = None
    pipeline_stage: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    emails: Dict[str, str] = field(default_factory=dict)
    phones: Dict[str, str] = field(default_factory=dict)


def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized or None


def format_client_id(sequence: int, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.client_id_prefix}{sequence:04d}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _split_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [tag for tag in (part.strip() for part in raw.split(",")) if tag]


class ClientRepository:
    """SQL-backed client store."""

    def __init__(self, engine=None):
        self._engine = engine

    @property
    def engine(self):
        return self._engine or get_engine()

    # ------------------------------------------------------------------ reads

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        ensure_tables()
        with self.engine.connect() as conn:
            return self._load(conn, record_id)

    def find_by_normalized_email_or_phone(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        *,
        exclude_import_job_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Return the earliest-created client whose normalized email or phone
        equals the given values, or None.

        ``exclude_import_job_id`` hides clients created by that import job so
        matching only sees records that existed before the job started.
        """
        normalized_email = normalize_email(email)
        normalized_phone = normalize_phone(phone)
        if not normalized_email and not normalized_phone:
            return None

        ensure_tables()
        conditions = []
        if normalized_email:
            conditions.append(
                clients.c.id.in_(
                    select(client_emails.c.client_id).where(client_emails.c.normalized_email == normalized_email)
                )
            )
        if normalized_phone:
            conditions.append(
                clients.c.id.in_(
                    select(client_phones.c.client_id).where(client_phones.c.normalized_phone == normalized_phone)
                )
            )

        query = select(clients.c.id).where(or_(*conditions))
        if exclude_import_job_id:
            query = query.where(
                or_(
                    clients.c.created_by_import_job_id.is_(None),
                    clients.c.created_by_import_job_id != exclude_import_job_id,
                )
            )
        query = query.order_by(clients.c.created_at.asc(), clients.c.id.asc()).limit(1)

        with self.engine.connect() as conn:
            match_id = conn.execute(query).scalar()
            return self._load(conn, match_id) if match_id else None

    def next_client_sequence(self) -> int:
        """Return the next unused numeric suffix for generated client ids."""
        ensure_tables()
        with self.engine.connect() as conn:
            return self._next_sequence_in(conn)

    # ----------------------------------------------------------------- writes

    def create(self, fields: ClientFields, *, import_job_id: Optional[str] = None) -> Dict[str, Any]:
        """Insert a client with its emails and phones. ``name`` is required."""
        name = (fields.name or "").strip()
        if not name:
            raise ValueError("Client name is required")

        ensure_tables()
        now = _utcnow()
        record_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            client_id = fields.client_id or format_client_id(self._next_sequence_in(conn))
            conn.execute(
                insert(clients).values(
                    id=record_id,
                    client_id=client_id,
                    name=name,
                    status=fields.status or settings.default_client_status,
                    pipeline_stage=fields.pipeline_stage or settings.default_pipeline_stage,
                    tags=",".join(fields.tags) if fields.tags else None,
                    source=SOURCE_IMPORT if import_job_id else SOURCE_MANUAL,
                    import_count=1 if import_job_id else 0,
                    created_by_import_job_id=import_job_id,
                    last_import_job_id=import_job_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            self._write_contacts(conn, record_id, fields, now)
            record = self._load(conn, record_id)

        logger.debug("Created client %s (%s)", record_id, client_id)
        return record

    def update(
        self,
        record_id: str,
        fields: ClientFields,
        *,
        import_job_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Merge ``fields`` into an existing client.

        Only non-empty values overwrite; a missing or empty value never clears
        existing data. Emails/phones replace the contact point of the same type
        or are added alongside the existing ones.
        """
        ensure_tables()
        now = _utcnow()
        with self.engine.begin() as conn:
            exists = conn.execute(select(clients.c.id).where(clients.c.id == record_id)).scalar()
            if not exists:
                raise ClientNotFoundError(record_id)

            values: Dict[str, Any] = {"updated_at": now}
            if fields.name and fields.name.strip():
                values["name"] = fields.name.strip()
            if fields.client_id:
                values["client_id"] = fields.client_id
            if fields.status:
                values["status"] = fields.status
            if fields.pipeline_stage:
                values["pipeline_stage"] = fields.pipeline_stage
            if fields.tags:
                values["tags"] = ",".join(fields.tags)
            if import_job_id:
                values["import_count"] = clients.c.import_count + 1
                values["last_import_job_id"] = import_job_id

            conn.execute(update(clients).where(clients.c.id == record_id).values(**values))
            self._write_contacts(conn, record_id, fields, now)
            record = self._load(conn, record_id)

        logger.debug("Updated client %s", record_id)
        return record

    # ---------------------------------------------------------------- helpers

    def _next_sequence_in(self, conn) -> int:
        prefix = settings.client_id_prefix
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        highest = 0
        for client_id in conn.execute(
            select(clients.c.client_id).where(clients.c.client_id.like(f"{prefix}%"))
        ).scalars():
            match = pattern.match(client_id or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1

    def _write_contacts(self, conn, record_id: str, fields: ClientFields, now: datetime) -> None:
        for email_type, email in fields.emails.items():
            normalized = normalize_email(email)
            if not normalized:
                continue
            self._upsert_contact(
                conn,
                client_emails,
                record_id,
                type_column="email_type",
                contact_type=email_type,
                values={"email": email.strip(), "normalized_email": normalized},
                now=now,
            )

        for phone_type, number in fields.phones.items():
            normalized = normalize_phone(number)
            if not normalized:
                continue
            self._upsert_contact(
                conn,
                client_phones,
                record_id,
                type_column="phone_type",
                contact_type=phone_type,
                values={"number": number.strip(), "normalized_phone": normalized},
                now=now,
            )

    def _upsert_contact(self, conn, table, record_id, *, type_column, contact_type, values, now) -> None:
        existing_id = conn.execute(
            select(table.c.id)
            .where(table.c.client_id == record_id)
            .where(table.c[type_column] == contact_type)
            .order_by(table.c.position.asc())
            .limit(1)
        ).scalar()
        if existing_id:
            conn.execute(update(table).where(table.c.id == existing_id).values(**values))
            return

        contact_count = conn.execute(
            select(func.count()).select_from(table).where(table.c.client_id == record_id)
        ).scalar()
        conn.execute(
            insert(table).values(
                id=str(uuid.uuid4()),
                client_id=record_id,
                is_primary=contact_count == 0,
                position=contact_count,
                created_at=now,
                **{type_column: contact_type},
                **values,
            )
        )

    def _load(self, conn, record_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not record_id:
            return None
        row = conn.execute(select(clients).where(clients.c.id == record_id)).mappings().first()
        if not row:
            return None

        emails = conn.execute(
            select(client_emails.c.email, client_emails.c.email_type, client_emails.c.is_primary)
            .where(client_emails.c.client_id == record_id)
            .order_by(client_emails.c.position.asc(), client_emails.c.id.asc())
        ).mappings().all()
        phones = conn.execute(
            select(client_phones.c.number, client_phones.c.phone_type, client_phones.c.is_primary)
            .where(client_phones.c.client_id == record_id)
            .order_by(client_phones.c.position.asc(), client_phones.c.id.asc())
        ).mappings().all()

        record = dict(row)
        record["tags"] = _split_tags(row["tags"])
        record["emails"] = [
            {"email": e["email"], "type": e["email_type"], "is_primary": bool(e["is_primary"])} for e in emails
        ]
        record["phones"] = [
            {"number": p["number"], "type": p["phone_type"], "is_primary": bool(p["is_primary"])} for p in phones
        ]
        return record
