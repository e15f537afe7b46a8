"""
Mixin SQLAlchemy per modelli
Progetto: Fleet Back Office (Gestionale Trasporti)

Mixin riutilizzabili per aggiungere funzionalità comuni ai modelli,
più la protezione ORM dei record append-only.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Uuid
from sqlalchemy import event
from sqlalchemy.orm import Mapped, mapped_column, Session
from sqlalchemy.sql import func

from app.core.exceptions import ImmutableRecordError


def utcnow() -> datetime.datetime:
    """Data/ora corrente con timezone UTC."""
    return datetime.datetime.now(datetime.timezone.utc)


class CreatedAtMixin:
    """
    Mixin per il solo timestamp di creazione.

    Usato dai record append-only (storico stati, pagamenti) che non
    hanno mai un updated_at.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc="Data/ora di creazione del record",
    )


class TimestampMixin(CreatedAtMixin):
    """
    Mixin per gestione automatica timestamp creazione e aggiornamento.

    Aggiunge i campi:
    - created_at: data/ora di creazione record (impostato automaticamente)
    - updated_at: data/ora ultimo aggiornamento (aggiornato automaticamente)

    Il default è calcolato lato Python: il valore è noto subito dopo
    il flush senza dover ricaricare l'oggetto (sessioni async).
    """

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc="Data/ora ultimo aggiornamento del record",
    )


class UUIDMixin:
    """
    Mixin per ID UUID generato client-side.

    Aggiunge il campo id come UUID primary key con generazione automatica.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="UUID primary key",
    )


# ------------------------------------------------------------
# Event Listeners
# ------------------------------------------------------------
@event.listens_for(Session, "before_flush")
def update_timestamp(session: Session, flush_context, instances) -> None:
    """
    Event listener per aggiornare automaticamente il campo updated_at.

    Questo listener viene eseguito prima di ogni flush e aggiorna il campo
    updated_at di tutti gli oggetti modificati (dirty).
    """
    now = utcnow()

    for obj in session.dirty:
        if hasattr(obj, 'updated_at'):
            # Only update if the object was actually modified
            if session.is_modified(obj, include_collections=False):
                obj.updated_at = now


def _reject_update(mapper, connection, target) -> None:
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} è append-only: modifica non consentita"
    )


def _reject_delete(mapper, connection, target) -> None:
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} è append-only: cancellazione non consentita"
    )


def register_append_only(model_cls: type) -> type:
    """
    Registra i listener ORM che bloccano UPDATE e DELETE sul modello.

    Usabile come decoratore di classe:

        @register_append_only
        class BookingTrack(Base, UUIDMixin, CreatedAtMixin):
            ...
    """
    event.listen(model_cls, "before_update", _reject_update)
    event.listen(model_cls, "before_delete", _reject_delete)
    return model_cls
