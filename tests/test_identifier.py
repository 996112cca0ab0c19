from datetime import datetime

from app.models.models import Trabajo, TrabajoSecuencia
from app.services.identifier_service import IdentifierService


def _trabajo(identificador, user):
    return Trabajo(
        identificador=identificador,
        nombre="Existente",
        tipo="otro",
        fecha_inicio=datetime(2025, 1, 1, 8),
        fecha_fin=datetime(2025, 1, 1, 9),
        created_by=user.id,
    )


def test_format_pads_sequence():
    assert IdentifierService.format(2025, 7) == "TRB-2025-0007"
    assert IdentifierService.format(2025, 12345) == "TRB-2025-12345"


def test_parse_sequence():
    assert IdentifierService.parse_sequence("TRB-2025-0042") == 42
    assert IdentifierService.parse_sequence("basura") == 0
    assert IdentifierService.parse_sequence(None) == 0


def test_allocate_starts_at_one_and_increments(db):
    first = IdentifierService.allocate(db, 2025)
    second = IdentifierService.allocate(db, 2025)
    db.commit()

    assert (first, second) == ("TRB-2025-0001", "TRB-2025-0002")
    assert db.get(TrabajoSecuencia, 2025).ultimo == 2


def test_years_are_independent(db):
    IdentifierService.allocate(db, 2025)
    assert IdentifierService.allocate(db, 2026) == "TRB-2026-0001"


def test_counter_seeds_from_existing_jobs(db, make_user):
    user = make_user("gestor", ["gestor"])
    db.add(_trabajo("TRB-2025-0007", user))
    db.add(_trabajo("TRB-2024-0099", user))
    db.commit()

    assert IdentifierService.allocate(db, 2025) == "TRB-2025-0008"


def test_rollback_does_not_consume_number(db):
    IdentifierService.allocate(db, 2025)
    db.commit()

    IdentifierService.allocate(db, 2025)
    db.rollback()

    assert IdentifierService.allocate(db, 2025) == "TRB-2025-0002"
