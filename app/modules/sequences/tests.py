"""
Tests del asignador de secuencias

El incremento es atómico en la base de datos: llamadas concurrentes
nunca reciben el mismo número.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError

from app.common.exceptions import TransientInfrastructureError
from app.modules.sequences.schemas import SequencePurpose
from app.modules.sequences.service import (
    SequenceAllocator, build_sequence_key, format_document_number
)


class TestSequenceKeys:
    def test_key_includes_purpose_scope_and_year(self):
        assert build_sequence_key("org1", SequencePurpose.INVOICE, 2025) == "invoice_org1_2025"

    def test_key_defaults(self):
        assert build_sequence_key(None, "employee") == f"employee_global_{date.today().year}"

    def test_format_pads_sequence(self):
        assert format_document_number("INV", 2025, 7) == "INV-2025-0007"
        assert format_document_number("INV", 2025, 12345) == "INV-2025-12345"


class TestSequenceAllocator:
    def test_first_call_starts_at_one(self, engine):
        allocator = SequenceAllocator(engine)
        assert allocator.next("org1-invoice-2025") == 1
        assert allocator.next("org1-invoice-2025") == 2

    def test_keys_are_independent(self, engine):
        allocator = SequenceAllocator(engine)
        allocator.next("a")
        allocator.next("a")
        assert allocator.next("b") == 1

    def test_concurrent_callers_never_collide(self, engine):
        allocator = SequenceAllocator(engine)
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(lambda _: allocator.next("org1-invoice-2025"), range(40)))

        assert len(set(values)) == 40
        assert sorted(values) == list(range(1, 41))

    def test_allocate_document_number(self, engine):
        allocator = SequenceAllocator(engine)
        year = date.today().year
        assert allocator.allocate_document_number("org1") == f"INV-{year}-0001"
        assert allocator.allocate_document_number("org1", SequencePurpose.EMPLOYEE) == f"EMP-{year}-0001"
        assert allocator.allocate_document_number("org1") == f"INV-{year}-0002"

    def test_storage_failure_is_transient(self, engine):
        allocator = SequenceAllocator(engine)
        broken = MagicMock()
        broken.begin.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))
        allocator.engine = broken

        with pytest.raises(TransientInfrastructureError) as exc:
            allocator.next("org1-invoice-2025")
        assert exc.value.status_code == 503


class TestSequencesRouter:
    def test_next_number_endpoint(self, client, headers):
        year = date.today().year
        first = client.post("/sequences/employee/next", headers=headers)
        second = client.post("/sequences/employee/next", headers=headers)

        assert first.status_code == 201
        assert first.json()["number"] == f"EMP-{year}-0001"
        assert second.json()["sequence"] == 2

    def test_requires_tenant_header(self, client):
        response = client.post("/sequences/invoice/next")
        assert response.status_code == 400
