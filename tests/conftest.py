"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from io import BytesIO
from typing import Any, List, Sequence

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from order_intake.main import app
from order_intake.schemas.order import (
    CanonicalOrder,
    CustomerInfo,
    LineItem,
    OrderMetadata,
)
from order_intake.services.parsing.order_parser import OrderParser
from order_intake.services.parsing.synonyms import SynonymConfig


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


def _workbook_bytes(rows: Sequence[Sequence[Any]], title: str = "Order", extra_sheets: dict = None) -> bytes:
    """Serialize rows into .xlsx bytes, one list per row starting at A1."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(list(row))
    for name, sheet_rows in (extra_sheets or {}).items():
        extra = workbook.create_sheet(name)
        for row in sheet_rows:
            extra.append(list(row))

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def build_workbook():
    """Factory turning row lists into .xlsx bytes."""
    return _workbook_bytes


@pytest.fixture
def synonyms() -> SynonymConfig:
    return SynonymConfig.from_yaml()


@pytest.fixture
def parser(synonyms: SynonymConfig) -> OrderParser:
    return OrderParser(synonyms)


@pytest.fixture
def received_at() -> datetime:
    return datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def order_rows() -> List[List[Any]]:
    """A clean five-column order table."""
    return [
        ["Item Code", "Qty", "Unit Price", "Line Total", "Customer"],
        ["ABC-001", 10, 2.5, 25.0, "Acme Trading Ltd"],
        ["ABC-002", 4, 10.0, 40.0, "Acme Trading Ltd"],
        ["XYZ-100", 1, 99.0, 99.0, "Acme Trading Ltd"],
        ["XYZ-200", 12, 1.25, 15.0, "Acme Trading Ltd"],
    ]


@pytest.fixture
def order_workbook(order_rows) -> bytes:
    return _workbook_bytes(order_rows)


@pytest.fixture
def sample_order() -> CanonicalOrder:
    """Canonical order with a named customer and two identified lines."""
    return CanonicalOrder(
        metadata=OrderMetadata(
            case_id="case-001",
            tenant_id="tenant-1",
            received_at=datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc),
            source_filename="order.xlsx",
            file_sha256="a" * 64,
            parser_version="1.0.0",
        ),
        customer=CustomerInfo(input_name="Acme Trading Ltd"),
        line_items=[
            LineItem(line_number=1, description="Blue widget", quantity=10, unit_price=2.5, line_total=25.0, sku="ABC-001"),
            LineItem(line_number=2, description="Red widget", quantity=4, unit_price=10.0, line_total=40.0, gtin="4006381333931"),
        ],
    )
