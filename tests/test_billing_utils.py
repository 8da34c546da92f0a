import re
from decimal import Decimal

from backend.app.services.billing import calculate_session_cost, generate_reference, quantize_money, sum_hours


def test_calculate_session_cost_basic():
    assert calculate_session_cost(60, Decimal("28.00")) == Decimal("28.00")
    assert calculate_session_cost(90, Decimal("30.00")) == Decimal("45.00")
    assert calculate_session_cost(None, Decimal("30.00")) is None
    assert calculate_session_cost(60, None) is None
    assert calculate_session_cost(0, Decimal("30.00")) is None


def test_generate_reference_format():
    reference = generate_reference("INV", 3, 2030)
    assert re.fullmatch(r"INV-3003-[A-Z0-9]{6}", reference)


def test_generated_references_differ():
    references = {generate_reference("PAYOUT", 1, 2030) for _ in range(20)}
    assert len(references) == 20


def test_money_and_hours_helpers():
    assert quantize_money(None) == Decimal("0.00")
    assert quantize_money(Decimal("10.005")) == Decimal("10.01")
    assert sum_hours([60, 30, None]) == Decimal("1.50")
