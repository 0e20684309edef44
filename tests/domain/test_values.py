"""
Tests for domain value objects.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.domain.values import (
    Component,
    Dimension,
    EventAction,
    MilestoneEvent,
    StandardCategory,
    dimension_key_fn,
    to_decimal,
)
from progress_kernel.exceptions import InvalidDimensionError
from tests.conftest import T0


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_bool(self):
        assert to_decimal(True) == Decimal("1")
        assert to_decimal(False) == Decimal("0")

    def test_string_with_whitespace(self):
        assert to_decimal(" 12.5 ") == Decimal("12.5")

    def test_non_numeric_raises(self):
        with pytest.raises(ValueError):
            to_decimal("abc")
        with pytest.raises(ValueError):
            to_decimal(None)


class TestComponent:

    def test_budget_defaults_to_zero(self):
        component = Component(id=uuid4(), project_id=uuid4(), component_type="support")

        assert component.budget == Decimal("0")
        assert component.has_budget is False

    def test_enum_component_type_stored_as_string(self):
        from progress_kernel.domain.values import ComponentType

        component = Component(id=uuid4(), project_id=uuid4(), component_type=ComponentType.SPOOL)

        assert component.component_type == "spool"

    def test_is_frozen(self):
        component = Component(id=uuid4(), project_id=uuid4(), component_type="support")
        with pytest.raises(AttributeError):
            component.percent_complete = Decimal("50")  # type: ignore[misc]


class TestMilestoneEvent:

    def test_string_tags_coerced_to_enums(self):
        event = MilestoneEvent(
            id=uuid4(),
            component_id=uuid4(),
            milestone_name="Install",
            value=1,
            occurred_at=T0,
            action="complete",
            category="install",
            delta_mh=2.5,
        )

        assert event.action == EventAction.COMPLETE
        assert event.category == StandardCategory.INSTALL
        assert event.delta_mh == Decimal("2.5")


class TestDimension:

    def test_parse_is_case_insensitive(self):
        assert Dimension.parse("Test_Package") == Dimension.TEST_PACKAGE

    def test_parse_unknown_raises(self):
        with pytest.raises(InvalidDimensionError):
            Dimension.parse("galaxy")

    def test_key_fn_reads_assignment(self):
        area_id = uuid4()
        component = Component(id=uuid4(), project_id=uuid4(), component_type="support", area_id=area_id)

        assert dimension_key_fn("area")(component) == area_id
        assert dimension_key_fn(Dimension.SYSTEM)(component) is None
        assert dimension_key_fn(Dimension.PROJECT)(component) == component.project_id
