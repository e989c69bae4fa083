"""Level formula variants: floors, inversion and parameter validation."""

from __future__ import annotations

import pytest

from levelcore.config import FormulaSettings
from levelcore.exceptions import ConfigurationError
from levelcore.formulas import INT64_MAX, FormulaType
from levelcore.formulas.base import clamp_xp, search_level
from levelcore.formulas.factory import formula_from_settings
from levelcore.formulas.variants import CustomFormula, ExponentialFormula, LinearFormula, TableFormula


def _all_formulas():
    return [
        ExponentialFormula(base_xp=100.0, exponent=1.7, max_level=60),
        ExponentialFormula(base_xp=25.5, exponent=2.2, max_level=40),
        LinearFormula(xp_per_level=100, max_level=60),
        LinearFormula(xp_per_level=7, max_level=30),
        TableFormula(floors=(0, 100, 250, 450, 700, 1000)),
        CustomFormula(expression="50 * (level - 1) ^ 2", max_level=60),
        CustomFormula(expression="a * (level - 1) + b * (level - 1) ^ 1.5", constants={"a": 40, "b": 3}, max_level=60),
    ]


class TestFormulaLaws:
    """Properties every variant must satisfy."""

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_level_one_is_free(self, formula):
        assert formula.xp_for_level(1) == 0
        assert formula.level_for_xp(0) == 1

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_floors_are_non_decreasing(self, formula):
        floors = [formula.xp_for_level(level) for level in range(1, formula.max_level + 1)]
        assert floors == sorted(floors)

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_floor_maps_back_to_its_level(self, formula):
        for level in range(1, formula.max_level + 1):
            assert formula.level_for_xp(formula.xp_for_level(level)) == level

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_one_below_floor_is_previous_level(self, formula):
        for level in range(2, formula.max_level + 1):
            assert formula.level_for_xp(formula.xp_for_level(level) - 1) == level - 1

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_level_never_exceeds_ceiling(self, formula):
        assert formula.level_for_xp(INT64_MAX) == formula.max_level

    @pytest.mark.parametrize("formula", _all_formulas(), ids=lambda f: type(f).__name__)
    def test_negative_xp_is_level_one(self, formula):
        assert formula.level_for_xp(-50) == 1


class TestExponentialFormula:
    def test_floors_for_defaults(self, exponential):
        assert exponential.xp_for_level(2) == 100
        assert exponential.xp_for_level(3) == 324
        assert exponential.xp_for_level(4) == 647

    def test_500_xp_is_level_3(self, exponential):
        assert exponential.level_for_xp(500) == 3

    def test_boundaries(self, exponential):
        assert exponential.level_for_xp(99) == 1
        assert exponential.level_for_xp(100) == 2
        assert exponential.level_for_xp(323) == 2
        assert exponential.level_for_xp(324) == 3

    def test_past_ceiling_costs_int64_max(self):
        formula = ExponentialFormula(max_level=10)
        assert formula.xp_for_level(11) == INT64_MAX
        assert formula.level_for_xp(10**12) == 10

    def test_default_ceiling_is_reachable(self, exponential):
        assert exponential.level_for_xp(INT64_MAX) == 100_000

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_xp": 0},
            {"base_xp": -5},
            {"base_xp": float("nan")},
            {"exponent": 0},
            {"exponent": float("inf")},
            {"max_level": 0},
        ],
    )
    def test_rejects_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            ExponentialFormula(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_xp": 1.0, "exponent": 0.5, "max_level": 50},
            {"base_xp": 0.5, "exponent": 1.0, "max_level": 10},
            {"base_xp": 100.0, "exponent": 5.0},
        ],
        ids=["fractional-exponent", "sub-unit-base", "saturates-before-ceiling"],
    )
    def test_rejects_repeated_floors(self, kwargs):
        with pytest.raises(ConfigurationError, match="not above level"):
            ExponentialFormula(**kwargs)

    def test_steep_curve_with_low_ceiling_is_valid(self):
        formula = ExponentialFormula(base_xp=100.0, exponent=5.0, max_level=1_000)
        for level in range(1, 1_001):
            assert formula.level_for_xp(formula.xp_for_level(level)) == level


class TestLinearFormula:
    def test_floor_and_level(self, linear):
        assert linear.xp_for_level(3) == 200
        assert linear.level_for_xp(250) == 3

    def test_caps_at_max_level(self):
        formula = LinearFormula(xp_per_level=10, max_level=5)
        assert formula.level_for_xp(1_000) == 5
        assert formula.xp_for_level(6) == INT64_MAX

    def test_zero_per_level_puts_everyone_at_ceiling(self):
        formula = LinearFormula(xp_per_level=0, max_level=50)
        assert formula.xp_for_level(50) == 0
        assert formula.level_for_xp(0) == 50
        assert formula.level_for_xp(12345) == 50

    def test_rejects_range_overflow(self):
        with pytest.raises(ConfigurationError, match="exceeds the XP range"):
            LinearFormula(xp_per_level=10**18, max_level=100)

    @pytest.mark.parametrize("kwargs", [{"xp_per_level": -1}, {"xp_per_level": 1.5}, {"max_level": -3}])
    def test_rejects_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            LinearFormula(**kwargs)


class TestTableFormula:
    def test_lookup(self, small_table):
        assert small_table.level_for_xp(0) == 1
        assert small_table.level_for_xp(99) == 1
        assert small_table.level_for_xp(100) == 2
        assert small_table.level_for_xp(249) == 2
        assert small_table.level_for_xp(250) == 3
        assert small_table.level_for_xp(10_000) == 3

    def test_max_level_is_table_length(self, small_table):
        assert small_table.max_level == 3

    def test_past_ceiling_returns_last_floor(self, small_table):
        assert small_table.xp_for_level(7) == 250

    @pytest.mark.parametrize("floors", [(), (5, 100), (0, 100, 100), (0, 200, 150)])
    def test_rejects_invalid_floors(self, floors):
        with pytest.raises(ConfigurationError):
            TableFormula(floors=floors)


class TestCustomFormula:
    def test_evaluates_expression(self):
        formula = CustomFormula(expression="50 * (level - 1) ^ 2", max_level=100)
        assert formula.xp_for_level(2) == 50
        assert formula.xp_for_level(3) == 200
        assert formula.level_for_xp(199) == 2

    def test_uses_constants(self):
        formula = CustomFormula(expression="a * (level - 1)", constants={"a": 30}, max_level=100)
        assert formula.xp_for_level(4) == 90

    def test_constants_are_stored_sorted(self):
        formula = CustomFormula(expression="b + a * level", constants={"b": 1, "a": 2}, max_level=10)
        assert list(formula.constants) == ["a", "b"]

    def test_overflow_saturates_at_the_ceiling(self):
        # e^43 still fits in a signed 64-bit integer, e^44 does not
        formula = CustomFormula(expression="exp(level)", max_level=44)
        assert formula.xp_for_level(43) < INT64_MAX
        assert formula.xp_for_level(44) == INT64_MAX
        assert formula.level_for_xp(INT64_MAX) == 44

    @pytest.mark.parametrize(
        ("expression", "max_level"),
        [
            ("min(level, 5) * 100", 20),
            ("0 - level", 10),
            ("level / 1000", 10),
            ("exp(level)", 100),
        ],
    )
    def test_rejects_repeated_floors(self, expression, max_level):
        with pytest.raises(ConfigurationError, match="not above level"):
            CustomFormula(expression=expression, max_level=max_level)

    @pytest.mark.parametrize(
        "expression",
        ["", "level *", "level * x", "sqrt(0 - level)", "1 / (level - level)", "__import__('os')", "level.real"],
    )
    def test_rejects_bad_expressions_at_construction(self, expression):
        with pytest.raises(ConfigurationError):
            CustomFormula(expression=expression, max_level=10)


class TestSearchLevel:
    def test_matches_linear_scan(self):
        floors = [0, 0, 5, 5, 9, 20, 20, 21, 100]

        def xp_for_level(level):
            return floors[level - 1]

        for xp in range(0, 120):
            expected = max(level for level in range(1, len(floors) + 1) if floors[level - 1] <= xp)
            assert search_level(xp_for_level, xp, len(floors)) == expected

    def test_single_level(self):
        assert search_level(lambda level: 0, 500, 1) == 1


class TestClampXp:
    def test_floors_and_saturates(self):
        assert clamp_xp(12.9) == 12
        assert clamp_xp(-3.0) == 0
        assert clamp_xp(float("inf")) == INT64_MAX
        assert clamp_xp(1e30) == INT64_MAX

    def test_nan_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            clamp_xp(float("nan"))


class TestFormulaFromSettings:
    def test_type_is_case_insensitive(self, tmp_path):
        formula = formula_from_settings(FormulaSettings(type="linear"), tmp_path)
        assert isinstance(formula, LinearFormula)
        assert formula.xp_per_level == 100

    def test_defaults_to_exponential(self, tmp_path):
        formula = formula_from_settings(FormulaSettings(), tmp_path)
        assert isinstance(formula, ExponentialFormula)
        assert (formula.base_xp, formula.exponent, formula.max_level) == (100.0, 1.7, 100_000)

    def test_table_creates_default_file(self, tmp_path):
        formula = formula_from_settings(FormulaSettings(type="TABLE"), tmp_path)
        assert isinstance(formula, TableFormula)
        assert formula.floors == (0, 100, 250, 450, 700, 1000)
        assert (tmp_path / "levels.csv").exists()

    def test_custom(self, tmp_path):
        settings = FormulaSettings.model_validate(
            {"type": "CUSTOM", "custom": {"xp_for_level": "k * (level - 1)", "constants": {"k": 10}, "max_level": 50}}
        )
        formula = formula_from_settings(settings, tmp_path)
        assert isinstance(formula, CustomFormula)
        assert formula.xp_for_level(3) == 20

    def test_unknown_type(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown formula type"):
            formula_from_settings(FormulaSettings(type="QUADRATIC"), tmp_path)

    def test_parse_round_trips_enum(self):
        assert FormulaType.parse(" Table ") is FormulaType.TABLE
