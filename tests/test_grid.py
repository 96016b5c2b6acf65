"""Tests for parameter grid generation and seasonal period resolution."""

import pytest

from forecast_optimizer.config import FREQUENCY_KEY, SEASONAL_PERIODS_KEY, InMemorySettingsStore
from forecast_optimizer.models.registry import create_default_registry
from forecast_optimizer.optimization.grid import (
    ParameterGridGenerator, SeasonalPeriodResolver, iter_cartesian, parameter_key
)


@pytest.fixture
def generator():
    return ParameterGridGenerator(create_default_registry())


class TestIterCartesian:

    def test_last_parameter_varies_fastest(self):
        combos = list(iter_cartesian({'a': [1, 2], 'b': ['x', 'y', 'z']}))
        assert combos == [
            {'a': 1, 'b': 'x'}, {'a': 1, 'b': 'y'}, {'a': 1, 'b': 'z'},
            {'a': 2, 'b': 'x'}, {'a': 2, 'b': 'y'}, {'a': 2, 'b': 'z'},
        ]

    def test_empty_choice_yields_nothing(self):
        assert list(iter_cartesian({'a': [1, 2], 'b': []})) == []

    def test_empty_grid_yields_one_empty_set(self):
        assert list(iter_cartesian({})) == [{}]


class TestParameterGridGenerator:

    def test_holt_winters_cardinality(self, generator):
        combos = generator.combinations('holt_winters', seasonal_period=12)
        assert len(combos) == 5 * 5 * 5 * 2
        assert all(c['seasonal_period'] == 12 for c in combos)

    def test_grid_sizes_are_products(self, generator):
        assert generator.count('simple_exponential_smoothing') == 9
        assert generator.count('double_exponential_smoothing') == 9 * 8
        assert generator.count('moving_average') == 12

    def test_seasonal_model_skipped_without_seasonality(self, generator):
        assert generator.combinations('holt_winters', seasonal_period=1) == []
        assert generator.combinations('seasonal_naive', seasonal_period=1) == []

    def test_non_seasonal_model_ignores_period(self, generator):
        combos = generator.combinations('simple_exponential_smoothing', seasonal_period=1)
        assert len(combos) == 9
        assert all('seasonal_period' not in c for c in combos)

    def test_auto_order_model(self, generator):
        assert generator.combinations('arima', seasonal_period=4) == [{'auto': True, 'seasonal_period': 4}]

    def test_parameter_free_model_has_one_implicit_set(self, generator):
        assert generator.combinations('linear_trend') == [{}]

    def test_opt_out_model_yields_nothing(self, registry):
        generator = ParameterGridGenerator(registry)
        assert generator.combinations('opt_out') == []

    def test_explicit_configs_used_verbatim(self, registry):
        spec = registry.get_spec('offset')
        spec.optimization_configs = [{'offset': 3}, {'offset': -3}]
        generator = ParameterGridGenerator(registry)
        assert generator.combinations('offset') == [{'offset': 3}, {'offset': -3}]

    def test_override_grid_replaces_declared_space(self, generator):
        combos = generator.combinations(
            'holt_winters', seasonal_period=4,
            override_grid={'alpha': [0.2, 0.3], 'type': ['additive']}
        )
        assert combos == [
            {'alpha': 0.2, 'type': 'additive', 'seasonal_period': 4},
            {'alpha': 0.3, 'type': 'additive', 'seasonal_period': 4},
        ]
        # the registered grid is untouched
        assert generator.count('holt_winters', seasonal_period=4) == 250

    def test_unknown_model(self, generator):
        with pytest.raises(KeyError):
            generator.combinations('prophet')

    def test_resolves_period_from_settings(self):
        settings = InMemorySettingsStore({SEASONAL_PERIODS_KEY: 4})
        generator = ParameterGridGenerator(create_default_registry(), SeasonalPeriodResolver(settings))
        assert generator.combinations('seasonal_moving_average')[0]['seasonal_period'] == 4


class TestSeasonalPeriodResolver:

    def test_explicit_wins(self):
        settings = InMemorySettingsStore({SEASONAL_PERIODS_KEY: 4, FREQUENCY_KEY: 'weekly'})
        assert SeasonalPeriodResolver(settings).resolve(explicit=6, frequency='quarterly') == 6

    def test_frequency_mapping(self):
        resolver = SeasonalPeriodResolver()
        assert resolver.resolve(frequency='daily') == 7
        assert resolver.resolve(frequency='weekly') == 7
        assert resolver.resolve(frequency='Monthly') == 12
        assert resolver.resolve(frequency='quarterly') == 4
        assert resolver.resolve(frequency='yearly') == 1

    def test_settings_period_then_frequency(self):
        settings = InMemorySettingsStore({FREQUENCY_KEY: 'quarterly'})
        assert SeasonalPeriodResolver(settings).resolve() == 4

        settings.set(SEASONAL_PERIODS_KEY, 52)
        assert SeasonalPeriodResolver(settings).resolve() == 52

    def test_numeric_string_setting(self):
        settings = InMemorySettingsStore({SEASONAL_PERIODS_KEY: "12"})
        assert SeasonalPeriodResolver(settings, default=7).resolve() == 12

    def test_corrupt_setting_falls_through(self, caplog):
        settings = InMemorySettingsStore()
        settings.set_raw(SEASONAL_PERIODS_KEY, '{not json')
        settings.set_raw(FREQUENCY_KEY, '"weekly"')
        with caplog.at_level('WARNING'):
            assert SeasonalPeriodResolver(settings).resolve() == 7
        assert any(SEASONAL_PERIODS_KEY in record.getMessage() for record in caplog.records)

    def test_invalid_values_fall_back_to_default(self):
        settings = InMemorySettingsStore({SEASONAL_PERIODS_KEY: -3, FREQUENCY_KEY: 'hourly'})
        resolver = SeasonalPeriodResolver(settings)
        assert resolver.resolve(explicit=0, frequency='fortnightly') == 12


def test_parameter_key_is_order_independent():
    assert parameter_key({'a': 1, 'b': 2}) == parameter_key({'b': 2, 'a': 1})
    assert parameter_key({'a': 1}) != parameter_key({'a': 2})
