"""
Tests for the disease risk rule engine — thresholds, horizon and precedence.
"""

from datetime import timedelta

from conftest import NOW

from alerts.schemas import DiseaseRisk, RiskLevel
from weather.client import ForecastPeriod
from weather.rules import DISEASE_RULES, DiseaseRule, evaluate_disease_risk


def _periods(count, temperature=15.0, humidity=50.0, conditions=("Clouds",), start=timedelta(hours=3)):
    return [
        ForecastPeriod(
            timestamp=NOW + start + timedelta(hours=3 * i),
            temperature_c=temperature,
            humidity_percent=humidity,
            conditions=conditions,
        )
        for i in range(count)
    ]


def test_ten_rules_in_order():
    names = [rule.risk.disease_name for rule in DISEASE_RULES]
    assert len(names) == 10
    assert names[0] == "Haemorrhagic Septicaemia (HS)"
    assert names[-1] == "Mastitis"


def test_no_match_returns_none():
    assert evaluate_disease_risk(_periods(40), now=NOW) is None
    assert evaluate_disease_risk([], now=NOW) is None


def test_first_matching_rule_wins():
    # humid and rainy: satisfies HS (rule 1) and Black Quarter (rule 3)
    forecast = _periods(6, humidity=85, conditions=("Rain",))

    risk = evaluate_disease_risk(forecast, now=NOW)

    assert risk.disease_name == "Haemorrhagic Septicaemia (HS)"
    assert risk.risk_level is RiskLevel.HIGH
    assert risk.preventive_measures[0] == "Ensure animals are vaccinated against HS."


def test_hs_only_counts_next_three_days():
    forecast = _periods(6, humidity=85, start=timedelta(days=3))
    assert evaluate_disease_risk(forecast, now=NOW) is None


def test_period_counts_are_strict():
    # HS needs more than four humid periods
    assert evaluate_disease_risk(_periods(4, humidity=85), now=NOW) is None
    assert evaluate_disease_risk(_periods(5, humidity=85), now=NOW).disease_name.startswith("Haemorrhagic")


def test_black_quarter_on_four_rainy_periods():
    risk = evaluate_disease_risk(_periods(4, conditions=("Rain",)), now=NOW)
    assert risk.disease_name == "Black Quarter (BQ)"


def test_anthrax_on_three_rainy_periods():
    risk = evaluate_disease_risk(_periods(3, conditions=("Clouds", "light RAIN")), now=NOW)
    assert risk.disease_name == "Anthrax"
    assert risk.risk_level is RiskLevel.HIGH


def test_fmd_on_hot_humid_forecast():
    risk = evaluate_disease_risk(_periods(5, temperature=30, humidity=75), now=NOW)
    assert risk.disease_name == "Foot and Mouth Disease (FMD)"
    assert risk.risk_level is RiskLevel.MODERATE


def test_heat_stress():
    risk = evaluate_disease_risk(_periods(4, temperature=38, humidity=62), now=NOW)
    assert risk.disease_name == "Heat Stress Disorders"


def test_rain_is_case_insensitive_substring():
    assert ForecastPeriod(NOW, 20, 50, ("Thunderstorm", "rain")).is_rain
    assert not ForecastPeriod(NOW, 20, 50, ("Drizzle",)).is_rain


def test_custom_rule_list():
    risk = DiseaseRisk("Test Disease", RiskLevel.LOW, "cold snap")
    rules = [DiseaseRule(predicate=lambda p: p.temperature_c < 0, min_periods_exclusive=0, risk=risk)]

    assert evaluate_disease_risk(_periods(1, temperature=-5), now=NOW, rules=rules) is risk
