from amu.drug_classes import DrugClass, build_breakdown, classify_drug
from amu.usage import DrugUsage


class TestClassifyDrug:
    def test_name_lookup_with_formulation(self):
        assert classify_drug("Oxytetracycline LA 20%") is DrugClass.ACCESS
        assert classify_drug("Enrofloxacin 10% inj") is DrugClass.WATCH
        assert classify_drug("Colistin sulphate") is DrugClass.RESERVE

    def test_case_insensitive(self):
        assert classify_drug("TIGECYCLINE") is DrugClass.RESERVE
        assert classify_drug("polymyxin B sulfate") is DrugClass.RESERVE

    def test_recorded_class_wins_over_name(self):
        assert classify_drug("Amoxicillin", "watch") is DrugClass.WATCH

    def test_recorded_unclassified_falls_back_to_name(self):
        assert classify_drug("Ceftiofur", "Unclassified") is DrugClass.WATCH

    def test_unknown_drug(self):
        assert classify_drug("Vitamin AD3") is DrugClass.UNCLASSIFIED
        assert classify_drug("") is DrugClass.UNCLASSIFIED
        assert classify_drug(None) is DrugClass.UNCLASSIFIED


def test_breakdown_excludes_unclassified_from_ratio():
    breakdown = build_breakdown(
        [
            DrugUsage("Amoxicillin", None, 2),
            DrugUsage("Tylosin", None, 1),
            DrugUsage("Mystery tonic", None, 7),
            DrugUsage("Custom blend", "Reserve", 1),
        ]
    )
    assert breakdown.as_dict() == {"access": 2, "watch": 1, "reserve": 1, "unclassified": 7}
    assert breakdown.classified_total == 4
    assert breakdown.critical_ratio == 0.5


def test_empty_breakdown_ratio_is_zero():
    assert build_breakdown([]).critical_ratio == 0.0
