"""
WHO AWaRe classification for veterinary antimicrobials.

Access: first-line, low resistance potential
Watch: higher resistance potential, stewardship priority
Reserve: last resort for multi-drug resistant infections

Events may carry an explicit class recorded by the prescribing vet; when
absent the drug name is looked up here. Anything unknown is Unclassified.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from amu.usage import DrugUsage


class DrugClass(str, Enum):
    ACCESS = "Access"
    WATCH = "Watch"
    RESERVE = "Reserve"
    UNCLASSIFIED = "Unclassified"


AWARE_LOOKUP: dict[str, DrugClass] = {
    # Access
    "amoxicillin": DrugClass.ACCESS,
    "ampicillin": DrugClass.ACCESS,
    "benzylpenicillin": DrugClass.ACCESS,
    "penicillin": DrugClass.ACCESS,
    "cloxacillin": DrugClass.ACCESS,
    "cefalexin": DrugClass.ACCESS,
    "cephalexin": DrugClass.ACCESS,
    "oxytetracycline": DrugClass.ACCESS,
    "tetracycline": DrugClass.ACCESS,
    "doxycycline": DrugClass.ACCESS,
    "gentamicin": DrugClass.ACCESS,
    "sulfadimidine": DrugClass.ACCESS,
    "sulfamethoxazole": DrugClass.ACCESS,
    "trimethoprim": DrugClass.ACCESS,
    "metronidazole": DrugClass.ACCESS,
    "spectinomycin": DrugClass.ACCESS,
    # Watch
    "enrofloxacin": DrugClass.WATCH,
    "ciprofloxacin": DrugClass.WATCH,
    "marbofloxacin": DrugClass.WATCH,
    "norfloxacin": DrugClass.WATCH,
    "ceftiofur": DrugClass.WATCH,
    "cefquinome": DrugClass.WATCH,
    "ceftriaxone": DrugClass.WATCH,
    "cefoperazone": DrugClass.WATCH,
    "tylosin": DrugClass.WATCH,
    "tilmicosin": DrugClass.WATCH,
    "tulathromycin": DrugClass.WATCH,
    "erythromycin": DrugClass.WATCH,
    "azithromycin": DrugClass.WATCH,
    "streptomycin": DrugClass.WATCH,
    "neomycin": DrugClass.WATCH,
    "kanamycin": DrugClass.WATCH,
    "lincomycin": DrugClass.WATCH,
    "vancomycin": DrugClass.WATCH,
    # Reserve
    "colistin": DrugClass.RESERVE,
    "polymyxin b": DrugClass.RESERVE,
    "fosfomycin": DrugClass.RESERVE,
    "linezolid": DrugClass.RESERVE,
    "tigecycline": DrugClass.RESERVE,
    "daptomycin": DrugClass.RESERVE,
}

# Longest names first so "oxytetracycline" wins over "tetracycline".
_LOOKUP_ORDER = sorted(AWARE_LOOKUP, key=len, reverse=True)


def classify_drug(drug_name: str | None, recorded_class: str | None = None) -> DrugClass:
    """Resolve a drug's AWaRe class, preferring the class recorded on the event."""
    if recorded_class:
        try:
            recorded = DrugClass(recorded_class.strip().capitalize())
        except ValueError:
            recorded = DrugClass.UNCLASSIFIED
        if recorded is not DrugClass.UNCLASSIFIED:
            return recorded

    name = (drug_name or "").strip().lower()
    if not name:
        return DrugClass.UNCLASSIFIED
    for known in _LOOKUP_ORDER:
        if known in name:
            return AWARE_LOOKUP[known]
    return DrugClass.UNCLASSIFIED


@dataclass(frozen=True)
class DrugClassBreakdown:
    access: int = 0
    watch: int = 0
    reserve: int = 0
    unclassified: int = 0

    @property
    def classified_total(self) -> int:
        return self.access + self.watch + self.reserve

    @property
    def critical_count(self) -> int:
        return self.watch + self.reserve

    @property
    def critical_ratio(self) -> float:
        """Watch+Reserve share of classified events; unclassified are excluded."""
        total = self.classified_total
        return self.critical_count / total if total else 0.0

    def as_dict(self) -> dict[str, int]:
        return {
            "access": self.access,
            "watch": self.watch,
            "reserve": self.reserve,
            "unclassified": self.unclassified,
        }


def build_breakdown(usages: Iterable[DrugUsage]) -> DrugClassBreakdown:
    counts = {cls: 0 for cls in DrugClass}
    for usage in usages:
        counts[classify_drug(usage.drug_name, usage.drug_class)] += usage.count
    return DrugClassBreakdown(
        access=counts[DrugClass.ACCESS],
        watch=counts[DrugClass.WATCH],
        reserve=counts[DrugClass.RESERVE],
        unclassified=counts[DrugClass.UNCLASSIFIED],
    )
