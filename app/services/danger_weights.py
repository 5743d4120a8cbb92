"""
Danger weights per crime category.

Two fixed tables:
- DANGER_WEIGHTS (1-10) feed heatmap severity and nearby-alert danger scores.
- DEFAULT_SEVERITY (1-5) is only used to fill in a report's severity when the
  reporter did not supply one.
"""

from typing import Dict, Optional, Union

from app.models.report import CrimeCategory

DANGER_WEIGHTS: Dict[CrimeCategory, int] = {
    CrimeCategory.HOMICIDE: 10,
    CrimeCategory.KIDNAPPING: 9,
    CrimeCategory.WANTED_PERSON: 8,
    CrimeCategory.ROBBERY: 7,
    CrimeCategory.THREAT: 6,
    CrimeCategory.SUSPECT_SIGHTING: 5,
    CrimeCategory.SUSPICIOUS_ACTIVITY: 3,
    CrimeCategory.THEFT: 3,
}

DEFAULT_SEVERITY: Dict[CrimeCategory, int] = {
    CrimeCategory.HOMICIDE: 5,
    CrimeCategory.KIDNAPPING: 5,
    CrimeCategory.WANTED_PERSON: 4,
    CrimeCategory.ROBBERY: 3,
    CrimeCategory.THREAT: 2,
    CrimeCategory.SUSPECT_SIGHTING: 2,
    CrimeCategory.SUSPICIOUS_ACTIVITY: 1,
    CrimeCategory.THEFT: 1,
}

UNKNOWN_WEIGHT = 1

# Aggregate danger thresholds shared by heatmap cells and nearby alerts
HIGH_DANGER_THRESHOLD = 150
MEDIUM_DANGER_THRESHOLD = 50


def _as_category(category: Union[CrimeCategory, str, None]) -> Optional[CrimeCategory]:
    if category is None or isinstance(category, CrimeCategory):
        return category
    try:
        return CrimeCategory(category)
    except ValueError:
        return None


def danger_weight(category: Union[CrimeCategory, str, None]) -> int:
    return DANGER_WEIGHTS.get(_as_category(category), UNKNOWN_WEIGHT)


def default_severity(category: Union[CrimeCategory, str, None]) -> int:
    return DEFAULT_SEVERITY.get(_as_category(category), UNKNOWN_WEIGHT)


def classify_danger(total_danger_score: int) -> str:
    """Map an aggregate danger score to low / medium / high (strict thresholds)."""
    if total_danger_score > HIGH_DANGER_THRESHOLD:
        return "high"
    if total_danger_score > MEDIUM_DANGER_THRESHOLD:
        return "medium"
    return "low"
