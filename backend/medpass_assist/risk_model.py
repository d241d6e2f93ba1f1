from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RiskInput:
    age: float = 0
    gender: str = "unknown"
    systolic: float = 0
    diastolic: float = 0
    glucose: float = 0
    cholesterol: float = 0
    weight: float = 0
    height: float = 0
    smoker: bool = False
    activity_level: str = "low"


@dataclass
class RiskResult:
    risk_level: str
    conditions: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    bmi: float = 0.0
    risk_score: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level,
            "conditions": self.conditions,
            "recommendations": self.recommendations,
            "metrics": {"bmi": self.bmi, "risk_score": self.risk_score},
        }


def body_mass_index(weight_kg: float, height_cm: float) -> float:
    if height_cm <= 0:
        return 0.0
    return round(weight_kg / ((height_cm / 100) ** 2), 1)


def _tiered(value: float, high: float, elevated: float) -> int:
    if value >= high:
        return 2
    if value >= elevated:
        return 1
    return 0


def predict_risk(data: RiskInput) -> RiskResult:
    bmi = body_mass_index(data.weight, data.height)
    bp_high = data.systolic >= 140 or data.diastolic >= 90
    bp_elevated = data.systolic >= 130 or data.diastolic >= 85
    low_activity = (data.activity_level or "").lower() == "low"

    score = _tiered(data.age, 60, 45)
    if (data.gender or "").lower() == "male" and data.age >= 50:
        score += 1
    score += 2 if bp_high else 1 if bp_elevated else 0
    score += _tiered(data.glucose, 126, 110)
    score += _tiered(data.cholesterol, 240, 200)
    score += _tiered(bmi, 30, 25)
    if data.smoker:
        score += 2
    if low_activity:
        score += 1

    if score >= 6:
        level = "High"
    elif score >= 3:
        level = "Moderate"
    else:
        level = "Low"

    conditions: list[str] = []
    if bp_elevated:
        conditions.append("Hypertension risk")
    if data.glucose >= 110:
        conditions.append("Diabetes risk")
    if data.cholesterol >= 200:
        conditions.append("Hypercholesterolemia risk")
    if bmi >= 25:
        conditions.append("Overweight/Obesity risk")

    recommendations: list[str] = []
    if low_activity:
        recommendations.append("Exercise 30 minutes daily")
    if data.glucose >= 110:
        recommendations.append("Limit processed sugar and refined carbs")
    if data.cholesterol >= 200:
        recommendations.append("Adopt a heart-healthy diet (more fiber, less saturated fat)")
    if bp_elevated:
        recommendations.append("Monitor blood pressure weekly")
    if bmi >= 25:
        recommendations.append("Aim for 5-10% weight reduction over 6 months")
    if data.smoker:
        recommendations.append("Enroll in a smoking cessation program")

    return RiskResult(
        risk_level=level,
        conditions=conditions,
        recommendations=recommendations,
        bmi=bmi,
        risk_score=score,
    )
