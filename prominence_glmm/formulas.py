"""
Model formulas in lme4/brms notation.

Each predictor gets the same structure:

    Prominence ~ 1 + z_x + (1 + z_x | Speaker) + (1 | Sentence) + (1 | Word)

The formula object is what `model.build_model` reads; the string form is
what gets logged and stored alongside the results.
"""

from dataclasses import dataclass
from typing import Tuple

from .config import INTERCEPT_GROUPS, RESPONSE_COL, SLOPE_GROUP


@dataclass(frozen=True)
class ModelFormula:
    response: str
    predictor: str
    slope_group: str = SLOPE_GROUP
    intercept_groups: Tuple[str, ...] = tuple(INTERCEPT_GROUPS)

    @property
    def groups(self) -> Tuple[str, ...]:
        return (self.slope_group,) + tuple(self.intercept_groups)

    def __str__(self) -> str:
        terms = [
            "1",
            self.predictor,
            f"(1 + {self.predictor} | {self.slope_group})",
        ]
        terms += [f"(1 | {g})" for g in self.intercept_groups]
        return f"{self.response} ~ " + " + ".join(terms)


def build_formula(predictor: str, response: str = RESPONSE_COL) -> ModelFormula:
    return ModelFormula(response=response, predictor=predictor)


def build_formulas(predictors, response: str = RESPONSE_COL):
    formulas = [build_formula(p, response=response) for p in predictors]
    for f in formulas:
        print(f"  {f}")
    return formulas
