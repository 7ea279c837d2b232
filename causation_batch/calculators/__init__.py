"""Per process type charge calculators and their registry."""

from causation_batch.calculators.base import (
    CalculationContext,
    CalculatorRegistry,
    CausationCalculator,
    Charge,
    LoanAccrual,
    ReceivableSplit,
    default_calculator_registry,
)

__all__ = [
    "CalculationContext",
    "CalculatorRegistry",
    "CausationCalculator",
    "Charge",
    "LoanAccrual",
    "ReceivableSplit",
    "default_calculator_registry",
]
