"""
Live Check
==========
Integration run against the real RxNorm and openFDA APIs (and the advisory
model when FEATURE_ADVISORY / ANTHROPIC_API_KEY are set).

Run with: python -m ndc_navigator.live_check [--case N] [--normalize-only]

These hit the network. The unit suite under tests/ mocks every upstream.
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from ndc_navigator.pipeline import build_engine
from ndc_navigator.utils.config import Settings
from ndc_navigator.utils.models import PrescriptionRequirement
from ndc_navigator.utils.result import Err

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------

CHECK_CASES = [
    {
        "name": "Exact name, daily tablet",
        "drug": "lisinopril 10 MG Oral Tablet",
        "requirement": {"dose_per_administration": 1, "frequency_per_day": 1, "days_supply": 30},
        "expected_dosage_form": "TABLET",
        "expected_total": 30,
    },
    {
        "name": "Misspelled name (spelling strategy)",
        "drug": "metforminn",
        "requirement": {"dose_per_administration": 1, "frequency_per_day": 2, "days_supply": 30},
        "expected_total": 60,
    },
    {
        "name": "Partial name (approximate strategy)",
        "drug": "atorvastatin 20",
        "requirement": {"dose_per_administration": 1, "frequency_per_day": 1, "days_supply": 90},
        "expected_total": 90,
    },
    {
        "name": "Capsule, fractional total",
        "drug": "amoxicillin 500 MG Oral Capsule",
        "requirement": {"dose_per_administration": 1.5, "frequency_per_day": 2, "days_supply": 10},
        "expected_dosage_form": "CAPSULE",
        "expected_total": 30,
    },
    {
        "name": "Identifier input",
        "drug": "314076",
        "requirement": {"dose_per_administration": 2, "frequency_per_day": 2, "days_supply": 14},
        "expected_total": 56,
    },
]


def run_check(engine, case: dict, normalize_only: bool = False) -> bool:
    """
    Run a single case.
    Returns True if basic assertions pass.
    """
    print(f"\n{'='*60}")
    print(f"CASE: {case['name']}")
    print(f"{'='*60}")

    if normalize_only:
        resolution = engine.normalize(case["drug"])
        if isinstance(resolution, Err):
            print(f"FAIL: {resolution.kind.value}: {resolution.message}")
            return False
        identity = resolution.value.identity
        print(f"Identity: {identity.canonical_name} ({identity.id}) via {resolution.value.method.value}")
        print(f"Confidence: {identity.confidence:.2%}")
        return True

    result = engine.calculate(case["drug"], PrescriptionRequirement(**case["requirement"]))
    if isinstance(result, Err):
        print(f"FAIL: {result.kind.value}: {result.message}")
        for step in result.explanations:
            print(f"  [{step.step}] {step.description}")
        return False

    calc = result.value
    primary = calc.recommended_packages[0]
    print(f"Identity: {calc.identity.canonical_name} ({calc.identity.id})")
    print(f"Confidence: {calc.identity.confidence:.2%}  Dosage form: {calc.identity.dosage_form}")
    print(f"Total quantity: {calc.total_quantity}")
    print(
        f"Primary: {primary.code} x{primary.number_of_packages} "
        f"({primary.size:g} {primary.unit}, waste {primary.waste:g}) [{primary.source.value}]"
    )
    print(f"Excluded: {len(calc.excluded)}  Warnings: {calc.warnings or 'none'}")
    print(f"Elapsed: {calc.execution_time_ms:.0f} ms")

    passed = True
    if case.get("expected_total") and calc.total_quantity != case["expected_total"]:
        print(f"ASSERTION FAIL: Expected total {case['expected_total']}, got {calc.total_quantity}")
        passed = False
    if case.get("expected_dosage_form") and calc.identity.dosage_form != case["expected_dosage_form"]:
        print(
            f"ASSERTION FAIL: Expected dosage form {case['expected_dosage_form']}, "
            f"got {calc.identity.dosage_form}"
        )
        passed = False

    if passed:
        print("PASS")
    return passed


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Run live NDC navigator checks")
    parser.add_argument("--normalize-only", action="store_true", help="Only resolve names")
    parser.add_argument("--case", type=int, help="Run only case N (0-indexed)")
    args = parser.parse_args()

    load_dotenv()
    engine = build_engine(Settings.from_env())

    cases = CHECK_CASES
    if args.case is not None:
        cases = [CHECK_CASES[args.case]]

    results = [run_check(engine, case, normalize_only=args.normalize_only) for case in cases]

    print(f"\n{'='*60}")
    print(f"Results: {sum(results)}/{len(results)} passed")
    if not all(results):
        sys.exit(1)


if __name__ == "__main__":
    main()
