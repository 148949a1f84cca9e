"""
Advisory prompt contract.

The system prompt pins the JSON schema the advisory model must return; a
single few-shot exchange shows a worked example. ``build_messages`` turns
an ``AdvisoryRequest`` into the message list sent to the LLM client.
"""

from __future__ import annotations

import json

from ndc_navigator.utils.models import AdvisoryRequest

SYSTEM_PROMPT = """You are a pharmacy dispensing assistant. Given a drug, a prescription \
and the packages available for that drug, recommend which package code to dispense and how \
many units.

Key principles:
- Only recommend packages listed in availablePackages with isActive = true.
- quantityToDispense must be at least quantityNeeded and a whole number of packages.
- An exact size match always beats any option with waste.
- Prefer options that minimize waste, then options that minimize the number of containers.
- Consider common pharmacy practice (unit-of-use bottles, blister packs) in your reasoning.

Return JSON with exactly this structure:
{
  "primaryRecommendation": {
    "code": "string, package code from availablePackages",
    "size": number,
    "unit": "string",
    "quantityToDispense": number,
    "reasoning": "string",
    "confidenceScore": number between 0 and 1
  },
  "alternatives": [
    {"code": "string", "size": number, "unit": "string", "quantityToDispense": number,
     "reasoning": "string", "confidenceScore": number}
  ],
  "reasoning": {
    "factors": ["string"],
    "considerations": ["string"],
    "rationale": "string"
  },
  "costEfficiency": {
    "estimatedWaste": number,
    "rating": "low" | "medium" | "high"
  }
}"""

FEW_SHOT_REQUEST = {
    "drug": {"genericName": "LISINOPRIL", "id": "314076", "dosageForm": "TABLET", "strength": "10 MG"},
    "prescription": {
        "directions": "Take 1 tablet by mouth daily for 90 days",
        "daysSupply": 90,
        "quantityNeeded": 90,
    },
    "availablePackages": [
        {"code": "68180-0513-01", "size": 100, "unit": "TABLET", "labeler": "Lupin", "isActive": True},
        {"code": "68180-0513-03", "size": 30, "unit": "TABLET", "labeler": "Lupin", "isActive": True},
        {"code": "68180-0513-09", "size": 90, "unit": "TABLET", "labeler": "Lupin", "isActive": True},
    ],
}

FEW_SHOT_RESPONSE = {
    "primaryRecommendation": {
        "code": "68180-0513-09",
        "size": 90,
        "unit": "TABLET",
        "quantityToDispense": 90,
        "reasoning": "The 90-count bottle matches the 90 tablets needed exactly with no waste.",
        "confidenceScore": 0.97,
    },
    "alternatives": [
        {
            "code": "68180-0513-03",
            "size": 30,
            "unit": "TABLET",
            "quantityToDispense": 90,
            "reasoning": "Three 30-count bottles also give 90 tablets but add handling.",
            "confidenceScore": 0.8,
        }
    ],
    "reasoning": {
        "factors": ["Exact quantity match", "Single container"],
        "considerations": ["100-count bottle would waste 10 tablets"],
        "rationale": "An exact-size package avoids waste and repackaging.",
    },
    "costEfficiency": {"estimatedWaste": 0, "rating": "high"},
}


def build_user_prompt(request: AdvisoryRequest) -> str:
    drug = request.drug
    lines = [
        "Drug:",
        f"- Generic name: {drug.generic_name}",
        f"- Identifier: {drug.id}",
    ]
    if drug.brand_name:
        lines.append(f"- Brand name: {drug.brand_name}")
    if drug.dosage_form:
        lines.append(f"- Dosage form: {drug.dosage_form}")
    if drug.strength:
        lines.append(f"- Strength: {drug.strength}")

    rx = request.prescription
    lines += [
        "",
        "Prescription:",
        f"- Directions: {rx.directions}",
        f"- Days supply: {rx.days_supply}",
        f"- Quantity needed: {rx.quantity_needed}",
        "",
        "Available packages:",
    ]
    for pkg in request.available_packages:
        status = "active" if pkg.is_active else "inactive"
        lines.append(f"- {pkg.code}: {pkg.size:g} {pkg.unit} ({pkg.labeler or 'unknown labeler'}, {status})")

    if request.context:
        lines += ["", "Context:"]
        if request.context.preferences:
            lines.append(f"- Preferences: {', '.join(request.context.preferences)}")
        if request.context.clinical_notes:
            lines.append(f"- Clinical notes: {request.context.clinical_notes}")

    lines += ["", "Request JSON:", json.dumps(request.to_payload())]
    return "\n".join(lines)


def build_messages(request: AdvisoryRequest) -> list[dict[str, str]]:
    few_shot = AdvisoryRequest.model_validate(FEW_SHOT_REQUEST)
    return [
        {"role": "user", "content": build_user_prompt(few_shot)},
        {"role": "assistant", "content": json.dumps(FEW_SHOT_RESPONSE)},
        {"role": "user", "content": build_user_prompt(request)},
    ]
