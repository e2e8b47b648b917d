"""
Prescription image extraction via OpenAI vision.
Sends the uploaded image and asks for a JSON list of medicines. Any
failure (network, timeout, malformed JSON) degrades to an empty result
with `error` set; the upload itself still goes ahead.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from openai import OpenAI

from medvault.config import Config

logger = logging.getLogger("medvault.extraction")

_client = None


def _get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=Config.OPENAI_API_KEY,
            timeout=Config.EXTRACTION_TIMEOUT_SECONDS,
            max_retries=Config.EXTRACTION_MAX_RETRIES,
        )
    return _client


EXTRACTION_PROMPT = """You are a medical prescription reader. Read the attached prescription image and extract every prescribed medicine.

Return a JSON object with exactly this structure:
{
    "hospital_name": "hospital or clinic name if printed, else null",
    "prescription_date": "date written on the prescription as YYYY-MM-DD, else null",
    "medicines": [
        {
            "medicine_name": "drug name as written",
            "dosage": "strength if mentioned (e.g. '500mg'), else null",
            "frequency": "how often (e.g. 'twice daily', 'BD', '1-0-1'), else null",
            "duration": "number of days as an integer if stated, otherwise the text as written (e.g. 'until finished'), else null",
            "prescribed_date": "start date for this medicine as YYYY-MM-DD if different from the prescription date, else null"
        }
    ]
}

RULES:
- If information is not available, use null for that field.
- Only extract what is clearly present. Do NOT infer or guess.
- Handwriting and scan noise may cause typos in drug names; correct only obvious ones.
"""


@dataclass
class ExtractionResult:
    medicines: list = field(default_factory=list)   # raw dicts, normalized downstream
    hospital_name: Optional[str] = None
    prescription_date: Optional[str] = None
    error: Optional[str] = None


def _parse_response(content: str) -> ExtractionResult:
    data = json.loads(content)
    if isinstance(data, list):
        return ExtractionResult(medicines=data)
    if not isinstance(data, dict):
        raise ValueError("Extraction response is not a JSON object.")
    medicines = data.get("medicines") or data.get("medications") or []
    if not isinstance(medicines, list):
        medicines = []
    return ExtractionResult(
        medicines=medicines,
        hospital_name=data.get("hospital_name") if isinstance(data.get("hospital_name"), str) else None,
        prescription_date=data.get("prescription_date") if isinstance(data.get("prescription_date"), str) else None,
    )


def extract_medicines(image_bytes: bytes, mime_type: str) -> ExtractionResult:
    """Run the vision model over one document image."""
    if not mime_type or not mime_type.startswith("image/"):
        return ExtractionResult(error=f"Unsupported document type for extraction: {mime_type}")

    encoded = base64.b64encode(image_bytes).decode("ascii")
    try:
        client = _get_client()
        response = client.chat.completions.create(
            model=Config.EXTRACTION_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You are a prescription reader. Return valid JSON only.",
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                        },
                    ],
                },
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        result = _parse_response(response.choices[0].message.content or "")
    except Exception as e:
        logger.error("Prescription extraction failed: %s", e)
        return ExtractionResult(error=str(e))

    logger.info("Extracted %d medicine(s) from prescription image.", len(result.medicines))
    return result
