import json
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from .errors import MalformedAnalysisResult
from .models import ExtractedAnalysis, FinancialAnalysis


def parse_analysis(
    raw_text: str,
    client_id: str,
    id_factory: Optional[Callable[[], str]] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> FinancialAnalysis:
    """Validate the raw service output and stamp it with id, client and date.

    Nothing is returned unless the whole payload validates; the identity
    fields are never taken from the service.
    """
    try:
        payload = json.loads(raw_text)
    except (TypeError, ValueError) as exc:
        raise MalformedAnalysisResult(f"Analysis result is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedAnalysisResult("Analysis result must be a JSON object")

    try:
        extracted = ExtractedAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise MalformedAnalysisResult(
            f"Analysis result does not match the schema ({exc.error_count()} errors): "
            f"{_first_error(exc)}"
        ) from exc

    new_id = id_factory() if id_factory else uuid.uuid4().hex
    created = now() if now else datetime.now(timezone.utc)
    return FinancialAnalysis(
        **extracted.model_dump(),
        id=new_id,
        client_id=client_id,
        date=created,
    )


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location}: {err.get('msg', '')}"
