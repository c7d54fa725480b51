import json
from collections.abc import Iterable, Mapping

from .types import FatalError, NotFound, Outcome, RawResponse, Success, ValidationError

DEFAULT_SUCCESS_STATUSES = frozenset({200, 201, 204})
VALIDATION_STATUSES = frozenset({400, 422})


def parse_field_errors(body: bytes | str) -> dict[str, list[str]] | None:
    """Best-effort parse of a validation error body. Returns None if the shape is unknown.

    Accepted shapes:
      {"errors": {"name": ["Name is required"], "age": "must be positive"}}
      {"errors": [{"code": "...", "message": "...", "target": "name"}, ...]}
    """
    try:
        doc = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(doc, dict):
        return None
    errors = doc.get("errors")
    if isinstance(errors, dict):
        result: dict[str, list[str]] = {}
        for name, msgs in errors.items():
            if isinstance(msgs, str):
                result[name] = [msgs]
            elif isinstance(msgs, list) and all(isinstance(m, str) for m in msgs):
                result[name] = list(msgs)
            else:
                return None
        return result
    if isinstance(errors, list) and errors:
        grouped: dict[str, list[str]] = {}
        for item in errors:
            if not isinstance(item, dict) or not isinstance(item.get("message"), str):
                return None
            target = item.get("target") or ""
            grouped.setdefault(str(target), []).append(item["message"])
        return grouped
    return None


class ResponseClassifier:
    def __init__(self, success_statuses: Iterable[int] = DEFAULT_SUCCESS_STATUSES):
        self.success_statuses = frozenset(success_statuses)

    def classify(
        self,
        status_code: int,
        body: bytes | str | None,
        method: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Outcome:
        raw = body.encode("utf-8") if isinstance(body, str) else (body or b"")
        hdrs = dict(headers or {})
        if method is not None and method.upper() == "HEAD" and status_code == 200:  # noqa: PLR2004
            return Success(RawResponse(status_code, hdrs, b""))
        if status_code in self.success_statuses:
            return Success(RawResponse(status_code, hdrs, raw))
        if status_code == 404:  # noqa: PLR2004
            return NotFound()
        text = raw.decode("utf-8", errors="replace")
        if status_code in VALIDATION_STATUSES:
            field_errors = parse_field_errors(raw) if raw else None
            if field_errors is not None:
                return ValidationError(field_errors, status_code=status_code)
            return FatalError(status_code, text or f"HTTP {status_code} with unparseable body")
        return FatalError(status_code, text or f"HTTP {status_code}")

    def classify_response(self, response: RawResponse | None, method: str | None = None) -> Outcome:
        if response is None:
            return FatalError(None, "received null response")
        return self.classify(response.status_code, response.body, method, response.headers)

    def classify_exception(self, exc: BaseException) -> FatalError:
        return FatalError(None, str(exc) or type(exc).__name__, cause=exc)
