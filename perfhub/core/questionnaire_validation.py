from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import HTTPException, status

QUESTION_TYPES = ("text", "textarea", "rating", "number", "select", "multiselect", "date")


def questions_by_id(questions: list[dict] | None) -> dict[str, dict]:
    """
    Returns map keyed by question id:
      {"q1": {"id": "q1", "type": "rating", "required": True, "min": 1, "max": 5, ...}}
    """
    return {q["id"]: q for q in (questions or [])}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "") or value == []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_sanity(qtype: str, value: Any) -> bool:
    """
    Draft-level: "this could be valid" for the declared type.
    """
    if value is None:
        return True

    if qtype in ("text", "textarea", "select"):
        return isinstance(value, str)

    if qtype in ("rating", "number"):
        return _is_number(value)

    if qtype == "multiselect":
        return isinstance(value, list) and all(isinstance(v, str) for v in value)

    if qtype == "date":
        if not isinstance(value, str):
            return False
        try:
            date.fromisoformat(value)
        except ValueError:
            return False
        return True

    return False


def _full_validate_one(question: dict, value: Any) -> list[dict]:
    """
    Submit-level: required + rules.
    Returns list of error dicts (empty if ok).
    """
    errors: list[dict] = []
    key = question["id"]
    qtype = question.get("type", "text")

    if _is_blank(value):
        if question.get("required"):
            errors.append({"field": key, "code": "required", "message": "Required"})
        return errors

    if not _type_sanity(qtype, value):
        errors.append({"field": key, "code": "type", "message": f"Must be a valid {qtype} answer"})
        return errors

    if qtype in ("text", "textarea"):
        max_len = question.get("max_length")
        if isinstance(max_len, int) and len(value.strip()) > max_len:
            errors.append({"field": key, "code": "max_length", "message": f"Must be <= {max_len} chars"})

    elif qtype in ("rating", "number"):
        if qtype == "rating" and not float(value).is_integer():
            errors.append({"field": key, "code": "integer", "message": "Must be an integer"})

        mn = question.get("min", 1 if qtype == "rating" else None)
        mx = question.get("max", 5 if qtype == "rating" else None)
        if mn is not None and value < mn:
            errors.append({"field": key, "code": "min", "message": f"Must be >= {mn}"})
        if mx is not None and value > mx:
            errors.append({"field": key, "code": "max", "message": f"Must be <= {mx}"})

    elif qtype == "select":
        choices = question.get("options")
        if isinstance(choices, list) and choices and value not in choices:
            errors.append({"field": key, "code": "choice", "message": "Must be one of allowed choices"})

    elif qtype == "multiselect":
        choices = question.get("options")
        if isinstance(choices, list) and choices and any(v not in choices for v in value):
            errors.append({"field": key, "code": "choice", "message": "Must be one of allowed choices"})

    return errors


def validate_draft_answers(questions: list[dict] | None, answers: dict[str, Any]) -> None:
    """
    draft: validate keys exist + type sanity only
    """
    spec_map = questions_by_id(questions)

    errors: list[dict] = []
    for key, value in answers.items():
        if key not in spec_map:
            errors.append({"field": key, "code": "unknown_key", "message": "Not in questionnaire"})
            continue
        if not _type_sanity(spec_map[key].get("type", "text"), value):
            errors.append({"field": key, "code": "type", "message": "Type validation failed"})

    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Draft validation failed", "errors": errors},
        )


def validate_submitted_answers(questions: list[dict] | None, answers: dict[str, Any]) -> None:
    """
    submit: full required + rules for every question in the questionnaire
    """
    spec_map = questions_by_id(questions)

    errors: list[dict] = []
    for key in answers.keys():
        if key not in spec_map:
            errors.append({"field": key, "code": "unknown_key", "message": "Not in questionnaire"})

    for key, question in spec_map.items():
        errors.extend(_full_validate_one(question, answers.get(key)))

    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Submit validation failed", "errors": errors},
        )
