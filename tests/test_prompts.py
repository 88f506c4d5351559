import pytest

from ai_completions.services.prompts import (
    PromptTemplate,
    PromptVariable,
    PromptVariableError,
    cache_key_for,
    render,
)

WORKOUT = PromptTemplate(
    id="quick_workout",
    template=(
        "Create a {{ duration }} minute workout focused on {{focus}}. "
        "Equipment: {{equipment}}. Notes: {{notes}}"
    ),
    variables=(
        PromptVariable("duration", required=True, type="number"),
        PromptVariable("focus", required=True, type="string"),
        PromptVariable("equipment", required=True, type="array"),
        PromptVariable("notes", required=False, type="string"),
    ),
)


def test_render_fills_placeholders() -> None:
    out = render(WORKOUT, {"duration": 30, "focus": "strength", "equipment": ["dumbbells", "mat"]})
    assert out == (
        "Create a 30 minute workout focused on strength. "
        "Equipment: dumbbells, mat. Notes: "
    )


def test_render_rejects_missing_required() -> None:
    with pytest.raises(PromptVariableError) as exc_info:
        render(WORKOUT, {"duration": 30, "focus": ""})
    assert exc_info.value.names == ["focus", "equipment"]
    assert "focus" in str(exc_info.value)


def test_render_rejects_wrong_type() -> None:
    with pytest.raises(PromptVariableError) as exc_info:
        render(WORKOUT, {"duration": "thirty", "focus": "cardio", "equipment": ["mat"]})
    assert exc_info.value.names == ["duration"]


def test_undeclared_placeholder_without_value_is_left_alone() -> None:
    t = PromptTemplate(id="t", template="Hi {{name}}, {{unknown}}")
    assert render(t, {"name": "Sam"}) == "Hi Sam, {{unknown}}"


def test_cache_key_is_stable_and_order_independent() -> None:
    a = cache_key_for(WORKOUT, {"duration": 30, "focus": "strength"})
    b = cache_key_for(WORKOUT, {"focus": "strength", "duration": 30})
    c = cache_key_for(WORKOUT, {"focus": "cardio", "duration": 30})
    assert a == b
    assert a != c
    assert a.startswith("prompt:quick_workout:")
