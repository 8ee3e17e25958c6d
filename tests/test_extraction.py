import base64

import pytest

from finanzaviz.errors import ExtractionRequestFailed
from finanzaviz.extraction import (
    ANALYSIS_SCHEMA,
    BALANCE_SHEET_SECTIONS,
    build_prompt,
    build_request_parts,
    prepare_request,
    request_analysis,
)
from finanzaviz.normalizer import UploadedFile
from tests.helpers.fake_llm import FakeLLM

BALANCE_SHEET_NAMES = ["Liquidez", "Endividamento", "Estrutura", "Eficiência", "Solvência"]


def _leaf_types(schema, path=""):
    kind = schema["type"]
    if kind == "OBJECT":
        for name, sub in schema["properties"].items():
            yield from _leaf_types(sub, f"{path}.{name}")
    elif kind == "ARRAY":
        yield from _leaf_types(schema["items"], f"{path}[]")
    else:
        yield path, kind


def test_prompt_with_balance_sheet_names_all_five_sections(client):
    prompt = build_prompt(client, has_balance_sheet=True)
    assert "Tech Inovadora" in prompt
    for name in BALANCE_SHEET_NAMES:
        assert name in prompt


def test_prompt_without_balance_sheet_asks_to_omit_the_field(client):
    prompt = build_prompt(client, has_balance_sheet=False)
    assert "Tech Inovadora" in prompt
    assert "Omita o campo balanco" in prompt
    for name in ["Liquidez", "Endividamento", "Solvência", "CGL", "NCG"]:
        assert name not in prompt


def test_schema_marks_required_top_level_fields():
    assert set(ANALYSIS_SCHEMA["required"]) == {
        "dre",
        "fluxoCaixa",
        "kpis",
        "insights",
        "recommendations",
        "taxAnalysis",
    }
    assert "balanco" in ANALYSIS_SCHEMA["properties"]
    assert "composition" in ANALYSIS_SCHEMA["properties"]


def test_schema_numeric_leaves_are_numbers():
    leaves = dict(_leaf_types(ANALYSIS_SCHEMA))
    string_leaves = {
        ".dre[].periodo",
        ".fluxoCaixa[].periodo",
        ".insights[]",
        ".recommendations[]",
        ".taxAnalysis[]",
        ".composition[].name",
    }
    for path, kind in leaves.items():
        expected = "STRING" if path in string_leaves else "NUMBER"
        assert kind == expected, path
    assert leaves[".balanco.eficiencia.imobilizacaoPL"] == "NUMBER"
    assert set(ANALYSIS_SCHEMA["properties"]["balanco"]["properties"]) == set(BALANCE_SHEET_SECTIONS)


def test_schema_keeps_ebit_and_ebt_optional():
    dre_item = ANALYSIS_SCHEMA["properties"]["dre"]["items"]
    assert "lajir" not in dre_item["required"]
    assert "lair" not in dre_item["required"]
    assert "lucroLiquido" in dre_item["required"]
    assert ANALYSIS_SCHEMA["properties"]["kpis"]["required"] == ["margemBruta", "margemLiquida"]


def test_build_request_parts_puts_prompt_last():
    parts = build_request_parts([{"text": "a"}, {"text": "b"}], [{"text": "c"}], "prompt")
    assert parts == [{"text": "a"}, {"text": "b"}, {"text": "c"}, {"text": "prompt"}]


def test_prepare_request_orders_income_then_balance_then_prompt(client):
    income = [UploadedFile(f"dre{i}.png", f"dre-{i}".encode(), "image/png") for i in range(3)]
    balance = [UploadedFile(f"bp{i}.png", f"bp-{i}".encode(), "image/png") for i in range(2)]

    parts = prepare_request(income, balance, client, max_workers=4)

    decoded = [base64.b64decode(p["inlineData"]["data"]) for p in parts[:-1]]
    assert decoded == [b"dre-0", b"dre-1", b"dre-2", b"bp-0", b"bp-1"]
    assert "Liquidez" in parts[-1]["text"]


def test_prepare_request_balance_only_is_accepted(client):
    parts = prepare_request([], [UploadedFile("bp.png", b"bp", "image/png")], client)
    assert len(parts) == 2


def test_request_analysis_translates_service_failures():
    llm = FakeLLM([ConnectionError("network down")])
    with pytest.raises(ExtractionRequestFailed, match="network down"):
        request_analysis([{"text": "x"}], llm)


def test_request_analysis_sends_the_analysis_schema():
    llm = FakeLLM(["{}"])
    assert request_analysis([{"text": "x"}], llm) == "{}"
    assert llm.calls[0]["schema"] is ANALYSIS_SCHEMA
