from typing import Any, Dict, List, Sequence

from .errors import EmptyInputError, ExtractionRequestFailed
from .models import Client
from .normalizer import RequestPart, UploadedFile, normalize_files


def _number_object(fields: Sequence[str], required: Sequence[str] = ()) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": "OBJECT",
        "properties": {name: {"type": "NUMBER"} for name in fields},
    }
    if required:
        schema["required"] = list(required)
    return schema


def _record_array(text_field: str, number_fields: Sequence[str], optional: Sequence[str] = ()) -> Dict[str, Any]:
    properties: Dict[str, Any] = {text_field: {"type": "STRING"}}
    properties.update({name: {"type": "NUMBER"} for name in number_fields})
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": properties,
            "required": [name for name in properties if name not in optional],
        },
    }


STRING_ARRAY = {"type": "ARRAY", "items": {"type": "STRING"}}

BALANCE_SHEET_SECTIONS = {
    "liquidez": ["corrente", "seca", "imediata", "geral"],
    "endividamento": ["geral", "dividaPatrimonio", "composicao", "dividaLiquida"],
    "estrutura": ["cgl", "ncg", "saldoTesouraria"],
    "eficiencia": ["giroAtivo", "giroAtivoCirculante", "imobilizacaoPL"],
    "solvencia": ["alavancagemFinanceira", "dependenciaTerceiros", "coberturaCapitalProprio"],
}

KPI_FIELDS = [
    "margemBruta",
    "margemLiquida",
    "burnRate",
    "runway",
    "liquidezCorrente",
    "endividamento",
    "despesasComerciaisPerc",
    "despesasAdmPerc",
    "eficienciaOperacional",
    "margemOperacional",
    "margemEbitda",
    "pontoEquilibrio",
    "alavancagemOperacional",
]

ANALYSIS_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "dre": _record_array(
            "periodo",
            ["receita", "custos", "lucroBruto", "despesas", "ebitda", "lajir", "lair", "lucroLiquido"],
            optional=["lajir", "lair"],
        ),
        "fluxoCaixa": _record_array(
            "periodo",
            ["entrada", "saida", "saldoOperacional", "saldoAcumulado"],
        ),
        "balanco": {
            "type": "OBJECT",
            "properties": {
                section: _number_object(fields)
                for section, fields in BALANCE_SHEET_SECTIONS.items()
            },
        },
        "kpis": _number_object(KPI_FIELDS, required=["margemBruta", "margemLiquida"]),
        "insights": STRING_ARRAY,
        "recommendations": STRING_ARRAY,
        "taxAnalysis": STRING_ARRAY,
        "composition": _record_array("name", ["value"]),
    },
    "required": ["dre", "fluxoCaixa", "kpis", "insights", "recommendations", "taxAnalysis"],
}


BALANCE_SHEET_INSTRUCTION = """3. BALANÇO PATRIMONIAL (CRÍTICO): Os arquivos de Balanço foram enviados. Você DEVE extrair e calcular:
     - Liquidez: Corrente, Seca, Imediata e Geral.
     - Endividamento: Geral, ML/PL, Composição e Dívida Líquida.
     - Estrutura: Capital de Giro Líquido (CGL), Necessidade de Cap. Giro (NCG) e Saldo de Tesouraria.
     - Eficiência: Giro do Ativo, Giro do Ativo Circulante e Imobilização do PL.
     - Solvência: Alavancagem Financeira, Dependência de Terceiros e Cobertura de Capital Próprio."""

NO_BALANCE_SHEET_INSTRUCTION = (
    "3. BALANÇO: Não foram enviados arquivos de Balanço. Omita o campo balanco "
    "por completo; não estime nem invente esses valores."
)


def build_prompt(client: Client, has_balance_sheet: bool) -> str:
    balance_instruction = BALANCE_SHEET_INSTRUCTION if has_balance_sheet else NO_BALANCE_SHEET_INSTRUCTION
    return (
        f"Analise os documentos financeiros acima da empresa {client.trade_name}.\n\n"
        "MISSÃO PRINCIPAL:\n"
        "1. DRE: Extraia Receita, Custos, Lucro Bruto, Despesas, EBITDA, EBIT (LAJIR), "
        "EBT (LAIR) e Lucro Líquido de cada período, do mais recente para o mais antigo.\n"
        "2. INDICADORES: Calcule margens e índices de eficiência como frações (ex.: 0.25 para 25%).\n"
        f"{balance_instruction}\n"
        "4. FLUXO DE CAIXA: Entradas, saídas, saldo operacional e saldo acumulado por período.\n"
        f"5. TRIBUTAÇÃO: Considere o CNAE {client.activity_code} na análise tributária.\n\n"
        "Retorne um JSON estrito seguindo o schema fornecido. Não adicione texto fora do JSON."
    )


def build_request_parts(
    income_parts: Sequence[RequestPart],
    balance_parts: Sequence[RequestPart],
    prompt: str,
) -> List[RequestPart]:
    # Order matters: the prompt refers to the documents above it.
    return [*income_parts, *balance_parts, {"text": prompt}]


def prepare_request(
    income_files: Sequence[UploadedFile],
    balance_files: Sequence[UploadedFile],
    client: Client,
    max_workers: int = 4,
) -> List[RequestPart]:
    if not income_files and not balance_files:
        raise EmptyInputError()

    income_parts = normalize_files(income_files, max_workers=max_workers)
    balance_parts = normalize_files(balance_files, max_workers=max_workers)
    prompt = build_prompt(client, has_balance_sheet=bool(balance_files))
    return build_request_parts(income_parts, balance_parts, prompt)


def request_analysis(parts: Sequence[RequestPart], llm) -> str:
    try:
        return llm.generate_structured(parts, ANALYSIS_SCHEMA)
    except Exception as exc:
        raise ExtractionRequestFailed(f"Analysis extraction failed: {exc}") from exc
