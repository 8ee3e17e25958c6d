"""Domain models for the financial analysis pipeline.

Field aliases follow the JSON contract of the extraction service, so a
payload can be validated as-is and dumped back with ``by_alias=True``.
"""

from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import AllowInfNan, BaseModel, ConfigDict, Field, Strict
from pydantic.alias_generators import to_camel


# Finite float; numeric strings and booleans are rejected.
Number = Annotated[float, Strict(), AllowInfNan(False)]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Client(BaseModel):
    """Registered entity whose documents are analyzed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    legal_name: str = Field(alias="razaoSocial")
    trade_name: str = Field(alias="nomeFantasia")
    tax_id: str = Field(alias="cnpj")
    activity_code: str = Field(alias="cnae")
    last_analysis_date: Optional[str] = Field(default=None, alias="lastAnalysisDate")


class DrePeriod(WireModel):
    """Income statement figures for one period."""

    periodo: str
    receita: Number
    custos: Number
    lucro_bruto: Number
    despesas: Number
    ebitda: Number
    lajir: Optional[Number] = None
    lair: Optional[Number] = None
    lucro_liquido: Number


class CashFlowPeriod(WireModel):
    periodo: str
    entrada: Number
    saida: Number
    saldo_operacional: Number
    saldo_acumulado: Number


class Liquidity(WireModel):
    corrente: Optional[Number] = None
    seca: Optional[Number] = None
    imediata: Optional[Number] = None
    geral: Optional[Number] = None


class Indebtedness(WireModel):
    geral: Optional[Number] = None
    divida_patrimonio: Optional[Number] = None
    composicao: Optional[Number] = None
    divida_liquida: Optional[Number] = None


class CapitalStructure(WireModel):
    cgl: Optional[Number] = None
    ncg: Optional[Number] = None
    saldo_tesouraria: Optional[Number] = None


class Efficiency(WireModel):
    giro_ativo: Optional[Number] = None
    giro_ativo_circulante: Optional[Number] = None
    imobilizacao_pl: Optional[Number] = Field(default=None, alias="imobilizacaoPL")


class Solvency(WireModel):
    alavancagem_financeira: Optional[Number] = None
    dependencia_terceiros: Optional[Number] = None
    cobertura_capital_proprio: Optional[Number] = None


class BalanceSheetMetrics(WireModel):
    """Balance sheet ratios; only present when balance sheet files were sent."""

    liquidez: Optional[Liquidity] = None
    endividamento: Optional[Indebtedness] = None
    estrutura: Optional[CapitalStructure] = None
    eficiencia: Optional[Efficiency] = None
    solvencia: Optional[Solvency] = None


class Kpis(WireModel):
    margem_bruta: Number
    margem_liquida: Number
    burn_rate: Optional[Number] = None
    runway: Optional[Number] = None
    liquidez_corrente: Optional[Number] = None
    endividamento: Optional[Number] = None
    despesas_comerciais_perc: Optional[Number] = None
    despesas_adm_perc: Optional[Number] = None
    eficiencia_operacional: Optional[Number] = None
    margem_operacional: Optional[Number] = None
    margem_ebitda: Optional[Number] = None
    ponto_equilibrio: Optional[Number] = None
    alavancagem_operacional: Optional[Number] = None


class CompositionSlice(WireModel):
    name: str
    value: Number


class ExtractedAnalysis(WireModel):
    """Payload returned by the extraction service."""

    dre: List[DrePeriod] = Field(min_length=1)
    fluxo_caixa: List[CashFlowPeriod]
    balanco: Optional[BalanceSheetMetrics] = None
    kpis: Kpis
    insights: List[str]
    recommendations: List[str]
    tax_analysis: List[str]
    composition: Optional[List[CompositionSlice]] = None


class FinancialAnalysis(ExtractedAnalysis):
    """Extraction result stamped with its identity; treated as an immutable snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    date: datetime
    chart_notes: Dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def with_note(self, section_id: str, text: str) -> "FinancialAnalysis":
        notes = dict(self.chart_notes)
        notes[section_id] = text
        return self.model_copy(update={"chart_notes": notes})


class ChatMessage(BaseModel):
    """Chat message with role and text.

    Display-only messages are shown to the user but never sent back to the
    model as history.
    """

    role: Literal["user", "model"]
    text: str
    display_only: bool = False
