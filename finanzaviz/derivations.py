"""Chart-ready values computed from a stored analysis on every read.

Everything here is pure: the same analysis always yields the same numbers,
and nothing is written back to the analysis.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from .models import FinancialAnalysis

# Heuristic fallbacks, used only when the service omits the field.
# EBIT ~ 0.9 x EBITDA; EBT ~ 1.3 x net profit. These are approximations,
# not accounting identities.
EBIT_FROM_EBITDA = 0.9
EBT_FROM_NET_PROFIT = 1.3

MIN_BAR_WIDTH = 3.0
FULL_MARK = 100.0

BALANCE_SHEET_TITLES = [
    ("liquidez", "Liquidez"),
    ("endividamento", "Endividamento"),
    ("estrutura", "Estrutura de Capital"),
    ("eficiencia", "Eficiência"),
    ("solvencia", "Solvência"),
]


@dataclass(frozen=True)
class AnatomyStep:
    label: str
    value: float
    percentage: float
    bar_width: float
    estimated: bool = False


@dataclass(frozen=True)
class RadarPoint:
    subject: str
    score: float
    full_mark: float = FULL_MARK


def _safe_share(value: float, total: float) -> float:
    if total == 0:
        return 0.0
    return value / total * 100


def estimate_ebit(ebit: Optional[float], ebitda: float) -> Tuple[float, bool]:
    if ebit is not None:
        return ebit, False
    return ebitda * EBIT_FROM_EBITDA, True


def estimate_ebt(ebt: Optional[float], net_profit: float) -> Tuple[float, bool]:
    if ebt is not None:
        return ebt, False
    return net_profit * EBT_FROM_NET_PROFIT, True


def anatomy_sequence(analysis: FinancialAnalysis) -> List[AnatomyStep]:
    """Revenue-to-net-profit waterfall for the most recent period."""
    current = analysis.dre[0]
    ebit, ebit_estimated = estimate_ebit(current.lajir, current.ebitda)
    ebt, ebt_estimated = estimate_ebt(current.lair, current.lucro_liquido)

    raw_steps = [
        ("Receita Bruta", current.receita, False),
        ("Lucro Bruto", current.lucro_bruto, False),
        ("EBITDA", current.ebitda, False),
        ("LAJIR (EBIT)", ebit, ebit_estimated),
        ("LAIR (EBT)", ebt, ebt_estimated),
        ("Lucro Líquido", current.lucro_liquido, False),
    ]
    steps = []
    for label, value, estimated in raw_steps:
        percentage = _safe_share(value, current.receita)
        steps.append(
            AnatomyStep(
                label=label,
                value=value,
                percentage=percentage,
                bar_width=max(percentage, MIN_BAR_WIDTH),
                estimated=estimated,
            )
        )
    return steps


def radar_scores(analysis: FinancialAnalysis) -> List[RadarPoint]:
    kpis = analysis.kpis

    def pct(value: Optional[float]) -> float:
        return (value or 0.0) * 100

    return [
        RadarPoint("M. Bruta", pct(kpis.margem_bruta)),
        RadarPoint("M. Líq.", pct(kpis.margem_liquida)),
        RadarPoint("M. Oper.", pct(kpis.margem_operacional)),
        RadarPoint("M. EBITDA", pct(kpis.margem_ebitda)),
        # Lower operating-expense ratio reads as a higher efficiency score.
        RadarPoint("Eficiência", FULL_MARK - pct(kpis.eficiencia_operacional)),
    ]


def composition_slices(analysis: FinancialAnalysis) -> List[Dict[str, Any]]:
    return [{"name": s.name, "value": s.value} for s in analysis.composition or []]


def balance_sheet_panels(analysis: FinancialAnalysis) -> List[Dict[str, Any]]:
    if analysis.balanco is None:
        return []
    panels = []
    for key, title in BALANCE_SHEET_TITLES:
        section = getattr(analysis.balanco, key)
        if section is None:
            continue
        panels.append(
            {
                "section": key,
                "title": title,
                "ratios": section.model_dump(by_alias=True, exclude_none=True),
            }
        )
    return panels


def dashboard_payload(analysis: FinancialAnalysis) -> Dict[str, Any]:
    return {
        "analysis": analysis.model_dump(mode="json", by_alias=True),
        "anatomy": [asdict(step) for step in anatomy_sequence(analysis)],
        "radar": [asdict(point) for point in radar_scores(analysis)],
        "composition": composition_slices(analysis),
        "balance_sheet": balance_sheet_panels(analysis),
    }
