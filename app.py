from dataclasses import asdict
from pathlib import Path
import streamlit as st

from finanzaviz.chat import FAILED_TURN_TEXT
from finanzaviz.config import load_config
from finanzaviz.derivations import anatomy_sequence, balance_sheet_panels, composition_slices, radar_scores
from finanzaviz.errors import AnalysisError, ChatRequestFailed, ChatTurnInProgress
from finanzaviz.llm_client import LLMClient
from finanzaviz.normalizer import UploadedFile
from finanzaviz.pipeline import FAILURE_NOTICE, AnalysisService
from finanzaviz.store import AnalysisStore, ClientRegistry

UPLOAD_TYPES = ["pdf", "png", "jpg", "jpeg", "xlsx", "xlsm", "xls", "csv"]


st.set_page_config(page_title="FinanzaViz", layout="wide")

st.title("Análise Financeira Inteligente")


@st.cache_resource
def get_service() -> AnalysisService:
    config = load_config()
    llm = LLMClient(
        model=config.extraction_model_name,
        chat_model=config.chat_model_name,
        api_key=config.gemini_api_key,
        base_url=config.gemini_base_url,
        timeout=config.llm_timeout_seconds,
    )
    root = Path(config.data_dir)
    return AnalysisService(
        llm,
        ClientRegistry(root / "clients.json"),
        AnalysisStore(root / "analyses"),
        max_workers=config.normalize_max_concurrency,
        thinking_budget=config.chat_thinking_budget,
        runs_dir=root / "runs",
    )


service = get_service()

with st.sidebar:
    st.header("Clientes")
    clients = service.registry.list()
    if not clients:
        st.info("Cadastre um cliente para começar.")
        st.stop()
    client = st.selectbox("Cliente", clients, format_func=lambda c: f"{c.trade_name} ({c.tax_id})")
    if client.last_analysis_date:
        st.caption(f"Última análise: {client.last_analysis_date}")

income_uploads = st.file_uploader("DRE / Fluxo de Caixa", type=UPLOAD_TYPES, accept_multiple_files=True)
balance_uploads = st.file_uploader("Balanço Patrimonial (opcional)", type=UPLOAD_TYPES, accept_multiple_files=True)

if st.button("Gerar análise"):
    income = [UploadedFile(f.name, f.getvalue(), f.type or "") for f in income_uploads or []]
    balance = [UploadedFile(f.name, f.getvalue(), f.type or "") for f in balance_uploads or []]
    with st.spinner("Analisando documentos..."):
        try:
            service.analyze(client.id, income, balance)
        except AnalysisError:
            st.error(FAILURE_NOTICE)

analysis = service.current(client.id)
if analysis is not None:
    st.subheader("Anatomia do Resultado")
    st.dataframe([asdict(step) for step in anatomy_sequence(analysis)])

    left, right = st.columns(2)
    left.subheader("Radar de Performance")
    left.dataframe([asdict(point) for point in radar_scores(analysis)])
    right.subheader("Composição")
    right.dataframe(composition_slices(analysis))

    for panel in balance_sheet_panels(analysis):
        st.markdown(f"**{panel['title']}**")
        st.json(panel["ratios"])

    st.subheader("Insights e Recomendações")
    for item in analysis.insights + analysis.recommendations:
        st.write(f"- {item}")

    st.subheader("Consultor IA")
    session = service.chat_session(client.id)
    for message in session.messages:
        with st.chat_message("assistant" if message.role == "model" else "user"):
            st.markdown(message.text)
    question = st.chat_input("Pergunte sobre margens, custos ou tributos")
    if question:
        try:
            session.ask(question)
        except ChatTurnInProgress:
            st.toast("Aguarde a resposta anterior.")
        except ChatRequestFailed:
            st.toast(FAILED_TURN_TEXT)
        st.rerun()
