import threading
from typing import List

from .errors import ChatRequestFailed, ChatTurnInProgress
from .models import ChatMessage, FinancialAnalysis


PERSONA_DIRECTIVE = (
    "Você é um consultor financeiro sênior de elite. Use estes dados reais da empresa, "
    "que são exatamente os números exibidos no painel do contador."
)

FORMAT_DIRECTIVE = """Sempre responda em Português do Brasil. Use Markdown para formatar (tabelas, negrito, listas).
Seja técnico mas acessível. Fale sobre DRE e Balanço (somente se o balanço estiver disponível).
Use os mesmos valores, margens e índices dos dados acima, sem recalculá-los de outra forma.
Quando pedirem simulações (ex.: redução de 10% nos custos, ponto de equilíbrio), parta desses valores e mostre o cálculo."""

EMPTY_ANSWER_TEXT = "Desculpe, não consegui processar sua pergunta agora."
FAILED_TURN_TEXT = "Houve um erro na comunicação com a IA. Tente novamente."


def build_grounding_instruction(analysis: FinancialAnalysis) -> str:
    return f"{PERSONA_DIRECTIVE}\nDados: {analysis.to_json()}\n\n{FORMAT_DIRECTIVE}"


class FollowupSession:
    """Conversation grounded in one analysis snapshot.

    The grounding instruction is fixed when the session is created; later
    edits to the analysis (notes, a new extraction) require a new session.
    One question is answered at a time; a question asked while another is
    in flight is rejected rather than queued.
    """

    def __init__(self, llm, analysis: FinancialAnalysis, thinking_budget: int = 16000) -> None:
        self._llm = llm
        self.analysis = analysis.model_copy(deep=True)
        self.instruction = build_grounding_instruction(self.analysis)
        self.thinking_budget = thinking_budget
        self._messages: List[ChatMessage] = []
        self._lock = threading.Lock()
        self._busy = False

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def ask(self, text: str) -> str:
        question = ChatMessage(role="user", text=text)
        with self._lock:
            if self._busy:
                raise ChatTurnInProgress()
            self._busy = True
            position = len(self._messages)
            self._messages.append(question)
            history = [m for m in self._messages if not m.display_only]

        try:
            answer = self._llm.chat(self.instruction, history, self.thinking_budget)
        except Exception as exc:
            with self._lock:
                # The failed turn stays visible but is left out of later history.
                self._messages[position] = question.model_copy(update={"display_only": True})
                self._messages.append(
                    ChatMessage(role="model", text=FAILED_TURN_TEXT, display_only=True)
                )
                self._busy = False
            raise ChatRequestFailed(f"Follow-up question failed: {exc}") from exc

        answer = (answer or "").strip() or EMPTY_ANSWER_TEXT
        with self._lock:
            self._messages.append(ChatMessage(role="model", text=answer))
            self._busy = False
        return answer
