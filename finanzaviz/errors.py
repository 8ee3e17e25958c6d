class AnalysisError(RuntimeError):
    """Base class for every failure the pipeline reports to its callers."""


class FileUnreadable(AnalysisError):
    def __init__(self, filename: str, reason: str = "") -> None:
        self.filename = filename
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"File could not be read ({filename}){detail}")


class EmptyInputError(AnalysisError):
    def __init__(self) -> None:
        super().__init__("No income statement or balance sheet files were provided")


class ExtractionRequestFailed(AnalysisError):
    pass


class MalformedAnalysisResult(AnalysisError):
    pass


class ChatRequestFailed(AnalysisError):
    pass


class AnalysisInProgress(AnalysisError):
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(f"An analysis is already running for client {client_id}")


class AnalysisCancelled(AnalysisError):
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(f"Analysis for client {client_id} was reset before it completed")


class ClientNotFound(AnalysisError):
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class AnalysisNotFound(AnalysisError):
    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        super().__init__(f"No analysis available for client {client_id}")


class ChatTurnInProgress(AnalysisError):
    def __init__(self) -> None:
        super().__init__("A previous question is still being answered")


class PersistenceFailed(AnalysisError):
    def __init__(self, client_id: str, reason: str = "") -> None:
        self.client_id = client_id
        detail = f": {reason}" if reason else ""
        super().__init__(f"Analysis for client {client_id} could not be saved{detail}")
