import json
import threading
import uuid
from pathlib import Path
from typing import Any, List, Optional

from .errors import ClientNotFound
from .models import Client, FinancialAnalysis


class ClientRegistry:
    """Clients kept in a single JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def register(self, legal_name: str, trade_name: str, tax_id: str, activity_code: str) -> Client:
        client = Client(
            id=uuid.uuid4().hex[:9],
            legal_name=legal_name,
            trade_name=trade_name,
            tax_id=tax_id,
            activity_code=activity_code,
        )
        with self._lock:
            clients = self._read()
            clients.append(client)
            self._write(clients)
        return client

    def list(self) -> List[Client]:
        with self._lock:
            return self._read()

    def get(self, client_id: str) -> Client:
        for client in self.list():
            if client.id == client_id:
                return client
        raise ClientNotFound(client_id)

    def touch(self, client_id: str, when: str) -> Client:
        with self._lock:
            clients = self._read()
            for idx, client in enumerate(clients):
                if client.id == client_id:
                    clients[idx] = client.model_copy(update={"last_analysis_date": when})
                    self._write(clients)
                    return clients[idx]
        raise ClientNotFound(client_id)

    def _read(self) -> List[Client]:
        if not self.path.exists():
            return []
        data = json.loads(self.path.read_text(encoding="utf-8"))
        return [Client.model_validate(item) for item in data]

    def _write(self, clients: List[Client]) -> None:
        _write_json(self.path, [c.model_dump(by_alias=True) for c in clients])


class AnalysisStore:
    """Latest analysis per client, one JSON file each."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def save(self, analysis: FinancialAnalysis) -> None:
        _write_json(self._path(analysis.client_id), analysis.model_dump(mode="json", by_alias=True))

    def load(self, client_id: str) -> Optional[FinancialAnalysis]:
        path = self._path(client_id)
        if not path.exists():
            return None
        return FinancialAnalysis.model_validate_json(path.read_text(encoding="utf-8"))

    def backup(self, client_id: str) -> Optional[bytes]:
        path = self._path(client_id)
        return path.read_bytes() if path.exists() else None

    def restore(self, client_id: str, data: Optional[bytes]) -> None:
        """Put back a file returned by ``backup``; ``None`` removes it."""
        path = self._path(client_id)
        if data is None:
            path.unlink(missing_ok=True)
            return
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)

    def _path(self, client_id: str) -> Path:
        return self.root / f"{client_id}.json"


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    tmp_path.replace(path)
