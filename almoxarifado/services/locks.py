import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List


class MaterialLocks:
    """Bloqueio exclusivo por material dentro do processo.

    Os materiais de um commit são bloqueados em ordem crescente de id, de modo
    que dois lotes que compartilham materiais nunca se travam mutuamente.
    No PostgreSQL o ``SELECT ... FOR UPDATE`` do engine repete a mesma ordem
    entre processos.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, material_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(material_id)
            if lock is None:
                lock = self._locks[material_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, material_ids: Iterable[int], timeout: float = -1) -> Iterator[List[int]]:
        ids = sorted(set(material_ids))
        acquired = []
        try:
            for material_id in ids:
                lock = self._lock_for(material_id)
                if not lock.acquire(timeout=timeout):
                    raise TimeoutError(f"material {material_id} bloqueado por outra operação")
                acquired.append(lock)
            yield ids
        finally:
            for lock in reversed(acquired):
                lock.release()
