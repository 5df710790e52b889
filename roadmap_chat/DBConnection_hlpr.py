import os
import logging
from typing import Callable

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker, Session

from roadmap_chat.negotiation_errors import CredentialError

load_dotenv()

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("roadmap_backend")


def _get_env_int(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    return parsed


class ConnectionConfig:
    def __init__(self) -> None:
        # ---- env config (shared) ----
        self.DATABASE_URL   = os.getenv("DATABASE_URL", "") or "sqlite:///roadmaps.db"
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
        self.LLM_MODEL      = os.getenv("ROADMAP_LLM_MODEL", "").strip() or "gpt-4o-mini"
        self.LLM_TIMEOUT    = _get_env_int("ROADMAP_LLM_TIMEOUT", default=60, minimum=1)
        self.HISTORY_CAP    = _get_env_int("ROADMAP_HISTORY_CAP", default=10, minimum=2)
        self.HISTORY_WINDOW = _get_env_int("ROADMAP_HISTORY_WINDOW", default=self.HISTORY_CAP, minimum=1)

    # -------- generative service credential --------
    def require_api_key(self) -> str:
        if not self.OPENAI_API_KEY:
            raise CredentialError("OPENAI_API_KEY is not set")
        return self.OPENAI_API_KEY

    # -------- SQLAlchemy Session factory --------
    def get_db_engine(self) -> Engine:
        if not getattr(self, "_engine", None):
            logger.info(f"[DB] Using database URL: {self._redacted_url()}")
            self._engine = create_engine(self.DATABASE_URL, future=True, pool_pre_ping=True)
        return self._engine

    def build_db_session_factory(self) -> Callable[[], Session]:
        if not getattr(self, "_sessionmaker", None):
            self._sessionmaker = sessionmaker(
                bind=self.get_db_engine(),
                autoflush=False,
                autocommit=False,
                future=True,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory

    def _redacted_url(self) -> str:
        # never log the password part of the URL
        if "@" not in self.DATABASE_URL or "://" not in self.DATABASE_URL:
            return self.DATABASE_URL
        scheme, rest = self.DATABASE_URL.split("://", 1)
        _, host = rest.rsplit("@", 1)
        return f"{scheme}://***@{host}"
