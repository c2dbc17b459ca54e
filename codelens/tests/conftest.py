"""Shared fixtures: in-memory database, fake provider, throwaway projects."""

import asyncio
from typing import Dict, List, Optional
from uuid import uuid4

import pytest

from codelens.core.db import DatabaseManager
from codelens.core.errors import ProviderError
from codelens.core.project import ProjectManager
from codelens.core.provider import SymbolExplanation


# Words the fake embedding counts; texts sharing words point the same way
VOCABULARY = ("auth", "payment", "user", "report", "util", "token")


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.01]


class FakeProvider:
    """Deterministic stand-in for AnalysisProvider.

    Every call is recorded. ``fail_explain_batches`` holds 1-based batch
    numbers that raise ProviderError; ``on_explain`` runs before each
    explain_symbols call returns (used to cancel a job mid-run).
    """

    def __init__(
        self,
        synthesis: Optional[str] = "Cohesive answer",
        fail_synthesis: bool = False,
        fail_embed: bool = False,
        fail_explain_batches=(),
    ):
        self.synthesis = synthesis
        self.fail_synthesis = fail_synthesis
        self.fail_embed = fail_embed
        self.fail_explain_batches = set(fail_explain_batches)
        self.on_explain = None

        self.summarize_calls: List[str] = []
        self.embed_calls: List[str] = []
        self.explain_calls: List[List[str]] = []
        self.synthesize_calls: List[Dict] = []

    async def summarize(self, file_path: str, content: str, language: str = "") -> str:
        self.summarize_calls.append(file_path)
        return f"summary of {file_path}"

    async def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        if self.fail_embed:
            raise ProviderError("embedding backend unavailable", status=503)
        return keyword_vector(text)

    async def explain_symbols(self, symbols) -> List[SymbolExplanation]:
        self.explain_calls.append([s.name for s in symbols])
        if self.on_explain is not None:
            self.on_explain(len(self.explain_calls))
        if len(self.explain_calls) in self.fail_explain_batches:
            raise ProviderError("model overloaded", status=529)
        return [
            SymbolExplanation(summary=f"{s.name} summary", detailed=f"{s.name} in detail")
            for s in symbols
        ]

    async def synthesize(self, question, files, target_file_path=None, target_symbol_name=None) -> str:
        self.synthesize_calls.append({
            "question": question,
            "files": [f["filePath"] for f in files],
            "target_file_path": target_file_path,
            "target_symbol_name": target_symbol_name,
        })
        if self.fail_synthesis:
            raise ProviderError("synthesis failed")
        return self.synthesis

    def usage(self) -> Dict:
        counts = {
            "explain_symbols": len(self.explain_calls),
            "index_summary": len(self.summarize_calls),
            "synthesis": len(self.synthesize_calls),
        }
        return {
            "model": "fake",
            "calls": sum(counts.values()),
            "failures": 0,
            "byPurpose": {purpose: {"calls": n} for purpose, n in counts.items() if n},
        }


def write_files(root, files: Dict[str, str]) -> None:
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db_manager():
    db = DatabaseManager("sqlite://")
    db.init_db()
    yield db
    db.close()


@pytest.fixture
def project_manager(db_manager):
    return ProjectManager(db_manager)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def user_id():
    return str(uuid4())


@pytest.fixture
def project_dir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def project(project_manager, user_id, project_dir):
    return project_manager.create_project(user_id, "demo", str(project_dir))
