from unittest.mock import AsyncMock

import main
import pytest
from core.errors import AllGapsFailed
from orchestration import cli_runner
from orchestration.dataset_pipeline import PipelineResult

from models import GeneratedRecord


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("Photosynthesis turns light into sugar.", encoding="utf-8")
    return path


def test_generate_writes_dataset_and_closes_service(monkeypatch, tmp_path, source_file):
    record = GeneratedRecord(question="Q?", answer="A", isCorrect=True, sourceGapId="g1")
    pipeline = AsyncMock()
    pipeline.run.return_value = PipelineResult(records=[record])
    aclose = AsyncMock()

    monkeypatch.setattr(cli_runner, "DatasetPipeline", lambda: pipeline)
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner.llm_service, "aclose", aclose)
    output = tmp_path / "out" / "dataset.jsonl"

    code = main.main(
        ["generate", "--source", str(source_file), "--target", "4", "--output", str(output)]
    )

    assert code == 0
    aclose.assert_awaited_once()
    assert pipeline.run.await_args.kwargs["target_count"] == 4
    assert '"sourceGapId": "g1"' in output.read_text(encoding="utf-8")


def test_generate_failure_returns_error_code(monkeypatch, source_file):
    pipeline = AsyncMock()
    pipeline.run.side_effect = AllGapsFailed(["g1"])
    aclose = AsyncMock()

    monkeypatch.setattr(cli_runner, "DatasetPipeline", lambda: pipeline)
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner.llm_service, "aclose", aclose)

    assert main.main(["generate", "--source", str(source_file)]) == 1
    aclose.assert_awaited_once()


def test_non_positive_target_is_rejected(source_file):
    with pytest.raises(SystemExit):
        main.main(["generate", "--source", str(source_file), "--target", "0"])


def test_missing_source_file_is_reported(monkeypatch, tmp_path):
    pipeline = AsyncMock()
    aclose = AsyncMock()

    monkeypatch.setattr(cli_runner, "DatasetPipeline", lambda: pipeline)
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner.llm_service, "aclose", aclose)

    code = main.main(["generate", "--source", str(tmp_path / "missing.txt")])

    assert code == 1
    pipeline.run.assert_not_awaited()
    aclose.assert_awaited_once()


@pytest.mark.parametrize(
    "content",
    ["{not json", '[{"id": "g1"}]'],
    ids=["malformed-json", "gap-without-description"],
)
def test_unreadable_gaps_file_is_reported(monkeypatch, tmp_path, source_file, content):
    gaps = tmp_path / "gaps.json"
    gaps.write_text(content, encoding="utf-8")
    pipeline = AsyncMock()

    monkeypatch.setattr(cli_runner, "DatasetPipeline", lambda: pipeline)
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner.llm_service, "aclose", AsyncMock())

    code = main.main(["generate", "--source", str(source_file), "--gaps", str(gaps)])

    assert code == 1
    pipeline.run.assert_not_awaited()


def test_generate_passes_direct_and_augment_options(monkeypatch, tmp_path, source_file):
    pipeline = AsyncMock()
    pipeline.run.return_value = PipelineResult(records=[])

    monkeypatch.setattr(cli_runner, "DatasetPipeline", lambda: pipeline)
    monkeypatch.setattr(cli_runner, "setup_logging", lambda: None)
    monkeypatch.setattr(cli_runner.llm_service, "aclose", AsyncMock())

    code = main.main(
        [
            "generate",
            "--source",
            str(source_file),
            "--augment",
            "--direct-target",
            "0",
            "--output",
            str(tmp_path / "out.jsonl"),
        ]
    )

    assert code == 0
    kwargs = pipeline.run.await_args.kwargs
    assert kwargs["augment"] is True
    assert kwargs["direct_count"] == 0
