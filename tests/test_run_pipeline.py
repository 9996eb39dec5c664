"""
Tests for the command-line runner.
"""

from types import SimpleNamespace

import pytest

import run_pipeline


@pytest.fixture
def runner_env(monkeypatch, store, fake_llm):
    """Runner wired to the in-memory store and the scripted LLM."""
    missing = []
    monkeypatch.setattr(run_pipeline, "configure_logging", lambda level: None)
    monkeypatch.setattr(run_pipeline, "get_supabase_store", lambda: store)
    monkeypatch.setattr(run_pipeline, "OpenRouterClient", lambda: fake_llm)
    monkeypatch.setattr(
        run_pipeline,
        "get_settings",
        lambda: SimpleNamespace(
            get_missing_secrets=lambda: list(missing),
            pipeline=SimpleNamespace(log_level="INFO")
        )
    )
    return missing


def test_parser_rejects_unknown_stage():
    with pytest.raises(SystemExit):
        run_pipeline.build_parser().parse_args(["pipeline", "s1", "--stages", "export"])


def test_status_of_new_session(runner_env, session_id, capsys):
    assert run_pipeline.main(["status", session_id]) == 0
    assert capsys.readouterr().out.strip() == "not started"


def test_missing_credentials_exit_code(runner_env, session_id):
    runner_env.append("OpenRouter")
    assert run_pipeline.main(["recluster", session_id]) == 2


def test_merge_preview_does_not_change_clusters(runner_env, store, session_id, fake_llm, capsys):
    first = store.add_cluster(session_id, "Facturi emise", [store.add_document(session_id, "a")])
    second = store.add_cluster(session_id, "Facturi primite", [store.add_document(session_id, "b")])
    fake_llm.responses = [
        '{"mergeGroups": [{"targetName": "Facturi", "clusterIds": ["%s", "%s"]}]}' % (first, second)
    ]

    assert run_pipeline.main(["merge-preview", session_id]) == 0

    out = capsys.readouterr().out
    assert "### 1. Facturi (2 docs)" in out
    assert store.clusters[second]["is_deleted"] is False


def test_merge_applies_analysis(runner_env, store, session_id, fake_llm, capsys):
    first = store.add_cluster(session_id, "Facturi emise", [store.add_document(session_id, "a")])
    second = store.add_cluster(session_id, "Facturi primite", [store.add_document(session_id, "b")])
    fake_llm.responses = [
        '{"mergeGroups": [{"targetName": "Facturi", "clusterIds": ["%s", "%s"]}]}' % (first, second)
    ]

    assert run_pipeline.main(["merge", session_id]) == 0

    assert store.clusters[first]["document_count"] == 2
    assert store.clusters[second]["is_deleted"] is True
    assert "1 clusters remain" in capsys.readouterr().out
