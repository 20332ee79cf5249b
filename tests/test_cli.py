from typer.testing import CliRunner

from cli import app
from database import Store
from services import FinanceQueryService

runner = CliRunner()


def test_seed_requires_database_url(monkeypatch) -> None:
    monkeypatch.delenv("FINANCE_DATABASE_URL", raising=False)

    result = runner.invoke(app, ["seed"])

    assert result.exit_code == 1
    assert "FINANCE_DATABASE_URL" in result.output


def test_seed_then_check_connection(monkeypatch, tmp_path) -> None:
    database_url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("FINANCE_DATABASE_URL", database_url)

    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.output
    assert "Database seeded successfully" in result.output

    result = runner.invoke(app, ["check-connection"])
    assert result.exit_code == 0, result.output
    assert "Connected and pinged" in result.output

    result = runner.invoke(app, ["apply-pending"])
    assert result.exit_code == 0, result.output
    assert "Applied aggregates for 0 transaction(s)" in result.output

    store = Store(database_url)
    store.connect()
    try:
        with store.session_scope() as session:
            assert len(FinanceQueryService(session).list_accounts()) == 3
    finally:
        store.close()


def test_seed_rejects_unknown_collections(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FINANCE_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    bad = tmp_path / "bad.json"
    bad.write_text('{"wallets": []}', encoding="utf-8")

    result = runner.invoke(app, ["seed", "--snapshot", str(bad)])

    assert result.exit_code == 1
    assert "Seeding failed" in result.output


def test_json_export_fails_without_api(tmp_path) -> None:
    result = runner.invoke(
        app,
        ["export", "json", "--output-dir", str(tmp_path), "--api-url", "http://127.0.0.1:9/api/finance"],
    )

    assert result.exit_code == 1
    assert "Export failed" in result.output
