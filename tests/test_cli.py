"""Tests for flowmate.cli: command line interface."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from flowmate.cli import REQUIRED_TABLES, _find_migration_sql, main
from flowmate.sync.models import PassReport, ResourceType, SyncTarget, TargetOutcome, TargetStatus


class TestCli:
    def test_version(self, capsys):
        rc = main(["version"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "flowmate" in out
        assert "0.1.0" in out

    def test_version_flag(self, capsys):
        assert main(["--version"]) == 0
        assert "flowmate" in capsys.readouterr().out

    def test_no_args(self, capsys):
        assert main([]) == 0


class TestMigrate:
    def test_find_migration_sql(self):
        sql = _find_migration_sql()
        assert sql is not None
        assert "CREATE TABLE" in sql
        for table in REQUIRED_TABLES:
            assert table in sql
        assert "NULLS NOT DISTINCT" in sql

    def test_dry_run_prints_sql(self, capsys):
        assert main(["migrate", "--dry-run"]) == 0
        assert "CREATE TABLE IF NOT EXISTS user_integrations" in capsys.readouterr().out

    def test_check_with_mocked_db(self, capsys):
        mock_conn = MagicMock()
        mock_cur = MagicMock()
        mock_cur.fetchall.return_value = [(t,) for t in REQUIRED_TABLES]
        mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cur)
        mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)

        with patch("psycopg2.connect", return_value=mock_conn):
            rc = main(["migrate", "--check"])

        assert rc == 0
        assert "required tables present" in capsys.readouterr().out

    def test_check_reports_missing(self, capsys):
        mock_conn = MagicMock()
        mock_cur = MagicMock()
        mock_cur.fetchall.return_value = [("user_integrations",)]
        mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cur)
        mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)

        with patch("psycopg2.connect", return_value=mock_conn):
            rc = main(["migrate", "--check"])

        assert rc == 1
        out = capsys.readouterr().out
        assert "Missing tables" in out
        assert "sync_targets" in out

    def test_migrate_connection_failure(self, capsys):
        with patch("psycopg2.connect", side_effect=Exception("refused")):
            rc = main(["migrate"])
        assert rc == 1
        assert "Migration failed" in capsys.readouterr().out


class TestVaultCommands:
    def test_keygen(self, capsys):
        assert main(["vault", "keygen"]) == 0
        key = capsys.readouterr().out.strip()
        assert len(key) == 64
        bytes.fromhex(key)

    def test_list(self, capsys):
        with patch("flowmate.vault.list_providers", return_value={"notion": True, "slack": False}):
            rc = main(["vault", "list", "u1"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "notion" in out
        assert "disconnected" in out

    def test_list_empty(self, capsys):
        with patch("flowmate.vault.list_providers", return_value={}):
            assert main(["vault", "list", "u1"]) == 0
        assert "No integrations" in capsys.readouterr().out

    def test_no_subcommand(self):
        assert main(["vault"]) == 1


class TestSyncCommands:
    def _report(self, *statuses):
        now = datetime(2024, 6, 1, tzinfo=UTC)
        outcomes = [
            TargetOutcome(
                target=SyncTarget("u1", f"db{i}", ResourceType.DATABASE),
                status=status,
                changes=2,
                error="boom" if status is TargetStatus.FAILED else None,
            )
            for i, status in enumerate(statuses)
        ]
        return PassReport(started_at=now, finished_at=now, outcomes=outcomes)

    def test_run(self, capsys):
        orch = MagicMock()
        orch.run_pass = AsyncMock(return_value=self._report(TargetStatus.SYNCED))
        with patch("flowmate.sync.orchestrator.build_orchestrator", return_value=orch):
            rc = main(["sync", "run"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "u1:database:db0" in out
        assert "1 target(s), 2 change(s)." in out

    def test_run_with_failure(self, capsys):
        orch = MagicMock()
        orch.run_pass = AsyncMock(
            return_value=self._report(TargetStatus.SYNCED, TargetStatus.FAILED)
        )
        with patch("flowmate.sync.orchestrator.build_orchestrator", return_value=orch):
            rc = main(["sync", "run"])
        assert rc == 1
        assert "(boom)" in capsys.readouterr().out

    def test_run_permission_denied_is_not_failure(self):
        orch = MagicMock()
        orch.run_pass = AsyncMock(return_value=self._report(TargetStatus.PERMISSION_DENIED))
        with patch("flowmate.sync.orchestrator.build_orchestrator", return_value=orch):
            assert main(["sync", "run"]) == 0

    def test_run_bad_key_exits_nonzero(self, capsys, monkeypatch):
        monkeypatch.setenv("FLOWMATE_ENCRYPTION_KEY", "deadbeef")
        assert main(["sync", "run"]) == 1
        assert "FLOWMATE_ENCRYPTION_KEY" in capsys.readouterr().out

    def test_serve_bad_key_exits_before_scheduling(self, capsys, monkeypatch):
        monkeypatch.setenv("FLOWMATE_ENCRYPTION_KEY", "not-hex")
        with patch("flowmate.sync.scheduler.SyncScheduler") as scheduler:
            assert main(["sync", "serve"]) == 1
        scheduler.assert_not_called()
        assert "Error:" in capsys.readouterr().out

    def test_add(self, capsys):
        with patch("flowmate.sync.registry.add_sync_target") as add:
            rc = main(["sync", "add", "u1", "pg1", "--type", "page"])
        assert rc == 0
        add.assert_called_once_with("u1", "pg1", "page", None)

    def test_add_error(self, capsys):
        with patch("flowmate.sync.registry.add_sync_target", side_effect=Exception("no db")):
            assert main(["sync", "add", "u1", "db1"]) == 1
        assert "no db" in capsys.readouterr().out


class TestAuditCommand:
    def test_lists_events(self, capsys):
        events = [
            {
                "id": 1,
                "timestamp": "2026-03-01T09:30:00",
                "event_type": "sync.permission_denied",
                "category": "sync",
                "actor": "u1",
                "action": "permission denied",
                "details": {},
                "target": "resource:db1",
                "status": "denied",
            }
        ]
        with patch("flowmate.audit.logger.query_log", return_value=events) as query:
            rc = main(["audit", "--status", "denied", "--limit", "5"])
        assert rc == 0
        query.assert_called_once_with(limit=5, event_type=None, actor=None, status="denied")
        out = capsys.readouterr().out
        assert "sync.permission_denied" in out
        assert "resource:db1" in out

    def test_empty(self, capsys):
        with patch("flowmate.audit.logger.query_log", return_value=[]):
            assert main(["audit"]) == 0
        assert "No audit events" in capsys.readouterr().out
