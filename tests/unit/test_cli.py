"""
Unit tests for the CLI module

Tests verify:
- Argument parsing for every subcommand
- Settings resolution (arguments over environment over defaults)
- Command execution and exit codes

Database access, tracing and scheduling are mocked.
"""

import json
from types import SimpleNamespace
from unittest.mock import Mock, patch

import psycopg2
import pytest

from diffcheck.cli import COMMANDS, main
from diffcheck.cli.commands import cmd_report, cmd_run, cmd_schedule, cmd_status
from diffcheck.cli.credentials import (
    get_batch_options,
    get_clock,
    get_database_config,
    get_table_options,
)
from diffcheck.cli.parser import create_parser
from diffcheck.exceptions import ConfigurationError
from diffcheck.models import ReconciliationReport


def parse(*argv):
    return create_parser().parse_args(list(argv))


def make_report(success=True, message="Processed 0 records"):
    return ReconciliationReport(
        total=0, inserted=0, updated=0, skipped=0, deleted=0, errored=0,
        success=success, message=message,
    )


# ============================================================================
# Parser
# ============================================================================

class TestParser:
    """Test create_parser"""

    def test_run_defaults(self):
        """Test run subcommand defaults"""
        args = parse("run")

        assert args.command == "run"
        assert args.format == "console"
        assert args.batch_size is None
        assert args.continue_on_error is None
        assert args.no_lock is False
        assert args.log_level == "INFO"

    def test_run_options(self):
        """Test run subcommand options"""
        args = parse(
            "--log-level", "DEBUG", "--log-json",
            "run", "--batch-size", "200", "--stop-on-error",
            "--timezone", "Asia/Tokyo", "--format", "json", "--output", "r.json",
            "--staging-table", "incoming", "--isolation-level", "SERIALIZABLE",
        )

        assert args.log_level == "DEBUG"
        assert args.log_json is True
        assert args.batch_size == 200
        assert args.continue_on_error is False
        assert args.timezone == "Asia/Tokyo"
        assert args.staging_table == "incoming"
        assert args.isolation_level == "SERIALIZABLE"

    def test_continue_and_stop_are_exclusive(self):
        """Test --continue-on-error and --stop-on-error cannot be combined"""
        with pytest.raises(SystemExit):
            parse("run", "--continue-on-error", "--stop-on-error")

    def test_schedule_defaults(self):
        args = parse("schedule")

        assert args.interval == 3600
        assert args.cron is None
        assert args.output_dir == "./diffcheck_reports"
        assert args.metrics_port is None

    @pytest.mark.parametrize("interval", ["0", "-5", "abc"])
    def test_schedule_rejects_bad_interval(self, interval):
        with pytest.raises(SystemExit):
            parse("schedule", "--interval", interval)

    def test_cron_and_interval_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse("schedule", "--cron", "* * * * *", "--interval", "60")

    def test_report_requires_input(self):
        with pytest.raises(SystemExit):
            parse("report")

    def test_every_subcommand_has_handler(self):
        assert set(COMMANDS) == {"run", "schedule", "report", "status"}


# ============================================================================
# Settings resolution
# ============================================================================

class TestSettings:
    """Test arguments over environment over defaults"""

    def test_database_from_env(self):
        config = get_database_config(parse("run"))

        assert config.database == "diffcheck_test"
        assert config.password == "postgres_test_password"

    def test_database_arguments_win(self):
        config = get_database_config(
            parse("run", "--db-host", "db.internal", "--db-port", "6543", "--db-password", "x")
        )

        assert config.host == "db.internal"
        assert config.port == 6543
        assert config.password == "x"

    def test_missing_password(self, monkeypatch):
        monkeypatch.delenv("POSTGRES_PASSWORD", raising=False)

        with pytest.raises(ConfigurationError, match="password"):
            get_database_config(parse("run"))

    def test_tables(self, monkeypatch):
        monkeypatch.setenv("DIFFCHECK_SNAPSHOT_TABLE", "current")

        tables = get_table_options(parse("run", "--staging-table", "incoming"))

        assert (tables.staging_table, tables.snapshot_table) == ("incoming", "current")

    def test_batch_options_defaults(self):
        options = get_batch_options(parse("run"))

        assert options.batch_size == 1000
        assert options.max_batch_size == 10000
        assert options.continue_on_error is True

    def test_batch_options_arguments_win(self, monkeypatch):
        monkeypatch.setenv("DIFFCHECK_BATCH_SIZE", "50")
        monkeypatch.setenv("DIFFCHECK_CONTINUE_ON_ERROR", "true")

        options = get_batch_options(
            parse("run", "--batch-size", "20", "--max-batch-size", "0", "--stop-on-error")
        )

        assert options.batch_size == 20
        assert options.max_batch_size is None
        assert options.continue_on_error is False

    def test_batch_options_env(self, monkeypatch):
        monkeypatch.setenv("DIFFCHECK_BATCH_SIZE", "50")

        assert get_batch_options(parse("run")).batch_size == 50

    def test_clock_timezone(self):
        now = get_clock(parse("run", "--timezone", "Asia/Tokyo"))()

        assert now.utcoffset().total_seconds() == 9 * 3600


# ============================================================================
# run
# ============================================================================

@pytest.fixture
def infra():
    """Patch pools and tracing used by the database commands."""
    with patch("diffcheck.cli.commands.initialize_pools") as pools, \
            patch("diffcheck.cli.commands.close_pools") as close, \
            patch("diffcheck.cli.commands.initialize_tracing"), \
            patch("diffcheck.cli.commands.shutdown_tracing"):
        yield SimpleNamespace(pools=pools, close=close)


@pytest.fixture
def mock_run():
    with patch("diffcheck.cli.commands.run_reconciliation") as mock:
        yield mock


class TestCmdRun:
    """Test cmd_run"""

    def test_success_exits_zero(self, mock_run, infra, capsys):
        """Test a successful run prints the report and exits 0"""
        mock_run.return_value = make_report()

        with pytest.raises(SystemExit) as exc_info:
            cmd_run(parse("run"))

        assert exc_info.value.code == 0
        assert "DIFFCHECK RECONCILIATION REPORT" in capsys.readouterr().out
        infra.close.assert_called_once()

    def test_failed_report_exits_one(self, mock_run, infra):
        """Test an unsuccessful report exits 1"""
        mock_run.return_value = make_report(success=False, message="1 of 1 chunk(s) failed")

        with pytest.raises(SystemExit) as exc_info:
            cmd_run(parse("run"))

        assert exc_info.value.code == 1

    def test_passes_options(self, mock_run, infra):
        """Test settings are handed to run_reconciliation"""
        mock_run.return_value = make_report()

        with pytest.raises(SystemExit):
            cmd_run(parse("run", "--batch-size", "7", "--no-lock", "--staging-table", "incoming"))

        kwargs = mock_run.call_args[1]
        assert mock_run.call_args[0] == (infra.pools.return_value,)
        assert kwargs["options"].batch_size == 7
        assert kwargs["use_lock"] is False
        assert kwargs["tables"].staging_table == "incoming"
        assert infra.pools.call_args[1]["max_size"] >= 2

    def test_json_output(self, mock_run, infra, tmp_path):
        """Test --format json writes the report file"""
        mock_run.return_value = make_report()
        output = tmp_path / "out" / "report.json"

        with pytest.raises(SystemExit):
            cmd_run(parse("run", "--format", "json", "--output", str(output)))

        assert json.loads(output.read_text())["status"] == "SUCCESS"

    def test_csv_without_output_is_config_error(self, mock_run, infra):
        with pytest.raises(SystemExit) as exc_info:
            cmd_run(parse("run", "--format", "csv"))

        assert exc_info.value.code == 1
        infra.pools.assert_not_called()

    def test_database_error_exits_one(self, mock_run, infra):
        """Test connection failures exit 1 and still close the pool"""
        infra.pools.side_effect = psycopg2.OperationalError("could not connect")

        with pytest.raises(SystemExit) as exc_info:
            cmd_run(parse("run"))

        assert exc_info.value.code == 1
        mock_run.assert_not_called()
        infra.close.assert_called_once()

    def test_unknown_timezone_exits_one(self, mock_run, infra):
        with pytest.raises(SystemExit) as exc_info:
            cmd_run(parse("run", "--timezone", "Nowhere/Special"))

        assert exc_info.value.code == 1
        infra.pools.assert_not_called()


# ============================================================================
# schedule
# ============================================================================

@pytest.fixture
def mock_scheduler_class():
    with patch("diffcheck.cli.commands.ReconciliationScheduler") as mock:
        yield mock


class TestCmdSchedule:
    """Test cmd_schedule"""

    def test_interval_job(self, mock_scheduler_class, infra):
        """Test the default interval job is registered and started"""
        scheduler = mock_scheduler_class.return_value

        cmd_schedule(parse("schedule", "--output-dir", "reports"))

        args, kwargs = scheduler.add_interval_job.call_args
        assert args[1:] == (3600, "diffcheck")
        assert kwargs["output_dir"] == "reports"
        assert kwargs["pool"] is infra.pools.return_value
        assert kwargs["metrics"] is None
        scheduler.start.assert_called_once()
        infra.close.assert_called_once()

    def test_cron_job(self, mock_scheduler_class, infra):
        scheduler = mock_scheduler_class.return_value

        cmd_schedule(parse("schedule", "--cron", "*/15 * * * *"))

        assert scheduler.add_cron_job.call_args[0][1] == "*/15 * * * *"
        scheduler.add_interval_job.assert_not_called()

    def test_invalid_cron_exits_one(self, mock_scheduler_class, infra):
        mock_scheduler_class.return_value.add_cron_job.side_effect = ValueError("bad")

        with pytest.raises(SystemExit) as exc_info:
            cmd_schedule(parse("schedule", "--cron", "bad"))

        assert exc_info.value.code == 1
        infra.close.assert_called_once()

    def test_database_unreachable_exits_one(self, mock_scheduler_class, infra):
        """Test a pool that cannot connect at startup exits 1 without scheduling"""
        infra.pools.side_effect = psycopg2.OperationalError("could not connect to server")

        with pytest.raises(SystemExit) as exc_info:
            cmd_schedule(parse("schedule"))

        assert exc_info.value.code == 1
        infra.close.assert_called_once()
        mock_scheduler_class.return_value.start.assert_not_called()

    def test_metrics_port(self, mock_scheduler_class, infra):
        """Test --metrics-port starts the exporter and wires metrics into the job"""
        with patch("diffcheck.cli.commands.MetricsPublisher") as mock_publisher, \
                patch("diffcheck.cli.commands.ApplicationInfo"), \
                patch("diffcheck.cli.commands.ReconciliationMetrics") as mock_metrics:
            cmd_schedule(parse("schedule", "--metrics-port", "9200"))

        mock_publisher.assert_called_once_with(port=9200)
        mock_publisher.return_value.start.assert_called_once()
        kwargs = mock_scheduler_class.return_value.add_interval_job.call_args[1]
        assert kwargs["metrics"] is mock_metrics.return_value

    def test_metrics_port_in_use_exits_one(self, mock_scheduler_class, infra):
        with patch("diffcheck.cli.commands.MetricsPublisher") as mock_publisher:
            mock_publisher.return_value.start.side_effect = RuntimeError("port 9200 in use")

            with pytest.raises(SystemExit) as exc_info:
                cmd_schedule(parse("schedule", "--metrics-port", "9200"))

        assert exc_info.value.code == 1
        infra.pools.assert_not_called()


# ============================================================================
# report / status / main
# ============================================================================

class TestCmdReport:
    def _saved_report(self, tmp_path):
        path = tmp_path / "saved.json"
        path.write_text(json.dumps({
            "status": "SUCCESS",
            "message": "Processed 1 records",
            "processing_time_ms": 5.0,
            "counts": {"total": 1, "inserted": 1, "updated": 0, "skipped": 0,
                       "deleted": 0, "errored": 0},
            "chunks": {"total": 1, "failed": 0},
            "outcomes": [{"entity_id": 10, "transaction_id": 1, "action": "insert",
                          "success": True, "message": "new data registered",
                          "changed_fields": []}],
        }))
        return path

    def test_console(self, tmp_path, capsys):
        path = self._saved_report(tmp_path)

        cmd_report(parse("report", "--input", str(path), "--show-details"))

        out = capsys.readouterr().out
        assert "Status: SUCCESS" in out
        assert "new data registered" in out

    def test_csv(self, tmp_path):
        path = self._saved_report(tmp_path)
        output = tmp_path / "saved.csv"

        cmd_report(parse("report", "--input", str(path), "--format", "csv", "--output", str(output)))

        assert output.read_text().splitlines()[1].startswith("10,1,insert")

    def test_missing_file_exits_one(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            cmd_report(parse("report", "--input", str(tmp_path / "missing.json")))

        assert exc_info.value.code == 1


class TestCmdStatus:
    @patch("diffcheck.cli.commands.close_pools")
    @patch("diffcheck.cli.commands.PostgresSnapshotRepository")
    @patch("diffcheck.cli.commands.PostgresStagingRepository")
    @patch("diffcheck.cli.commands.initialize_pools")
    def test_prints_counts(self, mock_pools, mock_staging, mock_snapshot, mock_close, capsys):
        mock_staging.return_value.count_pending.return_value = 1234
        mock_snapshot.return_value.count.return_value = 56

        cmd_status(parse("status"))

        out = capsys.readouterr().out
        assert "Pending staging rows (transaction_table): 1,234" in out
        assert "Snapshot rows (latest_data_table): 56" in out
        mock_close.assert_called_once()


class TestMain:
    @patch("diffcheck.cli.configure_logging")
    def test_no_command_prints_help(self, mock_logging, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "usage: diffcheck" in capsys.readouterr().out

    @patch("diffcheck.cli.configure_logging")
    def test_dispatches_to_command(self, mock_logging):
        handler = Mock()

        with patch.dict(COMMANDS, {"status": handler}):
            main(["status"])

        handler.assert_called_once()
        assert handler.call_args[0][0].command == "status"
