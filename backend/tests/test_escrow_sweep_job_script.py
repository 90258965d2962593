"""
Tests for the escrow sweep job script
"""

import pytest
import json
import os
import sys
from datetime import datetime, timezone
from unittest.mock import patch, MagicMock

# Import the script module
import importlib.util

script_path = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'run_escrow_sweep_job.py')
spec = importlib.util.spec_from_file_location("run_escrow_sweep_job", script_path)
run_job_script = importlib.util.module_from_spec(spec)
spec.loader.exec_module(run_job_script)


def test_parse_as_of_date_only():
    assert run_job_script.parse_as_of("2026-10-01") == datetime(2026, 10, 1, tzinfo=timezone.utc)


def test_parse_as_of_datetime():
    parsed = run_job_script.parse_as_of("2026-10-01T12:30:00")
    assert parsed == datetime(2026, 10, 1, 12, 30, tzinfo=timezone.utc)


def test_parse_as_of_defaults_to_now():
    parsed = run_job_script.parse_as_of(None)
    assert parsed.tzinfo is not None


def test_parse_as_of_invalid():
    with pytest.raises(ValueError):
        run_job_script.parse_as_of("not-a-date")


def test_generate_trace_id_format():
    trace_id = run_job_script.generate_trace_id(datetime(2026, 10, 1, 12, 30, tzinfo=timezone.utc))
    assert trace_id.startswith("job-escrow-sweep-202610011230-")
    assert len(trace_id.rsplit("-", 1)[1]) == 8


def _run_main(argv, summary=None, error=None):
    session = MagicMock()
    sweep = MagicMock(return_value=summary, side_effect=error)
    with patch.object(sys, "argv", argv), \
            patch.object(run_job_script, "SessionLocal", return_value=session), \
            patch.object(run_job_script, "run_escrow_sweep", sweep), \
            patch.object(run_job_script, "get_notifier", return_value=MagicMock()):
        with pytest.raises(SystemExit) as exc_info:
            run_job_script.main()
    session.close.assert_called_once()
    return exc_info.value.code, sweep


def test_main_prints_summary_and_exits_zero(capsys):
    code, sweep = _run_main(
        ["run_escrow_sweep_job.py", "--as-of", "2026-10-01", "--dry-run", "--max-items", "10"],
        summary={"expired": {"executed_count": 1}, "errors_count": 0},
    )

    assert code == 0
    output = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert output["job"] == "escrow_sweep"
    assert output["dry_run"] is True
    assert output["as_of"] == "2026-10-01T00:00:00+00:00"
    assert output["summary"]["expired"]["executed_count"] == 1
    assert sweep.call_args.kwargs["max_items"] == 10
    assert sweep.call_args.kwargs["dry_run"] is True


def test_main_exits_one_when_items_failed(capsys):
    code, _ = _run_main(["run_escrow_sweep_job.py"], summary={"errors_count": 2})

    assert code == 1
    assert json.loads(capsys.readouterr().out.strip().splitlines()[-1])["exit_code"] == 1


def test_main_reports_sweep_error(capsys):
    code, _ = _run_main(
        ["run_escrow_sweep_job.py"],
        error=run_job_script.SweepError("expire: could not select candidates"),
    )

    assert code == 1
    error_output = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert "could not select candidates" in error_output["error"]


def test_main_rejects_bad_as_of(capsys):
    with patch.object(sys, "argv", ["run_escrow_sweep_job.py", "--as-of", "yesterday"]):
        with pytest.raises(SystemExit) as exc_info:
            run_job_script.main()

    assert exc_info.value.code == 1
    assert "Invalid --as-of" in capsys.readouterr().err
