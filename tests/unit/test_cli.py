"""
Unit tests for the command line entry point
"""

import pytest
from unittest.mock import AsyncMock, patch

from core.exceptions import ExtractionFailedError, RetryExhaustedError
from core.notifications import MemoryNotifier
from pipeline.cli import build_parser, main, selected_stages
from pipeline.runner import STAGES
from schemas.reports import FailurePolicy, StageResult, StageStatus


def results_for(stages):
    return [
        StageResult(stage=s, status=StageStatus.SUCCESS, execution_id=f"{s}_20261019_060000")
        for s in stages
    ]


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args(["all"])

        assert args.stage == "all"
        assert args.policy is None
        assert args.max_retries is None
        assert args.retry_delay is None
        assert args.schedule is False

    def test_options(self):
        args = build_parser().parse_args(
            ["extract", "--policy", "best_effort", "--max-retries", "5", "--retry-delay", "1.5"]
        )

        assert args.policy == "best_effort"
        assert args.max_retries == 5
        assert args.retry_delay == 1.5

    def test_rejects_unknown_stage(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["publish"])

    def test_rejects_unknown_policy(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["extract", "--policy", "lenient"])

    def test_selected_stages(self):
        assert selected_stages("all") == list(STAGES)
        assert selected_stages("transform") == ["transform"]


class TestMain:

    def test_success_exit_code(self, test_settings):
        run = AsyncMock(return_value=results_for(["extract"]))
        notifier = MemoryNotifier()

        with patch("pipeline.cli.run_stages", new=run):
            code = main(
                ["extract", "--policy", "best_effort", "--max-retries", "2", "--retry-delay", "0"],
                config=test_settings,
                notifier=notifier,
            )

        assert code == 0
        args, kwargs = run.call_args
        assert args[0] == ["extract"]
        assert kwargs["config"] is test_settings
        assert kwargs["notifier"] is notifier
        assert kwargs["policy"] == FailurePolicy.BEST_EFFORT
        assert kwargs["max_attempts"] == 2
        assert kwargs["retry_delay"] == 0

    def test_all_runs_every_stage(self, test_settings):
        run = AsyncMock(return_value=results_for(STAGES))

        with patch("pipeline.cli.run_stages", new=run):
            assert main(["all"], config=test_settings) == 0

        assert run.call_args.args[0] == list(STAGES)

    def test_skipped_stages_exit_cleanly(self, test_settings):
        skipped = [StageResult(stage="extract", status=StageStatus.SKIPPED)]

        with patch("pipeline.cli.run_stages", new=AsyncMock(return_value=skipped)):
            assert main(["extract"], config=test_settings) == 0

    @pytest.mark.parametrize(
        "error",
        [
            RetryExhaustedError("extract failed after 3 attempts"),
            ExtractionFailedError("Extract FAILED: 1/3 locations failed."),
            RuntimeError("unexpected"),
        ],
    )
    def test_failure_exit_code(self, test_settings, error):
        with patch("pipeline.cli.run_stages", new=AsyncMock(side_effect=error)):
            assert main(["extract"], config=test_settings) == 1

    def test_interrupt_exit_code(self, test_settings):
        def interrupted(coro):
            coro.close()
            raise KeyboardInterrupt

        with patch("pipeline.cli.run_stages", new=AsyncMock(return_value=[])), \
                patch("pipeline.cli.asyncio.run", side_effect=interrupted):
            assert main(["all"], config=test_settings) == 1

    def test_zero_retries_rejected(self, test_settings):
        run = AsyncMock()

        with patch("pipeline.cli.run_stages", new=run):
            assert main(["extract", "--max-retries", "0"], config=test_settings) == 1

        run.assert_not_called()

    def test_schedule_mode_starts_scheduler(self, test_settings):
        def stop_immediately(coro):
            coro.close()

        with patch("pipeline.cli.ETLScheduler") as scheduler_cls, \
                patch("pipeline.cli.asyncio.run", side_effect=stop_immediately):
            assert main(["all", "--schedule", "--max-retries", "2"], config=test_settings) == 0

        kwargs = scheduler_cls.call_args.kwargs
        assert kwargs["config"] is test_settings
        assert kwargs["max_attempts"] == 2
