"""Tests for the synpick command line interface."""

import json
import os
from unittest.mock import AsyncMock, Mock, patch

import pytest

from synpick import cli
from synpick.config import AppConfig
from synpick.errors import CatalogUnavailable, ConfigError
from synpick.tool_manager import UpdateStatus


@pytest.fixture(autouse=True)
def quiet_cli():
    """Keep CLI tests off the real terminal, .env and logging setup."""
    with patch("synpick.cli.console") as console, \
            patch("synpick.cli.setup_logging"), \
            patch("synpick.cli.load_environment"), \
            patch.dict(os.environ, {"SYNPICK_API_KEY": "sk-test-key"}):
        os.environ.pop("SYNTHETIC_API_KEY", None)
        yield console


@pytest.fixture
def saved_config(config_dir):
    config = AppConfig(selected_model="hf:zai-org/GLM-4.6", tier_models={"haiku": "hf:small"})
    config.save_to_file(config_dir / "config.json")
    return config


def read_config(config_dir):
    return json.loads((config_dir / "config.json").read_text())


def test_argument_parsing():
    """Test command line argument parsing."""
    args = cli.parse_args(["--list-models", "--verbose", "--dry-run", "--refresh", "--tier", "opus=hf:o"])

    assert args.list_models is True
    assert args.verbose is True
    assert args.dry_run is True
    assert args.refresh is True
    assert args.tier == ["opus=hf:o"]
    assert args.claude_args == []


def test_passthrough_arguments():
    args = cli.parse_args(["-m", "hf:x", "--", "--resume", "-p"])
    assert args.model == "hf:x"
    assert [a for a in args.claude_args if a != "--"] == ["--resume", "-p"]


def test_unknown_flags_pass_through():
    args = cli.parse_args(["--dangerously-skip-permissions", "-m", "hf:x"])
    assert args.model == "hf:x"
    assert args.claude_args == ["--dangerously-skip-permissions"]


def test_no_abbreviated_synpick_flags():
    # "--verb" is left for Claude Code rather than expanded to --verbose
    args = cli.parse_args(["--verb"])
    assert args.verbose is False
    assert args.claude_args == ["--verb"]


def test_parse_tier_overrides():
    assert cli.parse_tier_overrides(["opus=hf:big", "haiku = small"]) == {"opus": "hf:big", "haiku": "small"}
    with pytest.raises(ConfigError):
        cli.parse_tier_overrides(["opus"])
    with pytest.raises(ConfigError):
        cli.parse_tier_overrides(["thinking=hf:r1"])


class TestLaunch:

    @pytest.mark.asyncio
    async def test_dry_run_uses_saved_selection(self, config_dir, saved_config, mock_spawn):
        with patch("synpick.cli.print_launch_environment") as show:
            code = await cli.main(["--config-dir", str(config_dir), "--dry-run"])

        assert code == 0
        mock_spawn.assert_not_called()
        env, command = show.call_args.args
        assert env["ANTHROPIC_DEFAULT_MODEL"] == "hf:zai-org/GLM-4.6"
        assert env["ANTHROPIC_DEFAULT_HAIKU_MODEL"] == "hf:small"
        assert env["ANTHROPIC_AUTH_TOKEN"] == "sk-test-key"
        assert command == ["claude"]

    @pytest.mark.asyncio
    async def test_launch_with_model_flag(self, config_dir, mock_spawn, mock_process):
        code = await cli.main([
            "--config-dir", str(config_dir),
            "--model", "openai:gpt-oss-120b",
            "--thinking-model", "deepseek-ai/DeepSeek-R1",
            "--tier", "opus=hf:big",
            "--", "--resume",
        ])

        assert code == 0
        mock_process.wait.assert_awaited_once()
        args, kwargs = mock_spawn.call_args
        assert args == ("claude", "--resume")
        env = kwargs["env"]
        assert env["ANTHROPIC_DEFAULT_MODEL"] == "openai:gpt-oss-120b"
        assert env["ANTHROPIC_DEFAULT_OPUS_MODEL"] == "hf:big"
        assert env["ANTHROPIC_THINKING_MODEL"] == "hf:deepseek-ai/DeepSeek-R1"
        # --model is not persisted
        assert not (config_dir / "config.json").exists()

    @pytest.mark.asyncio
    async def test_child_exit_code_is_returned(self, config_dir, saved_config, mock_spawn, mock_process):
        mock_process.wait.return_value = 3
        assert await cli.main(["--config-dir", str(config_dir)]) == 3

    @pytest.mark.asyncio
    async def test_killed_by_signal_reports_shell_status(self, config_dir, saved_config, mock_spawn, mock_process):
        mock_process.wait.return_value = -9
        assert await cli.main(["--config-dir", str(config_dir)]) == 137

    @pytest.mark.asyncio
    async def test_unknown_flags_reach_claude(self, config_dir, saved_config, mock_spawn):
        code = await cli.main(["--config-dir", str(config_dir), "--dangerously-skip-permissions"])

        assert code == 0
        assert mock_spawn.call_args.args == ("claude", "--dangerously-skip-permissions")

    @pytest.mark.asyncio
    async def test_tier_flags_merge_with_saved_tiers(self, config_dir, mock_spawn):
        AppConfig(
            selected_model="hf:main",
            selected_thinking_model="hf:r1",
            tier_models={"haiku": "hf:small", "opus": "hf:saved-opus"},
        ).save_to_file(config_dir / "config.json")

        with patch("synpick.cli.print_launch_environment") as show:
            code = await cli.main(["--config-dir", str(config_dir), "--dry-run", "--tier", "opus=hf:big"])

        assert code == 0
        env = show.call_args.args[0]
        assert env["ANTHROPIC_DEFAULT_OPUS_MODEL"] == "hf:big"
        assert env["ANTHROPIC_DEFAULT_HAIKU_MODEL"] == "hf:small"
        assert env["ANTHROPIC_DEFAULT_SONNET_MODEL"] == "hf:main"
        assert env["ANTHROPIC_THINKING_MODEL"] == "hf:r1"

    @pytest.mark.asyncio
    async def test_launch_failure(self, config_dir, saved_config):
        with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as spawn:
            spawn.side_effect = FileNotFoundError(2, "No such file or directory")
            code = await cli.main(["--config-dir", str(config_dir)])
        assert code == 1

    @pytest.mark.asyncio
    async def test_first_run_selects_and_saves(self, config_dir, sample_models, mock_spawn):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock) as fetch, \
                patch("synpick.cli.select_model_interactive", return_value=sample_models[2]) as select, \
                patch("synpick.cli.print_launch_environment"):
            fetch.return_value = sample_models
            code = await cli.main(["--config-dir", str(config_dir), "--dry-run"])

        assert code == 0
        select.assert_called_once()
        saved = read_config(config_dir)
        assert saved["selected_model"] == "hf:moonshotai/Kimi-K2-Instruct"
        assert saved["first_run_completed"] is True

    @pytest.mark.asyncio
    async def test_no_models_found(self, config_dir):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock, return_value=[]):
            assert await cli.main(["--config-dir", str(config_dir)]) == 1

    @pytest.mark.asyncio
    async def test_catalog_error_is_reported(self, config_dir, quiet_cli):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock) as fetch:
            fetch.side_effect = CatalogUnavailable("API error 500 from https://x: oops", kind="error_response")
            code = await cli.main(["--config-dir", str(config_dir), "--select"])

        assert code == 1
        printed = " ".join(str(c.args[0]) for c in quiet_cli.print.call_args_list)
        assert "API error 500" in printed

    @pytest.mark.asyncio
    async def test_select_thinking_saves_choice(self, config_dir, saved_config, sample_models):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock, return_value=sample_models), \
                patch("synpick.cli.select_model_interactive", return_value=sample_models[0]), \
                patch("synpick.cli.print_launch_environment") as show:
            code = await cli.main(["--config-dir", str(config_dir), "--select-thinking", "--dry-run"])

        assert code == 0
        assert read_config(config_dir)["selected_thinking_model"] == "hf:zai-org/GLM-4.6"
        env = show.call_args.args[0]
        assert env["ANTHROPIC_THINKING_MODEL"] == "hf:zai-org/GLM-4.6"


class TestCommands:

    @pytest.mark.asyncio
    async def test_list_models(self, config_dir, sample_models):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock, return_value=sample_models) as fetch, \
                patch("synpick.cli.render_models") as render:
            code = await cli.main(["--config-dir", str(config_dir), "--list-models", "--refresh"])

        assert code == 0
        fetch.assert_awaited_once_with(True)
        assert render.call_count == 3

    @pytest.mark.asyncio
    async def test_search(self, config_dir, sample_models):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock, return_value=sample_models), \
                patch("synpick.cli.render_models") as render:
            assert await cli.main(["--config-dir", str(config_dir), "--search", "kimi"]) == 0
            assert [r.id for r in render.call_args.args[0]] == ["hf:moonshotai/Kimi-K2-Instruct"]

            assert await cli.main(["--config-dir", str(config_dir), "--search", "nothing-like-this"]) == 1

    @pytest.mark.asyncio
    async def test_set_and_show_config(self, config_dir):
        assert await cli.main(["--config-dir", str(config_dir), "--set-config", "cache_duration_hours=48"]) == 0
        assert read_config(config_dir)["cache_duration_hours"] == 48

        assert await cli.main(["--config-dir", str(config_dir), "--show-config"]) == 0

    @pytest.mark.asyncio
    async def test_set_config_invalid(self, config_dir):
        assert await cli.main(["--config-dir", str(config_dir), "--set-config", "cache_duration_hours=0"]) == 1
        assert await cli.main(["--config-dir", str(config_dir), "--set-config", "no-equals-sign"]) == 1

    @pytest.mark.asyncio
    async def test_reset_config(self, config_dir, saved_config):
        assert await cli.main(["--config-dir", str(config_dir), "--reset-config"]) == 0
        assert read_config(config_dir)["selected_model"] == ""

    @pytest.mark.asyncio
    async def test_cache_commands(self, config_dir, sample_models):
        with patch("synpick.cli.ModelCoordinator.fetch_models", new_callable=AsyncMock, return_value=sample_models):
            assert await cli.main(["--config-dir", str(config_dir), "--cache-info"]) == 0
        assert await cli.main(["--config-dir", str(config_dir), "--clear-cache"]) == 0

    @pytest.mark.asyncio
    async def test_doctor(self, config_dir):
        with patch("synpick.cli.ExternalToolManager.is_installed", new_callable=AsyncMock, return_value=True), \
                patch("synpick.cli.ExternalToolManager.check_for_update", new_callable=AsyncMock) as check:
            check.return_value = UpdateStatus("2.0.76", "2.1.0")
            assert await cli.main(["--config-dir", str(config_dir), "--doctor"]) == 0

    @pytest.mark.asyncio
    async def test_doctor_without_claude(self, config_dir):
        with patch("synpick.cli.ExternalToolManager.is_installed", new_callable=AsyncMock, return_value=False):
            assert await cli.main(["--config-dir", str(config_dir), "--doctor"]) == 1

    @pytest.mark.asyncio
    async def test_update(self, config_dir):
        with patch("synpick.cli.ExternalToolManager.update", new_callable=AsyncMock, return_value=False):
            assert await cli.main(["--config-dir", str(config_dir), "--update"]) == 1
        with patch("synpick.cli.ExternalToolManager.update", new_callable=AsyncMock, return_value=True), \
                patch("synpick.cli.ExternalToolManager.get_current_version", new_callable=AsyncMock, return_value="2.1.0"):
            assert await cli.main(["--config-dir", str(config_dir), "--update"]) == 0


class TestInteractiveSelection:

    def test_returns_chosen_model(self, sample_models):
        with patch("synpick.cli.inquirer") as mock_inquirer:
            mock_inquirer.fuzzy.return_value.execute.return_value = "anthropic:claude-opus-4"
            selected = cli.select_model_interactive(sample_models, current="hf:zai-org/GLM-4.6")

        assert selected == sample_models[1]
        choices = mock_inquirer.fuzzy.call_args.kwargs["choices"]
        assert any("(current)" in choice.name for choice in choices)

    def test_none_choice(self, sample_models):
        with patch("synpick.cli.inquirer") as mock_inquirer:
            mock_inquirer.fuzzy.return_value.execute.return_value = None
            assert cli.select_model_interactive(sample_models, allow_none=True) is None

        assert mock_inquirer.fuzzy.call_args.kwargs["choices"][0].name == "(none)"

    def test_keyboard_interrupt_exits(self, sample_models):
        with patch("synpick.cli.inquirer") as mock_inquirer:
            mock_inquirer.fuzzy.return_value.execute.side_effect = KeyboardInterrupt()
            with pytest.raises(SystemExit):
                cli.select_model_interactive(sample_models)


def test_run_handles_keyboard_interrupt():
    with patch("synpick.cli.nest_asyncio"), \
            patch("synpick.cli.main", new=Mock()), \
            patch("synpick.cli.asyncio.run", side_effect=KeyboardInterrupt()):
        with pytest.raises(SystemExit) as exc_info:
            cli.run()
    assert exc_info.value.code == 0


def test_run_exits_with_main_status():
    with patch("synpick.cli.nest_asyncio"), \
            patch("synpick.cli.main", new=Mock()), \
            patch("synpick.cli.asyncio.run", return_value=2):
        with pytest.raises(SystemExit) as exc_info:
            cli.run()
    assert exc_info.value.code == 2
